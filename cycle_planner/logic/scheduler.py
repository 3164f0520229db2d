"""
タスクの自動スケジュール

候補日を作り、ハード制約（過去不可・締切より前・キャパシティ）で絞り込んでから
スコアの高い日を選ぶ。候補が残らなければ制約を順に緩め、最後は明日を返す。
"""
import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Optional, Sequence

from ..date_utils import add_days, date_range, resolve_today
from ..models import Cycle, ScoreResult, Task, UserPreferences, parse_date
from .capacity import has_capacity
from .phase_calendar import phase_or_default
from .scoring import score_date

logger = logging.getLogger(__name__)

DEFAULT_LOOKAHEAD_DAYS = 60
MAX_ALTERNATIVES = 3


@dataclass(frozen=True)
class RelaxationStrategy:
    """制約の緩め方（締切は常にハード制約）"""
    name: str
    enforce_capacity: bool


STRICT = RelaxationStrategy("strict", enforce_capacity=True)
IGNORE_CAPACITY = RelaxationStrategy("ignore_capacity", enforce_capacity=False)

# 上から順に試す
SCHEDULING_STRATEGIES = (STRICT, IGNORE_CAPACITY)


def can_schedule_on_date(target: date, today: Optional[date] = None) -> bool:
    """過去の日付でなければ可（今日は可）"""
    return target >= resolve_today(today)


def generate_candidate_dates(start_date, end_date) -> List[date]:
    """start_date から end_date まで（両端を含む）の日付"""
    return list(date_range(parse_date(start_date), parse_date(end_date)))


def _window_end(task: Task, today: date) -> date:
    if task.deadline:
        return parse_date(task.deadline)
    return add_days(today, DEFAULT_LOOKAHEAD_DAYS)


def _apply_hard_constraints(task: Task, candidates: List[date], today: date,
                            strategy: RelaxationStrategy, existing_tasks: Sequence[Task],
                            cycles: Sequence[Cycle], preferences: Optional[UserPreferences]) -> List[date]:
    # 1. 過去を除外
    filtered = [d for d in candidates if can_schedule_on_date(d, today)]
    if not filtered:
        return filtered

    # 2. 締切当日以降を除外
    if task.deadline:
        deadline = parse_date(task.deadline)
        filtered = [d for d in filtered if d < deadline]
        if not filtered:
            return filtered

    # 3. キャパシティ（完了済みタスクは数えない）
    if strategy.enforce_capacity:
        filtered = [
            d for d in filtered
            if has_capacity(d, phase_or_default(d, cycles), existing_tasks, preferences)
        ]
    return filtered


def rank_candidates(candidates: Sequence[date], task: Task, existing_tasks: Sequence[Task],
                    cycles: Sequence[Cycle], preferences: Optional[UserPreferences] = None) -> List[ScoreResult]:
    """スコアの高い順に並べる（同点は日付の早い順のまま）"""
    scored = [score_date(d, task, existing_tasks, cycles, preferences) for d in candidates]
    return sorted(scored, key=lambda r: r.total_score, reverse=True)


def schedule_task(task: Task, existing_tasks: Sequence[Task], cycles: Sequence[Cycle],
                  preferences: Optional[UserPreferences] = None, today: Optional[date] = None) -> str:
    """
    タスクを置く日付を決める

    Args:
        task: 配置するタスク
        existing_tasks: 既存のタスク
        cycles: 記録済みの周期
        preferences: ユーザー設定
        today: 基準日

    Returns:
        YYYY-MM-DD。どの日も条件を満たさないときは明日
    """
    current = resolve_today(today)
    window = generate_candidate_dates(current, _window_end(task, current))

    for strategy in SCHEDULING_STRATEGIES:
        candidates = _apply_hard_constraints(
            task, window, current, strategy, existing_tasks, cycles, preferences
        )
        if not candidates:
            logger.debug("候補なし（%s）: task=%s", strategy.name, task.id)
            continue
        best = rank_candidates(candidates, task, existing_tasks, cycles, preferences)[0]
        return best.date.isoformat()

    fallback = add_days(current, 1)
    logger.debug("有効な日付がないため明日に配置: task=%s", task.id)
    return fallback.isoformat()


@dataclass
class ScheduleInfo:
    """候補付きのスケジュール結果"""
    scheduled_date: str
    score: Optional[ScoreResult] = None
    is_at_capacity: bool = False
    alternatives: List[ScoreResult] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "scheduled_date": self.scheduled_date,
            "score": self.score.to_dict() if self.score else None,
            "is_at_capacity": self.is_at_capacity,
            "alternatives": [a.to_dict() for a in self.alternatives],
        }


def schedule_task_with_alternatives(task: Task, existing_tasks: Sequence[Task], cycles: Sequence[Cycle],
                                    preferences: Optional[UserPreferences] = None,
                                    today: Optional[date] = None) -> ScheduleInfo:
    """
    上限を超える日も含めて採点し、空きのある最良の日を選ぶ

    空きのある日がなければ全体の最良の日を選び is_at_capacity を立てる
    （保存前にユーザーへ警告するため）。alternatives は空きのある他の候補（最大3件）。
    """
    current = resolve_today(today)
    window = generate_candidate_dates(current, _window_end(task, current))
    candidates = _apply_hard_constraints(
        task, window, current, IGNORE_CAPACITY, existing_tasks, cycles, preferences
    )

    if not candidates:
        fallback = add_days(current, 1)
        result = score_date(fallback, task, existing_tasks, cycles, preferences)
        return ScheduleInfo(
            scheduled_date=fallback.isoformat(),
            score=result,
            is_at_capacity=not has_capacity(fallback, result.phase, existing_tasks, preferences),
        )

    ranked = rank_candidates(candidates, task, existing_tasks, cycles, preferences)
    within = [r for r in ranked if has_capacity(r.date, r.phase, existing_tasks, preferences)]
    best = within[0] if within else ranked[0]
    alternatives = [r for r in within if r.date != best.date][:MAX_ALTERNATIVES]

    return ScheduleInfo(
        scheduled_date=best.date.isoformat(),
        score=best,
        is_at_capacity=not within,
        alternatives=alternatives,
    )

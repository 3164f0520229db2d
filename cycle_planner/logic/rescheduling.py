"""
周期データ更新後の再スケジュール提案
"""
import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Optional, Sequence

from ..date_utils import resolve_today, round_half_up
from ..models import (
    Cycle,
    HistoryAction,
    ReschedulingBehavior,
    ScoreResult,
    Task,
    UserPreferences,
)
from ..store import RecordStore
from .scheduler import schedule_task
from .scoring import score_date

logger = logging.getLogger(__name__)

# これ未満の改善では動かさない（小さな差で予定が揺れないように）
MIN_SCORE_IMPROVEMENT = 20
REASON_DIFF_THRESHOLD = 20


@dataclass
class RescheduleSuggestion:
    """再スケジュールの提案"""
    task: Task
    current_date: str
    current_score: int
    suggested_date: str
    suggested_score: int
    score_improvement: int
    reason: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "task": self.task.to_dict(),
            "current_date": self.current_date,
            "current_score": self.current_score,
            "suggested_date": self.suggested_date,
            "suggested_score": self.suggested_score,
            "score_improvement": self.score_improvement,
            "reason": self.reason,
        }


@dataclass
class RescheduleResult:
    mode: ReschedulingBehavior
    suggestions: List[RescheduleSuggestion] = field(default_factory=list)
    rescheduled: List[Task] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "mode": self.mode.value,
            "suggestions": [s.to_dict() for s in self.suggestions],
            "rescheduled": [t.to_dict() for t in self.rescheduled],
        }


def build_reason(current: ScoreResult, proposed: ScoreResult) -> str:
    """スコア内訳の差から理由を作る"""
    parts = []
    if proposed.breakdown.energy_match - current.breakdown.energy_match > REASON_DIFF_THRESHOLD:
        parts.append("better energy match")
    if proposed.breakdown.workload_balance - current.breakdown.workload_balance > REASON_DIFF_THRESHOLD:
        parts.append("lighter workload")
    return " + ".join(parts) if parts else "overall better fit"


def find_reschedule_suggestions(all_tasks: Sequence[Task], cycles: Sequence[Cycle],
                                preferences: Optional[UserPreferences] = None,
                                today: Optional[date] = None) -> List[RescheduleSuggestion]:
    """
    自動配置された未来のタスクを最新の周期データで採点し直す

    対象: auto_scheduled / 未完了 / 明日以降に配置済み
    最良の日が現在より20点以上良い場合のみ提案する。
    """
    if not cycles or not all_tasks:
        return []

    current_day = resolve_today(today)
    today_str = current_day.isoformat()
    candidates = [
        t for t in all_tasks
        if t.auto_scheduled and not t.completed and t.scheduled_date and t.scheduled_date > today_str
    ]

    suggestions = []
    for task in candidates:
        current = score_date(task.scheduled_date, task, all_tasks, cycles, preferences)
        best_date = schedule_task(task, all_tasks, cycles, preferences, current_day)
        if best_date == task.scheduled_date:
            continue

        proposed = score_date(best_date, task, all_tasks, cycles, preferences)
        improvement = proposed.total_score - current.total_score
        if improvement < MIN_SCORE_IMPROVEMENT:
            continue

        suggestions.append(RescheduleSuggestion(
            task=task,
            current_date=task.scheduled_date,
            current_score=round_half_up(current.total_score),
            suggested_date=best_date,
            suggested_score=round_half_up(proposed.total_score),
            score_improvement=round_half_up(improvement),
            reason=build_reason(current, proposed),
        ))

    return suggestions


class ReschedulingAdvisor:
    """再スケジュールの提案と適用"""

    def __init__(self, store: RecordStore):
        self.store = store

    async def check_and_reschedule(self, all_tasks: Sequence[Task], cycles: Sequence[Cycle],
                                   preferences: UserPreferences,
                                   today: Optional[date] = None) -> RescheduleResult:
        """
        提案を作り、automatic モードならその場で適用する

        Returns:
            mode / suggestions / rescheduled（適用したタスク）
        """
        mode = preferences.rescheduling_behavior
        suggestions = find_reschedule_suggestions(all_tasks, cycles, preferences, today)
        if not suggestions:
            return RescheduleResult(mode=mode)

        if mode == ReschedulingBehavior.AUTOMATIC:
            rescheduled = await self.apply_rescheduling(suggestions)
            return RescheduleResult(mode=mode, suggestions=suggestions, rescheduled=rescheduled)

        return RescheduleResult(mode=mode, suggestions=suggestions)

    async def apply_rescheduling(self, suggestions: Sequence[RescheduleSuggestion]) -> List[Task]:
        """提案を保存し、rescheduled の履歴を残す"""
        rescheduled = []
        for suggestion in suggestions:
            updated = await self.store.update_task(suggestion.task.id, {
                "scheduled_date": suggestion.suggested_date,
                "auto_scheduled": True,
            })
            await self.store.append_history(suggestion.task.id, HistoryAction.RESCHEDULED, {
                "trigger": "cycle_update",
                "from": suggestion.current_date,
                "to": suggestion.suggested_date,
                "score_improvement": suggestion.score_improvement,
                "reason": suggestion.reason,
            })
            logger.info("タスクを移動: %s %s -> %s (%s)", suggestion.task.id,
                        suggestion.current_date, suggestion.suggested_date, suggestion.reason)
            rescheduled.append(updated)
        return rescheduled

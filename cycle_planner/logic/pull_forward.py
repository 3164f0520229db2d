"""
排卵期の空きへタスクを前倒しする提案
"""
import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Optional, Sequence

from ..date_utils import date_range, resolve_today
from ..models import (
    Cycle,
    EnergyLevel,
    HistoryAction,
    Phase,
    PhasePeriod,
    Task,
    UserPreferences,
)
from ..store import RecordStore
from .phase_calendar import get_upcoming_phase_periods
from .scheduler import rank_candidates

logger = logging.getLogger(__name__)

# 排卵期を見落とさないよう負荷検出より長めに見る
PULL_FORWARD_LOOKAHEAD_DAYS = 45
OVULATION_CAPACITY = 5
MIN_AVAILABLE_SLOTS = 2
PULLABLE_ENERGY = (EnergyLevel.HIGH, EnergyLevel.MEDIUM)


@dataclass
class PullForwardCandidate:
    task: Task
    current_date: str
    suggested_date: str
    energy_match: str   # "Perfect" / "Good"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "task": self.task.to_dict(),
            "current_date": self.current_date,
            "suggested_date": self.suggested_date,
            "energy_match": self.energy_match,
        }


@dataclass
class PullForwardGroup:
    """排卵期ごとの前倒し候補"""
    period: PhasePeriod
    available_slots: int
    candidates: List[PullForwardCandidate] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "period": self.period.to_dict(),
            "available_slots": self.available_slots,
            "candidates": [c.to_dict() for c in self.candidates],
        }


def find_best_date_in_period(period: PhasePeriod, task: Task, all_tasks: Sequence[Task],
                             cycles: Sequence[Cycle], preferences: Optional[UserPreferences] = None,
                             today: Optional[date] = None) -> str:
    """期間内で最もスコアの高い日（過去の日付は使わない）"""
    current = resolve_today(today)
    start = max(period.start, current)
    candidates = list(date_range(start, period.end))
    if not candidates:
        return period.start.isoformat()
    return rank_candidates(candidates, task, all_tasks, cycles, preferences)[0].date.isoformat()


def _pull_order(task: Task):
    # 高エネルギーを先に、その中では配置日の早い順
    return (0 if task.energy_level == EnergyLevel.HIGH else 1, task.scheduled_date)


def suggest_pull_forward(tasks: Sequence[Task], cycles: Sequence[Cycle],
                         preferences: Optional[UserPreferences] = None,
                         today: Optional[date] = None) -> List[PullForwardGroup]:
    """
    空きが2件以上ある排卵期に、後ろの週から前倒しできるタスクを探す

    対象: 未完了 / 締切なし / エネルギー medium・high / auto_scheduled / 排卵期より後に配置済み
    """
    if not tasks or not cycles:
        return []

    periods = [
        p for p in get_upcoming_phase_periods(cycles, PULL_FORWARD_LOOKAHEAD_DAYS, today)
        if p.phase == Phase.OVULATION
    ]
    active_tasks = [t for t in tasks if t.is_active]
    groups = []

    for period in periods:
        period_start = period.start.isoformat()
        period_end = period.end.isoformat()
        in_period = [t for t in active_tasks if period_start <= t.scheduled_date <= period_end]

        available = OVULATION_CAPACITY - len(in_period)
        if available < MIN_AVAILABLE_SLOTS:
            continue

        movable = sorted(
            (
                t for t in active_tasks
                if t.scheduled_date > period_end
                and not t.deadline
                and t.energy_level in PULLABLE_ENERGY
                and t.auto_scheduled
            ),
            key=_pull_order,
        )[:available]
        if not movable:
            continue

        groups.append(PullForwardGroup(
            period=period,
            available_slots=available,
            candidates=[
                PullForwardCandidate(
                    task=task,
                    current_date=task.scheduled_date,
                    suggested_date=find_best_date_in_period(
                        period, task, active_tasks, cycles, preferences, today
                    ),
                    energy_match="Perfect" if task.energy_level == EnergyLevel.HIGH else "Good",
                )
                for task in movable
            ],
        ))

    return groups


async def apply_pull_forward(candidate: PullForwardCandidate, store: RecordStore) -> Task:
    """前倒しを保存し、rescheduled の履歴を残す"""
    updated = await store.update_task(candidate.task.id, {
        "scheduled_date": candidate.suggested_date,
        "auto_scheduled": True,
    })
    await store.append_history(candidate.task.id, HistoryAction.RESCHEDULED, {
        "trigger": "pull_forward",
        "from": candidate.current_date,
        "to": candidate.suggested_date,
    })
    logger.info("タスクを前倒し: %s %s -> %s", candidate.task.id,
                candidate.current_date, candidate.suggested_date)
    return updated

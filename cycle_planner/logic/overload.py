"""
負荷の偏りを検出

今後30日をフェーズごとに区切り、次の3種類を警告する:
    1. overload        月経期にタスクが4件以上
    2. energy_mismatch 月経期・黄体期に高エネルギーのタスク
    3. underutilized   排卵期に空きが2件以上
"""
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Optional, Sequence

from ..date_utils import format_short
from ..models import Cycle, EnergyLevel, Phase, Task, UserPreferences
from .capacity import get_capacity_for_phase
from .phase_calendar import get_upcoming_phase_periods

OVERLOAD_LOOKAHEAD_DAYS = 30
MENSTRUAL_TASK_LIMIT = 3
UNDERUTILIZED_MIN_SLOTS = 2
LOW_ENERGY_PHASES = (Phase.MENSTRUAL, Phase.LUTEAL)


@dataclass
class OverloadWarning:
    """警告（id で非表示にした警告を管理する）"""
    id: str
    type: str
    severity: str
    phase: Phase
    message: str
    recommendation: str
    phase_start: Optional[date] = None
    phase_end: Optional[date] = None
    task_count: Optional[int] = None
    available_slots: Optional[int] = None
    affected_tasks: List[Task] = field(default_factory=list)
    task: Optional[Task] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "severity": self.severity,
            "phase": self.phase.value,
            "message": self.message,
            "recommendation": self.recommendation,
            "phase_start": self.phase_start.isoformat() if self.phase_start else None,
            "phase_end": self.phase_end.isoformat() if self.phase_end else None,
            "task_count": self.task_count,
            "available_slots": self.available_slots,
            "affected_task_ids": [t.id for t in self.affected_tasks],
            "task_id": self.task.id if self.task else None,
        }


def _date_span(start: date, end: date) -> str:
    return f"{format_short(start)}–{format_short(end)}"


def detect_overload_situations(tasks: Sequence[Task], cycles: Sequence[Cycle],
                               preferences: Optional[UserPreferences] = None,
                               today: Optional[date] = None) -> List[OverloadWarning]:
    """
    今後30日の負荷の問題を検出

    Args:
        tasks: 全タスク
        cycles: 記録済みの周期
        preferences: ユーザー設定（排卵期の上限計算用）
        today: 基準日

    Returns:
        警告のリスト（期間の順）
    """
    if not tasks or not cycles:
        return []

    warnings: List[OverloadWarning] = []
    active_tasks = [t for t in tasks if t.is_active]

    for period in get_upcoming_phase_periods(cycles, OVERLOAD_LOOKAHEAD_DAYS, today):
        period_start = period.start.isoformat()
        period_end = period.end.isoformat()
        tasks_in_phase = [t for t in active_tasks if period_start <= t.scheduled_date <= period_end]

        if period.phase == Phase.MENSTRUAL and len(tasks_in_phase) > MENSTRUAL_TASK_LIMIT:
            has_high = any(t.energy_level == EnergyLevel.HIGH for t in tasks_in_phase)
            warnings.append(OverloadWarning(
                id=f"overload-{period_start}",
                type="overload",
                severity="high" if has_high else "medium",
                phase=Phase.MENSTRUAL,
                phase_start=period.start,
                phase_end=period.end,
                task_count=len(tasks_in_phase),
                affected_tasks=tasks_in_phase,
                message=f"{len(tasks_in_phase)} tasks during your period "
                        f"({_date_span(period.start, period.end)})",
                recommendation="Consider moving some tasks to later in your cycle.",
            ))

        if period.phase in LOW_ENERGY_PHASES:
            for task in tasks_in_phase:
                if task.energy_level != EnergyLevel.HIGH:
                    continue
                if task.deadline:
                    recommendation = "Has a deadline; consider splitting it or adjusting the deadline."
                else:
                    recommendation = "Move to your ovulation window for a better energy match."
                warnings.append(OverloadWarning(
                    id=f"mismatch-{task.id}",
                    type="energy_mismatch",
                    severity="medium",
                    phase=period.phase,
                    task=task,
                    message=f'"{task.name}" needs high energy but lands in {period.phase.value} phase',
                    recommendation=recommendation,
                ))

        if period.phase == Phase.OVULATION:
            available = get_capacity_for_phase(Phase.OVULATION, preferences) - len(tasks_in_phase)
            if available >= UNDERUTILIZED_MIN_SLOTS:
                warnings.append(OverloadWarning(
                    id=f"underutilized-{period_start}",
                    type="underutilized",
                    severity="low",
                    phase=Phase.OVULATION,
                    phase_start=period.start,
                    phase_end=period.end,
                    task_count=len(tasks_in_phase),
                    available_slots=available,
                    message=f"{available} free slots in your high-energy week "
                            f"({_date_span(period.start, period.end)})",
                    recommendation="Pull forward tasks from later weeks to use this peak energy time.",
                ))

    return warnings

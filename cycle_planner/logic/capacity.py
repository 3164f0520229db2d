"""
1日のタスク上限（キャパシティ）計算

上限 = round(daily_task_limit × フェーズ倍率)
デフォルトの 4 では 月経期 2 / 卵胞期 3 / 排卵期 5 / 黄体期 3 になる。
"""
from types import MappingProxyType
from typing import Optional, Sequence

from ..date_utils import round_half_up
from ..models import Phase, Task, UserPreferences, to_iso

DEFAULT_DAILY_LIMIT = 4

PHASE_MULTIPLIERS = MappingProxyType({
    Phase.MENSTRUAL: 0.50,   # 休息期
    Phase.FOLLICULAR: 0.75,
    Phase.OVULATION: 1.25,   # エネルギーのピーク
    Phase.LUTEAL: 0.75,
})


def get_capacity_for_phase(phase: Optional[Phase], preferences: Optional[UserPreferences] = None) -> int:
    """フェーズごとの1日の最大タスク数（最低1）"""
    base = preferences.daily_task_limit if preferences else None
    if not base or base < 1:
        base = DEFAULT_DAILY_LIMIT
    multiplier = PHASE_MULTIPLIERS.get(phase, PHASE_MULTIPLIERS[Phase.LUTEAL])
    return max(1, round_half_up(base * multiplier))


def count_active_tasks_on(target_date, tasks: Sequence[Task]) -> int:
    """その日に入っている未完了タスク数"""
    date_str = to_iso(target_date)
    return sum(1 for t in tasks if t.scheduled_date == date_str and not t.completed)


def has_capacity(target_date, phase: Phase, tasks: Sequence[Task],
                 preferences: Optional[UserPreferences] = None) -> bool:
    return count_active_tasks_on(target_date, tasks) < get_capacity_for_phase(phase, preferences)

"""
候補日のスコア計算

4つの観点（各0-100）を重み付けして合計する:
    エネルギー適合 40% / 締切の近さ 30% / 負荷の分散 20% / 曜日の好み 10%
"""
from types import MappingProxyType
from typing import Optional, Sequence

from ..date_utils import days_between, is_weekend, weekday_name
from ..models import (
    Cycle,
    EnergyLevel,
    Phase,
    ScoreBreakdown,
    ScoreResult,
    Task,
    UserPreferences,
    parse_date,
)
from .capacity import count_active_tasks_on, get_capacity_for_phase
from .phase_calendar import phase_or_default

NEUTRAL_SCORE = 50

PERFECT_MATCHES = MappingProxyType({
    EnergyLevel.HIGH: frozenset({Phase.OVULATION}),
    EnergyLevel.MEDIUM: frozenset({Phase.FOLLICULAR, Phase.LUTEAL}),
    EnergyLevel.LOW: frozenset({Phase.LUTEAL, Phase.MENSTRUAL}),
})

GOOD_MATCHES = MappingProxyType({
    EnergyLevel.HIGH: frozenset({Phase.FOLLICULAR}),
    EnergyLevel.MEDIUM: frozenset({Phase.OVULATION}),
    EnergyLevel.LOW: frozenset({Phase.FOLLICULAR}),
})

# (利用率の上限, スコア) 上から順に判定
WORKLOAD_BANDS = ((0.3, 90), (0.5, 80), (0.7, 60), (0.85, 40), (1.0, 20))


def calculate_energy_match_score(task: Task, phase: Phase) -> int:
    """エネルギー適合スコア（完全一致100 / 次点60 / 不一致20 / 指定なし50）"""
    if not task.energy_level:
        return NEUTRAL_SCORE
    if phase in PERFECT_MATCHES[task.energy_level]:
        return 100
    if phase in GOOD_MATCHES[task.energy_level]:
        return 60
    return 20


def calculate_deadline_urgency_score(task: Task, target_date) -> int:
    """締切までの日数によるスコア（締切当日は避ける）"""
    if not task.deadline:
        return NEUTRAL_SCORE

    days_left = days_between(parse_date(target_date), parse_date(task.deadline))
    if days_left < 0:
        return 0
    if days_left == 0:
        return 30
    if days_left == 1:
        return 95
    if days_left == 2:
        return 90
    if days_left <= 7:
        return 80
    if days_left <= 14:
        return 60
    if days_left <= 30:
        return 40
    return 20


def calculate_workload_balance_score(target_date, existing_tasks: Sequence[Task], phase: Phase,
                                     preferences: Optional[UserPreferences] = None) -> int:
    """その日の埋まり具合によるスコア（空いているほど高い）"""
    capacity = get_capacity_for_phase(phase, preferences)
    utilization = count_active_tasks_on(target_date, existing_tasks) / capacity

    if utilization == 0:
        return 100
    for limit, score in WORKLOAD_BANDS:
        if utilization < limit:
            return score
    return 0


def calculate_day_preference_score(task: Task, target_date) -> int:
    """希望曜日なら100、それ以外は0。指定がなければ平日80 / 週末60"""
    day = parse_date(target_date)
    if task.preferred_days:
        return 100 if weekday_name(day) in task.preferred_days else 0
    return 60 if is_weekend(day) else 80


def score_date(target_date, task: Task, all_tasks: Sequence[Task], cycles: Sequence[Cycle],
               preferences: Optional[UserPreferences] = None) -> ScoreResult:
    """
    候補日を採点

    Args:
        target_date: 候補日
        task: 配置するタスク
        all_tasks: 既存のタスク（負荷計算用）
        cycles: 記録済みの周期
        preferences: ユーザー設定（重みと1日の上限）

    Returns:
        合計スコア（0-100）と内訳
    """
    preferences = preferences or UserPreferences()
    weights = preferences.scheduling_weights.normalized()
    day = parse_date(target_date)
    phase = phase_or_default(day, cycles)

    breakdown = ScoreBreakdown(
        energy_match=calculate_energy_match_score(task, phase),
        deadline_urgency=calculate_deadline_urgency_score(task, day),
        workload_balance=calculate_workload_balance_score(day, all_tasks, phase, preferences),
        day_preference=calculate_day_preference_score(task, day),
    )

    total = (
        breakdown.energy_match * weights.energy_match
        + breakdown.deadline_urgency * weights.deadline_urgency
        + breakdown.workload_balance * weights.workload_balance
        + breakdown.day_preference * weights.day_preference
    )
    return ScoreResult(date=day, total_score=total, breakdown=breakdown, phase=phase)

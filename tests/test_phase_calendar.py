from datetime import date, datetime

import pytest

from cycle_planner.date_utils import add_days
from cycle_planner.logic.phase_calendar import (
    calculate_average_cycle_length,
    calculate_average_menstrual_duration,
    calculate_phases_from_start,
    create_cycle_entry,
    find_overlapping_cycles,
    get_current_phase_info,
    get_cycle_day_for_date,
    get_cycle_statistics,
    get_phase_for_date,
    get_phase_for_date_advanced,
    get_upcoming_phase_periods,
    phase_or_default,
    update_cycle_lengths,
)
from cycle_planner.models import Cycle, Phase, PhaseWindow, ValidationError


def _cycle(start, duration=5):
    return Cycle(id=f"c-{start}", start_date=start, menstrual_duration=duration)


def test_phases_from_start_default_layout():
    phases = calculate_phases_from_start("2026-01-05", 5, 28)
    assert phases[Phase.MENSTRUAL] == PhaseWindow("2026-01-05", "2026-01-09")
    assert phases[Phase.FOLLICULAR] == PhaseWindow("2026-01-10", "2026-01-17")
    assert phases[Phase.OVULATION] == PhaseWindow("2026-01-18", "2026-01-19")
    assert phases[Phase.LUTEAL] == PhaseWindow("2026-01-20", "2026-02-01")


def test_long_period_leaves_no_follicular_window():
    phases = calculate_phases_from_start("2026-01-05", 20, 28)
    assert phases[Phase.MENSTRUAL] == PhaseWindow("2026-01-05", "2026-01-17")
    assert phases[Phase.FOLLICULAR] is None
    assert phases[Phase.OVULATION] == PhaseWindow("2026-01-18", "2026-01-19")


def test_short_cycle_has_no_luteal_window():
    phases = calculate_phases_from_start("2026-01-05", 5, 15)
    assert phases[Phase.LUTEAL] is None


def test_phase_for_logged_date(base_cycle):
    assert get_phase_for_date("2026-01-07", base_cycle) == Phase.MENSTRUAL
    assert get_phase_for_date("2026-01-19", base_cycle) == Phase.OVULATION
    assert get_phase_for_date("2026-02-05", base_cycle) is None


@pytest.mark.parametrize("duration,length", [(1, 21), (3, 28), (5, 28), (7, 30), (10, 35), (12, 45)])
def test_each_phase_appears_once_in_order(duration, length):
    start = date(2026, 1, 5)
    cycle = Cycle(
        id="c1", start_date=start.isoformat(), menstrual_duration=duration,
        phases=calculate_phases_from_start(start, duration, length),
    )

    sequence = []
    for offset in range(length):
        phase = get_phase_for_date(add_days(start, offset), cycle)
        assert phase is not None
        if not sequence or sequence[-1] != phase:
            sequence.append(phase)

    assert sequence == [Phase.MENSTRUAL, Phase.FOLLICULAR, Phase.OVULATION, Phase.LUTEAL]
    assert get_phase_for_date(add_days(start, length), cycle) is None


def test_advanced_lookup_predicts_future_cycles(cycles):
    assert get_phase_for_date_advanced("2026-02-03", cycles) == Phase.MENSTRUAL
    assert get_phase_for_date_advanced("2026-02-16", cycles) == Phase.OVULATION
    assert get_phase_for_date_advanced("2026-03-15", cycles) == Phase.OVULATION


def test_advanced_lookup_projects_backwards(cycles):
    # 2025-12-08 開始と投影され、12/20 は13日目
    assert get_phase_for_date_advanced("2025-12-20", cycles) == Phase.FOLLICULAR


def test_logged_cycle_wins_over_prediction():
    older = create_cycle_entry("2026-01-05", "2026-01-09")
    # 予測より早く始まった周期
    newer = create_cycle_entry("2026-01-30", "2026-02-02", [older])
    cycles = [older, newer]
    assert get_phase_for_date_advanced("2026-01-31", cycles) == Phase.MENSTRUAL


def test_no_cycles_means_no_phase_and_luteal_default():
    assert get_phase_for_date_advanced("2026-02-10", []) is None
    assert phase_or_default("2026-02-10", []) == Phase.LUTEAL


def test_average_cycle_length_ignores_outliers():
    cycles = [_cycle("2026-01-01"), _cycle("2026-01-29"), _cycle("2026-02-28"), _cycle("2026-06-01")]
    assert calculate_average_cycle_length(cycles) == 29


def test_average_cycle_length_rounds_half_up():
    cycles = [_cycle("2026-01-01"), _cycle("2026-01-29"), _cycle("2026-02-27")]
    assert calculate_average_cycle_length(cycles) == 29


def test_average_cycle_length_defaults():
    assert calculate_average_cycle_length([]) == 28
    assert calculate_average_cycle_length([_cycle("2026-01-01")]) == 28


def test_average_menstrual_duration():
    assert calculate_average_menstrual_duration([_cycle("2026-01-01", 4), _cycle("2026-01-29", 5)]) == 5
    assert calculate_average_menstrual_duration([]) == 5


def test_create_cycle_entry_uses_end_date():
    entry = create_cycle_entry("2026-01-05", "2026-01-08", logged_at=datetime(2026, 1, 5, 9, 0))
    assert entry.id.startswith("cycle-2026-01-05-")
    assert entry.menstrual_duration == 4
    assert entry.cycle_length is None
    assert entry.is_manual
    assert entry.phases[Phase.FOLLICULAR] == PhaseWindow("2026-01-09", "2026-01-17")
    assert entry.logged_at == "2026-01-05T09:00:00"


def test_create_cycle_entry_rejects_end_before_start():
    with pytest.raises(ValidationError):
        create_cycle_entry("2026-01-05", "2026-01-01")


def test_create_cycle_entry_estimates_length_from_history():
    history = [_cycle("2025-11-03"), _cycle("2025-12-03")]
    entry = create_cycle_entry("2026-01-02", None, history)
    # 間隔は30日・30日
    assert entry.phases[Phase.LUTEAL] == PhaseWindow("2026-01-17", "2026-01-31")


def test_update_cycle_lengths_sets_gaps_and_leaves_latest_open():
    cycles = [_cycle("2026-02-28"), _cycle("2026-01-01"), _cycle("2026-01-29")]
    updated = update_cycle_lengths(cycles)
    assert [c.start_date for c in updated] == ["2026-01-01", "2026-01-29", "2026-02-28"]
    assert [c.cycle_length for c in updated] == [28, 30, None]
    assert all(c.cycle_length is None for c in cycles)


def test_find_overlapping_cycles(base_cycle):
    assert find_overlapping_cycles("2026-01-08", None, [base_cycle]) == [base_cycle]
    assert find_overlapping_cycles("2026-01-01", None, [base_cycle]) == [base_cycle]
    assert find_overlapping_cycles("2026-01-20", "2026-01-24", [base_cycle]) == []


def test_cycle_day():
    assert get_cycle_day_for_date("2026-01-05", "2026-01-05") == 1
    assert get_cycle_day_for_date("2026-01-19", "2026-01-05") == 15


def test_cycle_statistics():
    cycles = [_cycle("2026-01-05"), _cycle("2026-02-02")]
    stats = get_cycle_statistics(cycles)
    assert stats.average_cycle_length == 28
    assert stats.total_cycles_logged == 2
    assert stats.last_period_date == "2026-02-02"
    assert stats.predicted_next_period == "2026-03-02"
    assert get_cycle_statistics([]).total_cycles_logged == 0


def test_current_phase_info(cycles):
    info = get_current_phase_info(cycles, today=date(2026, 1, 19))
    assert info.phase == Phase.OVULATION
    assert info.cycle_day == 15
    assert get_current_phase_info(cycles, today=date(2026, 2, 10)).phase is None


def test_upcoming_phase_periods_group_consecutive_days(cycles, today):
    periods = get_upcoming_phase_periods(cycles, 10, today)
    assert [(p.phase, p.start, p.end) for p in periods] == [
        (Phase.FOLLICULAR, date(2026, 2, 10), date(2026, 2, 14)),
        (Phase.OVULATION, date(2026, 2, 15), date(2026, 2, 16)),
        (Phase.LUTEAL, date(2026, 2, 17), date(2026, 2, 19)),
    ]

from cycle_planner.logic.capacity import count_active_tasks_on, get_capacity_for_phase, has_capacity
from cycle_planner.models import Phase, UserPreferences


def test_default_capacity_per_phase():
    assert get_capacity_for_phase(Phase.MENSTRUAL) == 2
    assert get_capacity_for_phase(Phase.FOLLICULAR) == 3
    assert get_capacity_for_phase(Phase.OVULATION) == 5
    assert get_capacity_for_phase(Phase.LUTEAL) == 3


def test_capacity_scales_with_daily_limit():
    prefs = UserPreferences(daily_task_limit=6)
    assert get_capacity_for_phase(Phase.MENSTRUAL, prefs) == 3
    assert get_capacity_for_phase(Phase.FOLLICULAR, prefs) == 5
    assert get_capacity_for_phase(Phase.OVULATION, prefs) == 8


def test_capacity_is_at_least_one():
    prefs = UserPreferences(daily_task_limit=1)
    assert get_capacity_for_phase(Phase.MENSTRUAL, prefs) == 1


def test_completed_tasks_do_not_use_capacity(make_task):
    tasks = [
        make_task(scheduled="2026-02-03"),
        make_task(scheduled="2026-02-03", completed=True),
        make_task(scheduled="2026-02-04"),
    ]
    assert count_active_tasks_on("2026-02-03", tasks) == 1
    assert has_capacity("2026-02-03", Phase.MENSTRUAL, tasks)

    tasks.append(make_task(scheduled="2026-02-03"))
    assert not has_capacity("2026-02-03", Phase.MENSTRUAL, tasks)

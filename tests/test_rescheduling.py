import asyncio
from datetime import date

from cycle_planner.logic.rescheduling import (
    ReschedulingAdvisor,
    build_reason,
    find_reschedule_suggestions,
)
from cycle_planner.models import (
    HistoryAction,
    Phase,
    ReschedulingBehavior,
    ScoreBreakdown,
    ScoreResult,
    UserPreferences,
)
from cycle_planner.store import MemoryStore


def _result(energy, workload):
    return ScoreResult(
        date=date(2026, 2, 16),
        total_score=0,
        breakdown=ScoreBreakdown(energy_match=energy, workload_balance=workload),
        phase=Phase.OVULATION,
    )


def test_build_reason():
    assert build_reason(_result(20, 50), _result(100, 50)) == "better energy match"
    assert build_reason(_result(50, 20), _result(50, 100)) == "lighter workload"
    assert build_reason(_result(20, 20), _result(100, 100)) == "better energy match + lighter workload"
    assert build_reason(_result(60, 80), _result(80, 100)) == "overall better fit"


def test_high_energy_task_in_luteal_gets_suggestion(make_task, cycles, today):
    task = make_task(energy="high", scheduled="2026-02-18")
    suggestions = find_reschedule_suggestions([task], cycles, today=today)

    assert len(suggestions) == 1
    suggestion = suggestions[0]
    assert suggestion.current_date == "2026-02-18"
    assert suggestion.suggested_date == "2026-02-16"
    assert suggestion.current_score == 47
    assert suggestion.suggested_score == 83
    assert suggestion.score_improvement == 36
    assert suggestion.reason == "better energy match"


def test_small_improvements_are_not_suggested(make_task, cycles, today):
    task = make_task(energy="medium", scheduled="2026-02-12")
    assert find_reschedule_suggestions([task], cycles, today=today) == []


def test_manual_completed_and_current_tasks_are_left_alone(make_task, cycles, today):
    tasks = [
        make_task(energy="high", scheduled="2026-02-18", auto=False),
        make_task(energy="high", scheduled="2026-02-19", completed=True),
        make_task(energy="high", scheduled="2026-02-10"),
    ]
    assert find_reschedule_suggestions(tasks, cycles, today=today) == []


def test_no_cycles_means_no_suggestions(make_task, today):
    assert find_reschedule_suggestions([make_task(energy="high", scheduled="2026-02-18")], [], today=today) == []


def test_ask_permission_leaves_tasks_unchanged(make_task, cycles, today):
    task = make_task(energy="high", scheduled="2026-02-18")
    store = MemoryStore(tasks=[task], cycles=cycles)
    advisor = ReschedulingAdvisor(store)

    result = asyncio.run(advisor.check_and_reschedule([task], cycles, UserPreferences(), today))

    assert result.mode == ReschedulingBehavior.ASK_PERMISSION
    assert result.to_dict()["mode"] == "ask_permission"
    assert len(result.suggestions) == 1
    assert result.rescheduled == []
    stored = asyncio.run(store.get_task(task.id))
    assert stored.scheduled_date == "2026-02-18"


def test_automatic_mode_applies_and_records_history(make_task, cycles, today):
    task = make_task(energy="high", scheduled="2026-02-18")
    store = MemoryStore(tasks=[task], cycles=cycles)
    advisor = ReschedulingAdvisor(store)
    prefs = UserPreferences(rescheduling_behavior=ReschedulingBehavior.AUTOMATIC)

    result = asyncio.run(advisor.check_and_reschedule([task], cycles, prefs, today))

    assert result.mode == ReschedulingBehavior.AUTOMATIC
    assert [t.scheduled_date for t in result.rescheduled] == ["2026-02-16"]
    stored = asyncio.run(store.get_task(task.id))
    assert stored.scheduled_date == "2026-02-16"
    assert stored.auto_scheduled

    history = asyncio.run(store.list_history(task.id))
    assert len(history) == 1
    assert history[0].action == HistoryAction.RESCHEDULED
    assert history[0].metadata["trigger"] == "cycle_update"
    assert history[0].metadata["from"] == "2026-02-18"
    assert history[0].metadata["to"] == "2026-02-16"
    assert history[0].metadata["score_improvement"] == 36


def test_nothing_to_do_returns_empty_result(cycles, today):
    advisor = ReschedulingAdvisor(MemoryStore())
    result = asyncio.run(advisor.check_and_reschedule([], cycles, UserPreferences(), today))
    assert result.suggestions == []
    assert result.to_dict()["mode"] == "ask_permission"

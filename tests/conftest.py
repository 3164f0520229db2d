"""
テスト共通のフィクスチャ

基準の周期は 2026-01-05 開始（月経5日・28日周期）:
    記録    月経 1/5-1/9  卵胞 1/10-1/17  排卵 1/18-1/19  黄体 1/20-2/1
    予測    月経 2/2-2/6  卵胞 2/7-2/14   排卵 2/15-2/16  黄体 2/17-3/1
"""
from datetime import date

import pytest

from cycle_planner.logic.phase_calendar import create_cycle_entry
from cycle_planner.models import EnergyLevel, Task
from cycle_planner.store import MemoryStore


@pytest.fixture
def today():
    # 火曜日
    return date(2026, 2, 10)


@pytest.fixture
def base_cycle():
    return create_cycle_entry("2026-01-05", "2026-01-09")


@pytest.fixture
def cycles(base_cycle):
    return [base_cycle]


@pytest.fixture
def make_task():
    counter = iter(range(1, 10_000))

    def factory(name="task", energy=None, scheduled=None, deadline=None,
                auto=True, completed=False, preferred_days=None):
        return Task(
            id=f"t{next(counter)}",
            name=name,
            energy_level=EnergyLevel(energy) if energy else None,
            deadline=deadline,
            preferred_days=list(preferred_days or []),
            scheduled_date=scheduled,
            completed=completed,
            auto_scheduled=auto,
        )

    return factory


@pytest.fixture
def store(cycles):
    return MemoryStore(cycles=cycles)

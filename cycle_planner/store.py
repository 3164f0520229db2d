"""
外部レコードストアのインターフェース

スケジュール計算は純粋関数で、ストアは呼び出し側が読み書きする。
読み込み → 計算 → 書き込みの間に排他はない。
"""
import copy
import uuid
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional

from .models import (
    Cycle,
    HistoryAction,
    HistoryEntry,
    Task,
    UserPreferences,
)


class StoreError(Exception):
    """ストアの読み書きエラー"""
    pass


class TaskNotFoundError(StoreError):
    pass


class CycleNotFoundError(StoreError):
    pass


class RecordStore(ABC):
    """タスク・周期・履歴・設定を保存するストア"""

    @abstractmethod
    async def list_tasks(self) -> List[Task]:
        ...

    @abstractmethod
    async def get_task(self, task_id: str) -> Task:
        ...

    @abstractmethod
    async def add_task(self, task: Task) -> Task:
        ...

    @abstractmethod
    async def update_task(self, task_id: str, fields: Dict[str, Any]) -> Task:
        ...

    @abstractmethod
    async def delete_task(self, task_id: str) -> None:
        ...

    @abstractmethod
    async def list_cycles(self) -> List[Cycle]:
        ...

    @abstractmethod
    async def add_cycle(self, cycle: Cycle) -> Cycle:
        ...

    @abstractmethod
    async def update_cycle(self, cycle_id: str, fields: Dict[str, Any]) -> Cycle:
        ...

    @abstractmethod
    async def delete_cycle(self, cycle_id: str) -> None:
        ...

    @abstractmethod
    async def append_history(self, task_id: str, action: HistoryAction,
                             metadata: Optional[Dict[str, Any]] = None) -> HistoryEntry:
        ...

    @abstractmethod
    async def list_history(self, task_id: str) -> List[HistoryEntry]:
        ...

    @abstractmethod
    async def load_preferences(self) -> UserPreferences:
        ...

    @abstractmethod
    async def save_preferences(self, preferences: UserPreferences) -> UserPreferences:
        ...


class MemoryStore(RecordStore):
    """プロセス内のストア（テスト・ローカル実行用）"""

    def __init__(self, tasks: Optional[List[Task]] = None, cycles: Optional[List[Cycle]] = None,
                 preferences: Optional[UserPreferences] = None):
        self._tasks: Dict[str, Task] = {}
        self._cycles: Dict[str, Cycle] = {}
        self._history: List[HistoryEntry] = []
        self._preferences: Optional[Dict[str, Any]] = preferences.to_dict() if preferences else None
        for task in tasks or []:
            self._put_task(task)
        for cycle in cycles or []:
            self._put_cycle(cycle)

    def _put_task(self, task: Task) -> Task:
        stored = copy.deepcopy(task)
        if not stored.id:
            stored.id = f"task-{uuid.uuid4()}"
        if not stored.created_at:
            stored.created_at = datetime.now().isoformat()
        self._tasks[stored.id] = stored
        return copy.deepcopy(stored)

    def _put_cycle(self, cycle: Cycle) -> Cycle:
        stored = copy.deepcopy(cycle)
        if not stored.id:
            stored.id = f"cycle-{stored.start_date}-{uuid.uuid4()}"
        self._cycles[stored.id] = stored
        return copy.deepcopy(stored)

    # === タスク ===

    async def list_tasks(self) -> List[Task]:
        return [copy.deepcopy(t) for t in self._tasks.values()]

    async def get_task(self, task_id: str) -> Task:
        if task_id not in self._tasks:
            raise TaskNotFoundError(f"タスクが見つかりません: {task_id}")
        return copy.deepcopy(self._tasks[task_id])

    async def add_task(self, task: Task) -> Task:
        return self._put_task(task)

    async def update_task(self, task_id: str, fields: Dict[str, Any]) -> Task:
        current = await self.get_task(task_id)
        data = current.to_dict()
        data.update(fields)
        data["id"] = task_id
        updated = Task.from_dict(data)
        self._tasks[task_id] = updated
        return copy.deepcopy(updated)

    async def delete_task(self, task_id: str) -> None:
        if self._tasks.pop(task_id, None) is None:
            raise TaskNotFoundError(f"タスクが見つかりません: {task_id}")

    # === 周期 ===

    async def list_cycles(self) -> List[Cycle]:
        cycles = sorted(self._cycles.values(), key=lambda c: c.start_date, reverse=True)
        return [copy.deepcopy(c) for c in cycles]

    async def add_cycle(self, cycle: Cycle) -> Cycle:
        return self._put_cycle(cycle)

    async def update_cycle(self, cycle_id: str, fields: Dict[str, Any]) -> Cycle:
        if cycle_id not in self._cycles:
            raise CycleNotFoundError(f"周期が見つかりません: {cycle_id}")
        data = self._cycles[cycle_id].to_dict()
        data.update(fields)
        data["id"] = cycle_id
        updated = Cycle.from_dict(data)
        self._cycles[cycle_id] = updated
        return copy.deepcopy(updated)

    async def delete_cycle(self, cycle_id: str) -> None:
        if self._cycles.pop(cycle_id, None) is None:
            raise CycleNotFoundError(f"周期が見つかりません: {cycle_id}")

    # === 履歴 ===

    async def append_history(self, task_id: str, action: HistoryAction,
                             metadata: Optional[Dict[str, Any]] = None) -> HistoryEntry:
        entry = HistoryEntry(task_id=task_id, action=action, metadata=dict(metadata or {}))
        self._history.append(entry)
        return copy.deepcopy(entry)

    async def list_history(self, task_id: str) -> List[HistoryEntry]:
        entries = [e for e in self._history if e.task_id == task_id]
        return [copy.deepcopy(e) for e in sorted(entries, key=lambda e: e.timestamp)]

    # === 設定 ===

    async def load_preferences(self) -> UserPreferences:
        return UserPreferences.from_dict(self._preferences)

    async def save_preferences(self, preferences: UserPreferences) -> UserPreferences:
        self._preferences = preferences.to_dict()
        return UserPreferences.from_dict(self._preferences)

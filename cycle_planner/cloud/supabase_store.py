"""
Supabaseのレコードストア（HTTP API版）
supabaseパッケージの代わりにhttpxでPostgRESTを直接呼び出す
"""
import logging
import uuid
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

import httpx

from ..models import Cycle, HistoryAction, HistoryEntry, Task, UserPreferences
from ..store import CycleNotFoundError, RecordStore, StoreError, TaskNotFoundError

logger = logging.getLogger(__name__)

TASKS_TABLE = "tasks"
CYCLES_TABLE = "cycles"
HISTORY_TABLE = "task_history"
SETTINGS_TABLE = "settings"
PREFERENCES_KEY = "preferences"


def _to_json(fields: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v.value if isinstance(v, Enum) else v for k, v in fields.items()}


class SupabaseStore(RecordStore):
    """Supabaseのテーブルに保存するストア"""

    def __init__(self, url: str, key: str, access_token: Optional[str] = None,
                 timeout: float = 10.0, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.url = url.rstrip("/")
        self.key = key
        self.access_token = access_token
        self.timeout = timeout
        self._transport = transport

    def _get_headers(self) -> dict:
        """APIヘッダーを取得"""
        return {
            "apikey": self.key,
            "Authorization": f"Bearer {self.access_token or self.key}",
            "Content-Type": "application/json",
            "Prefer": "return=representation",
        }

    async def _request(self, method: str, table: str, params: Optional[Dict[str, str]] = None,
                       json: Any = None, prefer: Optional[str] = None) -> List[Dict[str, Any]]:
        headers = self._get_headers()
        if prefer:
            headers["Prefer"] = prefer

        # イベントループはリクエストごとに変わるためクライアントも都度作る
        async with httpx.AsyncClient(base_url=f"{self.url}/rest/v1", timeout=self.timeout,
                                     transport=self._transport) as client:
            try:
                response = await client.request(method, f"/{table}", params=params,
                                                json=json, headers=headers)
                response.raise_for_status()
            except httpx.HTTPError as e:
                logger.error("Supabase %s %s エラー: %s", method, table, e)
                raise StoreError(f"ストアへのアクセスに失敗しました: {table}") from e

        if not response.content:
            return []
        return response.json()

    # === タスク ===

    async def list_tasks(self) -> List[Task]:
        rows = await self._request("GET", TASKS_TABLE, params={"select": "*", "order": "created_at.asc"})
        return [Task.from_dict(row) for row in rows]

    async def get_task(self, task_id: str) -> Task:
        rows = await self._request("GET", TASKS_TABLE, params={"id": f"eq.{task_id}", "select": "*"})
        if not rows:
            raise TaskNotFoundError(f"タスクが見つかりません: {task_id}")
        return Task.from_dict(rows[0])

    async def add_task(self, task: Task) -> Task:
        data = task.to_dict()
        data["id"] = data["id"] or f"task-{uuid.uuid4()}"
        data["created_at"] = data["created_at"] or datetime.now().isoformat()
        rows = await self._request("POST", TASKS_TABLE, json=data)
        return Task.from_dict(rows[0] if rows else data)

    async def update_task(self, task_id: str, fields: Dict[str, Any]) -> Task:
        rows = await self._request("PATCH", TASKS_TABLE, params={"id": f"eq.{task_id}"},
                                   json=_to_json(fields))
        if not rows:
            raise TaskNotFoundError(f"タスクが見つかりません: {task_id}")
        return Task.from_dict(rows[0])

    async def delete_task(self, task_id: str) -> None:
        rows = await self._request("DELETE", TASKS_TABLE, params={"id": f"eq.{task_id}"})
        if not rows:
            raise TaskNotFoundError(f"タスクが見つかりません: {task_id}")

    # === 周期 ===

    async def list_cycles(self) -> List[Cycle]:
        rows = await self._request("GET", CYCLES_TABLE, params={"select": "*", "order": "start_date.desc"})
        return [Cycle.from_dict(row) for row in rows]

    async def add_cycle(self, cycle: Cycle) -> Cycle:
        data = cycle.to_dict()
        data["id"] = data["id"] or f"cycle-{cycle.start_date}-{uuid.uuid4()}"
        rows = await self._request("POST", CYCLES_TABLE, json=data)
        return Cycle.from_dict(rows[0] if rows else data)

    async def update_cycle(self, cycle_id: str, fields: Dict[str, Any]) -> Cycle:
        rows = await self._request("PATCH", CYCLES_TABLE, params={"id": f"eq.{cycle_id}"},
                                   json=_to_json(fields))
        if not rows:
            raise CycleNotFoundError(f"周期が見つかりません: {cycle_id}")
        return Cycle.from_dict(rows[0])

    async def delete_cycle(self, cycle_id: str) -> None:
        rows = await self._request("DELETE", CYCLES_TABLE, params={"id": f"eq.{cycle_id}"})
        if not rows:
            raise CycleNotFoundError(f"周期が見つかりません: {cycle_id}")

    # === 履歴 ===

    async def append_history(self, task_id: str, action: HistoryAction,
                             metadata: Optional[Dict[str, Any]] = None) -> HistoryEntry:
        entry = HistoryEntry(task_id=task_id, action=action, metadata=dict(metadata or {}))
        await self._request("POST", HISTORY_TABLE, json=entry.to_dict(), prefer="return=minimal")
        return entry

    async def list_history(self, task_id: str) -> List[HistoryEntry]:
        rows = await self._request("GET", HISTORY_TABLE, params={
            "task_id": f"eq.{task_id}", "select": "*", "order": "timestamp.asc",
        })
        return [HistoryEntry.from_dict(row) for row in rows]

    # === 設定 ===

    async def load_preferences(self) -> UserPreferences:
        rows = await self._request("GET", SETTINGS_TABLE, params={
            "key": f"eq.{PREFERENCES_KEY}", "select": "value",
        })
        return UserPreferences.from_dict(rows[0].get("value") if rows else None)

    async def save_preferences(self, preferences: UserPreferences) -> UserPreferences:
        await self._request(
            "POST", SETTINGS_TABLE,
            json={"key": PREFERENCES_KEY, "value": preferences.to_dict()},
            prefer="resolution=merge-duplicates,return=minimal",
        )
        return preferences

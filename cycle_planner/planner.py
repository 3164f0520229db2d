"""
プランナーサービス

ストアから読み込み → エンジンで計算 → ストアへ書き込み、の流れをまとめる。
一連の処理に排他はなく、同時に更新された場合は後の書き込みが勝つ。
"""
import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .date_utils import resolve_today
from .logic.capacity import get_capacity_for_phase
from .logic.overload import OverloadWarning, detect_overload_situations
from .logic.phase_calendar import (
    CycleStatistics,
    create_cycle_entry,
    find_overlapping_cycles,
    get_active_cycle_for_date,
    get_cycle_day_for_date,
    get_cycle_statistics,
    get_phase_for_date_advanced,
    update_cycle_lengths,
)
from .logic.pull_forward import (
    PullForwardCandidate,
    PullForwardGroup,
    apply_pull_forward,
    suggest_pull_forward,
)
from .logic.rescheduling import (
    ReschedulingAdvisor,
    RescheduleResult,
    find_reschedule_suggestions,
)
from .logic.scheduler import ScheduleInfo, can_schedule_on_date, schedule_task_with_alternatives
from .models import (
    DEFAULT_PHASE,
    Cycle,
    HistoryAction,
    HistoryEntry,
    Task,
    UserPreferences,
    ValidationError,
    parse_date,
)
from .store import RecordStore

logger = logging.getLogger(__name__)


@dataclass
class CycleLogResult:
    """周期記録の結果"""
    cycle: Cycle
    removed_cycle_ids: List[str] = field(default_factory=list)
    reschedule: Optional[RescheduleResult] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "cycle": self.cycle.to_dict(),
            "removed_cycle_ids": self.removed_cycle_ids,
            "reschedule": self.reschedule.to_dict() if self.reschedule else None,
        }


class PlannerService:
    """タスクと周期の操作"""

    def __init__(self, store: RecordStore):
        self.store = store
        self.advisor = ReschedulingAdvisor(store)

    async def _load(self) -> Tuple[List[Task], List[Cycle], UserPreferences]:
        tasks = await self.store.list_tasks()
        cycles = await self.store.list_cycles()
        preferences = await self.store.load_preferences()
        return tasks, cycles, preferences

    # === タスク ===

    async def list_tasks(self) -> List[Task]:
        return await self.store.list_tasks()

    async def create_task(self, data: Dict[str, Any],
                          today: Optional[date] = None) -> Tuple[Task, Optional[ScheduleInfo]]:
        """
        タスクを作成

        日付の指定がなければ自動で配置する。

        Returns:
            (保存したタスク, 自動配置の結果。日付指定時は None)
        """
        task = Task.from_dict(data)
        task.name = (task.name or "").strip()
        if not task.name:
            raise ValidationError("name は必須です")
        task.id = None
        task.completed = False
        task.completed_at = None
        task.created_at = datetime.now().isoformat()

        info = None
        if task.scheduled_date:
            if not can_schedule_on_date(parse_date(task.scheduled_date), today):
                raise ValidationError("Cannot schedule tasks in the past")
            task.auto_scheduled = False
        else:
            tasks, cycles, preferences = await self._load()
            info = schedule_task_with_alternatives(task, tasks, cycles, preferences, today)
            task.scheduled_date = info.scheduled_date
            task.auto_scheduled = True
            if info.is_at_capacity:
                logger.info("上限に達した日に配置: %s", info.scheduled_date)

        saved = await self.store.add_task(task)
        await self.store.append_history(saved.id, HistoryAction.CREATED, {
            "scheduled_date": saved.scheduled_date,
            "auto_scheduled": saved.auto_scheduled,
        })
        logger.info("タスクを作成: %s (%s)", saved.id, saved.scheduled_date)
        return saved, info

    async def move_task(self, task_id: str, new_date, today: Optional[date] = None) -> Task:
        """手動で日付を変更（以後は自動再配置の対象外）"""
        target = parse_date(new_date)
        if not can_schedule_on_date(target, today):
            raise ValidationError("Cannot schedule tasks in the past")

        current = await self.store.get_task(task_id)
        updated = await self.store.update_task(task_id, {
            "scheduled_date": target.isoformat(),
            "auto_scheduled": False,
        })
        await self.store.append_history(task_id, HistoryAction.UPDATED, {
            "from": current.scheduled_date,
            "to": updated.scheduled_date,
        })
        logger.info("タスクを移動: %s %s -> %s", task_id, current.scheduled_date, updated.scheduled_date)
        return updated

    async def complete_task(self, task_id: str) -> Task:
        updated = await self.store.update_task(task_id, {
            "completed": True,
            "completed_at": datetime.now().isoformat(),
        })
        await self.store.append_history(task_id, HistoryAction.COMPLETED)
        logger.info("タスクを完了: %s", task_id)
        return updated

    async def delete_task(self, task_id: str) -> None:
        task = await self.store.get_task(task_id)
        await self.store.delete_task(task_id)
        await self.store.append_history(task_id, HistoryAction.DELETED, {"name": task.name})
        logger.info("タスクを削除: %s", task_id)

    async def split_task(self, task_id: str, parts: Sequence[Dict[str, Any]],
                         today: Optional[date] = None) -> List[Task]:
        """
        タスクを分割

        新しいタスクはエネルギーと締切を元のタスクから引き継ぎ、元のタスクは完了にする。
        """
        if not parts:
            raise ValidationError("分割後のタスクを1件以上指定してください")

        original = await self.store.get_task(task_id)
        created = []
        for part in parts:
            data = dict(part)
            data["energy_level"] = data.get("energy_level") or (
                original.energy_level.value if original.energy_level else None
            )
            data["deadline"] = data.get("deadline") or original.deadline
            task, _ = await self.create_task(data, today)
            created.append(task)

        await self.complete_task(task_id)
        await self.store.append_history(task_id, HistoryAction.SPLIT, {
            "new_task_ids": [t.id for t in created],
        })
        logger.info("タスクを分割: %s -> %d件", task_id, len(created))
        return created

    async def get_history(self, task_id: str) -> List[HistoryEntry]:
        return await self.store.list_history(task_id)

    # === 周期 ===

    async def list_cycles(self) -> List[Cycle]:
        return await self.store.list_cycles()

    async def log_cycle(self, start_date, end_date=None, today: Optional[date] = None) -> CycleLogResult:
        """
        生理の開始を記録

        重なる既存の周期は新しい記録で置き換え、全周期の cycle_length を付け直してから
        再スケジュールを確認する。
        """
        cycles = await self.store.list_cycles()
        overlapping = find_overlapping_cycles(start_date, end_date, cycles)
        removed_ids = [c.id for c in overlapping]
        remaining = [c for c in cycles if c.id not in removed_ids]
        # 入力の検証が済んでから削除する
        entry = create_cycle_entry(start_date, end_date, remaining)

        for cycle in overlapping:
            await self.store.delete_cycle(cycle.id)
            logger.info("重なる周期を削除: %s", cycle.id)
        saved = await self.store.add_cycle(entry)

        stored_lengths = {c.id: c.cycle_length for c in remaining}
        stored_lengths[saved.id] = saved.cycle_length
        recalculated = update_cycle_lengths(remaining + [saved])
        for cycle in recalculated:
            if cycle.cycle_length != stored_lengths.get(cycle.id):
                await self.store.update_cycle(cycle.id, {"cycle_length": cycle.cycle_length})
        logger.info("周期を記録: %s", saved.id)

        tasks = await self.store.list_tasks()
        preferences = await self.store.load_preferences()
        result = await self.advisor.check_and_reschedule(tasks, recalculated, preferences, today)
        saved = next(c for c in recalculated if c.id == saved.id)
        return CycleLogResult(cycle=saved, removed_cycle_ids=removed_ids, reschedule=result)

    async def get_cycle_stats(self) -> CycleStatistics:
        return get_cycle_statistics(await self.store.list_cycles())

    async def get_phase(self, target_date=None, today: Optional[date] = None) -> Dict[str, Any]:
        """指定日（省略時は今日）のフェーズと1日の上限"""
        target = parse_date(target_date) if target_date else resolve_today(today)
        cycles = await self.store.list_cycles()
        preferences = await self.store.load_preferences()

        phase = get_phase_for_date_advanced(target, cycles)
        active = get_active_cycle_for_date(target, cycles)
        return {
            "date": target.isoformat(),
            "phase": phase.value if phase else None,
            "is_predicted": active is None,
            "cycle_day": get_cycle_day_for_date(target, active.start_date) if active else None,
            "capacity": get_capacity_for_phase(phase or DEFAULT_PHASE, preferences),
        }

    # === 提案 ===

    async def get_warnings(self, today: Optional[date] = None) -> List[OverloadWarning]:
        tasks, cycles, preferences = await self._load()
        if not preferences.notifications.overload_warnings:
            return []
        return detect_overload_situations(tasks, cycles, preferences, today)

    async def get_pull_forward(self, today: Optional[date] = None) -> List[PullForwardGroup]:
        tasks, cycles, preferences = await self._load()
        if not preferences.notifications.pull_forward_suggestions:
            return []
        return suggest_pull_forward(tasks, cycles, preferences, today)

    async def check_reschedule(self, today: Optional[date] = None) -> RescheduleResult:
        tasks, cycles, preferences = await self._load()
        return await self.advisor.check_and_reschedule(tasks, cycles, preferences, today)

    async def apply_suggestions(self, task_ids: Optional[Sequence[str]] = None,
                                today: Optional[date] = None) -> List[Task]:
        """提案を承認して適用（task_ids 省略時はすべて）"""
        tasks, cycles, preferences = await self._load()
        suggestions = find_reschedule_suggestions(tasks, cycles, preferences, today)
        if task_ids is not None:
            wanted = set(task_ids)
            suggestions = [s for s in suggestions if s.task.id in wanted]
        return await self.advisor.apply_rescheduling(suggestions)

    async def apply_pull_forward(self, task_id: str, target_date=None,
                                 today: Optional[date] = None) -> Task:
        """
        前倒しを適用

        現在の候補のみ対象。target_date 省略時は提案された日、指定時は同じ排卵期内の日を使う。
        """
        tasks, cycles, preferences = await self._load()
        match = None
        for group in suggest_pull_forward(tasks, cycles, preferences, today):
            match = next(((group, c) for c in group.candidates if c.task.id == task_id), None)
            if match:
                break

        if match is None:
            await self.store.get_task(task_id)
            raise ValidationError(f"前倒しの候補ではありません: {task_id}")

        group, candidate = match
        if target_date:
            target = parse_date(target_date)
            if not can_schedule_on_date(target, today):
                raise ValidationError("Cannot schedule tasks in the past")
            if not group.period.start <= target <= group.period.end:
                raise ValidationError("排卵期の範囲外の日付です")
            candidate = PullForwardCandidate(
                task=candidate.task, current_date=candidate.current_date,
                suggested_date=target.isoformat(), energy_match=candidate.energy_match,
            )

        return await apply_pull_forward(candidate, self.store)

    # === 設定 ===

    async def get_preferences(self) -> UserPreferences:
        return await self.store.load_preferences()

    async def update_preferences(self, updates: Dict[str, Any]) -> UserPreferences:
        current = await self.store.load_preferences()
        merged = current.merged(updates)
        if merged.daily_task_limit < 1:
            raise ValidationError("daily_task_limit は1以上にしてください")
        saved = await self.store.save_preferences(merged)
        logger.info("設定を更新: %s", sorted(updates.keys()))
        return saved

"""
データモデル定義
"""
from dataclasses import dataclass, field, asdict
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class ValidationError(Exception):
    """データ検証エラー"""
    pass


class Phase(Enum):
    """周期のフェーズ"""
    MENSTRUAL = "menstrual"
    FOLLICULAR = "follicular"
    OVULATION = "ovulation"
    LUTEAL = "luteal"


# 1周期内のフェーズ順（判定順序でもある）
PHASE_ORDER = (Phase.MENSTRUAL, Phase.FOLLICULAR, Phase.OVULATION, Phase.LUTEAL)

# フェーズが決まらない日のデフォルト
DEFAULT_PHASE = Phase.LUTEAL


class EnergyLevel(Enum):
    """タスクが必要とするエネルギー"""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class ReschedulingBehavior(Enum):
    """再スケジュール時の動作"""
    AUTOMATIC = "automatic"
    ASK_PERMISSION = "ask_permission"


class HistoryAction(Enum):
    """タスク履歴のアクション"""
    CREATED = "created"
    UPDATED = "updated"
    COMPLETED = "completed"
    DELETED = "deleted"
    SPLIT = "split"
    RESCHEDULED = "rescheduled"


WEEKDAY_NAMES = ("Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun")


def to_iso(value) -> Optional[str]:
    """date / datetime / 文字列を YYYY-MM-DD に揃える"""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return parse_date(value).isoformat()


def parse_date(value) -> date:
    """YYYY-MM-DD 形式を date に変換"""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        raise ValidationError(f"日付の形式が不正です: {value}")


def _parse_enum(enum_class, value, field_name: str):
    if value is None or value == "":
        return None
    if isinstance(value, enum_class):
        return value
    try:
        return enum_class(value)
    except ValueError:
        valid = [e.value for e in enum_class]
        raise ValidationError(f"{field_name} は次のいずれかです: {valid}")


@dataclass
class Task:
    """タスクモデル"""
    id: Optional[str] = None
    name: str = ""
    energy_level: Optional[EnergyLevel] = None
    deadline: Optional[str] = None         # YYYY-MM-DD形式
    preferred_days: List[str] = field(default_factory=list)  # ["Mon", "Sat", ...]
    scheduled_date: Optional[str] = None   # YYYY-MM-DD形式
    completed: bool = False
    completed_at: Optional[str] = None
    auto_scheduled: bool = False           # エンジンが日付を決めた場合 True
    created_at: Optional[str] = None

    @property
    def is_active(self) -> bool:
        """未完了かつ日付が決まっているか"""
        return not self.completed and bool(self.scheduled_date)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["energy_level"] = self.energy_level.value if self.energy_level else None
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Task":
        preferred = data.get("preferred_days") or []
        for day in preferred:
            if day not in WEEKDAY_NAMES:
                raise ValidationError(f"曜日の指定が不正です: {day}")
        return cls(
            id=data.get("id"),
            name=data.get("name", ""),
            energy_level=_parse_enum(EnergyLevel, data.get("energy_level"), "energy_level"),
            deadline=to_iso(data.get("deadline")),
            preferred_days=list(preferred),
            scheduled_date=to_iso(data.get("scheduled_date")),
            completed=bool(data.get("completed", False)),
            completed_at=data.get("completed_at"),
            auto_scheduled=bool(data.get("auto_scheduled", False)),
            created_at=data.get("created_at"),
        )


@dataclass
class PhaseWindow:
    """フェーズの期間（両端を含む）"""
    start: str
    end: str

    def contains(self, date_str: str) -> bool:
        return self.start <= date_str <= self.end


@dataclass
class Cycle:
    """記録された周期モデル"""
    id: Optional[str] = None
    start_date: str = ""                   # 1日目（YYYY-MM-DD形式）
    end_date: Optional[str] = None         # 生理の最終日
    menstrual_duration: int = 5
    cycle_length: Optional[int] = None     # 次の周期が記録されるまで None
    phases: Dict[Phase, Optional[PhaseWindow]] = field(default_factory=dict)
    logged_at: Optional[str] = None
    is_manual: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "start_date": self.start_date,
            "end_date": self.end_date,
            "menstrual_duration": self.menstrual_duration,
            "cycle_length": self.cycle_length,
            "phases": {
                phase.value: asdict(window) if window else None
                for phase, window in self.phases.items()
            },
            "logged_at": self.logged_at,
            "is_manual": self.is_manual,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Cycle":
        phases = {}
        for key, window in (data.get("phases") or {}).items():
            phase = _parse_enum(Phase, key, "phase")
            phases[phase] = PhaseWindow(**window) if window else None
        return cls(
            id=data.get("id"),
            start_date=to_iso(data.get("start_date")),
            end_date=to_iso(data.get("end_date")),
            menstrual_duration=int(data.get("menstrual_duration") or 5),
            cycle_length=data.get("cycle_length"),
            phases=phases,
            logged_at=data.get("logged_at"),
            is_manual=bool(data.get("is_manual", True)),
        )


@dataclass
class SchedulingWeights:
    """スコアの重み（合計1.0）"""
    energy_match: float = 0.40
    deadline_urgency: float = 0.30
    workload_balance: float = 0.20
    day_preference: float = 0.10

    def normalized(self) -> "SchedulingWeights":
        """負の値を0に丸め、合計が1になるよう正規化"""
        values = [max(0.0, float(v)) for v in asdict(self).values()]
        total = sum(values)
        if total <= 0:
            return SchedulingWeights()
        if abs(total - 1.0) < 1e-9 and values == list(asdict(self).values()):
            return self
        return SchedulingWeights(*(v / total for v in values))


@dataclass
class NotificationSettings:
    """通知設定"""
    overload_warnings: bool = True
    pull_forward_suggestions: bool = True
    cycle_update_notifications: bool = True


@dataclass
class UserPreferences:
    """ユーザー設定モデル"""
    daily_task_limit: int = 4              # フェーズ倍率をかける前の1日の上限
    scheduling_weights: SchedulingWeights = field(default_factory=SchedulingWeights)
    rescheduling_behavior: ReschedulingBehavior = ReschedulingBehavior.ASK_PERMISSION
    notifications: NotificationSettings = field(default_factory=NotificationSettings)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "daily_task_limit": self.daily_task_limit,
            "scheduling_weights": asdict(self.scheduling_weights),
            "rescheduling_behavior": self.rescheduling_behavior.value,
            "notifications": asdict(self.notifications),
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "UserPreferences":
        """保存済みの値をデフォルトにマージ"""
        defaults = cls()
        if not data:
            return defaults

        limit = data.get("daily_task_limit")
        if limit is None:
            limit = defaults.daily_task_limit
        try:
            limit = int(limit)
        except (TypeError, ValueError):
            raise ValidationError(f"daily_task_limit が不正です: {limit}")

        weights = asdict(defaults.scheduling_weights)
        weights.update(data.get("scheduling_weights") or {})
        notifications = asdict(defaults.notifications)
        notifications.update(data.get("notifications") or {})

        try:
            weights_obj = SchedulingWeights(**weights)
            notifications_obj = NotificationSettings(**notifications)
        except TypeError as e:
            raise ValidationError(f"設定の項目が不正です: {e}")

        behavior = _parse_enum(
            ReschedulingBehavior, data.get("rescheduling_behavior"), "rescheduling_behavior"
        )
        return cls(
            daily_task_limit=limit,
            scheduling_weights=weights_obj,
            rescheduling_behavior=behavior or defaults.rescheduling_behavior,
            notifications=notifications_obj,
        )

    def merged(self, updates: Dict[str, Any]) -> "UserPreferences":
        """一部の項目だけを更新した新しい設定を返す"""
        current = self.to_dict()
        for key, value in updates.items():
            if isinstance(value, dict) and isinstance(current.get(key), dict):
                current[key] = {**current[key], **value}
            else:
                current[key] = value
        return UserPreferences.from_dict(current)


@dataclass
class HistoryEntry:
    """タスク履歴（追記のみ）"""
    task_id: str
    action: HistoryAction
    metadata: Dict[str, Any] = field(default_factory=dict)
    timestamp: str = field(default_factory=lambda: datetime.now().isoformat())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "task_id": self.task_id,
            "action": self.action.value,
            "metadata": self.metadata,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "HistoryEntry":
        return cls(
            task_id=data["task_id"],
            action=_parse_enum(HistoryAction, data.get("action"), "action"),
            metadata=data.get("metadata") or {},
            timestamp=data.get("timestamp") or datetime.now().isoformat(),
        )


@dataclass
class PhasePeriod:
    """同じフェーズが続く期間（保存しない）"""
    phase: Phase
    start: date
    end: date

    def to_dict(self) -> Dict[str, Any]:
        return {"phase": self.phase.value, "start": self.start.isoformat(), "end": self.end.isoformat()}


@dataclass
class ScoreBreakdown:
    """スコアの内訳（各0-100）"""
    energy_match: float = 0
    deadline_urgency: float = 0
    workload_balance: float = 0
    day_preference: float = 0


@dataclass
class ScoreResult:
    """候補日のスコア（保存しない）"""
    date: date
    total_score: float
    breakdown: ScoreBreakdown
    phase: Phase

    def to_dict(self) -> Dict[str, Any]:
        return {
            "date": self.date.isoformat(),
            "total_score": round(self.total_score, 2),
            "breakdown": asdict(self.breakdown),
            "phase": self.phase.value,
        }

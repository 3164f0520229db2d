"""
周期フェーズ計算ロジック

記録済みの周期は常に予測より優先する。記録のない未来の日付は平均周期から予測し、
最初の記録より前の日付は同じ平均で過去へ投影する。
"""
import logging
import math
import uuid
from dataclasses import dataclass, replace
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence

from ..date_utils import add_days, days_between, resolve_today, round_half_up
from ..models import (
    Cycle,
    DEFAULT_PHASE,
    PHASE_ORDER,
    Phase,
    PhasePeriod,
    PhaseWindow,
    ValidationError,
    parse_date,
    to_iso,
)

logger = logging.getLogger(__name__)

DEFAULT_CYCLE_LENGTH = 28
DEFAULT_MENSTRUAL_DURATION = 5

# 平均に使う周期の長さ（これ以外は記録漏れとみなす）
MIN_VALID_CYCLE_LENGTH = 21
MAX_VALID_CYCLE_LENGTH = 45

# 卵胞期は13日目で終わり、排卵期は14-15日目の2日間で固定
FOLLICULAR_LAST_DAY = 13
OVULATION_FIRST_DAY = 14
OVULATION_LAST_DAY = 15
LUTEAL_FIRST_DAY = 16

# 重複判定で終了日が分からないときの仮の長さ
ASSUMED_NEW_PERIOD_DAYS = 7
ASSUMED_EXISTING_PERIOD_DAYS = 5


PhaseWindows = Dict[Phase, Optional[PhaseWindow]]


def calculate_phases_from_start(start_date, menstrual_duration: int = DEFAULT_MENSTRUAL_DURATION,
                                cycle_length: int = DEFAULT_CYCLE_LENGTH) -> PhaseWindows:
    """
    周期の開始日から4つのフェーズ期間を計算

    - 月経期: 1日目 〜 menstrual_duration日目
    - 卵胞期: 月経の翌日 〜 13日目
    - 排卵期: 14日目 〜 15日目（固定）
    - 黄体期: 16日目 〜 cycle_length日目

    月経期間は13日で打ち切る（排卵期と重ならないように）。
    範囲が空になるフェーズは None になる。
    """
    start = parse_date(start_date)
    duration = min(max(int(menstrual_duration or DEFAULT_MENSTRUAL_DURATION), 1), FOLLICULAR_LAST_DAY)
    length = int(cycle_length or DEFAULT_CYCLE_LENGTH)

    def window(first_day: int, last_day: int) -> Optional[PhaseWindow]:
        if last_day < first_day:
            return None
        return PhaseWindow(
            start=add_days(start, first_day - 1).isoformat(),
            end=add_days(start, last_day - 1).isoformat(),
        )

    return {
        Phase.MENSTRUAL: window(1, duration),
        Phase.FOLLICULAR: window(duration + 1, FOLLICULAR_LAST_DAY),
        Phase.OVULATION: window(OVULATION_FIRST_DAY, OVULATION_LAST_DAY),
        Phase.LUTEAL: window(LUTEAL_FIRST_DAY, length),
    }


def _match_phase(date_str: str, phases: PhaseWindows) -> Optional[Phase]:
    for phase in PHASE_ORDER:
        window = phases.get(phase)
        if window and window.contains(date_str):
            return phase
    return None


def get_phase_for_date(target_date, cycle: Optional[Cycle]) -> Optional[Phase]:
    """記録済みの周期の中で、日付がどのフェーズか（範囲外なら None）"""
    if not cycle or not cycle.phases:
        return None
    return _match_phase(to_iso(target_date), cycle.phases)


def _newest_first(cycles: Iterable[Cycle]) -> List[Cycle]:
    return sorted(cycles, key=lambda c: c.start_date, reverse=True)


def calculate_average_cycle_length(cycles: Sequence[Cycle]) -> int:
    """開始日の間隔から平均周期を計算（21-45日の間隔のみ採用）"""
    if not cycles or len(cycles) < 2:
        return DEFAULT_CYCLE_LENGTH

    ordered = sorted(cycles, key=lambda c: c.start_date)
    total_days = 0
    count = 0
    for prev, curr in zip(ordered, ordered[1:]):
        diff = days_between(parse_date(prev.start_date), parse_date(curr.start_date))
        if MIN_VALID_CYCLE_LENGTH <= diff <= MAX_VALID_CYCLE_LENGTH:
            total_days += diff
            count += 1

    return round_half_up(total_days / count) if count > 0 else DEFAULT_CYCLE_LENGTH


def calculate_average_menstrual_duration(cycles: Sequence[Cycle]) -> int:
    """記録された月経期間の平均"""
    durations = [c.menstrual_duration for c in cycles or [] if c.menstrual_duration and c.menstrual_duration > 0]
    if not durations:
        return DEFAULT_MENSTRUAL_DURATION
    return round_half_up(sum(durations) / len(durations))


def get_phase_for_date_advanced(target_date, cycles: Sequence[Cycle]) -> Optional[Phase]:
    """
    任意の日付のフェーズを取得（記録 → 未来予測 → 過去投影の順）

    Args:
        target_date: 判定する日付
        cycles: 記録済みの周期

    Returns:
        フェーズ。どれにも当てはまらなければ None（呼び出し側で黄体期を使う）
    """
    if not cycles:
        return None

    date_str = to_iso(target_date)
    ordered = _newest_first(cycles)

    # 新しい記録から順に見る（ユーザーの記録が常に優先）
    for cycle in ordered:
        phase = get_phase_for_date(date_str, cycle)
        if phase:
            return phase

    target = parse_date(date_str)
    avg_length = calculate_average_cycle_length(cycles)
    avg_duration = calculate_average_menstrual_duration(cycles)

    # 最新の周期より後：平均周期で予測
    latest_start = parse_date(ordered[0].start_date)
    days_since = days_between(latest_start, target)
    if days_since > 0:
        cycle_number = days_since // avg_length
        predicted_start = add_days(latest_start, cycle_number * avg_length)
        phase = _match_phase(date_str, calculate_phases_from_start(predicted_start, avg_duration, avg_length))
        if phase:
            return phase

    # 最初の記録より前：過去へ投影
    first_start = parse_date(ordered[-1].start_date)
    if target < first_start:
        days_back = days_between(target, first_start)
        cycles_back = math.ceil(days_back / avg_length)
        projected_start = add_days(first_start, -cycles_back * avg_length)
        phase = _match_phase(date_str, calculate_phases_from_start(projected_start, avg_duration, avg_length))
        if phase:
            return phase

    return None


def phase_or_default(target_date, cycles: Sequence[Cycle]) -> Phase:
    return get_phase_for_date_advanced(target_date, cycles) or DEFAULT_PHASE


def create_cycle_entry(start_date, end_date=None, existing_cycles: Sequence[Cycle] = (),
                       logged_at: Optional[datetime] = None) -> Cycle:
    """
    新しい周期の記録を作成

    月経期間は終了日から計算（なければ5日）。フェーズ計算用の周期の長さは
    過去の記録から推定し、cycle_length 自体は次の周期が記録されるまで None。
    """
    start = parse_date(start_date)
    duration = DEFAULT_MENSTRUAL_DURATION
    if end_date:
        end = parse_date(end_date)
        if end < start:
            raise ValidationError("終了日は開始日以降にしてください")
        duration = days_between(start, end) + 1

    estimated_length = DEFAULT_CYCLE_LENGTH
    if existing_cycles:
        estimated_length = calculate_average_cycle_length(
            list(existing_cycles) + [Cycle(start_date=start.isoformat())]
        )

    logger.debug("周期を作成: start=%s duration=%s length=%s", start, duration, estimated_length)
    return Cycle(
        id=f"cycle-{start.isoformat()}-{uuid.uuid4()}",
        start_date=start.isoformat(),
        end_date=to_iso(end_date),
        menstrual_duration=duration,
        cycle_length=None,
        phases=calculate_phases_from_start(start, duration, estimated_length),
        logged_at=(logged_at or datetime.now()).isoformat(),
        is_manual=True,
    )


def update_cycle_lengths(cycles: Sequence[Cycle]) -> List[Cycle]:
    """次の周期との間隔で cycle_length を付け直す（最新の周期は None）"""
    ordered = [replace(c) for c in sorted(cycles, key=lambda c: c.start_date)]
    for i, cycle in enumerate(ordered):
        if i + 1 < len(ordered):
            cycle.cycle_length = days_between(
                parse_date(cycle.start_date), parse_date(ordered[i + 1].start_date)
            )
        else:
            cycle.cycle_length = None
    return ordered


def _period_end(cycle: Cycle) -> date:
    if cycle.end_date:
        return parse_date(cycle.end_date)
    menstrual = cycle.phases.get(Phase.MENSTRUAL) if cycle.phases else None
    if menstrual:
        return parse_date(menstrual.end)
    return add_days(parse_date(cycle.start_date), ASSUMED_EXISTING_PERIOD_DAYS)


def find_overlapping_cycles(new_start_date, new_end_date, cycles: Sequence[Cycle]) -> List[Cycle]:
    """新しい生理期間と重なる既存の周期（新しい記録で置き換える対象）"""
    new_start = parse_date(new_start_date)
    if new_end_date:
        new_end = parse_date(new_end_date)
    else:
        new_end = add_days(new_start, ASSUMED_NEW_PERIOD_DAYS)

    overlapping = []
    for cycle in cycles:
        existing_start = parse_date(cycle.start_date)
        existing_end = _period_end(cycle)
        if new_start <= existing_end and new_end >= existing_start:
            overlapping.append(cycle)
    return overlapping


def get_cycle_day_for_date(target_date, cycle_start_date) -> int:
    """周期の何日目か（1始まり）"""
    return days_between(parse_date(cycle_start_date), parse_date(target_date)) + 1


def predict_next_period(last_period_start, average_cycle_length: int = DEFAULT_CYCLE_LENGTH) -> str:
    return add_days(parse_date(last_period_start), average_cycle_length).isoformat()


@dataclass
class CycleStatistics:
    """周期の統計"""
    average_cycle_length: int = DEFAULT_CYCLE_LENGTH
    average_period_duration: int = DEFAULT_MENSTRUAL_DURATION
    total_cycles_logged: int = 0
    last_period_date: Optional[str] = None
    predicted_next_period: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return dict(self.__dict__)


def get_cycle_statistics(cycles: Sequence[Cycle]) -> CycleStatistics:
    if not cycles:
        return CycleStatistics()

    avg_length = calculate_average_cycle_length(cycles)
    latest = _newest_first(cycles)[0]
    return CycleStatistics(
        average_cycle_length=avg_length,
        average_period_duration=calculate_average_menstrual_duration(cycles),
        total_cycles_logged=len(cycles),
        last_period_date=latest.start_date,
        predicted_next_period=predict_next_period(latest.start_date, avg_length),
    )


def get_active_cycle_for_date(target_date, cycles: Sequence[Cycle]) -> Optional[Cycle]:
    """日付を含む記録済みの周期（新しいものを優先）"""
    date_str = to_iso(target_date)
    for cycle in _newest_first(cycles or []):
        if cycle.start_date <= date_str and get_phase_for_date(date_str, cycle):
            return cycle
    return None


@dataclass
class CurrentPhaseInfo:
    phase: Optional[Phase] = None
    cycle_day: Optional[int] = None
    cycle: Optional[Cycle] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "phase": self.phase.value if self.phase else None,
            "cycle_day": self.cycle_day,
            "cycle_id": self.cycle.id if self.cycle else None,
        }


def get_current_phase_info(cycles: Sequence[Cycle], today: Optional[date] = None) -> CurrentPhaseInfo:
    """今日のフェーズと周期日"""
    current = resolve_today(today)
    cycle = get_active_cycle_for_date(current, cycles)
    if not cycle:
        return CurrentPhaseInfo()
    return CurrentPhaseInfo(
        phase=get_phase_for_date(current, cycle),
        cycle_day=get_cycle_day_for_date(current, cycle.start_date),
        cycle=cycle,
    )


def get_upcoming_phase_periods(cycles: Sequence[Cycle], days_ahead: int = 30,
                               today: Optional[date] = None) -> List[PhasePeriod]:
    """今日から days_ahead 日間を、同じフェーズが続く期間ごとに区切る"""
    start = resolve_today(today)
    periods: List[PhasePeriod] = []
    current: Optional[PhasePeriod] = None

    for i in range(days_ahead):
        day = add_days(start, i)
        phase = phase_or_default(day, cycles)
        if current is None or current.phase != phase:
            if current:
                periods.append(current)
            current = PhasePeriod(phase=phase, start=day, end=day)
        else:
            current.end = day

    if current:
        periods.append(current)
    return periods

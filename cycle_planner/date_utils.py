"""
日付ユーティリティ
"""
import math
from datetime import date, timedelta
from typing import Iterator, Optional

from .models import WEEKDAY_NAMES, parse_date


def resolve_today(value: Optional[date] = None) -> date:
    """基準日（指定がなければ今日）"""
    if value is None:
        return date.today()
    return parse_date(value)


def add_days(d: date, days: int) -> date:
    return d + timedelta(days=days)


def days_between(start: date, end: date) -> int:
    """end - start の日数"""
    return (end - start).days


def date_range(start: date, end: date) -> Iterator[date]:
    """start から end まで（両端を含む）"""
    current = start
    while current <= end:
        yield current
        current = current + timedelta(days=1)


def weekday_name(d: date) -> str:
    return WEEKDAY_NAMES[d.weekday()]


def is_weekend(d: date) -> bool:
    return d.weekday() >= 5


def round_half_up(value: float) -> int:
    """0.5 を切り上げる四捨五入（round() は偶数丸め）"""
    return int(math.floor(value + 0.5))


def format_short(d: date) -> str:
    """'Mar 4' 形式"""
    return f"{d:%b} {d.day}"

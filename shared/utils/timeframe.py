"""周期字符串解析（"5m"/"15m"/"1h"）。"""

from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone

_INTERVAL_RE = re.compile(r"^\s*(\d+)\s*([mhMH])\s*$")


def parse_interval_minutes(interval: str) -> int:
    """把 `<int><m|h>` 解析为分钟数。

    Raises
    ------
    ValueError
        格式非法或数值为 0。
    """
    if not isinstance(interval, str):
        raise ValueError(f"Invalid interval: {interval!r}")
    m = _INTERVAL_RE.match(interval)
    if not m:
        raise ValueError(f"Invalid interval: {interval!r} (expected e.g. '5m' or '1h')")
    value = int(m.group(1))
    if value <= 0:
        raise ValueError(f"Invalid interval: {interval!r} (must be > 0)")
    unit = m.group(2).lower()
    return value * 60 if unit == "h" else value


def interval_seconds(interval: str) -> int:
    return parse_interval_minutes(interval) * 60


def interval_delta(interval: str) -> timedelta:
    return timedelta(minutes=parse_interval_minutes(interval))


def to_utc(ts: datetime) -> datetime:
    """naive datetime 视为 UTC。"""
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)

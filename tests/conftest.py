import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

# 确保项目根目录在 sys.path，便于测试内直接以顶层包名导入
ROOT = Path(__file__).resolve().parents[1]
root_str = str(ROOT)
if root_str not in sys.path:
    sys.path.insert(0, root_str)

from shared.models.models import Bar  # noqa: E402

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)


def _bar(ts: datetime, open_: float, high: float, low: float, close: float, volume: float = 10.0) -> Bar:
    return Bar(open_time=ts, open=open_, high=high, low=low, close=close, volume=volume)


def rising_entry_bars(n: int = 220, *, deep_low: bool = True) -> list[Bar]:
    """5m 上升斜坡；最后一根已收盘 K 线（n-2）下影回踩到快线附近。"""
    bars = []
    for i in range(n):
        c = 100.0 + 0.01 * i
        low = c - 0.30 if (deep_low and i == n - 2) else c - 0.06
        bars.append(_bar(T0 + timedelta(minutes=5 * i), c - 0.01, c + 0.05, low, c))
    return bars


def falling_entry_bars(n: int = 220, *, sweep: bool = False) -> list[Bar]:
    """5m 下降斜坡；sweep=True 时 n-3 扫掉近期低点、n-2 强势收复。"""
    bars = []
    for i in range(n):
        c = 110.0 - 0.01 * i
        o = c + 0.01
        bars.append(_bar(T0 + timedelta(minutes=5 * i), o, o + 0.10, c - 0.10, c))
    if sweep:
        bars[n - 3] = _bar(bars[n - 3].open_time, 107.83, 107.85, 107.50, 107.70)
        bars[n - 2] = _bar(bars[n - 2].open_time, 107.70, 108.05, 107.65, 108.00)
    return bars


def trend_bars(n: int = 300, *, rising: bool = True) -> list[Bar]:
    """15m 趋势斜坡，起点比入场序列早 200 根，回放时每一步都能看到足够的趋势 K 线。"""
    start = T0 - timedelta(minutes=15 * 200)
    bars = []
    for i in range(n):
        c = 100.0 + 0.02 * i if rising else 110.0 - 0.02 * i
        bars.append(_bar(start + timedelta(minutes=15 * i), c - 0.01, c + 0.05, c - 0.05, c))
    return bars


@pytest.fixture
def rising_entry():
    return rising_entry_bars()


@pytest.fixture
def rising_trend():
    return trend_bars(rising=True)


@pytest.fixture
def falling_trend():
    return trend_bars(rising=False)


@pytest.fixture
def rising_entry_no_touch():
    return rising_entry_bars(deep_low=False)


@pytest.fixture
def falling_entry():
    return falling_entry_bars()


@pytest.fixture
def sweep_entry():
    return falling_entry_bars(sweep=True)

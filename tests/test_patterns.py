from __future__ import annotations

import numpy as np
import pytest

from shared.models.models import SignalKind, TradeMode
from strategy.patterns import (
    LONG_SIDE,
    SHORT_SIDE,
    PatternContext,
    body_to_range,
    detect_break_hold,
    detect_continuation,
    detect_retest,
    should_exit_soft,
    side_for,
    trend_broken,
    trend_ok,
)
from strategy.scaler import derive_parameters

PARAMS = derive_parameters(5, 15)


def _ctx(rows: list[tuple[float, float, float, float]], *, ema_fast, ema_slow=None, rsi=60.0, atr=0.2, vol_ma=0.0):
    arr = np.array(rows, dtype=float)
    n = len(rows)
    fast = np.full(n, ema_fast, dtype=float) if np.isscalar(ema_fast) else np.asarray(ema_fast, dtype=float)
    slow = np.full(n, ema_slow if ema_slow is not None else ema_fast, dtype=float)
    return PatternContext(
        open=arr[:, 0],
        high=arr[:, 1],
        low=arr[:, 2],
        close=arr[:, 3],
        volume=np.ones(n),
        ema_fast=fast,
        ema_slow=slow,
        i=n - 2,
        rsi=rsi,
        atr=atr,
        vol_ma=vol_ma,
        params=PARAMS,
    )


def _mirror(rows):
    # 以 200 为轴镜像价格：多头形态 -> 空头形态
    return [(200 - o, 200 - l, 200 - h, 200 - c) for (o, h, l, c) in rows]


def _continuation_rows():
    rows = [(100.25, 100.3, 100.2, 100.25)] * 4
    rows += [(100.24, 100.28, 100.20, 100.25)] * 6
    rows += [(100.26, 100.33, 100.25, 100.32)]  # 突破（最后一根已收盘）
    rows += [(100.32, 100.35, 100.30, 100.33)]  # 形成中
    return rows


def test_side_helpers():
    assert side_for("long") is LONG_SIDE
    assert side_for("short") is SHORT_SIDE
    with pytest.raises(ValueError):
        side_for("flat")
    assert LONG_SIDE.shift(100.0, 0.01) == pytest.approx(101.0)
    assert SHORT_SIDE.shift(100.0, 0.01) == pytest.approx(99.0)
    assert SHORT_SIDE.momentum(30.0) == pytest.approx(70.0)
    assert LONG_SIDE.beyond(2, 1) and SHORT_SIDE.beyond(1, 2)
    assert LONG_SIDE.reaches(1, 1) and not LONG_SIDE.beyond(1, 1)
    assert LONG_SIDE.enter_kind is SignalKind.ENTER_LONG
    assert SHORT_SIDE.exit_kind is SignalKind.EXIT_SHORT


def test_body_to_range_zero_range():
    assert body_to_range(1.0, 1.0, 1.0, 1.0) == 0.0
    assert body_to_range(1.0, 2.0, 0.0, 1.5) == pytest.approx(0.25)


def test_continuation_long_and_short_mirror():
    m = detect_continuation(_ctx(_continuation_rows(), ema_fast=100.0), LONG_SIDE)
    assert m is not None
    assert m.name == "Continuation"
    assert m.mode is TradeMode.CONTINUATION
    assert m.stop_loss == pytest.approx(100.20)

    s = detect_continuation(_ctx(_mirror(_continuation_rows()), ema_fast=100.0, rsi=40.0), SHORT_SIDE)
    assert s is not None
    assert s.stop_loss == pytest.approx(99.80)


def test_continuation_rejects_weak_momentum_wide_box_and_no_break():
    rows = _continuation_rows()
    assert detect_continuation(_ctx(rows, ema_fast=100.0, rsi=40.0), LONG_SIDE) is None
    assert detect_continuation(_ctx(rows, ema_fast=100.0, atr=0.05), LONG_SIDE) is None
    # 区间下沿没有站在快线之上
    assert detect_continuation(_ctx(rows, ema_fast=100.19), LONG_SIDE) is None
    no_break = rows[:-2] + [(100.25, 100.27, 100.22, 100.26), rows[-1]]
    assert detect_continuation(_ctx(no_break, ema_fast=100.0), LONG_SIDE) is None


def test_continuation_volume_gate():
    rows = _continuation_rows()
    # 成交额 = 1 * 100.32，低于 0.9 * 均值
    assert detect_continuation(_ctx(rows, ema_fast=100.0, vol_ma=1000.0), LONG_SIDE) is None


def _break_hold_rows():
    rows = [(100.0, 100.1, 99.9, 100.0)] * 46
    rows += [(100.05, 100.13, 100.04, 100.12)] * 2
    rows += [(100.15, 100.27, 100.14, 100.25)]  # 突破（最后一根已收盘）
    rows += [(100.25, 100.30, 100.20, 100.26)]
    return rows


def test_break_hold_long():
    m = detect_break_hold(_ctx(_break_hold_rows(), ema_fast=100.0), LONG_SIDE)
    assert m is not None
    assert m.name == "BreakHold"
    assert m.stop_loss == pytest.approx(100.13 * (1 - PARAMS.hold_below_buffer))


def test_break_hold_requires_hold_and_buffer():
    rows = _break_hold_rows()
    lost = rows[:-3] + [(100.05, 100.13, 99.9, 99.95)] + rows[-2:]
    assert detect_break_hold(_ctx(lost, ema_fast=100.0), LONG_SIDE) is None
    weak_break = rows[:-2] + [(100.15, 100.16, 100.14, 100.15), rows[-1]]
    assert detect_break_hold(_ctx(weak_break, ema_fast=100.0), LONG_SIDE) is None
    assert detect_break_hold(_ctx(rows, ema_fast=100.0, rsi=45.0), LONG_SIDE) is None
    assert detect_break_hold(_ctx(rows, ema_fast=100.3), LONG_SIDE) is None


def test_retest_requires_touch_and_reclaim():
    rows = [(100.0, 100.1, 99.95, 100.05)] * 10
    rows += [(100.02, 100.12, 99.98, 100.10)]  # 回踩到快线后收复
    rows += [(100.10, 100.15, 100.05, 100.12)]
    m = detect_retest(_ctx(rows, ema_fast=100.0), LONG_SIDE)
    assert m is not None
    assert m.mode is TradeMode.TREND
    assert m.stop_loss == pytest.approx(99.95)

    # 没有触及快线
    far = [(o + 1, h + 1, lo + 1, c + 1) for (o, h, lo, c) in rows]
    assert detect_retest(_ctx(far, ema_fast=100.0), LONG_SIDE) is None
    # 收盘没有站回快线之上
    assert detect_retest(_ctx(rows, ema_fast=100.09), LONG_SIDE) is None


def test_soft_exit_conditions():
    below_fast = [(100.0, 100.1, 99.9, 100.0)] * 5 + [(99.95, 99.96, 99.80, 99.85), (99.85, 99.9, 99.8, 99.85)]
    ctx = _ctx(below_fast, ema_fast=100.0, ema_slow=99.0, rsi=40.0)
    assert should_exit_soft(ctx, LONG_SIDE)
    # 动量未转弱、慢线未破、也不是连续两根：不退出
    ctx = _ctx(below_fast, ema_fast=100.0, ema_slow=99.0, rsi=60.0)
    assert not should_exit_soft(ctx, LONG_SIDE)
    # 连续两根收在快线下方
    two_below = [(100.0, 100.1, 99.9, 100.0)] * 4 + [(99.99, 99.995, 99.97, 99.98)] * 2 + [(99.98, 100, 99.9, 99.99)]
    assert should_exit_soft(_ctx(two_below, ema_fast=100.0, ema_slow=99.0, rsi=60.0), LONG_SIDE)
    # 跌破慢线
    assert should_exit_soft(_ctx(below_fast, ema_fast=99.5, ema_slow=99.95, rsi=60.0), LONG_SIDE)


def test_trend_gate_helpers():
    tol = PARAMS.slope_tolerance
    assert trend_ok(101.0, 100.9, 100.0, LONG_SIDE, tol)
    assert not trend_ok(101.0, 102.0, 100.0, LONG_SIDE, tol)
    assert not trend_ok(99.0, 99.0, 100.0, LONG_SIDE, tol)
    assert trend_ok(99.0, 99.1, 100.0, SHORT_SIDE, tol)
    assert not trend_ok(float("nan"), 99.0, 100.0, LONG_SIDE, tol)
    assert trend_broken(99.0, 100.0, LONG_SIDE)
    assert not trend_broken(101.0, 100.0, LONG_SIDE)
    assert trend_broken(101.0, 100.0, SHORT_SIDE)

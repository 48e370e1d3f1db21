"""入场形态识别与退出判定。

所有判定都以“方向”参数化：多头按原样比较，空头把价格偏移方向反过来，
动量读作 `100 - rsi`，回撤/推进的极值互换（low <-> high）。
每个形态返回 `PatternMatch`（含结构性止损位）或 None。
"""

from __future__ import annotations

import math
from dataclasses import dataclass

import numpy as np

from shared.models.models import SignalKind, TradeMode
from strategy.scaler import ParameterSet


@dataclass(frozen=True)
class Side:
    """交易方向。"""

    name: str
    sign: int

    @property
    def is_long(self) -> bool:
        return self.sign > 0

    @property
    def enter_kind(self) -> SignalKind:
        return SignalKind.ENTER_LONG if self.is_long else SignalKind.ENTER_SHORT

    @property
    def exit_kind(self) -> SignalKind:
        return SignalKind.EXIT_LONG if self.is_long else SignalKind.EXIT_SHORT

    def beyond(self, a: float, b: float) -> bool:
        """a 在 b 的顺势一侧（严格）。"""
        return a > b if self.is_long else a < b

    def reaches(self, a: float, b: float) -> bool:
        """a 到达或越过 b（非严格）。"""
        return a >= b if self.is_long else a <= b

    def shift(self, price: float, frac: float) -> float:
        return price * (1.0 + self.sign * frac)

    def momentum(self, rsi: float) -> float:
        return rsi if self.is_long else 100.0 - rsi

    def worst(self, values: np.ndarray) -> float:
        """逆势方向的极值（多头取最小，空头取最大）。"""
        return float(values.min() if self.is_long else values.max())

    def best(self, values: np.ndarray) -> float:
        return float(values.max() if self.is_long else values.min())


LONG_SIDE = Side("long", 1)
SHORT_SIDE = Side("short", -1)


def side_for(direction: str) -> Side:
    if direction == "long":
        return LONG_SIDE
    if direction == "short":
        return SHORT_SIDE
    raise ValueError(f"Unknown direction: {direction}")


@dataclass(frozen=True)
class PatternMatch:
    name: str
    mode: TradeMode
    stop_loss: float | None = None


@dataclass(frozen=True)
class PatternContext:
    """单根已收盘入场 K 线（下标 i）上的全部输入。"""

    open: np.ndarray
    high: np.ndarray
    low: np.ndarray
    close: np.ndarray
    volume: np.ndarray
    ema_fast: np.ndarray
    ema_slow: np.ndarray
    i: int
    rsi: float
    atr: float
    vol_ma: float
    params: ParameterSet

    def pull(self, side: Side) -> np.ndarray:
        """回撤方向的影线（多头看 low，空头看 high）。"""
        return self.low if side.is_long else self.high

    def push(self, side: Side) -> np.ndarray:
        return self.high if side.is_long else self.low

    def favorable(self, side: Side, k: int) -> bool:
        return side.beyond(float(self.close[k]), float(self.open[k]))

    def notional(self, k: int) -> float:
        return float(self.volume[k] * self.close[k])

    def body_to_range(self, k: int) -> float:
        return body_to_range(self.open[k], self.high[k], self.low[k], self.close[k])


def body_to_range(open_: float, high: float, low: float, close: float) -> float:
    rng = float(high - low)
    if rng <= 0:
        return 0.0
    return abs(float(close - open_)) / rng


def _valid(x: float) -> bool:
    return not math.isnan(x) and x > 0


def detect_retest(ctx: PatternContext, side: Side) -> PatternMatch | None:
    """快线回踩后收复。"""
    p = ctx.params
    i = ctx.i
    if side.momentum(ctx.rsi) < p.rsi_min_retest:
        return None
    e = float(ctx.ema_fast[i])
    if not _valid(e):
        return None

    start = max(1, i - p.retest_lookback)
    pull = ctx.pull(side)
    touched = False
    for k in range(i, start - 1, -1):
        ek = float(ctx.ema_fast[k])
        if not _valid(ek):
            continue
        if side.reaches(side.shift(ek, p.retest_touch_band), float(pull[k])):
            touched = True
            break
    if not touched:
        return None

    close = float(ctx.close[i])
    if not side.reaches(close, side.shift(e, p.retest_reclaim_buffer)):
        return None
    if not (ctx.favorable(side, i) or side.beyond(close, float(ctx.close[i - 1]))):
        return None
    return PatternMatch("Retest", TradeMode.TREND, side.worst(pull[start : i + 1]))


def detect_continuation(ctx: PatternContext, side: Side) -> PatternMatch | None:
    """窄幅整理（位于快线顺势一侧）后突破区间。"""
    p = ctx.params
    i = ctx.i
    if side.momentum(ctx.rsi) < p.rsi_min_continuation:
        return None
    if ctx.atr <= 0:
        return None

    # 区间取当前 K 线之前的 base_lookback 根
    end = i - 1
    start = max(1, end - p.base_lookback + 1)
    if end - start + 1 < 4:
        return None
    floor = side.worst(ctx.pull(side)[start : end + 1])
    ceiling = side.best(ctx.push(side)[start : end + 1])
    box = abs(ceiling - floor)
    if box <= 0 or box > ctx.atr * p.base_max_range_atr:
        return None

    e = float(ctx.ema_fast[i])
    if not _valid(e):
        return None
    if not side.reaches(floor, side.shift(e, p.base_min_low_above_fast)):
        return None

    if not side.beyond(float(ctx.close[i]), ceiling):
        return None
    if ctx.vol_ma > 0 and ctx.notional(i) < ctx.vol_ma * p.break_vol_min_factor:
        return None
    return PatternMatch("Continuation", TradeMode.CONTINUATION, floor)


def detect_break_hold(ctx: PatternContext, side: Side) -> PatternMatch | None:
    """突破摆动高点（空头为低点）并站稳。"""
    p = ctx.params
    i = ctx.i
    if side.momentum(ctx.rsi) < p.rsi_min_break_hold:
        return None
    if ctx.atr <= 0:
        return None

    end_swing = max(1, i - 1)
    start_swing = max(1, end_swing - p.swing_lookback)
    swing = side.best(ctx.push(side)[start_swing : end_swing + 1])
    if swing <= 0:
        return None

    close = float(ctx.close[i])
    if not side.beyond(close, side.shift(swing, p.break_buffer)):
        return None

    hold_floor = side.shift(swing, -p.hold_below_buffer)
    for k in range(max(1, i - p.hold_confirm_bars + 1), i + 1):
        if side.beyond(hold_floor, float(ctx.close[k])):
            return None

    e = float(ctx.ema_fast[i])
    if _valid(e) and side.beyond(e, close):
        return None
    if ctx.vol_ma > 0 and ctx.notional(i) < ctx.vol_ma * p.break_vol_min_factor:
        return None
    return PatternMatch("BreakHold", TradeMode.CONTINUATION, hold_floor)


def detect_sweep_reversal(ctx: PatternContext, side: Side) -> PatternMatch | None:
    """扫掉近期极值后收复（两根 K 线：i-1 扫单，i 收复）。趋势闸门失败时才评估。"""
    p = ctx.params
    i = ctx.i
    if i <= 3 or ctx.atr <= 0:
        return None

    i_sweep = i - 1
    end = max(1, i_sweep - 1)
    start = max(1, end - p.sweep_lookback)
    pull = ctx.pull(side)
    level = side.worst(pull[start : end + 1])
    if level <= 0:
        return None

    did_sweep = side.beyond(side.shift(level, -p.sweep_buffer), float(pull[i_sweep]))
    reclaimed = side.beyond(float(ctx.close[i]), side.shift(level, p.sweep_reclaim_buffer))
    body_ok = ctx.body_to_range(i) >= p.sweep_body_to_range_min

    if side.momentum(ctx.rsi) < p.rsi_min_sweep:
        return None
    if ctx.vol_ma > 0 and ctx.notional(i) < ctx.vol_ma * p.sweep_vol_min_factor:
        return None
    if float(ctx.high[i] - ctx.low[i]) > ctx.atr * p.sweep_max_range_atr:
        return None
    if not (did_sweep and reclaimed and ctx.favorable(side, i) and body_ok):
        return None
    return PatternMatch("SweepReversal", TradeMode.SCALP, float(pull[i_sweep]))


ENTRY_DETECTORS = (
    ("retest", detect_retest),
    ("continuation", detect_continuation),
    ("break_hold", detect_break_hold),
)


def should_exit_soft(ctx: PatternContext, side: Side) -> bool:
    """收盘跌破（空头为升破）快线且动量转弱，或跌破慢线，或连续两根收在快线另一侧。"""
    p = ctx.params
    i = ctx.i
    fast = float(ctx.ema_fast[i])
    slow = float(ctx.ema_slow[i])
    if not (_valid(fast) and _valid(slow)):
        return False

    c0 = float(ctx.close[i])
    c1 = float(ctx.close[i - 1])
    below_fast = side.beyond(side.shift(fast, -p.exit_ma_break_tol), c0)
    below_slow = side.beyond(side.shift(slow, -p.exit_ma_break_tol), c0)
    two_below_fast = side.beyond(fast, c0) and side.beyond(fast, c1)
    return (below_fast and side.momentum(ctx.rsi) <= p.exit_rsi_weak) or below_slow or two_below_fast


def trend_ok(t_fast: float, t_fast_prev: float, t_slow: float, side: Side, slope_tolerance: float) -> bool:
    """趋势周期闸门：快线在慢线顺势一侧，且快线没有明显逆向回落。"""
    if not (_valid(t_fast) and _valid(t_slow) and _valid(t_fast_prev)):
        return False
    return side.beyond(t_fast, t_slow) and side.reaches(t_fast, side.shift(t_fast_prev, -slope_tolerance))


def trend_broken(t_fast: float, t_slow: float, side: Side) -> bool:
    if not (_valid(t_fast) and _valid(t_slow)):
        return False
    return side.beyond(t_slow, t_fast)

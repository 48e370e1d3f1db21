"""多形态信号分类器。

V2 语义：
- 只读取最后一根已收盘 K 线（下标 len-2），最后一根视为仍在形成；
- 纯函数：同样的输入得到相等的 Signal，时间戳取自 K 线而非系统时钟；
- 预期内的“不交易”一律返回 `SignalKind.NONE` + reason，不抛异常。

评估顺序（每个方向）：
趋势闸门（失败时：扫单反转 -> 趋势破坏退出 -> NONE）
-> 防追高 -> 冲动K过滤 -> 流动性 -> 回踩 > 延续 > 突破站稳 -> 软退出 -> NONE。
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Sequence, Union

import pandas as pd

from algo.factors.atr import ATRFactor
from algo.factors.registry import apply_factors, build_factors
from algo.factors.volume import VolumeUsdMAFactor
from market_data.loader import as_bar_frame
from shared.models.models import Bar, Signal
from shared.utils.timeframe import to_utc
from strategy.modes import ModeProfileRegistry
from strategy.patterns import (
    ENTRY_DETECTORS,
    PatternContext,
    PatternMatch,
    Side,
    detect_retest,
    detect_sweep_reversal,
    should_exit_soft,
    side_for,
    trend_broken,
    trend_ok,
)
from strategy.registry import StrategyVariant, get_variant
from strategy.scaler import ParameterSet

BarsLike = Union[pd.DataFrame, Sequence[Bar]]


@dataclass(frozen=True)
class _Outcome:
    signal: Signal

    @property
    def rank(self) -> int:
        # 入场 > 退出 > 无信号
        if self.signal.kind.is_entry:
            return 0
        if self.signal.kind.is_exit:
            return 1
        return 2


class PatternClassifier:
    """把（入场K线, 趋势K线, 参数集）映射为唯一的 Signal。

    Parameters
    ----------
    variant:
        策略变体（名称或对象），决定方向、是否启用扫单反转等。
    mode_profiles:
        模式画像表，用于给入场信号计算保护性止盈。
    """

    def __init__(
        self,
        variant: StrategyVariant | str = "canonical",
        mode_profiles: ModeProfileRegistry | None = None,
    ):
        self.variant = get_variant(variant) if isinstance(variant, str) else variant
        self.mode_profiles = mode_profiles or ModeProfileRegistry()
        self._factors = build_factors(self.variant.factor_specs())
        self._atr = ATRFactor(period=self.variant.atr_period)
        self._vol_ma = VolumeUsdMAFactor(period=self.variant.vol_ma_period)

    def classify(
        self,
        entry_bars: BarsLike,
        trend_bars: BarsLike,
        params: ParameterSet,
        *,
        symbol: str,
        min_trend_volume_usd: float = 0.0,
    ) -> Signal:
        entry = as_bar_frame(entry_bars)
        trend = as_bar_frame(trend_bars)
        ts = self._signal_time(entry, params)

        if len(entry) < params.min_bars_entry:
            return Signal.none(symbol, f"not enough entry bars ({len(entry)}<{params.min_bars_entry})", ts)
        if len(trend) < params.min_bars_trend:
            return Signal.none(symbol, f"not enough trend bars ({len(trend)}<{params.min_bars_trend})", ts)
        if len(entry) < 5 or len(trend) < 4:
            return Signal.none(symbol, "not enough closed bars", ts)

        entry = apply_factors(entry, self._factors)
        trend = apply_factors(trend, self._factors)
        ctx = self._context(entry, params)
        if math.isnan(ctx.rsi) or math.isnan(float(ctx.ema_fast[ctx.i])):
            return Signal.none(symbol, "indicators not ready", ts)

        it = len(trend) - 2
        t_fast = float(trend["ema_fast"].iloc[it])
        t_fast_prev = float(trend["ema_fast"].iloc[it - 1])
        t_slow = float(trend["ema_slow"].iloc[it])
        trend_vol_ma = self._vol_ma.value(trend)

        outcomes = []
        for direction in self.variant.directions:
            side = side_for(direction)
            outcomes.append(
                _Outcome(
                    self._classify_side(
                        ctx,
                        side,
                        symbol=symbol,
                        ts=ts,
                        trend=(t_fast, t_fast_prev, t_slow),
                        trend_vol_ma=trend_vol_ma,
                        min_trend_volume_usd=min_trend_volume_usd,
                    )
                )
            )
        return min(outcomes, key=lambda o: o.rank).signal

    def _signal_time(self, entry: pd.DataFrame, params: ParameterSet) -> datetime:
        if len(entry) >= 2:
            ts = entry["open_time"].iloc[-2]
        elif len(entry) == 1:
            ts = entry["open_time"].iloc[-1]
        else:
            return datetime(1970, 1, 1, tzinfo=timezone.utc)
        if isinstance(ts, pd.Timestamp):
            ts = ts.to_pydatetime()
        return to_utc(ts) + timedelta(minutes=params.entry_minutes)

    def _context(self, entry: pd.DataFrame, params: ParameterSet) -> PatternContext:
        i = len(entry) - 2
        return PatternContext(
            open=entry["open"].to_numpy(dtype=float),
            high=entry["high"].to_numpy(dtype=float),
            low=entry["low"].to_numpy(dtype=float),
            close=entry["close"].to_numpy(dtype=float),
            volume=entry["volume"].to_numpy(dtype=float),
            ema_fast=entry["ema_fast"].to_numpy(dtype=float),
            ema_slow=entry["ema_slow"].to_numpy(dtype=float),
            i=i,
            rsi=float(entry["rsi"].iloc[i]),
            atr=self._atr.value(entry),
            vol_ma=self._vol_ma.value(entry),
            params=params,
        )

    def _classify_side(
        self,
        ctx: PatternContext,
        side: Side,
        *,
        symbol: str,
        ts: datetime,
        trend: tuple[float, float, float],
        trend_vol_ma: float,
        min_trend_volume_usd: float,
    ) -> Signal:
        p = ctx.params
        i = ctx.i
        t_fast, t_fast_prev, t_slow = trend
        close = float(ctx.close[i])
        fast = float(ctx.ema_fast[i])
        slow = float(ctx.ema_slow[i])

        if not trend_ok(t_fast, t_fast_prev, t_slow, side, p.slope_tolerance):
            if self.variant.enable_sweep:
                match = detect_sweep_reversal(ctx, side)
                if match is not None:
                    return self._entry(match, ctx, side, symbol, ts)
            if trend_broken(t_fast, t_slow, side) and should_exit_soft(ctx, side):
                return Signal(
                    symbol=symbol,
                    kind=side.exit_kind,
                    reason=f"TrendBreak: {side.name} rsi={ctx.rsi:.1f} t_fast={t_fast:.6g} t_slow={t_slow:.6g}",
                    timestamp=ts,
                )
            return Signal.none(symbol, "trend gate", ts)

        dist = abs(close - fast)
        if fast > 0 and dist / fast > p.max_distance_from_fast:
            return Signal.none(
                symbol, f"too far from fast EMA (dist={dist / fast:.4%} > {p.max_distance_from_fast:.4%})", ts
            )
        if ctx.atr > 0 and dist > p.max_distance_atr_mult * ctx.atr:
            return Signal.none(symbol, f"too far from fast EMA (dist={dist / ctx.atr:.2f} ATR)", ts)

        rng = float(ctx.high[i] - ctx.low[i])
        if (
            ctx.atr > 0
            and rng > 0
            and ctx.body_to_range(i) >= p.impulse_body_to_range_max
            and rng >= ctx.atr * p.impulse_range_atr_mult
        ):
            return Signal.none(symbol, "impulse chase filter", ts)

        if min_trend_volume_usd > 0 and 0 < trend_vol_ma < min_trend_volume_usd:
            return Signal.none(symbol, "low trend volume", ts)
        if ctx.vol_ma > 0 and ctx.notional(i) < ctx.vol_ma * p.entry_vol_min_factor:
            return Signal.none(
                symbol, f"low entry volume ({ctx.notional(i):.0f} < {ctx.vol_ma * p.entry_vol_min_factor:.0f})", ts
            )

        bias_strong = side.reaches(fast, slow)
        fast_rising = side.reaches(fast, float(ctx.ema_fast[i - 1]))
        allow_retest = bias_strong or (
            self.variant.allow_transition_retest and fast_rising and side.reaches(close, fast)
        )
        for _, detector in ENTRY_DETECTORS:
            if detector is detect_retest:
                if not allow_retest:
                    continue
            elif not bias_strong:
                continue
            match = detector(ctx, side)
            if match is not None:
                return self._entry(match, ctx, side, symbol, ts)

        if should_exit_soft(ctx, side):
            return Signal(
                symbol=symbol,
                kind=side.exit_kind,
                reason=f"SoftExit: {side.name} rsi={ctx.rsi:.1f} close={close:.6g} fast={fast:.6g} slow={slow:.6g}",
                timestamp=ts,
            )
        return Signal.none(symbol, "no-signal", ts)

    def _entry(self, match: PatternMatch, ctx: PatternContext, side: Side, symbol: str, ts: datetime) -> Signal:
        entry = float(ctx.close[ctx.i])
        stop = match.stop_loss
        take = None
        # 止损不在保护侧时不给 SL/TP
        if stop is not None and side.beyond(entry, stop):
            risk = abs(entry - stop)
            take = entry + side.sign * self.mode_profiles.get(match.mode).safety_tp_rr * risk
        else:
            stop = None
        return Signal(
            symbol=symbol,
            kind=side.enter_kind,
            reason=f"{match.name}: {side.name} rsi={ctx.rsi:.1f} atr={ctx.atr:.6g} vol_ma={ctx.vol_ma:.0f}",
            timestamp=ts,
            entry_price=entry,
            stop_loss=stop,
            take_profit=take,
            mode=match.mode,
        )

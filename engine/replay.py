"""离线回放：在历史 K 线上逐根重放分类器，只产出信号，不做撮合。

每一步只能看到“该根 K 线收盘那一刻”实盘能拿到的数据：
入场序列截到下一根（未收盘）K 线，趋势序列截到 open_time <= 收盘时刻的最后一根。
窗口长度与实盘拉取根数一致，保证指标预热相同。
"""

from __future__ import annotations

from datetime import timedelta

import pandas as pd

from market_data.loader import as_bar_frame
from shared.models.models import Signal, SignalKind
from shared.utils.logging import setup_logger
from shared.utils.timeframe import parse_interval_minutes
from strategy.classifier import PatternClassifier
from strategy.scaler import ParameterSet

_LOGGER = setup_logger("replay")


def replay_signals(
    entry_bars: pd.DataFrame,
    trend_bars: pd.DataFrame,
    *,
    symbol: str,
    entry_interval: str,
    trend_interval: str,
    classifier: PatternClassifier | None = None,
    params: ParameterSet | None = None,
    min_trend_volume_usd: float = 0.0,
    bars_limit: int = 220,
    include_none: bool = False,
) -> list[Signal]:
    """逐根回放并返回信号列表（默认只返回非 NONE 信号）。"""
    classifier = classifier or PatternClassifier()
    entry_minutes = parse_interval_minutes(entry_interval)
    params = params or classifier.variant.parameters(entry_minutes, parse_interval_minutes(trend_interval))

    entry = as_bar_frame(entry_bars)
    trend = as_bar_frame(trend_bars)
    entry_times = pd.to_datetime(entry["open_time"], utc=True)
    trend_times = pd.to_datetime(trend["open_time"], utc=True)
    entry_limit = max(bars_limit, params.min_bars_entry + 2)
    trend_limit = max(bars_limit, params.min_bars_trend + 2)
    step = timedelta(minutes=entry_minutes)

    signals: list[Signal] = []
    first = max(0, params.min_bars_entry - 2)
    for j in range(first, len(entry) - 1):
        close_time = entry_times.iloc[j] + step
        entry_view = entry.iloc[max(0, j + 2 - entry_limit) : j + 2]
        visible = int((trend_times <= close_time).sum())
        trend_view = trend.iloc[max(0, visible - trend_limit) : visible]

        signal = classifier.classify(
            entry_view,
            trend_view,
            params,
            symbol=symbol,
            min_trend_volume_usd=min_trend_volume_usd,
        )
        if include_none or signal.kind is not SignalKind.NONE:
            signals.append(signal)

    _LOGGER.info(
        "Replay %s: %s entry bars, %s signals (%s entries)",
        symbol,
        len(entry),
        len(signals),
        sum(1 for s in signals if s.kind.is_entry),
    )
    return signals

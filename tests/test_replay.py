from __future__ import annotations

from market_data.loader import bars_to_frame
from shared.models.models import SignalKind
from engine.replay import replay_signals


def test_replay_only_sees_closed_bars(rising_entry, rising_trend):
    signals = replay_signals(
        bars_to_frame(rising_entry),
        bars_to_frame(rising_trend),
        symbol="BTCUSDT",
        entry_interval="5m",
        trend_interval="15m",
    )
    # 只有 n-2 那根带回踩下影，且只有在它收盘之后才可见
    assert len(signals) == 1
    assert signals[0].kind is SignalKind.ENTER_LONG
    assert signals[0].reason.startswith("Retest")
    assert signals[0].timestamp == rising_entry[-2].open_time + (rising_entry[1].open_time - rising_entry[0].open_time)


def test_replay_include_none_yields_one_signal_per_closed_bar(rising_entry, rising_trend):
    signals = replay_signals(
        rising_entry,
        rising_trend,
        symbol="BTCUSDT",
        entry_interval="5m",
        trend_interval="15m",
        include_none=True,
    )
    # min_bars_entry=200：从第 199 根已收盘 K 线（下标 198）开始，到下标 218
    assert len(signals) == 21
    assert sum(1 for s in signals if s.kind is SignalKind.NONE) == 20


def test_replay_with_too_few_bars_is_empty(rising_entry, rising_trend):
    assert replay_signals(
        rising_entry[:150], rising_trend, symbol="BTCUSDT", entry_interval="5m", trend_interval="15m"
    ) == []

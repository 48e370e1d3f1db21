from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from shared.models.models import PositionSnapshot, Signal, SignalKind, TradeMode, WorkerState

TS = datetime(2024, 1, 1, tzinfo=timezone.utc)


def test_signal_requires_reason_and_entry_price():
    with pytest.raises(ValueError, match="requires a reason"):
        Signal(symbol="BTCUSDT", kind=SignalKind.EXIT_LONG, reason="", timestamp=TS)
    with pytest.raises(ValueError, match="requires entry_price"):
        Signal(symbol="BTCUSDT", kind=SignalKind.ENTER_LONG, reason="Retest", timestamp=TS)
    sig = Signal.none("BTCUSDT", "no-signal", TS)
    assert sig.kind is SignalKind.NONE
    assert not sig.kind.is_entry and not sig.kind.is_exit


def test_signal_to_dict():
    sig = Signal(
        symbol="BTCUSDT",
        kind=SignalKind.ENTER_SHORT,
        reason="BreakHold: short",
        timestamp=TS,
        entry_price=100.0,
        stop_loss=101.0,
        take_profit=98.0,
        mode=TradeMode.CONTINUATION,
    )
    d = sig.to_dict()
    assert d["kind"] == "enter_short"
    assert d["mode"] == "continuation"
    assert d["timestamp"] == "2024-01-01T00:00:00+00:00"


def test_position_snapshot_direction():
    assert PositionSnapshot("BTCUSDT", 0).is_flat
    assert PositionSnapshot("BTCUSDT", 0.5).is_long
    assert PositionSnapshot("BTCUSDT", -0.5).is_short


def test_worker_state_is_monotonic():
    st = WorkerState()
    assert st.is_new_bar(TS)
    st.mark_processed(TS)
    assert st.bars_processed == 1
    assert not st.is_new_bar(TS)
    with pytest.raises(ValueError):
        st.mark_processed(TS)
    with pytest.raises(ValueError):
        st.mark_processed(TS - timedelta(minutes=5))
    st.mark_processed(TS + timedelta(minutes=5))
    assert st.last_processed_bar_open_time == TS + timedelta(minutes=5)
    assert st.bars_processed == 2

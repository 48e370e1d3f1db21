from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from shared.config.config_loader import expand_env, load_config

ROOT = Path(__file__).resolve().parents[1]

BASE = """
instruments:
  - symbol: {symbol}
    entry_interval: {interval}
    trend_interval: 15m
strategy:
  variant: {variant}
"""


def _write(tmp_path: Path, text: str) -> Path:
    p = tmp_path / "config.yml"
    p.write_text(text, encoding="utf-8")
    return p


def test_repo_config_is_valid():
    cfg = load_config(ROOT / "config" / "config.yml")
    assert [i.symbol for i in cfg.instruments] == ["BTCUSDT", "ETHUSDT"]
    assert cfg.instrument("btcusdt").min_trend_volume_usd == pytest.approx(250000)
    assert cfg.strategy.overrides == {"retest_touch_band": pytest.approx(0.0012)}
    assert cfg.scheduler.bars_limit == 220


def test_defaults_and_symbol_normalization(tmp_path):
    cfg = load_config(_write(tmp_path, BASE.format(symbol="ethusdt", interval="5M", variant="canonical")))
    inst = cfg.instruments[0]
    assert inst.symbol == "ETHUSDT"
    assert inst.entry_interval == "5m"
    assert cfg.scheduler.position_poll_secs == pytest.approx(8)
    assert cfg.risk.cooldown_minutes == 60
    with pytest.raises(ValueError, match="Unknown instrument"):
        cfg.instrument("SOLUSDT")


def test_env_expansion(tmp_path, monkeypatch):
    monkeypatch.setenv("BP_SYMBOL", "SOLUSDT")
    cfg = load_config(_write(tmp_path, BASE.format(symbol="${BP_SYMBOL}", interval="5m", variant="canonical")))
    assert cfg.instruments[0].symbol == "SOLUSDT"


def test_missing_env_is_fatal(tmp_path, monkeypatch):
    monkeypatch.delenv("BP_MISSING", raising=False)
    with pytest.raises(ValueError, match="Missing environment variable: BP_MISSING"):
        load_config(_write(tmp_path, BASE.format(symbol="${BP_MISSING}", interval="5m", variant="canonical")))


def test_expand_env_recurses(monkeypatch):
    monkeypatch.setenv("BP_X", "1")
    assert expand_env({"a": ["${BP_X}", 2], "b": "v${BP_X}"}) == {"a": ["1", 2], "b": "v1"}


def test_missing_file_and_non_mapping_root(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "nope.yml")
    with pytest.raises(ValueError, match="mapping"):
        load_config(_write(tmp_path, "- a\n- b\n"))


def test_invalid_interval_is_rejected(tmp_path):
    with pytest.raises(ValidationError, match="7x"):
        load_config(_write(tmp_path, BASE.format(symbol="BTCUSDT", interval="7x", variant="canonical")))


def test_unknown_variant_is_rejected(tmp_path):
    with pytest.raises(ValueError, match="Unknown strategy variant"):
        load_config(_write(tmp_path, BASE.format(symbol="BTCUSDT", interval="5m", variant="v9")))


def test_unknown_override_is_rejected(tmp_path):
    text = BASE.format(symbol="BTCUSDT", interval="5m", variant="canonical") + "  overrides:\n    retest_band: 0.002\n"
    with pytest.raises(ValueError, match="Unknown parameter override"):
        load_config(_write(tmp_path, text))


def test_duplicate_symbol_is_rejected(tmp_path):
    text = """
instruments:
  - symbol: BTCUSDT
  - symbol: btcusdt
"""
    with pytest.raises(ValueError, match="Duplicate instrument symbol"):
        load_config(_write(tmp_path, text))


def test_unknown_keys_are_rejected(tmp_path):
    text = BASE.format(symbol="BTCUSDT", interval="5m", variant="canonical") + "exchange: binance\n"
    with pytest.raises(ValidationError):
        load_config(_write(tmp_path, text))


def test_bad_mode_profile_override_is_rejected(tmp_path):
    text = BASE.format(symbol="BTCUSDT", interval="5m", variant="canonical")
    text += "mode_profiles:\n  scalp:\n    tp_rr: 1.0\n"
    with pytest.raises(ValueError, match="Unknown mode profile field"):
        load_config(_write(tmp_path, text))


def test_non_finite_override_is_rejected(tmp_path):
    text = BASE.format(symbol="BTCUSDT", interval="5m", variant="canonical")
    text += "  overrides:\n    max_distance_from_fast: .nan\n"
    with pytest.raises(ValueError, match="must be finite"):
        load_config(_write(tmp_path, text))
    text = BASE.format(symbol="BTCUSDT", interval="5m", variant="canonical")
    text += "  overrides:\n    retest_lookback: .inf\n"
    with pytest.raises(ValueError, match="must be finite"):
        load_config(_write(tmp_path, text))

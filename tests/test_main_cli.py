from __future__ import annotations

import json
import sys
from pathlib import Path

import pytest

import main as cli_main

ROOT = Path(__file__).resolve().parents[1]


def _write_csv(path: Path, bars) -> Path:
    lines = ["open_time,open,high,low,close,volume"]
    for b in bars:
        lines.append(f"{b.open_time.isoformat()},{b.open!r},{b.high!r},{b.low!r},{b.close!r},{b.volume!r}")
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return path


def test_parse_args_accepts_config_before_or_after_subcommand():
    a = cli_main.parse_args(["--config", "a.yml", "check-config"])
    b = cli_main.parse_args(["check-config", "--config", "b.yml"])
    assert a.config == "a.yml" and a.task == "check-config"
    assert b.config == "b.yml"


def test_parse_args_requires_subcommand():
    with pytest.raises(SystemExit):
        cli_main.parse_args([])


def test_params_command(capsys):
    result = cli_main.main(["params", "--interval", "15m", "--trend-interval", "1h"])
    assert result["min_bars_entry"] == 340
    assert result["scale_factor"] == pytest.approx(1.732, abs=1e-3)
    printed = json.loads(capsys.readouterr().out)
    assert printed["min_bars_trend"] == 260


def test_params_command_rejects_bad_interval():
    with pytest.raises(ValueError, match="7x"):
        cli_main.main(["params", "--interval", "7x"])


def test_check_config_command():
    result = cli_main.main(["check-config", "--config", str(ROOT / "config" / "config.yml")])
    assert result["variant"] == "canonical"
    assert result["instruments"]["BTCUSDT"]["retest_touch_band"] == pytest.approx(0.0012)
    assert result["instruments"]["ETHUSDT"]["entry_minutes"] == 15


def test_scan_command(tmp_path, rising_entry, rising_trend, capsys):
    cfg = tmp_path / "config.yml"
    cfg.write_text(
        "instruments:\n  - symbol: BTCUSDT\n    entry_interval: 5m\n    trend_interval: 15m\n",
        encoding="utf-8",
    )
    entry_csv = _write_csv(tmp_path / "entry.csv", rising_entry)
    trend_csv = _write_csv(tmp_path / "trend.csv", rising_trend)

    result = cli_main.main(
        [
            "--config",
            str(cfg),
            "scan",
            "--symbol",
            "btcusdt",
            "--entry-csv",
            str(entry_csv),
            "--trend-csv",
            str(trend_csv),
        ]
    )
    assert len(result) == 1
    assert result[0]["kind"] == "enter_long"
    assert result[0]["mode"] == "trend"
    out_lines = [ln for ln in capsys.readouterr().out.splitlines() if ln.startswith("{")]
    assert json.loads(out_lines[0])["symbol"] == "BTCUSDT"


def test_cli_returns_nonzero_on_bad_config(tmp_path, monkeypatch, capsys):
    bad = tmp_path / "bad.yml"
    bad.write_text("instruments:\n  - symbol: BTCUSDT\n    entry_interval: 7x\n", encoding="utf-8")
    monkeypatch.setattr(sys, "argv", ["barpilot", "check-config", "--config", str(bad)])
    assert cli_main.cli() == 2
    assert "error:" in capsys.readouterr().err

    monkeypatch.setattr(sys, "argv", ["barpilot", "check-config", "--config", str(tmp_path / "missing.yml")])
    assert cli_main.cli() == 2

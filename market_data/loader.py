"""K 线数据整形与历史 CSV 加载。

分类器统一消费 `pandas.DataFrame`（列：open_time/open/high/low/close/volume），
这里负责把 `Bar` 序列或外部 CSV 转成这一形态。
"""

from __future__ import annotations

import csv
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator, Sequence

import pandas as pd

from shared.models.models import Bar

BAR_COLUMNS = ["open_time", "open", "high", "low", "close", "volume"]


def _parse_dt(val: str) -> datetime:
    val = val.strip()
    try:
        if val.isdigit():
            ts_int = int(val)
            if ts_int > 1e12:
                return datetime.fromtimestamp(ts_int / 1000, tz=timezone.utc)
            return datetime.fromtimestamp(ts_int, tz=timezone.utc)
        parsed = datetime.fromisoformat(val.replace("Z", "+00:00"))
        if parsed.tzinfo is None:
            return parsed.replace(tzinfo=timezone.utc)
        return parsed.astimezone(timezone.utc)
    except Exception as exc:
        raise ValueError(f"Invalid datetime value: {val}") from exc


def iter_bars_from_csv(path: str | Path) -> Iterator[Bar]:
    """从 CSV 逐行读取 Bar（表头需包含 open_time/open/high/low/close，volume 可缺省）。"""
    with Path(path).open("r", newline="", encoding="utf-8") as f:
        reader = csv.DictReader(f)
        for row in reader:
            try:
                yield Bar(
                    open_time=_parse_dt(row["open_time"]),
                    open=float(row["open"]),
                    high=float(row["high"]),
                    low=float(row["low"]),
                    close=float(row["close"]),
                    volume=float(row.get("volume", 0) or 0),
                )
            except KeyError as exc:
                raise ValueError(f"Bar CSV missing column: {exc.args[0]} ({path})") from exc


def load_bars_csv(path: str | Path) -> pd.DataFrame:
    """读取 CSV 并返回按 open_time 升序、去重后的 bar DataFrame。"""
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"Bar file not found: {p}")
    df = bars_to_frame(list(iter_bars_from_csv(p)))
    df = df.drop_duplicates(subset="open_time", keep="last")
    return df.sort_values("open_time").reset_index(drop=True)


def bars_to_frame(bars: Sequence[Bar]) -> pd.DataFrame:
    rows = [
        {
            "open_time": b.open_time,
            "open": float(b.open),
            "high": float(b.high),
            "low": float(b.low),
            "close": float(b.close),
            "volume": float(b.volume),
        }
        for b in bars
    ]
    return pd.DataFrame(rows, columns=BAR_COLUMNS)


def as_bar_frame(bars: pd.DataFrame | Sequence[Bar]) -> pd.DataFrame:
    """接受 DataFrame 或 Bar 序列，返回列齐全、RangeIndex 的副本。"""
    if isinstance(bars, pd.DataFrame):
        missing = [c for c in BAR_COLUMNS if c not in bars.columns]
        if missing:
            raise ValueError(f"bar frame missing columns: {missing}")
        return bars.loc[:, BAR_COLUMNS].reset_index(drop=True)
    return bars_to_frame(bars)


def last_closed_open_time(bars: pd.DataFrame | Sequence[Bar]) -> datetime | None:
    """倒数第二根（最后一根已收盘）K 线的开盘时间；不足两根时返回 None。"""
    if isinstance(bars, pd.DataFrame):
        if len(bars) < 2:
            return None
        ts = bars["open_time"].iloc[-2]
        return ts.to_pydatetime() if isinstance(ts, pd.Timestamp) else ts
    if len(bars) < 2:
        return None
    return bars[-2].open_time

"""ATR 因子。"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import numpy as np
import pandas as pd

from algo.factors.base import last_closed_value, require_columns


def true_range(df: pd.DataFrame, high_col: str = "high", low_col: str = "low", close_col: str = "close") -> pd.Series:
    """真实波幅；第 0 根没有前收盘价，记为 NaN。"""
    prev_close = df[close_col].astype(float).shift(1)
    high = df[high_col].astype(float)
    low = df[low_col].astype(float)
    tr1 = high - low
    tr2 = (high - prev_close).abs()
    tr3 = (low - prev_close).abs()
    tr = pd.concat([tr1, tr2, tr3], axis=1).max(axis=1)
    if len(tr):
        tr.iloc[0] = np.nan
    return tr


@dataclass(frozen=True)
class ATRFactor:
    """平均真实波幅（ATR，SMA 版本）。"""

    period: int = 14
    high_col: str = "high"
    low_col: str = "low"
    close_col: str = "close"
    out_col: str | None = None
    name: str = "atr"
    params: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if self.period <= 0:
            raise ValueError("ATR period must be > 0")
        object.__setattr__(
            self,
            "params",
            {
                "period": self.period,
                "high_col": self.high_col,
                "low_col": self.low_col,
                "close_col": self.close_col,
                "out_col": self.out_col,
            },
        )

    @property
    def column(self) -> str:
        return self.out_col or f"atr_{self.period}"

    def series(self, df: pd.DataFrame) -> pd.Series:
        require_columns("ATRFactor", df, self.high_col, self.low_col, self.close_col)
        tr = true_range(df, self.high_col, self.low_col, self.close_col)
        return tr.rolling(self.period, min_periods=self.period).mean()

    def value(self, df: pd.DataFrame) -> float:
        """最后一根已收盘 K 线上的 ATR；数据不足 `period + 2` 根时返回 0.0。"""
        return last_closed_value(self.series(df), self.period + 2)

    def compute(self, df: pd.DataFrame) -> pd.DataFrame:
        df[self.column] = self.series(df)
        return df

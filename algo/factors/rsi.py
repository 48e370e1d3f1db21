"""RSI 因子。"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import numpy as np
import pandas as pd

from algo.factors.base import require_columns


@dataclass(frozen=True)
class RSIFactor:
    """相对强弱指数（RSI，Wilder 平滑版本）。

    Notes
    -----
    - 平均涨/跌幅用前 `period` 个价格变化的简单均值作种子，第一个有效值在下标 `period`；
    - 平均跌幅为 0 时：有涨幅记 100，完全无波动记 50；
    - 输出恒在 [0, 100]。
    """

    period: int = 14
    price_col: str = "close"
    out_col: str | None = None
    name: str = "rsi"
    params: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if self.period <= 0:
            raise ValueError("RSI period must be > 0")
        object.__setattr__(
            self,
            "params",
            {
                "period": self.period,
                "price_col": self.price_col,
                "out_col": self.out_col,
            },
        )

    @property
    def column(self) -> str:
        return self.out_col or f"rsi_{self.period}"

    def _wilder(self, changes: pd.Series) -> pd.Series:
        seeded = changes.iloc[self.period :].copy()
        seeded.iloc[0] = changes.iloc[1 : self.period + 1].mean()
        return seeded.ewm(alpha=1.0 / self.period, adjust=False).mean()

    def series(self, df: pd.DataFrame) -> pd.Series:
        require_columns("RSIFactor", df, self.price_col)
        prices = df[self.price_col].astype(float)
        out = pd.Series(np.nan, index=df.index, dtype=float)
        if len(prices) <= self.period:
            return out

        delta = prices.diff()
        avg_gain = self._wilder(delta.clip(lower=0.0)).to_numpy()
        avg_loss = self._wilder((-delta).clip(lower=0.0)).to_numpy()

        with np.errstate(divide="ignore", invalid="ignore"):
            rsi = 100.0 - 100.0 / (1.0 + avg_gain / avg_loss)
        flat_loss = avg_loss <= 0.0
        rsi = np.where(flat_loss & (avg_gain > 0.0), 100.0, rsi)
        rsi = np.where(flat_loss & (avg_gain <= 0.0), 50.0, rsi)
        out.iloc[self.period :] = np.clip(rsi, 0.0, 100.0)
        return out

    def compute(self, df: pd.DataFrame) -> pd.DataFrame:
        df[self.column] = self.series(df)
        return df

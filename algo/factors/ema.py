"""EMA 因子。"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import numpy as np
import pandas as pd

from algo.factors.base import require_columns


@dataclass(frozen=True)
class EMAFactor:
    """指数移动平均（EMA，alpha = 2/(period+1)）。

    第 `period-1` 根用前 `period` 个收盘价的 SMA 作为种子，之前为 NaN。
    """

    period: int = 34
    price_col: str = "close"
    out_col: str | None = None
    name: str = "ema"
    params: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if self.period <= 0:
            raise ValueError("EMA period must be > 0")
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
        return self.out_col or f"ema_{self.period}"

    def series(self, df: pd.DataFrame) -> pd.Series:
        require_columns("EMAFactor", df, self.price_col)
        prices = df[self.price_col].astype(float)
        out = pd.Series(np.nan, index=df.index, dtype=float)
        if len(prices) < self.period:
            return out

        seeded = prices.iloc[self.period - 1 :].copy()
        seeded.iloc[0] = prices.iloc[: self.period].mean()
        alpha = 2.0 / (self.period + 1)
        out.iloc[self.period - 1 :] = seeded.ewm(alpha=alpha, adjust=False).mean().to_numpy()
        return out

    def compute(self, df: pd.DataFrame) -> pd.DataFrame:
        df[self.column] = self.series(df)
        return df

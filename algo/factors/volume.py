"""成交额均线因子（volume * close 的 SMA）。"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import pandas as pd

from algo.factors.base import last_closed_value, require_columns


@dataclass(frozen=True)
class VolumeUsdMAFactor:
    """按计价货币计的成交额均线。"""

    period: int = 20
    volume_col: str = "volume"
    price_col: str = "close"
    out_col: str | None = None
    name: str = "vol_usd_ma"
    params: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if self.period <= 0:
            raise ValueError("VolumeUsdMA period must be > 0")
        object.__setattr__(
            self,
            "params",
            {
                "period": self.period,
                "volume_col": self.volume_col,
                "price_col": self.price_col,
                "out_col": self.out_col,
            },
        )

    @property
    def column(self) -> str:
        return self.out_col or f"vol_usd_ma_{self.period}"

    def series(self, df: pd.DataFrame) -> pd.Series:
        require_columns("VolumeUsdMAFactor", df, self.volume_col, self.price_col)
        notional = df[self.volume_col].astype(float) * df[self.price_col].astype(float)
        return notional.rolling(self.period, min_periods=self.period).mean()

    def value(self, df: pd.DataFrame) -> float:
        return last_closed_value(self.series(df), self.period + 2)

    def compute(self, df: pd.DataFrame) -> pd.DataFrame:
        df[self.column] = self.series(df)
        return df

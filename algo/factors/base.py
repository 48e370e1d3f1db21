"""因子（Indicators）抽象协议。"""

from __future__ import annotations

from typing import Any, Mapping, Protocol

import pandas as pd


class Factor(Protocol):
    """因子协议：`series(df) -> Series` 与 `compute(df) -> df`。"""

    name: str
    params: Mapping[str, Any]

    @property
    def column(self) -> str:
        """输出列名。"""
        ...

    def series(self, df: pd.DataFrame) -> pd.Series:
        """返回与 df 逐行对齐的指标序列（预热期为 NaN）。"""
        ...

    def compute(self, df: pd.DataFrame) -> pd.DataFrame:
        """对输入 df 添加/更新因子列并返回 df。"""
        ...


def require_columns(owner: str, df: pd.DataFrame, *cols: str) -> None:
    for col in cols:
        if col not in df.columns:
            raise ValueError(f"{owner} requires column: {col}")


def last_closed_value(values: pd.Series, min_len: int) -> float:
    """取倒数第二个值（最后一根已收盘 K 线）；长度不足或为 NaN 时返回 0.0。"""
    if len(values) < min_len:
        return 0.0
    v = values.iloc[-2]
    if pd.isna(v):
        return 0.0
    return float(v)

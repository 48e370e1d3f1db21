"""指标引擎的函数式入口。

全部是纯函数：同样的 K 线输入得到同样的输出，不保留任何状态。
序列类指标在预热期返回 NaN；标量类指标在数据不足时返回 0.0。
"""

from __future__ import annotations

from typing import Sequence, Union

import pandas as pd

from algo.factors.atr import ATRFactor
from algo.factors.ema import EMAFactor
from algo.factors.rsi import RSIFactor
from algo.factors.volume import VolumeUsdMAFactor
from market_data.loader import as_bar_frame
from shared.models.models import Bar

BarsLike = Union[pd.DataFrame, Sequence[Bar]]


def moving_average(bars: BarsLike, period: int) -> pd.Series:
    """收盘价 EMA。"""
    return EMAFactor(period=period).series(as_bar_frame(bars))


def momentum(bars: BarsLike, period: int) -> pd.Series:
    """Wilder RSI，取值 [0, 100]。"""
    return RSIFactor(period=period).series(as_bar_frame(bars))


def volatility(bars: BarsLike, period: int) -> float:
    """最后 `period` 根已收盘 K 线的平均真实波幅。"""
    return ATRFactor(period=period).value(as_bar_frame(bars))


def volume_moving_average(bars: BarsLike, period: int) -> float:
    """最后 `period` 根已收盘 K 线的平均成交额（volume * close）。"""
    return VolumeUsdMAFactor(period=period).value(as_bar_frame(bars))

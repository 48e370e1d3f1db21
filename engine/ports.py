"""调度器与外部协作方之间的接口。

协作方既可以是同步实现，也可以是 async 实现；调度器统一通过 `resolve` 取结果。
"""

from __future__ import annotations

import inspect
import logging
from typing import Any, Protocol, Sequence, Union

import pandas as pd

from shared.models.models import Bar, CooldownState, PositionSnapshot, Signal

BarsLike = Union[pd.DataFrame, Sequence[Bar]]


class MarketDataProvider(Protocol):
    def fetch_recent_bars(self, symbol: str, interval: str, limit: int) -> BarsLike:
        """按 open_time 升序返回最近 `limit` 根 K 线（最后一根可能仍在形成）。"""
        ...


class PositionProvider(Protocol):
    def get_position_snapshot(self, symbol: str) -> PositionSnapshot:
        ...


class CooldownSource(Protocol):
    def get_cooldown_state(self) -> CooldownState:
        ...


class SignalSink(Protocol):
    def on_signal(self, signal: Signal) -> Any:
        ...


class PositionManager(Protocol):
    def on_manual_position_observed(self, snapshot: PositionSnapshot) -> Any:
        ...


class ErrorReporter(Protocol):
    def on_tick_error(self, symbol: str, error: BaseException) -> Any:
        ...


async def resolve(value: Any) -> Any:
    """同步返回值原样返回，awaitable 则 await。"""
    if inspect.isawaitable(value):
        return await value
    return value


class LoggingErrorReporter:
    """默认的错误上报：只写日志。"""

    def __init__(self, logger: logging.Logger):
        self.logger = logger

    def on_tick_error(self, symbol: str, error: BaseException) -> None:
        self.logger.error("[%s] tick failed: %s: %s", symbol, type(error).__name__, error)

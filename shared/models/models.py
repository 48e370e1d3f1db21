"""核心数据结构：Bar/Signal/PositionSnapshot/CooldownState/WorkerState。"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum


class SignalKind(str, Enum):
    """分类器输出的信号类型。"""

    NONE = "none"
    ENTER_LONG = "enter_long"
    ENTER_SHORT = "enter_short"
    EXIT_LONG = "exit_long"
    EXIT_SHORT = "exit_short"

    @property
    def is_entry(self) -> bool:
        return self in (SignalKind.ENTER_LONG, SignalKind.ENTER_SHORT)

    @property
    def is_exit(self) -> bool:
        return self in (SignalKind.EXIT_LONG, SignalKind.EXIT_SHORT)


class TradeMode(str, Enum):
    """交易模式，决定后续持仓管理使用哪一组阈值。"""

    TREND = "trend"
    SCALP = "scalp"
    CONTINUATION = "continuation"


@dataclass(frozen=True)
class Bar:
    """固定周期 K 线（open_time 为 UTC 开盘时间）。"""

    open_time: datetime
    open: float
    high: float
    low: float
    close: float
    volume: float


@dataclass(frozen=True)
class Signal:
    """分类器输出的抽象交易信号。

    Notes
    -----
    - 非 NONE 信号必须带 reason；
    - 入场信号必须带 entry_price；
    - stop_loss/take_profit 可选，由下游执行层决定是否使用。
    """

    symbol: str
    kind: SignalKind
    reason: str
    timestamp: datetime
    entry_price: float | None = None
    stop_loss: float | None = None
    take_profit: float | None = None
    mode: TradeMode | None = None

    def __post_init__(self):
        if self.kind is not SignalKind.NONE and not self.reason:
            raise ValueError(f"Signal {self.kind.value} requires a reason")
        if self.kind.is_entry and self.entry_price is None:
            raise ValueError(f"Signal {self.kind.value} requires entry_price")

    @classmethod
    def none(cls, symbol: str, reason: str, timestamp: datetime) -> "Signal":
        return cls(symbol=symbol, kind=SignalKind.NONE, reason=reason, timestamp=timestamp)

    def to_dict(self) -> dict:
        return {
            "symbol": self.symbol,
            "kind": self.kind.value,
            "reason": self.reason,
            "timestamp": self.timestamp.isoformat(),
            "entry_price": self.entry_price,
            "stop_loss": self.stop_loss,
            "take_profit": self.take_profit,
            "mode": self.mode.value if self.mode is not None else None,
        }


@dataclass(frozen=True)
class PositionSnapshot:
    """外部观测到的持仓快照（signed_quantity 带符号：多为正，空为负）。"""

    symbol: str
    signed_quantity: float
    entry_price: float = 0.0
    mark_price: float = 0.0
    update_time: datetime | None = None

    @property
    def is_flat(self) -> bool:
        return self.signed_quantity == 0

    @property
    def is_long(self) -> bool:
        return self.signed_quantity > 0

    @property
    def is_short(self) -> bool:
        return self.signed_quantity < 0


@dataclass(frozen=True)
class CooldownState:
    """全局冷却状态快照（只读）。"""

    active: bool
    remaining: timedelta = timedelta(0)
    as_of: datetime | None = None
    reason: str | None = None


@dataclass
class WorkerState:
    """单个品种调度器私有的运行状态。"""

    last_processed_bar_open_time: datetime | None = None
    last_position_poll_time: datetime | None = None
    bars_processed: int = 0

    def is_new_bar(self, open_time: datetime) -> bool:
        last = self.last_processed_bar_open_time
        return last is None or open_time > last

    def mark_processed(self, open_time: datetime) -> None:
        # 只允许单调前进
        if not self.is_new_bar(open_time):
            raise ValueError(
                f"bar {open_time.isoformat()} is not newer than "
                f"{self.last_processed_bar_open_time.isoformat()}"  # type: ignore[union-attr]
            )
        self.last_processed_bar_open_time = open_time
        self.bars_processed += 1

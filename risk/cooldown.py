"""全局冷却（circuit breaker）状态。

单写多读：只有风控侧调用 `start/clear`，调度器只读 `get_cooldown_state()` 快照。
写入时整体替换不可变的 `_Window`，读取方永远看到一致的状态。
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable

from shared.config.schema import RiskConfig
from shared.models.models import CooldownState
from shared.utils.logging import setup_logger


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class _Window:
    until: datetime
    reason: str | None


class CooldownManager:
    """进程内冷却管理器（`CooldownSource` 的参考实现）。

    Parameters
    ----------
    default_duration:
        `start_default()` 使用的时长。
    clock:
        返回当前 UTC 时间的函数，测试时可注入。
    """

    def __init__(
        self,
        default_duration: timedelta = timedelta(minutes=60),
        clock: Callable[[], datetime] | None = None,
    ):
        if default_duration <= timedelta(0):
            raise ValueError("cooldown duration must be > 0")
        self.default_duration = default_duration
        self._clock = clock or _utcnow
        self._window: _Window | None = None
        self.logger = setup_logger("cooldown")

    @classmethod
    def from_config(cls, risk: RiskConfig, clock: Callable[[], datetime] | None = None) -> "CooldownManager":
        """按 `risk.cooldown_minutes` 设置默认冷却时长。"""
        return cls(default_duration=timedelta(minutes=risk.cooldown_minutes), clock=clock)

    def start(self, duration: timedelta, reason: str | None = None) -> CooldownState:
        """进入冷却；只会延长，不会缩短已有的冷却窗口。"""
        if duration <= timedelta(0):
            raise ValueError("cooldown duration must be > 0")
        now = self._clock()
        until = now + duration
        current = self._window
        if current is not None and current.until >= until:
            return self.get_cooldown_state()
        self._window = _Window(until=until, reason=reason)
        self.logger.warning("Cooldown started until %s (%s)", until.isoformat(), reason or "no reason")
        return self.get_cooldown_state()

    def start_default(self, reason: str | None = None) -> CooldownState:
        return self.start(self.default_duration, reason)

    def clear(self) -> None:
        if self._window is not None:
            self.logger.info("Cooldown cleared.")
        self._window = None

    def get_cooldown_state(self) -> CooldownState:
        now = self._clock()
        window = self._window
        if window is None or window.until <= now:
            return CooldownState(active=False, remaining=timedelta(0), as_of=now)
        return CooldownState(active=True, remaining=window.until - now, as_of=now, reason=window.reason)

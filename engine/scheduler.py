"""单品种调度器：对齐 K 线收盘，逐根分类，并与外部持仓状态对账。

状态机：
IDLE -> WAITING_FOR_BAR_CLOSE -> RECONCILING -> CLASSIFYING -> DISPATCHING -> WAITING_FOR_BAR_CLOSE
取消时进入 STOPPED。

Notes
-----
- 每根已收盘 K 线最多分类一次（按 open_time 严格递增去重）；
- 单次 tick 内的任何异常都会被记录并上报，调度循环继续；
- `asyncio.CancelledError` 不拦截，用于停止。
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import math
from datetime import datetime, timezone
from enum import Enum
from typing import Awaitable, Callable

from engine.ports import (
    CooldownSource,
    ErrorReporter,
    LoggingErrorReporter,
    MarketDataProvider,
    PositionManager,
    PositionProvider,
    SignalSink,
    resolve,
)
from market_data.loader import as_bar_frame, last_closed_open_time
from shared.config.schema import InstrumentConfig, SchedulerConfig
from shared.models.models import PositionSnapshot, Signal, WorkerState
from shared.utils.logging import setup_logger
from shared.utils.timeframe import interval_seconds, parse_interval_minutes, to_utc
from strategy.classifier import PatternClassifier
from strategy.scaler import ParameterSet


class SchedulerPhase(str, Enum):
    IDLE = "idle"
    WAITING_FOR_BAR_CLOSE = "waiting_for_bar_close"
    RECONCILING = "reconciling"
    CLASSIFYING = "classifying"
    DISPATCHING = "dispatching"
    STOPPED = "stopped"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class InstrumentScheduler:
    """单个品种的调度循环。

    Parameters
    ----------
    instrument:
        品种配置（symbol / entry_interval / trend_interval / min_trend_volume_usd）。
    market_data, positions, cooldown, signal_sink:
        外部协作方，同步/异步实现均可。
    position_manager:
        发现非空仓位（手动开仓或残留仓位）时通知的对象，可选。
    error_reporter:
        tick 失败时的上报对象；缺省只写日志。
    classifier:
        信号分类器；缺省为 canonical 变体。
    params:
        派生参数集；缺省按分类器的变体与品种周期计算。
    settings:
        调度节奏配置。
    clock, sleep:
        时钟与睡眠函数，测试时可注入。
    """

    def __init__(
        self,
        instrument: InstrumentConfig,
        *,
        market_data: MarketDataProvider,
        positions: PositionProvider,
        cooldown: CooldownSource,
        signal_sink: SignalSink,
        position_manager: PositionManager | None = None,
        error_reporter: ErrorReporter | None = None,
        classifier: PatternClassifier | None = None,
        params: ParameterSet | None = None,
        settings: SchedulerConfig | None = None,
        clock: Callable[[], datetime] | None = None,
        sleep: Callable[[float], Awaitable[None]] | None = None,
        logger: logging.Logger | None = None,
    ):
        self.instrument = instrument
        self.symbol = instrument.symbol
        self.market_data = market_data
        self.positions = positions
        self.cooldown = cooldown
        self.signal_sink = signal_sink
        self.position_manager = position_manager
        self.logger = logger or setup_logger("scheduler")
        self.error_reporter = error_reporter or LoggingErrorReporter(self.logger)
        self.classifier = classifier or PatternClassifier()
        self.settings = settings or SchedulerConfig()
        self.params = params or self.classifier.variant.parameters(
            parse_interval_minutes(instrument.entry_interval),
            parse_interval_minutes(instrument.trend_interval),
        )
        self._clock = clock or _utcnow
        self._sleep = sleep or asyncio.sleep

        self.interval_secs = interval_seconds(instrument.entry_interval)
        # 拉取根数至少覆盖最小 K 线要求（含一根未收盘）
        self.entry_limit = max(self.settings.bars_limit, self.params.min_bars_entry + 2)
        self.trend_limit = max(self.settings.bars_limit, self.params.min_bars_trend + 2)

        self.state = WorkerState()
        self.phase = SchedulerPhase.IDLE
        self.last_skip_reason: str | None = None
        self.last_signal: Signal | None = None

    def delay_to_next_bar_close(self, now: datetime) -> float:
        """距离下一次 K 线收盘（按 epoch 对齐）的秒数，外加收盘延迟。"""
        ts = to_utc(now).timestamp()
        next_close = math.ceil(ts / self.interval_secs) * self.interval_secs
        return max(0.0, next_close - ts) + self.settings.bar_close_delay_secs

    async def reconcile_on_start(self) -> PositionSnapshot | None:
        """启动时查询一次持仓；非空仓则通知持仓管理方接管。"""
        self.phase = SchedulerPhase.RECONCILING
        snapshot = await self.poll_position()
        if snapshot is not None and not snapshot.is_flat:
            self.logger.info(
                "[%s] existing position on start: qty=%s entry=%s", self.symbol, snapshot.signed_quantity, snapshot.entry_price
            )
        self.phase = SchedulerPhase.IDLE
        return snapshot

    async def poll_position(self) -> PositionSnapshot | None:
        """查询持仓快照；非空仓时通知 position_manager。失败只记录并上报。"""
        try:
            snapshot = await self._fetch_position()
            if not snapshot.is_flat:
                await self._notify_manual(snapshot)
            return snapshot
        except Exception as exc:
            self.logger.warning("[%s] position poll failed: %s", self.symbol, exc)
            await self._report(exc)
            return None

    async def run_tick(self) -> Signal | None:
        """处理一次 K 线收盘。返回分类结果（被跳过时为 None）。"""
        self.last_skip_reason = None
        try:
            return await self._tick()
        except Exception as exc:
            self.logger.exception("[%s] tick failed", self.symbol)
            await self._report(exc)
            return None

    async def run(self, max_ticks: int | None = None) -> None:
        """主循环：睡到下一根 K 线收盘 -> run_tick；同时运行持仓快轮询。"""
        await self.reconcile_on_start()
        poll_task = asyncio.create_task(self._position_poll_loop())
        ticks = 0
        try:
            while max_ticks is None or ticks < max_ticks:
                self.phase = SchedulerPhase.WAITING_FOR_BAR_CLOSE
                await self._sleep(self.delay_to_next_bar_close(self._clock()))
                await self.run_tick()
                ticks += 1
        finally:
            poll_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await poll_task
            self.phase = SchedulerPhase.STOPPED
            self.logger.info("[%s] scheduler stopped after %s ticks", self.symbol, ticks)

    async def _tick(self) -> Signal | None:
        entry = as_bar_frame(
            await resolve(self.market_data.fetch_recent_bars(self.symbol, self.instrument.entry_interval, self.entry_limit))
        )
        trend = as_bar_frame(
            await resolve(self.market_data.fetch_recent_bars(self.symbol, self.instrument.trend_interval, self.trend_limit))
        )

        last_closed = last_closed_open_time(entry)
        if last_closed is None:
            return self._skip("not enough bars")
        last_closed = to_utc(last_closed)
        if not self.state.is_new_bar(last_closed):
            return self._skip("bar already processed")
        self.state.mark_processed(last_closed)

        self.phase = SchedulerPhase.RECONCILING
        snapshot = await self._fetch_position()
        if not snapshot.is_flat:
            await self._notify_manual(snapshot)
            return self._skip("position open")

        cooldown = await resolve(self.cooldown.get_cooldown_state())
        if cooldown.active:
            return self._skip(f"cooldown active ({cooldown.remaining})")

        self.phase = SchedulerPhase.CLASSIFYING
        signal = self.classifier.classify(
            entry,
            trend,
            self.params,
            symbol=self.symbol,
            min_trend_volume_usd=self.instrument.min_trend_volume_usd,
        )
        self.last_signal = signal

        if not signal.kind.is_entry:
            # 空仓时的退出信号无需处理
            self.logger.debug("[%s] %s: %s", self.symbol, signal.kind.value, signal.reason)
            return signal

        self.phase = SchedulerPhase.DISPATCHING
        self.logger.info(
            "[%s] %s @ %s sl=%s tp=%s | %s",
            self.symbol,
            signal.kind.value,
            signal.entry_price,
            signal.stop_loss,
            signal.take_profit,
            signal.reason,
        )
        await resolve(self.signal_sink.on_signal(signal))
        return signal

    def _skip(self, reason: str) -> None:
        self.last_skip_reason = reason
        self.logger.debug("[%s] tick skipped: %s", self.symbol, reason)
        return None

    async def _fetch_position(self) -> PositionSnapshot:
        snapshot = await resolve(self.positions.get_position_snapshot(self.symbol))
        self.state.last_position_poll_time = self._clock()
        return snapshot

    async def _notify_manual(self, snapshot: PositionSnapshot) -> None:
        if self.position_manager is None:
            return
        await resolve(self.position_manager.on_manual_position_observed(snapshot))

    async def _position_poll_loop(self) -> None:
        while True:
            await self._sleep(self.settings.position_poll_secs)
            await self.poll_position()

    async def _report(self, error: BaseException) -> None:
        try:
            await resolve(self.error_reporter.on_tick_error(self.symbol, error))
        except Exception:
            self.logger.exception("[%s] error reporter failed", self.symbol)

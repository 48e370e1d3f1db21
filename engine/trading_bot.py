"""多品种宿主：按配置为每个品种构建调度器并发运行，同时运行冷却状态观察任务。"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Awaitable, Callable

from engine.ports import (
    CooldownSource,
    ErrorReporter,
    MarketDataProvider,
    PositionManager,
    PositionProvider,
    SignalSink,
    resolve,
)
from engine.scheduler import InstrumentScheduler
from risk.cooldown import CooldownManager
from shared.config.schema import MainConfig
from shared.utils.logging import setup_logger
from shared.utils.timeframe import parse_interval_minutes
from strategy.classifier import PatternClassifier
from strategy.modes import ModeProfileRegistry


class TradingBot:
    """把 `MainConfig` + 外部协作方组装成一组 `InstrumentScheduler`。

    Notes
    -----
    构造阶段完成所有校验与参数派生；任一品种配置非法则直接抛 ValueError，不会启动任何调度器。
    """

    def __init__(
        self,
        cfg: MainConfig,
        *,
        market_data: MarketDataProvider,
        positions: PositionProvider,
        signal_sink: SignalSink,
        cooldown: CooldownSource | None = None,
        position_manager: PositionManager | None = None,
        error_reporter: ErrorReporter | None = None,
        clock: Callable[[], datetime] | None = None,
        sleep: Callable[[float], Awaitable[None]] | None = None,
        logger: logging.Logger | None = None,
    ):
        if not cfg.instruments:
            raise ValueError("No instruments configured")
        self.cfg = cfg
        # 未注入冷却源时使用进程内实现，默认时长取 risk.cooldown_minutes
        self.cooldown = cooldown if cooldown is not None else CooldownManager.from_config(cfg.risk, clock)
        self.logger = logger or setup_logger("trading-bot", cfg.logging.level)
        self._sleep = sleep or asyncio.sleep

        self.mode_profiles = ModeProfileRegistry(cfg.mode_profiles)
        self.classifier = PatternClassifier(cfg.strategy.variant, self.mode_profiles)

        self.schedulers: dict[str, InstrumentScheduler] = {}
        for inst in cfg.instruments:
            params = self.classifier.variant.parameters(
                parse_interval_minutes(inst.entry_interval),
                parse_interval_minutes(inst.trend_interval),
                cfg.strategy.overrides,
                cfg.strategy.baseline_minutes,
            )
            self.schedulers[inst.symbol] = InstrumentScheduler(
                inst,
                market_data=market_data,
                positions=positions,
                cooldown=self.cooldown,
                signal_sink=signal_sink,
                position_manager=position_manager,
                error_reporter=error_reporter,
                classifier=self.classifier,
                params=params,
                settings=cfg.scheduler,
                clock=clock,
                sleep=self._sleep,
                logger=setup_logger(f"scheduler.{inst.symbol}", cfg.logging.level),
            )

        self._cooldown_active: bool | None = None

    async def check_cooldown(self) -> bool:
        """读取一次冷却状态，只在状态切换时记日志。返回当前是否处于冷却。"""
        state = await resolve(self.cooldown.get_cooldown_state())
        if state.active != self._cooldown_active:
            if state.active:
                self.logger.warning(
                    "Cooldown active: remaining=%s reason=%s", state.remaining, state.reason or "-"
                )
            elif self._cooldown_active is not None:
                self.logger.info("Cooldown ended, entries resume.")
            self._cooldown_active = state.active
        return state.active

    async def watch_cooldown(self) -> None:
        while True:
            try:
                await self.check_cooldown()
            except Exception as exc:
                self.logger.warning("Cooldown watcher read failed: %s", exc)
            await self._sleep(self.cfg.scheduler.cooldown_watch_secs)

    async def run(self, max_ticks: int | None = None) -> None:
        """并发运行全部调度器；冷却观察任务随之结束。"""
        self.logger.info(
            "Starting %s instrument(s) with variant=%s: %s",
            len(self.schedulers),
            self.classifier.variant.name,
            ", ".join(self.schedulers),
        )
        watcher = asyncio.create_task(self.watch_cooldown())
        try:
            await asyncio.gather(*(s.run(max_ticks=max_ticks) for s in self.schedulers.values()))
        finally:
            watcher.cancel()
            try:
                await watcher
            except asyncio.CancelledError:
                pass

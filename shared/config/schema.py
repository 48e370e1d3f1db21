"""配置架构定义（Pydantic Schema）。

目标：
- 让配置成为“强类型”的边界协议；
- 启动阶段尽早失败：周期写错、变体名写错、参数覆盖拼错，都在任何调度器启动前报 ValueError
  （pydantic 的 ValidationError 本身就是 ValueError 的子类）。
"""

from __future__ import annotations

from typing import Any, Dict, List

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from shared.utils.timeframe import parse_interval_minutes
from strategy.modes import ModeProfileRegistry
from strategy.registry import get_variant
from strategy.scaler import validate_overrides


class InstrumentConfig(BaseModel):
    """单个品种配置。"""
    symbol: str
    entry_interval: str = "5m"
    trend_interval: str = "15m"
    # 趋势周期成交额均线下限（计价货币），0 表示不限制
    min_trend_volume_usd: float = Field(default=0.0, ge=0.0)

    model_config = ConfigDict(extra="forbid")

    @field_validator("symbol")
    @classmethod
    def _normalize_symbol(cls, v: str) -> str:
        v = v.strip().upper()
        if not v:
            raise ValueError("symbol must not be empty")
        return v

    @field_validator("entry_interval", "trend_interval")
    @classmethod
    def _check_interval(cls, v: str) -> str:
        parse_interval_minutes(v)
        return v.strip().lower()


class StrategyConfig(BaseModel):
    """策略配置：变体 + 基准周期 + 基准值覆盖。"""
    variant: str = "canonical"
    baseline_minutes: int = Field(default=5, gt=0)
    overrides: Dict[str, float] = Field(default_factory=dict)

    model_config = ConfigDict(extra="forbid")

    @field_validator("variant")
    @classmethod
    def _check_variant(cls, v: str) -> str:
        get_variant(v)
        return v

    @field_validator("overrides", mode="before")
    @classmethod
    def _check_overrides(cls, v: Any) -> Any:
        if v is None:
            return {}
        if not isinstance(v, dict):
            raise ValueError("strategy.overrides must be a mapping")
        return validate_overrides(v)


class SchedulerConfig(BaseModel):
    """调度节奏配置。"""
    position_poll_secs: float = Field(default=8.0, gt=0)
    bar_close_delay_secs: float = Field(default=2.0, ge=0)
    bars_limit: int = Field(default=220, ge=3)
    cooldown_watch_secs: float = Field(default=15.0, gt=0)

    model_config = ConfigDict(extra="forbid")


class RiskConfig(BaseModel):
    """风控配置。"""
    cooldown_minutes: int = Field(default=60, gt=0)

    model_config = ConfigDict(extra="forbid")


class LoggingConfig(BaseModel):
    level: str = "INFO"

    model_config = ConfigDict(extra="forbid")


class MainConfig(BaseModel):
    """应用总配置。"""
    instruments: List[InstrumentConfig] = Field(default_factory=list)
    strategy: StrategyConfig = Field(default_factory=StrategyConfig)
    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    risk: RiskConfig = Field(default_factory=RiskConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    # 形如 {"scalp": {"safety_tp_rr": 1.5}}
    mode_profiles: Dict[str, Dict[str, Any]] = Field(default_factory=dict)

    model_config = ConfigDict(extra="forbid")

    @model_validator(mode="after")
    def _check_cross_fields(self) -> "MainConfig":
        seen: set[str] = set()
        for inst in self.instruments:
            if inst.symbol in seen:
                raise ValueError(f"Duplicate instrument symbol: {inst.symbol}")
            seen.add(inst.symbol)
        # 构造一次，未知模式/字段在启动时即报错
        ModeProfileRegistry(self.mode_profiles)
        return self

    def instrument(self, symbol: str) -> InstrumentConfig:
        key = symbol.strip().upper()
        for inst in self.instruments:
            if inst.symbol == key:
                return inst
        raise ValueError(f"Unknown instrument: {symbol}")

"""策略变体注册表：字符串 -> StrategyVariant。

历史上的几个策略版本只在“允许的方向 / 是否启用扫单反转 / 基准参数”上不同，
这里统一成数据驱动的变体，由配置里的 `strategy.variant` 选择。
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping

from strategy.scaler import BASELINE_MINUTES, ParameterSet, derive_parameters, validate_overrides

LONG = "long"
SHORT = "short"


@dataclass(frozen=True)
class StrategyVariant:
    """一个策略变体。

    Parameters
    ----------
    directions:
        按顺序评估的方向（"long"/"short"）。
    enable_sweep:
        趋势闸门失败时是否尝试扫单反转形态。
    allow_transition_retest:
        快线仍在慢线下方、但快线上拐且收盘站上快线时，是否允许回踩入场。
    base_overrides:
        覆盖缩放前的基准值。
    """

    name: str
    directions: tuple[str, ...] = (LONG,)
    enable_sweep: bool = True
    allow_transition_retest: bool = True
    base_overrides: Mapping[str, float] = field(default_factory=dict)
    fast_period: int = 34
    slow_period: int = 89
    rsi_period: int = 14
    atr_period: int = 14
    vol_ma_period: int = 20

    def __post_init__(self):
        if not self.directions:
            raise ValueError(f"Variant '{self.name}' must enable at least one direction")
        for d in self.directions:
            if d not in (LONG, SHORT):
                raise ValueError(f"Variant '{self.name}' has invalid direction: {d}")
        validate_overrides(self.base_overrides)

    def factor_specs(self) -> list[dict[str, Any]]:
        """分类器需要的指标列（交给 `algo.factors.registry.build_factors`）。"""
        return [
            {"type": "ema", "period": self.fast_period, "out_col": "ema_fast"},
            {"type": "ema", "period": self.slow_period, "out_col": "ema_slow"},
            {"type": "rsi", "period": self.rsi_period, "out_col": "rsi"},
        ]

    def parameters(
        self,
        entry_minutes: int,
        trend_minutes: int,
        overrides: Mapping[str, Any] | None = None,
        baseline_minutes: int = BASELINE_MINUTES,
    ) -> ParameterSet:
        merged = {**dict(self.base_overrides), **dict(overrides or {})}
        return derive_parameters(entry_minutes, trend_minutes, merged, baseline_minutes)


_REGISTRY: dict[str, StrategyVariant] = {}


def register_variant(variant: StrategyVariant) -> None:
    _REGISTRY[variant.name] = variant


def get_variant(name: str) -> StrategyVariant:
    if name not in _REGISTRY:
        raise ValueError(f"Unknown strategy variant: {name}")
    return _REGISTRY[name]


def available_variants() -> list[str]:
    return sorted(_REGISTRY)


# 默认注册
register_variant(StrategyVariant(name="canonical"))
register_variant(
    StrategyVariant(
        name="classic",
        enable_sweep=False,
        allow_transition_retest=False,
    )
)
register_variant(StrategyVariant(name="futures", directions=(LONG, SHORT)))

"""指标注册表：类型名 -> 指标实现，以及按规格批量构建/应用。

规格形如 `{"type": "ema", "period": 34, "out_col": "ema_fast"}`，
由策略变体给出（见 `StrategyVariant.factor_specs`）。
"""

from __future__ import annotations

from dataclasses import fields, is_dataclass
from typing import Any, Iterable, Mapping

import pandas as pd

from algo.factors.atr import ATRFactor
from algo.factors.base import Factor
from algo.factors.ema import EMAFactor
from algo.factors.rsi import RSIFactor
from algo.factors.volume import VolumeUsdMAFactor

_REGISTRY: dict[str, type] = {}


def register_factor(name: str, cls: type) -> None:
    _REGISTRY[name] = cls


def get_factor_cls(name: str) -> type:
    if name not in _REGISTRY:
        raise ValueError(f"Unknown factor: {name}")
    return _REGISTRY[name]


def available_factors() -> list[str]:
    return sorted(_REGISTRY)


def _init_kwargs(cls: type, spec: Mapping[str, Any]) -> dict[str, Any]:
    # 只保留 dataclass 可初始化字段；规格里多出来的键忽略
    if not is_dataclass(cls):
        return {k: v for k, v in spec.items() if k != "type"}
    allowed = {f.name for f in fields(cls) if f.init}
    return {k: v for k, v in spec.items() if k in allowed}


def build_factors(specs: Iterable[Mapping[str, Any]] | None) -> list[Factor]:
    """按规格构建指标列表；输出列重名视为配置错误。"""
    factors: list[Factor] = []
    columns: set[str] = set()
    for spec in specs or []:
        if not isinstance(spec, Mapping):
            raise ValueError("factor spec must be a mapping")
        kind = str(spec.get("type") or "")
        if not kind:
            raise ValueError("factor spec missing type")
        cls = get_factor_cls(kind)
        try:
            factor = cls(**_init_kwargs(cls, spec))
        except TypeError as exc:
            raise ValueError(f"Invalid params for factor '{kind}': {dict(spec)}") from exc

        column = factor.column
        if column in columns:
            raise ValueError(f"Duplicate factor output column: {column}")
        columns.add(column)
        factors.append(factor)
    return factors


def apply_factors(df: pd.DataFrame, factors: Iterable[Factor]) -> pd.DataFrame:
    """在副本上依次追加指标列，调用方的 DataFrame 保持不变。"""
    out = df.copy()
    for factor in factors:
        out = factor.compute(out)
    return out


register_factor("ema", EMAFactor)
register_factor("rsi", RSIFactor)
register_factor("atr", ATRFactor)
register_factor("vol_usd_ma", VolumeUsdMAFactor)

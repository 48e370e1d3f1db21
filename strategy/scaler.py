"""周期自适应参数缩放（Parameter Scaler）。

所有门槛都以 5 分钟周期为基准调校；切换到其他周期时，按
`f = clamp(sqrt(m / baseline), 0.75, 2.5)` 缩放：

- length：K 线数量类，`round(base * f)`；
- proportional：价格比例/ATR 倍数类，`base * f`；
- shift：动量/形态比率类，`base + slope * (f - 1)`；
- inverse：成交量比率类，`base / f`。

每个字段都有 [lo, hi] 钳位，任何周期下都不会越界。
`min_bars_trend` 与 `slope_tolerance` 使用趋势周期的因子，其余字段使用入场周期的因子。
"""

from __future__ import annotations

import math
from dataclasses import asdict, dataclass, fields
from enum import Enum
from functools import lru_cache
from typing import Any, Mapping

BASELINE_MINUTES = 5
FACTOR_MIN = 0.75
FACTOR_MAX = 2.50


class ScaleKind(str, Enum):
    LENGTH = "length"
    PROPORTIONAL = "proportional"
    SHIFT = "shift"
    INVERSE = "inverse"


@dataclass(frozen=True)
class ScaleRule:
    """单个字段的缩放规则。"""

    kind: ScaleKind
    base: float
    lo: float
    hi: float
    slope: float = 0.0
    basis: str = "entry"  # entry | trend

    def apply(self, factor: float, base: float | None = None) -> float | int:
        b = self.base if base is None else float(base)
        if self.kind is ScaleKind.LENGTH:
            # round() 为银行家舍入
            return int(min(max(round(b * factor), self.lo), self.hi))
        if self.kind is ScaleKind.PROPORTIONAL:
            raw = b * factor
        elif self.kind is ScaleKind.SHIFT:
            raw = b + self.slope * (factor - 1.0)
        else:
            raw = b / factor
        return float(min(max(raw, self.lo), self.hi))


_L, _P, _S, _I = ScaleKind.LENGTH, ScaleKind.PROPORTIONAL, ScaleKind.SHIFT, ScaleKind.INVERSE

SCALING_RULES: dict[str, ScaleRule] = {
    # K 线数量
    "min_bars_entry": ScaleRule(_L, 200, 160, 340),
    "min_bars_trend": ScaleRule(_L, 120, 90, 260, basis="trend"),
    "retest_lookback": ScaleRule(_L, 8, 6, 90),
    "base_lookback": ScaleRule(_L, 6, 4, 70),
    "swing_lookback": ScaleRule(_L, 40, 30, 260),
    "hold_confirm_bars": ScaleRule(_L, 3, 2, 14),
    "sweep_lookback": ScaleRule(_L, 18, 10, 40),
    # 价格比例 / ATR 倍数
    "max_distance_from_fast": ScaleRule(_P, 0.0035, 0.0028, 0.012),
    "max_distance_atr_mult": ScaleRule(_P, 2.0, 1.5, 4.0),
    "retest_touch_band": ScaleRule(_P, 0.001, 0.0006, 0.003),
    "retest_reclaim_buffer": ScaleRule(_P, 0.0003, 0.0002, 0.0012),
    "base_min_low_above_fast": ScaleRule(_P, 0.0012, 0.0006, 0.004),
    "break_buffer": ScaleRule(_P, 0.0005, 0.0003, 0.0025),
    "hold_below_buffer": ScaleRule(_P, 0.0005, 0.0003, 0.003),
    "sweep_buffer": ScaleRule(_P, 0.0006, 0.00035, 0.0012),
    "sweep_reclaim_buffer": ScaleRule(_P, 0.00035, 0.00018, 0.00085),
    "exit_ma_break_tol": ScaleRule(_P, 0.0004, 0.00025, 0.0012),
    # 形态比率
    "impulse_body_to_range_max": ScaleRule(_S, 0.75, 0.68, 0.82, slope=0.03),
    "impulse_range_atr_mult": ScaleRule(_S, 1.2, 1.05, 1.6, slope=0.08),
    "base_max_range_atr": ScaleRule(_S, 0.85, 0.7, 1.15, slope=0.05),
    "sweep_body_to_range_min": ScaleRule(_S, 0.35, 0.26, 0.52, slope=-0.05),
    "sweep_max_range_atr": ScaleRule(_S, 2.4, 2.0, 3.0, slope=0.2),
    # 动量门槛：回踩最宽松，延续次之，突破站稳最严格
    "rsi_min_retest": ScaleRule(_S, 42, 38, 52, slope=2.0),
    "rsi_min_continuation": ScaleRule(_S, 45, 40, 55, slope=2.0),
    "rsi_min_break_hold": ScaleRule(_S, 48, 42, 58, slope=2.5),
    "rsi_min_sweep": ScaleRule(_S, 40, 36, 43, slope=-2.0),
    "exit_rsi_weak": ScaleRule(_S, 44, 38, 55, slope=1.5),
    # 成交量比率
    "entry_vol_min_factor": ScaleRule(_I, 0.6, 0.35, 0.85),
    "break_vol_min_factor": ScaleRule(_I, 0.9, 0.55, 1.1),
    "sweep_vol_min_factor": ScaleRule(_I, 0.6, 0.4, 0.9),
    "slope_tolerance": ScaleRule(_I, 0.00015, 0.00003, 0.00025, basis="trend"),
}

PARAMETER_BOUNDS: dict[str, tuple[float, float]] = {
    "scale_factor": (FACTOR_MIN, FACTOR_MAX),
    "trend_scale_factor": (FACTOR_MIN, FACTOR_MAX),
    **{name: (rule.lo, rule.hi) for name, rule in SCALING_RULES.items()},
}


@dataclass(frozen=True)
class ParameterSet:
    """某个（入场周期, 趋势周期）组合下的全部派生门槛。"""

    entry_minutes: int
    trend_minutes: int
    scale_factor: float
    trend_scale_factor: float

    min_bars_entry: int
    min_bars_trend: int
    retest_lookback: int
    base_lookback: int
    swing_lookback: int
    hold_confirm_bars: int
    sweep_lookback: int

    max_distance_from_fast: float
    max_distance_atr_mult: float
    retest_touch_band: float
    retest_reclaim_buffer: float
    base_min_low_above_fast: float
    break_buffer: float
    hold_below_buffer: float
    sweep_buffer: float
    sweep_reclaim_buffer: float
    exit_ma_break_tol: float

    impulse_body_to_range_max: float
    impulse_range_atr_mult: float
    base_max_range_atr: float
    sweep_body_to_range_min: float
    sweep_max_range_atr: float

    rsi_min_retest: float
    rsi_min_continuation: float
    rsi_min_break_hold: float
    rsi_min_sweep: float
    exit_rsi_weak: float

    entry_vol_min_factor: float
    break_vol_min_factor: float
    sweep_vol_min_factor: float
    slope_tolerance: float

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    def out_of_bounds(self) -> list[str]:
        """返回越界的字段名（正常情况下应为空）。"""
        bad: list[str] = []
        for f in fields(self):
            bounds = PARAMETER_BOUNDS.get(f.name)
            if bounds is None:
                continue
            v = getattr(self, f.name)
            if not (bounds[0] <= v <= bounds[1]):
                bad.append(f.name)
        return bad


def scale_factor(
    interval_minutes: int,
    baseline_minutes: int = BASELINE_MINUTES,
    f_min: float = FACTOR_MIN,
    f_max: float = FACTOR_MAX,
) -> float:
    """`clamp(sqrt(m / baseline), f_min, f_max)`；非正周期按 baseline 处理。"""
    if baseline_minutes <= 0:
        raise ValueError(f"baseline_minutes must be > 0, got {baseline_minutes}")
    m = interval_minutes if interval_minutes > 0 else baseline_minutes
    return min(max(math.sqrt(m / baseline_minutes), f_min), f_max)


def validate_overrides(overrides: Mapping[str, Any] | None) -> dict[str, float]:
    """校验基准值覆盖项：只能覆盖已知字段，且必须是有限数值。"""
    if not overrides:
        return {}
    out: dict[str, float] = {}
    for name, value in overrides.items():
        if name not in SCALING_RULES:
            raise ValueError(f"Unknown parameter override: {name}")
        if isinstance(value, bool):
            raise ValueError(f"Parameter override '{name}' must be numeric, got {value!r}")
        try:
            v = float(value)
        except (TypeError, ValueError) as exc:
            raise ValueError(f"Parameter override '{name}' must be numeric, got {value!r}") from exc
        # NaN 会绕过钳位，inf 无法取整
        if not math.isfinite(v):
            raise ValueError(f"Parameter override '{name}' must be finite, got {value!r}")
        out[name] = v
    return out


@lru_cache(maxsize=256)
def _derive(
    entry_minutes: int,
    trend_minutes: int,
    overrides: tuple[tuple[str, float], ...],
    baseline_minutes: int,
) -> ParameterSet:
    f_entry = scale_factor(entry_minutes, baseline_minutes)
    f_trend = scale_factor(trend_minutes, baseline_minutes)
    bases = dict(overrides)

    values: dict[str, Any] = {}
    for name, rule in SCALING_RULES.items():
        f = f_trend if rule.basis == "trend" else f_entry
        values[name] = rule.apply(f, bases.get(name))

    return ParameterSet(
        entry_minutes=entry_minutes,
        trend_minutes=trend_minutes,
        scale_factor=f_entry,
        trend_scale_factor=f_trend,
        **values,
    )


def derive_parameters(
    entry_minutes: int,
    trend_minutes: int,
    overrides: Mapping[str, Any] | None = None,
    baseline_minutes: int = BASELINE_MINUTES,
) -> ParameterSet:
    """派生参数集（纯函数，带缓存）。

    Parameters
    ----------
    entry_minutes:
        入场周期（分钟）。
    trend_minutes:
        趋势周期（分钟）。
    overrides:
        基准值覆盖（例如某个策略变体想要更宽的回踩带）；钳位区间不可覆盖。
    baseline_minutes:
        基准周期，默认 5。

    Raises
    ------
    ValueError
        覆盖了未知字段或非数值。
    """
    checked = validate_overrides(overrides)
    return _derive(int(entry_minutes), int(trend_minutes), tuple(sorted(checked.items())), int(baseline_minutes))

"""交易模式画像（Mode Profile Registry）。

每种模式对应一组持仓管理阈值（以 R 倍数和 ROI 表示），供下游持仓管理器使用。
分类器只用到 `safety_tp_rr` 来给入场信号挂一个保护性止盈。
"""

from __future__ import annotations

from dataclasses import dataclass, fields, replace
from datetime import timedelta
from typing import Any, Mapping

from shared.models.models import TradeMode


@dataclass(frozen=True)
class ModeProfile:
    """单个模式的退出/保护阈值。"""

    mode: TradeMode

    # R 倍数门槛
    protect_at_rr: float
    break_even_buffer_r: float
    quick_take_min_rr: float
    quick_take_good_rr: float
    danger_cut_if_rr_below: float
    time_stop_bars: int
    time_stop_min_rr: float
    early_exit_bars: int
    early_exit_min_rr: float
    min_trail_start_rr: float
    safety_tp_rr: float

    # ROI 门槛（与上面的 R 门槛平行）
    min_protect_roi: float
    min_quick_take_roi: float
    quick_take_not_ok_min_roi: float
    min_danger_cut_abs_loss_roi: float
    time_stop_min_roi: float
    early_exit_min_roi: float
    min_trail_start_roi: float
    min_boundary_exit_roi: float

    ema_break_tolerance: float
    maker_timeout: timedelta

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {}
        for f in fields(self):
            v = getattr(self, f.name)
            if isinstance(v, TradeMode):
                v = v.value
            elif isinstance(v, timedelta):
                v = v.total_seconds()
            out[f.name] = v
        return out


SCALP_PROFILE = ModeProfile(
    mode=TradeMode.SCALP,
    protect_at_rr=0.22,
    break_even_buffer_r=0.06,
    quick_take_min_rr=0.35,
    quick_take_good_rr=0.60,
    danger_cut_if_rr_below=-0.25,
    time_stop_bars=15,
    time_stop_min_rr=0.3,
    early_exit_bars=8,
    early_exit_min_rr=0.1,
    min_trail_start_rr=0.45,
    safety_tp_rr=1.30,
    min_protect_roi=0.03,
    min_quick_take_roi=0.05,
    quick_take_not_ok_min_roi=0.08,
    min_danger_cut_abs_loss_roi=0.04,
    time_stop_min_roi=0.03,
    early_exit_min_roi=0.015,
    min_trail_start_roi=0.06,
    min_boundary_exit_roi=0.02,
    ema_break_tolerance=0.0012,
    maker_timeout=timedelta(minutes=20),
)

CONTINUATION_PROFILE = ModeProfile(
    mode=TradeMode.CONTINUATION,
    protect_at_rr=0.25,
    break_even_buffer_r=0.05,
    quick_take_min_rr=0.40,
    quick_take_good_rr=0.70,
    danger_cut_if_rr_below=-0.30,
    time_stop_bars=15,
    time_stop_min_rr=0.3,
    early_exit_bars=8,
    early_exit_min_rr=0.13,
    min_trail_start_rr=0.50,
    safety_tp_rr=1.60,
    min_protect_roi=0.035,
    min_quick_take_roi=0.06,
    quick_take_not_ok_min_roi=0.09,
    min_danger_cut_abs_loss_roi=0.045,
    time_stop_min_roi=0.035,
    early_exit_min_roi=0.02,
    min_trail_start_roi=0.07,
    min_boundary_exit_roi=0.025,
    ema_break_tolerance=0.0010,
    maker_timeout=timedelta(minutes=15),
)

TREND_PROFILE = ModeProfile(
    mode=TradeMode.TREND,
    protect_at_rr=0.30,
    break_even_buffer_r=0.05,
    quick_take_min_rr=0.45,
    quick_take_good_rr=0.75,
    danger_cut_if_rr_below=-0.35,
    time_stop_bars=25,
    time_stop_min_rr=0.4,
    early_exit_bars=15,
    early_exit_min_rr=0.2,
    min_trail_start_rr=0.60,
    safety_tp_rr=2.0,
    min_protect_roi=0.04,
    min_quick_take_roi=0.07,
    quick_take_not_ok_min_roi=0.10,
    min_danger_cut_abs_loss_roi=0.05,
    time_stop_min_roi=0.04,
    early_exit_min_roi=0.025,
    min_trail_start_roi=0.08,
    min_boundary_exit_roi=0.03,
    ema_break_tolerance=0.001,
    maker_timeout=timedelta(minutes=30),
)

DEFAULT_PROFILES: dict[TradeMode, ModeProfile] = {
    TradeMode.SCALP: SCALP_PROFILE,
    TradeMode.CONTINUATION: CONTINUATION_PROFILE,
    TradeMode.TREND: TREND_PROFILE,
}

_OVERRIDABLE = {f.name for f in fields(ModeProfile)} - {"mode"}


def _coerce_mode(mode: TradeMode | str | None) -> TradeMode | None:
    if mode is None or isinstance(mode, TradeMode):
        return mode
    try:
        return TradeMode(str(mode).strip().lower())
    except ValueError:
        return None


def _apply_overrides(profile: ModeProfile, values: Mapping[str, Any]) -> ModeProfile:
    changes: dict[str, Any] = {}
    for name, raw in values.items():
        if name not in _OVERRIDABLE:
            raise ValueError(f"Unknown mode profile field: {name}")
        if name == "maker_timeout":
            changes[name] = raw if isinstance(raw, timedelta) else timedelta(seconds=float(raw))
        elif name in ("time_stop_bars", "early_exit_bars"):
            changes[name] = int(raw)
        else:
            changes[name] = float(raw)
    return replace(profile, **changes)


class ModeProfileRegistry:
    """模式画像查询表。

    Notes
    -----
    - 配置覆盖只在构造时应用一次，之后只读；
    - 查询未知模式（或 None）时回退到 TREND 画像。
    """

    def __init__(self, overrides: Mapping[str, Mapping[str, Any]] | None = None):
        profiles = dict(DEFAULT_PROFILES)
        for key, values in (overrides or {}).items():
            mode = _coerce_mode(key)
            if mode is None:
                raise ValueError(f"Unknown trade mode in overrides: {key}")
            profiles[mode] = _apply_overrides(profiles[mode], values or {})
        self._profiles = profiles

    def get(self, mode: TradeMode | str | None) -> ModeProfile:
        resolved = _coerce_mode(mode)
        if resolved is None:
            return self._profiles[TradeMode.TREND]
        return self._profiles.get(resolved, self._profiles[TradeMode.TREND])

    def all(self) -> dict[TradeMode, ModeProfile]:
        return dict(self._profiles)


_DEFAULT_REGISTRY = ModeProfileRegistry()


def get_mode_profile(mode: TradeMode | str | None) -> ModeProfile:
    """按模式取默认画像；未知模式回退到 TREND。"""
    return _DEFAULT_REGISTRY.get(mode)

"""barpilot 统一命令行入口。

子命令：

- `params`：打印某个周期组合下派生出的参数集（JSON）。
- `check-config`：校验配置文件，打印每个品种的有效参数。
- `scan`：在历史 CSV 上逐根回放分类器，按 JSON Lines 输出信号。
"""

from __future__ import annotations

import argparse
import json
import sys
from dataclasses import dataclass
from typing import Any

from engine.replay import replay_signals
from market_data.loader import load_bars_csv
from shared.config.config_loader import load_config
from shared.utils.logging import setup_logger
from shared.utils.timeframe import parse_interval_minutes
from strategy.classifier import PatternClassifier
from strategy.modes import ModeProfileRegistry
from strategy.registry import available_variants, get_variant


@dataclass
class CliArgs:
    """命令行参数结构。

    config: 配置文件路径
    task: 子命令（params/check-config/scan）
    """
    config: str
    task: str
    interval: str = "5m"
    trend_interval: str | None = None
    variant: str = "canonical"
    baseline: int = 5
    symbol: str | None = None
    entry_csv: str | None = None
    trend_csv: str | None = None
    include_none: bool = False


def build_parser() -> argparse.ArgumentParser:
    """构建 CLI 参数解析器。"""
    parser = argparse.ArgumentParser(prog="barpilot", description="barpilot 决策核心工具")

    def _add_config_arg(p: argparse.ArgumentParser, *, default: Any) -> None:
        p.add_argument(
            "--config",
            default=default,
            help="配置文件路径 (默认: config/config.yml)",
        )

    # 允许 `--config` 写在子命令前或后
    _add_config_arg(parser, default="config/config.yml")

    sub = parser.add_subparsers(dest="task")

    p_params = sub.add_parser("params", help="打印派生参数集")
    p_params.add_argument("--interval", default="5m", help="入场周期，如 5m/15m/1h")
    p_params.add_argument("--trend-interval", default=None, help="趋势周期（默认同入场周期）")
    p_params.add_argument("--variant", default="canonical", choices=available_variants())
    p_params.add_argument("--baseline", type=int, default=5, help="基准周期（分钟）")

    p_check = sub.add_parser("check-config", help="校验配置文件")
    _add_config_arg(p_check, default=argparse.SUPPRESS)

    p_scan = sub.add_parser("scan", help="在历史 CSV 上回放分类器")
    _add_config_arg(p_scan, default=argparse.SUPPRESS)
    p_scan.add_argument("--symbol", required=True)
    p_scan.add_argument("--entry-csv", required=True)
    p_scan.add_argument("--trend-csv", required=True)
    p_scan.add_argument("--include-none", action="store_true", help="同时输出 NONE 信号")

    return parser


def parse_args(argv: list[str] | None = None) -> CliArgs:
    parser = build_parser()
    ns = parser.parse_args(argv)
    if not ns.task:
        parser.error("a subcommand is required (params/check-config/scan)")
    return CliArgs(
        config=str(getattr(ns, "config", "config/config.yml")),
        task=ns.task,
        interval=str(getattr(ns, "interval", "5m")),
        trend_interval=getattr(ns, "trend_interval", None),
        variant=str(getattr(ns, "variant", "canonical")),
        baseline=int(getattr(ns, "baseline", 5)),
        symbol=getattr(ns, "symbol", None),
        entry_csv=getattr(ns, "entry_csv", None),
        trend_csv=getattr(ns, "trend_csv", None),
        include_none=bool(getattr(ns, "include_none", False)),
    )


def _print_json(obj: Any) -> None:
    print(json.dumps(obj, ensure_ascii=False, sort_keys=True))


def main(argv: list[str] | None = None) -> Any:
    """程序主入口。

    Returns
    -------
    Any
        子命令结果：params -> dict；check-config -> dict；scan -> list[dict]。

    Raises
    ------
    ValueError
        参数或配置非法。
    FileNotFoundError
        配置/数据文件不存在。
    """
    args = parse_args(argv)

    if args.task == "params":
        entry_m = parse_interval_minutes(args.interval)
        trend_m = parse_interval_minutes(args.trend_interval or args.interval)
        params = get_variant(args.variant).parameters(entry_m, trend_m, baseline_minutes=args.baseline)
        result = params.to_dict()
        _print_json(result)
        return result

    if args.task == "check-config":
        cfg = load_config(args.config)
        variant = get_variant(cfg.strategy.variant)
        result = {
            "variant": variant.name,
            "instruments": {
                inst.symbol: variant.parameters(
                    parse_interval_minutes(inst.entry_interval),
                    parse_interval_minutes(inst.trend_interval),
                    cfg.strategy.overrides,
                    cfg.strategy.baseline_minutes,
                ).to_dict()
                for inst in cfg.instruments
            },
        }
        _print_json(result)
        return result

    if args.task == "scan":
        cfg = load_config(args.config)
        logger = setup_logger("barpilot", cfg.logging.level)
        inst = cfg.instrument(args.symbol or "")
        classifier = PatternClassifier(cfg.strategy.variant, ModeProfileRegistry(cfg.mode_profiles))
        params = classifier.variant.parameters(
            parse_interval_minutes(inst.entry_interval),
            parse_interval_minutes(inst.trend_interval),
            cfg.strategy.overrides,
            cfg.strategy.baseline_minutes,
        )
        signals = replay_signals(
            load_bars_csv(args.entry_csv or ""),
            load_bars_csv(args.trend_csv or ""),
            symbol=inst.symbol,
            entry_interval=inst.entry_interval,
            trend_interval=inst.trend_interval,
            classifier=classifier,
            params=params,
            min_trend_volume_usd=inst.min_trend_volume_usd,
            bars_limit=cfg.scheduler.bars_limit,
            include_none=args.include_none,
        )
        result = [s.to_dict() for s in signals]
        for row in result:
            _print_json(row)
        logger.info("scan %s: %s signal(s)", inst.symbol, len(result))
        return result

    raise ValueError(f"Unknown task: {args.task}")


def cli() -> int:
    """console script 入口：致命错误打印诊断信息并返回非零退出码。"""
    try:
        main()
    except (ValueError, FileNotFoundError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2
    return 0


if __name__ == "__main__":
    sys.exit(cli())

"""配置加载。

支持 YAML 配置与环境变量占位符 `${VAR}` 展开，最终交给 `MainConfig` 做强校验。
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any

import yaml

from shared.config.schema import MainConfig

_ENV_RE = re.compile(r"\$\{([^}]+)\}")


def expand_env(value: Any) -> Any:
    """递归展开 `${VAR}`；变量未设置时报错，避免静默替换为空。"""
    if isinstance(value, str):
        def replacer(match: re.Match) -> str:
            var_name = match.group(1)
            if var_name not in os.environ:
                raise ValueError(f"Missing environment variable: {var_name}")
            return os.environ[var_name]

        return _ENV_RE.sub(replacer, value)
    if isinstance(value, dict):
        return {k: expand_env(v) for k, v in value.items()}
    if isinstance(value, list):
        return [expand_env(v) for v in value]
    return value


def load_config(path: str | Path, expand_env_vars: bool = True) -> MainConfig:
    """从 YAML 读取并解析配置。

    Parameters
    ----------
    path:
        配置文件路径。
    expand_env_vars:
        是否展开 `${VAR}` 占位符。

    Returns
    -------
    MainConfig
        校验后的配置对象。

    Raises
    ------
    FileNotFoundError
        配置文件不存在。
    ValueError
        YAML 顶层不是 mapping、缺失环境变量，或字段校验失败。
    """
    cfg_path = Path(path)
    if not cfg_path.exists():
        raise FileNotFoundError(f"Config file not found: {cfg_path}")

    with cfg_path.open("r", encoding="utf-8") as f:
        raw_cfg = yaml.safe_load(f) or {}
    if not isinstance(raw_cfg, dict):
        raise ValueError(f"Config root must be a mapping: {cfg_path}")

    if expand_env_vars:
        raw_cfg = expand_env(raw_cfg)
    return MainConfig.model_validate(raw_cfg)

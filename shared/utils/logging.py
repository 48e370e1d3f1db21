"""
轻量日志封装。

Notes
-----
`setup_logger` 会避免重复添加 handler，否则多个调度器共用同一 logger 时会出现重复日志。
"""

from __future__ import annotations

import logging

_FORMAT = "%(asctime)s [%(levelname)s] %(name)s - %(message)s"


def resolve_level(level: int | str) -> int:
    """把 "DEBUG"/"info"/10 之类的输入统一成 logging 级别。"""
    if isinstance(level, int):
        return level
    value = logging.getLevelName(str(level).strip().upper())
    if not isinstance(value, int):
        raise ValueError(f"Unknown log level: {level}")
    return value


def setup_logger(name: str = "barpilot", level: int | str = logging.INFO) -> logging.Logger:
    """
    创建或获取命名 logger。

    Parameters
    ----------
    name:
        Logger 名称，一般按组件命名（"scheduler"、"classifier"...）。
    level:
        日志级别，默认 INFO；也接受字符串。

    Returns
    -------
    logging.Logger
        已配置的 logger。
    """
    logger = logging.getLogger(name)
    logger.setLevel(resolve_level(level))
    logger.propagate = False

    has_stream = any(isinstance(h, logging.StreamHandler) for h in logger.handlers)
    if not has_stream:
        ch = logging.StreamHandler()
        ch.setFormatter(logging.Formatter(_FORMAT))
        logger.addHandler(ch)

    return logger

# -*- coding: utf-8 -*-
"""
@FileName    : logger.py
@Author      : jiaxin
@Date        : 2026/10/19
@Time        : 10:14
@Description :
日志初始化：
- 统一格式输出到 root logger
- 代理自身使用 "registry-proxy" logger
- httpx / httpcore 每次请求都会打 INFO，与 [上游] 日志重复，非 DEBUG 级别下压到 WARNING
"""
import logging
from mirror_proxy.settings import Settings

LOGGER_NAME = "registry-proxy"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
UPSTREAM_CLIENT_LOGGERS = ("httpx", "httpcore")


def resolve_level(name: str) -> int:
    level = logging.getLevelName(name.upper())
    if not isinstance(level, int):
        raise ValueError(f"Unknown log level: {name}")
    return level


def setup_logging(settings: Settings) -> logging.Logger:
    level = resolve_level(settings.log_level)
    logging.basicConfig(level=level, format=LOG_FORMAT, force=True)

    client_level = level if level <= logging.DEBUG else max(level, logging.WARNING)
    for name in UPSTREAM_CLIENT_LOGGERS:
        logging.getLogger(name).setLevel(client_level)

    logger = get_logger()
    logger.info(f"📝 [日志] 初始化完成 → level: {logging.getLevelName(level)} | mode: {settings.mode}")
    return logger


def get_logger() -> logging.Logger:
    return logging.getLogger(LOGGER_NAME)

"""git-rest-cache 日志配置

log-level 使用 debug / info / warn / error / fatal 五级；
log-json 为 true 时每行输出一个 JSON 对象，便于日志平台采集。
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone

# 配置中的级别名 -> logging 常量
LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "fatal": logging.CRITICAL,
    "critical": logging.CRITICAL,
}

# logging 级别名 -> 输出中使用的级别名
_LEVEL_NAMES = {
    "WARNING": "warn",
    "CRITICAL": "fatal",
}

TEXT_FORMAT = "%(asctime)s [%(levelname)-7s] (%(threadName)s) %(name)s: %(message)s"


class JSONFormatter(logging.Formatter):
    """结构化 JSON 日志格式器

    输出格式:
        {
            "time": "2024-01-01T12:00:00+00:00",
            "level": "info",
            "logger": "gitrestcache.services.gitcache.records",
            "thread": "git-cache-maintenance",
            "msg": "克隆分支: 1a2b.../main",
            "exception": "traceback..." (仅在有异常时)
        }
    """

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            # record.created 是事件发生时间，不是格式化时间
            "time": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": level_name(record.levelno),
            "logger": record.name,
            "thread": record.threadName,
            "msg": record.getMessage(),
        }
        if record.exc_info and record.exc_info[1]:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False)


def resolve_level(level: str) -> int:
    """配置中的级别名转 logging 常量，无法识别时回退 INFO"""
    return LEVELS.get(level.strip().lower(), logging.INFO)


def level_name(levelno: int) -> str:
    name = logging.getLevelName(levelno)
    return _LEVEL_NAMES.get(name, str(name).lower())


def setup_logging(level: str = "info", json_output: bool = False) -> None:
    """配置根日志器（输出到 stderr，重复调用不会叠加 handler）"""
    root = logging.getLogger()
    reset_logging()
    root.setLevel(resolve_level(level))

    handler = logging.StreamHandler(sys.stderr)
    if json_output:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(TEXT_FORMAT))
    root.addHandler(handler)


def reset_logging() -> None:
    """清理根日志器上所有已注册的 handlers"""
    root = logging.getLogger()
    for handler in root.handlers[:]:
        root.removeHandler(handler)
        handler.close()

"""时长解析：支持 "24h" / "5m" / "500ms" / "1h30m" 以及纯数字（秒）"""

from __future__ import annotations

import re

from gitrestcache.core.exceptions import ConfigError

_UNIT_SECONDS = {
    "ms": 0.001,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
    "d": 86400.0,
}

_PART_RE = re.compile(r"(\d+(?:\.\d+)?)(ms|s|m|h|d)")


def parse_duration(value: str | float | int, *, field: str = "duration") -> float:
    """将时长配置解析为秒数（float）

    Raises:
        ConfigError: 格式无法识别或为负数
    """
    if isinstance(value, bool):
        raise ConfigError(f"{field} 不是合法时长: {value!r}")
    if isinstance(value, (int, float)):
        seconds = float(value)
    else:
        text = str(value).strip().lower()
        if not text:
            raise ConfigError(f"{field} 不能为空")
        try:
            seconds = float(text)
        except ValueError:
            pos = 0
            seconds = 0.0
            for m in _PART_RE.finditer(text):
                if m.start() != pos:
                    break
                seconds += float(m.group(1)) * _UNIT_SECONDS[m.group(2)]
                pos = m.end()
            if pos != len(text):
                raise ConfigError(f"{field} 不是合法时长: {value!r}") from None
    if seconds < 0:
        raise ConfigError(f"{field} 不能为负数: {value!r}")
    return seconds


def format_duration(seconds: float) -> str:
    """把秒数格式化为简短可读形式，用于日志和错误信息"""
    if seconds and seconds < 1:
        return f"{seconds * 1000:g}ms"
    if seconds >= 3600 and seconds % 3600 == 0:
        return f"{seconds / 3600:g}h"
    if seconds >= 60 and seconds % 60 == 0:
        return f"{seconds / 60:g}m"
    return f"{seconds:g}s"

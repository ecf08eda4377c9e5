"""配置文件读取（YAML）"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

# 配置文件大小上限 (1MB)
MAX_YAML_SIZE = 1024 * 1024


def load_yaml(path: str | Path, max_size: int = MAX_YAML_SIZE) -> dict[str, Any]:
    """读取 YAML 映射；文件不存在或为空时返回 {}

    顶层不是映射（例如误写成列表）时记录警告并按空配置处理。

    Raises:
        yaml.YAMLError: 语法错误
        OSError: 读取失败
        ValueError: 文件超过 max_size
    """
    p = Path(path)
    if not p.is_file():
        return {}

    size = p.stat().st_size
    if size > max_size:
        raise ValueError(f"配置文件过大: {p} ({size} 字节，上限 {max_size})")

    with open(p, encoding="utf-8") as f:
        data = yaml.safe_load(f)

    if data is None:
        return {}
    if not isinstance(data, dict):
        logger.warning("%s 顶层不是映射 (%s)，忽略", p, type(data).__name__)
        return {}
    return data

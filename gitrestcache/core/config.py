"""集中配置管理

优先级: 默认值 < YAML 文件 < 环境变量 (GIT_REST_CACHE_*) < 命令行参数。
YAML 键与命令行参数均使用连字符形式（repo-ttl），字段名使用下划线形式。
"""

from __future__ import annotations

import logging
import os
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Mapping

import yaml

from gitrestcache.core.exceptions import ConfigError
from gitrestcache.utils.duration import format_duration, parse_duration
from gitrestcache.utils.yaml_io import load_yaml

logger = logging.getLogger(__name__)

ENV_PREFIX = "GIT_REST_CACHE_"

# 仓库清理失败后的处理策略
DELETE_POLICY_IGNORE = "ignore"
DELETE_POLICY_RETRY = "retry"
DELETE_POLICIES = (DELETE_POLICY_IGNORE, DELETE_POLICY_RETRY)

_DURATION_FIELDS = ("repo_ttl", "token_ttl", "repo_check_interval")
_INT_FIELDS = ("port", "token_cache_size")
_BOOL_FIELDS = ("log_json",)


@dataclass
class Config:
    """服务全局配置（时长字段单位为秒）"""

    port: int = 8080
    log_level: str = "info"
    log_json: bool = False
    storage_folder: str = "./cached-repos"

    repo_ttl: float = 24 * 3600.0
    token_ttl: float = 24 * 3600.0
    repo_check_interval: float = 5 * 60.0

    token_cache_size: int = 1_000_000
    repo_delete_policy: str = DELETE_POLICY_IGNORE

    # 自定义扩展 (放不到字段里的配置项)
    extra: dict = field(default_factory=dict)

    def __post_init__(self) -> None:
        for name in _DURATION_FIELDS:
            setattr(self, name, parse_duration(getattr(self, name), field=_key(name)))
        for name in _INT_FIELDS:
            setattr(self, name, _to_int(getattr(self, name), _key(name)))
        for name in _BOOL_FIELDS:
            setattr(self, name, _to_bool(getattr(self, name), _key(name)))
        if self.repo_delete_policy not in DELETE_POLICIES:
            raise ConfigError(
                f"repo-delete-policy 只能是 {'/'.join(DELETE_POLICIES)}: {self.repo_delete_policy}"
            )
        if self.token_cache_size < 1:
            raise ConfigError("token-cache-size 必须大于 0")

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> Config:
        """从字典构造（键可以是 repo-ttl 或 repo_ttl 形式）"""
        known = {f.name for f in fields(cls)} - {"extra"}
        matched: dict[str, Any] = {}
        extra: dict[str, Any] = {}
        for k, v in data.items():
            name = str(k).replace("-", "_")
            if name in known:
                matched[name] = v
            else:
                extra[k] = v
        cfg = cls(**matched)
        cfg.extra = extra
        return cfg

    @classmethod
    def from_file(cls, path: str = "config.yaml") -> Config:
        """从 YAML 文件加载配置，不存在则返回默认"""
        try:
            data = load_yaml(path)
        except (yaml.YAMLError, OSError, ValueError) as e:
            raise ConfigError(f"无法读取配置文件 {path}: {e}") from e
        if not data:
            return cls()
        return cls.from_mapping(data)

    def with_overrides(self, overrides: Mapping[str, Any]) -> Config:
        """返回应用覆盖项后的新配置，值为 None 的覆盖项被忽略"""
        data = {k: v for k, v in asdict(self).items() if k != "extra"}
        for k, v in overrides.items():
            if v is not None:
                data[str(k).replace("-", "_")] = v
        cfg = Config.from_mapping(data)
        cfg.extra = {**self.extra, **cfg.extra}
        return cfg

    def with_env(self, environ: Mapping[str, str] | None = None) -> Config:
        """应用 GIT_REST_CACHE_* 环境变量覆盖"""
        environ = os.environ if environ is None else environ
        overrides: dict[str, Any] = {}
        for f in fields(self):
            if f.name == "extra":
                continue
            env_key = ENV_PREFIX + f.name.upper()
            if env_key in environ:
                overrides[f.name] = environ[env_key]
        return self.with_overrides(overrides) if overrides else self

    def validate_runtime(self) -> None:
        """启动前校验：存储目录必须存在，巡检间隔不超过 repo-ttl 的 1/4

        Raises:
            ConfigError: 校验失败
        """
        storage = Path(self.storage_folder)
        if not storage.is_dir():
            raise ConfigError(f"存储目录不存在: {self.storage_folder}")
        if self.repo_check_interval <= 0:
            raise ConfigError("repo-check-interval 必须大于 0")
        if self.repo_ttl > 0 and self.repo_check_interval > self.repo_ttl / 4:
            raise ConfigError(
                f"repo-check-interval ({format_duration(self.repo_check_interval)}) "
                f"最多为 repo-ttl ({format_duration(self.repo_ttl)}) 的 1/4，"
                "否则过期分支无法及时清理"
            )


def _key(name: str) -> str:
    return name.replace("_", "-")


def _to_int(value: Any, key: str) -> int:
    if isinstance(value, bool):
        raise ConfigError(f"{key} 必须是整数: {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{key} 必须是整数: {value!r}") from None


def _to_bool(value: Any, key: str) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in ("1", "true", "yes", "on"):
        return True
    if text in ("0", "false", "no", "off", ""):
        return False
    raise ConfigError(f"{key} 必须是布尔值: {value!r}")


def load_config(
    path: str = "config.yaml",
    overrides: Mapping[str, Any] | None = None,
    environ: Mapping[str, str] | None = None,
) -> Config:
    """按优先级组装完整配置: 文件 -> 环境变量 -> 显式覆盖"""
    cfg = Config.from_file(path).with_env(environ)
    if overrides:
        cfg = cfg.with_overrides(overrides)
    logger.info("配置已加载: %s", path if Path(path).exists() else "(默认值)")
    return cfg

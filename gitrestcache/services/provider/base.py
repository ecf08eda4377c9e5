"""托管平台注册表与仓库标识计算"""

from __future__ import annotations

import hashlib
import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from gitrestcache.core.protocols import Provider

logger = logging.getLogger(__name__)

# 固定盐值，改动会使已有磁盘缓存全部失效
REPO_HASH_SALT = "d57bbdf3b5614008a74b20891834d223"
IDENTITY_LENGTH = 24


def compute_repo_hash(provider: str, owner: str, repo: str, token: str = "") -> str:
    """SHA-1(provider + owner + repo + [token] + salt) 的十六进制前 24 位

    带 token 与不带 token 的同一仓库得到不同标识，
    因此带凭据的 clone 地址不会被匿名请求复用。
    """
    h = hashlib.sha1()  # nosec B324 - 用于缓存键，不用于安全场景
    h.update(provider.encode("utf-8"))
    h.update(owner.encode("utf-8"))
    h.update(repo.encode("utf-8"))
    if token:
        h.update(token.encode("utf-8"))
    h.update(REPO_HASH_SALT.encode("utf-8"))
    return h.hexdigest()[:IDENTITY_LENGTH]


class ProviderManager:
    """按名称管理托管平台"""

    def __init__(self, providers: list[Provider] | None = None) -> None:
        self._providers: dict[str, Provider] = {}
        for p in providers or []:
            self.register(p)

    def register(self, provider: Provider) -> None:
        if provider.name in self._providers:
            logger.warning("覆盖已注册的托管平台: %s", provider.name)
        self._providers[provider.name] = provider

    def get_providers(self) -> list[Provider]:
        return list(self._providers.values())

    def get_provider(self, name: str) -> Provider | None:
        return self._providers.get(name)


def default_provider_manager() -> ProviderManager:
    """内置托管平台: github"""
    from gitrestcache.services.provider.github import GitHubProvider
    return ProviderManager([GitHubProvider()])

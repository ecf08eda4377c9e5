"""服务容器：统一依赖注入

配置、托管平台注册表和 GitCache 都由容器懒加载，同一容器内实例共享。
Web 层和 CLI 从容器获取服务，而非直接构造；测试可注入替身。

用法:
    container = ServiceContainer(config=cfg)
    cache = container.git_cache              # 懒加载
    providers = container.providers

    # 注入测试替身
    container = ServiceContainer(config=cfg, git_manager=CallbackGitManager(read_cb))
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from gitrestcache.core.config import Config
    from gitrestcache.core.protocols import GitManager
    from gitrestcache.services.gitcache.cache import GitCache
    from gitrestcache.services.provider.base import ProviderManager

logger = logging.getLogger(__name__)


class ServiceContainer:
    """懒加载服务容器"""

    def __init__(
        self,
        config: Config | None = None,
        *,
        git_manager: GitManager | None = None,
        providers: ProviderManager | None = None,
    ) -> None:
        if config is None:
            from gitrestcache.core.config import load_config
            config = load_config()
        self._config = config
        self._git_manager = git_manager
        self._instances: dict[str, object] = {}
        if providers is not None:
            self._instances["providers"] = providers

    @property
    def config(self) -> Config:
        return self._config

    @property
    def git_cache(self) -> GitCache:
        if "git_cache" not in self._instances:
            from gitrestcache.services.gitcache.cache import GitCache
            self._instances["git_cache"] = GitCache(self._config, manager=self._git_manager)
        return self._instances["git_cache"]  # type: ignore[return-value]

    @property
    def providers(self) -> ProviderManager:
        if "providers" not in self._instances:
            from gitrestcache.services.provider.base import default_provider_manager
            self._instances["providers"] = default_provider_manager()
        return self._instances["providers"]  # type: ignore[return-value]

    def shutdown(self) -> None:
        """停止已创建的服务（未创建的不会被触发创建）"""
        cache = self._instances.get("git_cache")
        if cache is not None:
            cache.stop()  # type: ignore[attr-defined]

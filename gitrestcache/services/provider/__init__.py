"""托管平台抽象：仓库标识、clone 地址、token 校验"""

from gitrestcache.services.provider.base import (
    ProviderManager,
    compute_repo_hash,
    default_provider_manager,
)
from gitrestcache.services.provider.github import GitHubProvider, GitHubRepo

__all__ = [
    "ProviderManager",
    "compute_repo_hash",
    "default_provider_manager",
    "GitHubProvider",
    "GitHubRepo",
]

"""Git 缓存引擎

拆分说明：
- index.py: 仓库标识 -> 仓库记录的进程级索引
- records.py: 仓库 / 分支记录与每仓库读写锁
- manager.py: Git 执行器（git 命令行 / 测试替身）
- maintenance.py: 后台维护循环（刷新 / 过期清除 / 重启恢复）
- tokens.py: Token 授权缓存
- cache.py: 对外门面 GitCache
"""

from gitrestcache.services.gitcache.cache import GitCache
from gitrestcache.services.gitcache.index import RepoIndex
from gitrestcache.services.gitcache.maintenance import RepoMaintainer
from gitrestcache.services.gitcache.manager import CallbackGitManager, DefaultGitManager
from gitrestcache.services.gitcache.records import GitBranch, GitRepo, StaleRecordError
from gitrestcache.services.gitcache.tokens import TokenAccessCache

__all__ = [
    "GitCache",
    "RepoIndex",
    "RepoMaintainer",
    "DefaultGitManager",
    "CallbackGitManager",
    "GitRepo",
    "GitBranch",
    "StaleRecordError",
    "TokenAccessCache",
]

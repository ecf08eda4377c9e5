"""缓存索引：仓库标识到仓库记录的进程级映射

索引锁只在查找 / 插入 / 移除时短暂持有，从不跨越 I/O。
"""

from __future__ import annotations

import logging
import re

from gitrestcache.core.exceptions import ValidationError
from gitrestcache.services.gitcache.records import (
    CacheRuntime,
    GitBranch,
    GitRepo,
    StaleRecordError,
)
from gitrestcache.utils.net import mask_credentials
from gitrestcache.utils.rwlock import ReadWriteLock

logger = logging.getLogger(__name__)

_SAFE_IDENTITY_RE = re.compile(r"^[a-zA-Z0-9_\-]+$")


def validate_identity(identity: str) -> str:
    """仓库标识直接作为目录名，只允许字母 / 数字 / 下划线 / 连字符"""
    if not identity or not _SAFE_IDENTITY_RE.match(identity):
        raise ValidationError(f"仓库标识包含非法字符: {identity!r}")
    return identity


class RepoIndex:
    """仓库索引（线程安全），同一标识至多一个有效记录"""

    def __init__(self, runtime: CacheRuntime) -> None:
        self.runtime = runtime
        self._repos: dict[str, GitRepo] = {}
        self._lock = ReadWriteLock()

    def __len__(self) -> int:
        with self._lock.read():
            return len(self._repos)

    def __contains__(self, identity: object) -> bool:
        with self._lock.read():
            return identity in self._repos

    def get(self, identity: str) -> GitRepo | None:
        with self._lock.read():
            return self._repos.get(identity)

    def snapshot(self) -> list[GitRepo]:
        with self._lock.read():
            return list(self._repos.values())

    def get_or_create_repo(self, identity: str, clone_url: str) -> GitRepo:
        """双重检查插入；同一标识以首次写入的 clone URL 为准"""
        validate_identity(identity)
        with self._lock.read():
            repo = self._repos.get(identity)
        if repo is not None and not repo.retired:
            return repo

        with self._lock.write():
            repo = self._repos.get(identity)
            if repo is None or repo.retired:
                repo = GitRepo(identity, clone_url, index=self, runtime=self.runtime)
                self._repos[identity] = repo
                logger.debug("新建仓库记录: %s -> %s", identity, mask_credentials(clone_url))
            elif repo.clone_url != clone_url:
                logger.debug("忽略仓库 %s 的不同 clone URL: %s", identity, mask_credentials(clone_url))
            return repo

    def remove_repo(self, identity: str, repo: GitRepo | None = None) -> bool:
        """移除索引条目；传入 repo 时仅当当前条目正是该记录才移除"""
        with self._lock.write():
            current = self._repos.get(identity)
            if current is None or (repo is not None and current is not repo):
                return False
            del self._repos[identity]
            return True

    def resolve_branch(self, identity: str, clone_url: str, branch: str) -> GitBranch:
        """经索引取得分支记录（按需创建），遇到已失效的仓库记录时重新解析"""
        while True:
            repo = self.get_or_create_repo(identity, clone_url)
            try:
                return repo.get_or_create_branch(branch)
            except StaleRecordError:
                logger.debug("仓库记录已失效，重新解析: %s", identity)

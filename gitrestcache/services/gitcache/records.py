"""仓库 / 分支记录

GitRepo 以仓库标识聚合分支，持有每仓库一把读写锁；
GitBranch 记录磁盘路径、cached 标记与最近访问时间。

锁层级：先索引锁后仓库锁，二者不嵌套持有；唯一例外是仓库删除时
在释放仓库锁之后再短暂获取索引锁移除条目。
被移出容器的记录会在锁内标记为 retired，持有旧引用的调用方
收到 StaleRecordError 后经索引重新解析。
"""

from __future__ import annotations

import logging
import os
import re
import threading
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable

from gitrestcache.core.config import DELETE_POLICY_RETRY
from gitrestcache.core.exceptions import GitRestCacheError, ValidationError
from gitrestcache.utils.rwlock import ReadWriteLock

if TYPE_CHECKING:
    from gitrestcache.core.context import LifecycleContext
    from gitrestcache.core.protocols import GitManager
    from gitrestcache.services.gitcache.index import RepoIndex

logger = logging.getLogger(__name__)

_SAFE_BRANCH_RE = re.compile(r"^[a-zA-Z0-9_.@\-]+$")


class StaleRecordError(GitRestCacheError):
    """记录已被删除，需经索引重新获取"""

    code = "STALE_RECORD"


def validate_branch_name(name: str) -> str:
    """校验分支名：只允许安全字符，不能以 - 或 . 开头（防止选项注入和目录逃逸）"""
    if not name or not _SAFE_BRANCH_RE.match(name) or name[0] in "-.":
        raise ValidationError(f"分支名包含非法字符: {name!r}")
    return name


@dataclass
class CacheRuntime:
    """缓存引擎各记录共享的运行时依赖"""

    manager: GitManager
    ctx: LifecycleContext
    storage_folder: str
    repo_ttl: float
    delete_policy: str
    clock: Callable[[], float] = time.monotonic
    _pending: set[str] = field(default_factory=set, init=False, repr=False)
    _pending_lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    def defer_repo_delete(self, identity: str) -> None:
        with self._pending_lock:
            self._pending.add(identity)

    def take_pending_repo_deletes(self) -> list[str]:
        with self._pending_lock:
            pending = sorted(self._pending)
            self._pending.clear()
        return pending

    def pending_repo_deletes(self) -> list[str]:
        with self._pending_lock:
            return sorted(self._pending)


class GitRepo:
    """一个仓库标识下的全部分支"""

    def __init__(self, identity: str, clone_url: str, *, index: RepoIndex, runtime: CacheRuntime) -> None:
        self.identity = identity
        self.clone_url = clone_url
        self.path = os.path.join(runtime.storage_folder, identity)
        self.branches: dict[str, GitBranch] = {}
        self.lock = ReadWriteLock()
        self.retired = False
        self.runtime = runtime
        self._index = index

    def __repr__(self) -> str:
        return f"GitRepo({self.identity!r}, branches={sorted(self.branches)})"

    def get_or_create_branch(self, name: str) -> GitBranch:
        """双重检查插入分支记录

        Raises:
            StaleRecordError: 仓库记录已从索引移除
        """
        with self.lock.read():
            if self.retired:
                raise StaleRecordError(f"仓库记录已失效: {self.identity}")
            branch = self.branches.get(name)
        if branch is not None:
            return branch

        with self.lock.write():
            if self.retired:
                raise StaleRecordError(f"仓库记录已失效: {self.identity}")
            branch = self.branches.get(name)
            if branch is None:
                branch = GitBranch(self, name)
                self.branches[name] = branch
            return branch

    def delete(self) -> bool:
        """仓库已无分支且磁盘目录为空时清除目录和索引条目，返回是否已清除

        Raises:
            DeleteError: 删除目录失败
        """
        with self.lock.write():
            if self.retired:
                return True
            if self.branches:
                return False
            if not self.runtime.manager.delete_repo(self):
                return False
            self.retired = True
        self._index.remove_repo(self.identity, self)
        logger.info("仓库已清除: %s", self.identity)
        return True

    def delete_after_branch_removed(self) -> None:
        """分支删除后尝试清除仓库，失败时按 repo-delete-policy 处理"""
        try:
            self.delete()
        except GitRestCacheError as e:
            if self.runtime.delete_policy == DELETE_POLICY_RETRY:
                logger.warning("清除仓库失败，下次巡检重试: %s - %s", self.identity, e)
                self.runtime.defer_repo_delete(self.identity)
            else:
                logger.error("清除仓库失败: %s - %s", self.identity, e)


class GitBranch:
    """仓库下的单个分支，所有变更经所属仓库的锁串行化"""

    def __init__(self, repo: GitRepo, name: str) -> None:
        self.repo = repo
        self.name = name
        self.path = os.path.join(repo.path, name)
        self.cached = False
        self.retired = False
        self.last_accessed = repo.runtime.clock()

    def __repr__(self) -> str:
        return f"GitBranch({self.repo.identity!r}, {self.name!r}, cached={self.cached})"

    @property
    def _manager(self) -> GitManager:
        return self.repo.runtime.manager

    def _check_live(self) -> None:
        if self.retired:
            raise StaleRecordError(f"分支记录已失效: {self.repo.identity}/{self.name}")

    def _detach(self) -> None:
        """移出所属仓库并标记失效（调用方须持有仓库写锁）"""
        self.cached = False
        self.retired = True
        if self.repo.branches.get(self.name) is self:
            del self.repo.branches[self.name]

    def _probe(self) -> bool:
        return self.cached or self._manager.contains_branch(self)

    def is_cached(self) -> bool:
        """cached 标记已置位，或磁盘上存在带 .git 的工作树"""
        with self.repo.lock.read():
            return not self.retired and self._probe()

    def ensure_cached(self) -> None:
        """未缓存时在写锁内克隆；并发调用方中恰有一个执行克隆

        克隆失败时分支记录移出仓库并失效，随后尝试清除空仓库，
        不存在的分支名不会在内存和磁盘上留下残留。
        """
        with self.repo.lock.read():
            self._check_live()
            if self._probe():
                return

        clone_failed = False
        try:
            with self.repo.lock.write():
                self._check_live()
                if self._probe():
                    self.cached = True
                    return
                logger.info("克隆分支: %s/%s", self.repo.identity, self.name)
                try:
                    self._manager.clone_branch(self, self.repo.runtime.ctx)
                except Exception:
                    clone_failed = True
                    self._detach()
                    raise
                self.cached = True
        finally:
            if clone_failed:
                logger.warning("克隆失败，丢弃分支记录: %s/%s", self.repo.identity, self.name)
                self.repo.delete_after_branch_removed()

    def read_file(self, path: str) -> bytes:
        self.ensure_cached()
        with self.repo.lock.read():
            self._check_live()
            return self._manager.read_file(self, path)

    def list_tree(self, path: str) -> bytes:
        self.ensure_cached()
        with self.repo.lock.read():
            self._check_live()
            return self._manager.list_tree(self, path, self.repo.runtime.ctx)

    def update(self) -> None:
        """fetch + reset --hard；未缓存时不做任何事，不会新建工作树"""
        if not self.is_cached():
            return
        with self.repo.lock.write():
            if self.retired or not self._probe():
                return
            logger.debug("更新分支: %s/%s", self.repo.identity, self.name)
            self._manager.update_branch(self, self.repo.runtime.ctx)

    def delete(self) -> None:
        """删除分支目录并移出仓库，随后尝试清除空仓库"""
        if not self.is_cached():
            return
        with self.repo.lock.write():
            if self.retired:
                return
            self._manager.delete_branch(self)
            self._detach()
        logger.info("分支已清除: %s/%s", self.repo.identity, self.name)
        self.repo.delete_after_branch_removed()

    def touch(self) -> None:
        """刷新最近访问时间（单调不减）"""
        with self.repo.lock.write():
            now = self.repo.runtime.clock()
            if now > self.last_accessed:
                self.last_accessed = now

    def is_expired(self) -> bool:
        with self.repo.lock.read():
            return self.last_accessed < self.repo.runtime.clock() - self.repo.runtime.repo_ttl

"""GitCache：缓存引擎对外门面

读取流程: 索引 -> 仓库记录 -> 分支记录 -> 确保已克隆 -> 读文件 / 列目录 -> 刷新访问时间。
维护循环在独立线程中运行，经同一把仓库锁与读取串行化。

用法:
    cache = GitCache(cfg)
    cache.start()
    data = cache.get_file_content(identity, clone_url, "main", "/README.md")
    cache.stop()
"""

from __future__ import annotations

import logging
import threading
import time
from typing import TYPE_CHECKING, Callable, TypeVar

from gitrestcache.core.context import LifecycleContext
from gitrestcache.core.exceptions import OperationCancelledError
from gitrestcache.core.models import TreeEntry, parse_ls_tree
from gitrestcache.services.gitcache.index import RepoIndex
from gitrestcache.services.gitcache.maintenance import RepoMaintainer
from gitrestcache.services.gitcache.records import (
    CacheRuntime,
    GitBranch,
    StaleRecordError,
    validate_branch_name,
)
from gitrestcache.services.gitcache.tokens import TokenAccessCache

if TYPE_CHECKING:
    from gitrestcache.core.config import Config
    from gitrestcache.core.protocols import GitManager

logger = logging.getLogger(__name__)

T = TypeVar("T")

# stop() 等待维护线程退出的最长时间（秒）
STOP_JOIN_TIMEOUT = 5.0


class GitCache:
    """按分支缓存远程仓库的只读门面（线程安全）"""

    def __init__(
        self,
        config: Config,
        manager: GitManager | None = None,
        ctx: LifecycleContext | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if manager is None:
            from gitrestcache.services.gitcache.manager import DefaultGitManager
            manager = DefaultGitManager()
        self.config = config
        self.ctx = LifecycleContext(parent=ctx)
        self.runtime = CacheRuntime(
            manager=manager,
            ctx=self.ctx,
            storage_folder=config.storage_folder,
            repo_ttl=config.repo_ttl,
            delete_policy=config.repo_delete_policy,
            clock=clock,
        )
        self.index = RepoIndex(self.runtime)
        self.tokens = TokenAccessCache(
            ttl=config.token_ttl, max_size=config.token_cache_size, clock=clock,
        )
        self.maintainer = RepoMaintainer(self.index, config.repo_check_interval, tokens=self.tokens)

        self._state_lock = threading.Lock()
        self._running = False
        self._thread: threading.Thread | None = None

    @property
    def manager(self) -> GitManager:
        return self.runtime.manager

    # ---- 读取 ----

    def _with_branch(self, identity: str, clone_url: str, branch: str, op: Callable[[GitBranch], T]) -> T:
        validate_branch_name(branch)
        while True:
            b = self.index.resolve_branch(identity, clone_url, branch)
            try:
                result = op(b)
            except StaleRecordError:
                logger.debug("分支记录在读取期间被删除，重新解析: %s/%s", identity, branch)
                continue
            b.touch()
            return result

    def get_file_content(self, identity: str, clone_url: str, branch: str, path: str) -> bytes:
        """读取分支 HEAD 下的文件内容

        Raises:
            PathNotFoundError: 文件不存在
            ValidationError: 分支名 / 仓库标识非法
            CloneError: 首次克隆失败
        """
        return self._with_branch(identity, clone_url, branch, lambda b: b.read_file(path))

    def get_tree_listing(self, identity: str, clone_url: str, branch: str, path: str) -> list[TreeEntry]:
        """列出分支 HEAD 下某目录的条目，顺序与 git ls-tree 输出一致"""
        raw = self._with_branch(identity, clone_url, branch, lambda b: b.list_tree(path))
        return parse_ls_tree(raw, path)

    # ---- Token 授权 ----

    def has_access(self, token: str, identity: str) -> bool:
        return self.tokens.has(token, identity)

    def set_access(self, token: str, identity: str) -> None:
        self.tokens.set(token, identity)

    def remove_access(self, token: str, identity: str) -> None:
        self.tokens.remove(token, identity)

    # ---- 生命周期 ----

    def start(self) -> None:
        """校验配置并启动维护循环；已在运行时直接返回

        Raises:
            ConfigError: 存储目录不存在，或巡检间隔大于 repo-ttl/4
            OperationCancelledError: 上下文已取消
        """
        with self._state_lock:
            if self._running:
                return
            self.config.validate_runtime()
            if self.ctx.cancelled:
                raise OperationCancelledError("缓存已停止，无法再次启动")
            self._running = True
            self._thread = threading.Thread(
                target=self._run_maintenance, name="git-cache-maintenance", daemon=True,
            )
            self._thread.start()
        logger.info(
            "Git 缓存已启动: storage=%s repo_ttl=%.3gs interval=%.3gs",
            self.config.storage_folder, self.config.repo_ttl, self.config.repo_check_interval,
        )

    def _run_maintenance(self) -> None:
        try:
            self.maintainer.run()
        except Exception:
            logger.exception("维护循环异常退出")
            raise
        finally:
            with self._state_lock:
                self._running = False

    def stop(self, timeout: float = STOP_JOIN_TIMEOUT) -> None:
        """取消上下文并等待维护线程退出（可重复调用）"""
        self.ctx.cancel()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)
            if thread.is_alive():
                logger.warning("维护线程未在 %.3gs 内退出", timeout)

    def is_running(self) -> bool:
        with self._state_lock:
            return self._running

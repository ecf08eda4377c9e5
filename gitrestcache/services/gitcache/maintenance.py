"""维护循环：周期性巡检磁盘缓存

每轮巡检:
  1. 重试此前清除失败的空仓库（repo-delete-policy=retry）
  2. 扫描存储目录，把上一进程留下的分支补登记到内存
  3. 已过期的分支删除，其余分支 fetch + reset 更新
  4. 清理已过期的 token 授权

单个分支失败只记录日志，不影响同轮其他分支，下一轮仍按巡检间隔执行。
扫描失败或待清除仓库重试失败时抛 MaintenanceError，循环记录后短暂退避再重试。
上下文取消是唯一的正常退出路径。
"""

from __future__ import annotations

import logging

from gitrestcache.core.exceptions import (
    GitRestCacheError,
    MaintenanceError,
    OperationCancelledError,
)
from gitrestcache.core.models import RepoBranchInfo
from gitrestcache.services.gitcache.index import RepoIndex
from gitrestcache.services.gitcache.tokens import TokenAccessCache

logger = logging.getLogger(__name__)

# 巡检失败后的退避时间（秒）
FAILURE_BACKOFF = 1.0


class RepoMaintainer:
    """后台维护循环"""

    def __init__(
        self,
        index: RepoIndex,
        interval: float,
        backoff: float = FAILURE_BACKOFF,
        tokens: TokenAccessCache | None = None,
    ) -> None:
        self.index = index
        self.tokens = tokens
        self.runtime = index.runtime
        self.interval = interval
        self.backoff = backoff
        self.ticks = 0
        # 最近一轮维护失败的分支（identity/branch）
        self.last_failures: list[str] = []

    def tick(self) -> int:
        """执行一轮巡检，返回处理的分支数

        Raises:
            OperationCancelledError: 上下文已取消
            MaintenanceError: 扫描失败或待清除仓库重试失败
        """
        ctx = self.runtime.ctx
        ctx.raise_if_cancelled()
        delete_failures: list[str] = []
        self._retry_pending_deletes(delete_failures)

        try:
            branches = self.runtime.manager.scan_cached_branches(self.runtime.storage_folder, ctx)
        except OperationCancelledError:
            raise
        except GitRestCacheError as e:
            raise MaintenanceError(f"扫描缓存目录失败: {e}") from e

        failures: list[str] = []
        for info in branches:
            ctx.raise_if_cancelled()
            try:
                self._maintain(info)
            except OperationCancelledError:
                raise
            except GitRestCacheError as e:
                logger.error("维护分支失败 %s/%s: %s", info.identity, info.branch, e)
                failures.append(f"{info.identity}/{info.branch}")

        if self.tokens is not None:
            purged = self.tokens.purge_expired()
            if purged:
                logger.debug("已清理过期 token 授权: %d", purged)

        self.ticks += 1
        self.last_failures = failures
        if failures:
            logger.warning("本轮 %d/%d 个分支维护失败: %s", len(failures), len(branches), ", ".join(failures))
        if delete_failures:
            raise MaintenanceError(
                f"{len(delete_failures)} 个仓库清除失败", failures=delete_failures,
            )
        return len(branches)

    def _maintain(self, info: RepoBranchInfo) -> None:
        branch = self.index.resolve_branch(info.identity, info.clone_url, info.branch)
        if self.runtime.repo_ttl > 0 and branch.is_expired():
            logger.info("分支已过期，清除: %s/%s", info.identity, info.branch)
            branch.delete()
            return
        branch.update()

    def _retry_pending_deletes(self, failures: list[str]) -> None:
        for identity in self.runtime.take_pending_repo_deletes():
            repo = self.index.get(identity)
            if repo is None:
                continue
            try:
                repo.delete()
            except GitRestCacheError as e:
                logger.warning("重试清除仓库失败: %s - %s", identity, e)
                self.runtime.defer_repo_delete(identity)
                failures.append(identity)

    def run(self) -> None:
        """循环执行巡检直到上下文取消"""
        ctx = self.runtime.ctx
        logger.info("维护循环已启动 (间隔 %.3gs)", self.interval)
        while not ctx.cancelled:
            try:
                self.tick()
            except OperationCancelledError:
                break
            except GitRestCacheError as e:
                if ctx.cancelled:
                    break
                logger.error("维护巡检失败: %s", e)
                if ctx.wait(self.backoff):
                    break
                continue
            if ctx.wait(self.interval):
                break
        logger.info("维护循环已停止")

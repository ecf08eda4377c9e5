"""Git 执行器

DefaultGitManager 调用 git 二进制完成 clone / fetch / reset / ls-tree，
并直接读取工作树文件；CallbackGitManager 是不启动子进程的测试替身。
两者都不加锁，调用方（GitBranch / GitRepo）负责持有仓库锁。
"""

from __future__ import annotations

import logging
import os
import shutil
import stat
import threading
from collections import Counter
from pathlib import Path
from typing import TYPE_CHECKING, Callable

from gitrestcache.core.exceptions import (
    CloneError,
    DeleteError,
    ExecutionError,
    OperationCancelledError,
    PathNotFoundError,
    PresenceProbeError,
    UpdateError,
)
from gitrestcache.core.models import RepoBranchInfo
from gitrestcache.utils.net import mask_credentials
from gitrestcache.utils.shell import CommandExecutor, LocalExecutor, run_cmd

if TYPE_CHECKING:
    from gitrestcache.core.context import LifecycleContext
    from gitrestcache.services.gitcache.records import GitBranch, GitRepo

logger = logging.getLogger(__name__)


def resolve_in_tree(base: str, rel: str) -> Path | None:
    """把请求路径解析到工作树内，越界或指向 .git 时返回 None"""
    root = Path(base).resolve()
    target = (root / rel.lstrip("/")).resolve()
    if target != root and root not in target.parents:
        return None
    parts = target.relative_to(root).parts
    if parts and parts[0] == ".git":
        return None
    return target


class DefaultGitManager:
    """基于 git 命令行的执行器（默认实现）"""

    def __init__(self, executor: CommandExecutor | None = None, git_bin: str = "git") -> None:
        self._executor = executor or LocalExecutor()
        self.git_bin = git_bin

    def _git(self, *args: str) -> list[str]:
        return [self.git_bin, *args]

    def clone_branch(self, branch: GitBranch, ctx: LifecycleContext) -> None:
        Path(branch.repo.path).mkdir(parents=True, exist_ok=True)
        logger.info(
            "  git clone --depth=1 --branch %s %s -> %s",
            branch.name, mask_credentials(branch.repo.clone_url), branch.path,
        )
        try:
            run_cmd(
                self._executor,
                self._git("clone", "--depth=1", "--branch", branch.name, branch.repo.clone_url, branch.path),
                ctx=ctx, label="克隆分支", error_cls=CloneError,
            )
        except (CloneError, OperationCancelledError):
            # 清理残留的半成品目录，避免被误判为已缓存
            shutil.rmtree(branch.path, ignore_errors=True)
            raise

    def update_branch(self, branch: GitBranch, ctx: LifecycleContext) -> None:
        run_cmd(
            self._executor,
            self._git("-C", branch.path, "fetch", "origin", branch.name, "--depth=1"),
            ctx=ctx, label="拉取分支", error_cls=UpdateError,
        )
        run_cmd(
            self._executor,
            self._git("-C", branch.path, "reset", "--hard", f"origin/{branch.name}"),
            ctx=ctx, label="重置分支", error_cls=UpdateError,
        )

    def delete_branch(self, branch: GitBranch) -> None:
        try:
            shutil.rmtree(branch.path)
        except FileNotFoundError:
            pass
        except OSError as e:
            raise DeleteError(f"删除分支目录失败: {branch.path}: {e}") from e

    def delete_repo(self, repo: GitRepo) -> bool:
        try:
            with os.scandir(repo.path) as entries:
                if any(entries):
                    return False
            os.rmdir(repo.path)
        except FileNotFoundError:
            return True
        except OSError as e:
            raise DeleteError(f"删除仓库目录失败: {repo.path}: {e}") from e
        return True

    def contains_branch(self, branch: GitBranch) -> bool:
        try:
            info = os.stat(branch.path)
            if not stat.S_ISDIR(info.st_mode):
                return False
            git_info = os.stat(os.path.join(branch.path, ".git"))
        except (FileNotFoundError, NotADirectoryError):
            return False
        except OSError as e:
            raise PresenceProbeError(f"检查分支目录失败: {branch.path}: {e}") from e
        return stat.S_ISDIR(git_info.st_mode)

    def read_file(self, branch: GitBranch, path: str) -> bytes:
        target = resolve_in_tree(branch.path, path)
        if target is None:
            raise PathNotFoundError(path)
        try:
            return target.read_bytes()
        except (FileNotFoundError, IsADirectoryError, NotADirectoryError):
            raise PathNotFoundError(path) from None
        except OSError as e:
            raise ExecutionError(f"读取文件失败: {path}: {e}") from e

    def list_tree(self, branch: GitBranch, path: str, ctx: LifecycleContext) -> bytes:
        target = resolve_in_tree(branch.path, path)
        if target is None or not target.is_dir():
            raise PathNotFoundError(path)
        rel = path.strip("/")
        r = run_cmd(
            self._executor,
            self._git("-C", branch.path, "ls-tree", "-l", f"HEAD:{rel}"),
            ctx=ctx, label="列出目录",
        )
        return r.output

    def get_remote_url(self, path: str, ctx: LifecycleContext) -> str:
        r = run_cmd(
            self._executor,
            self._git("-C", path, "remote", "get-url", "origin"),
            ctx=ctx, label="读取 origin 地址",
        )
        return r.text.strip()

    def scan_cached_branches(self, root: str, ctx: LifecycleContext) -> list[RepoBranchInfo]:
        result: list[RepoBranchInfo] = []
        try:
            repo_dirs = sorted(p for p in Path(root).iterdir() if p.is_dir())
        except OSError as e:
            raise ExecutionError(f"读取存储目录失败: {root}: {e}") from e

        for repo_dir in repo_dirs:
            try:
                branch_dirs = sorted(p for p in repo_dir.iterdir() if p.is_dir())
            except OSError as e:
                raise ExecutionError(f"读取仓库目录失败: {repo_dir}: {e}") from e
            for branch_dir in branch_dirs:
                ctx.raise_if_cancelled()
                if not (branch_dir / ".git").is_dir():
                    logger.warning("跳过没有 .git 的分支目录: %s", branch_dir)
                    continue
                try:
                    url = self.get_remote_url(str(branch_dir), ctx)
                except ExecutionError as e:
                    logger.warning("无法读取 origin 地址，跳过: %s - %s", branch_dir, e)
                    continue
                result.append(RepoBranchInfo(repo_dir.name, branch_dir.name, url))
        return result


# =========================================================================
# 测试替身
# =========================================================================

ReadFileCallback = Callable[[str, str, str], bytes]
ListTreeCallback = Callable[[str, str, str], bytes]


class CallbackGitManager:
    """不启动子进程的执行器，读取 / 列目录委托给回调

    回调签名: (clone_url, branch, path) -> bytes，可抛 PathNotFoundError。
    记录每个操作的调用次数，克隆过的分支保存在内存中供 contains / scan 使用。
    """

    def __init__(
        self,
        read_file_callback: ReadFileCallback,
        list_tree_callback: ListTreeCallback | None = None,
    ) -> None:
        self._read_file_cb = read_file_callback
        self._list_tree_cb = list_tree_callback
        self._lock = threading.Lock()
        self._cloned: dict[tuple[str, str], str] = {}
        self.calls: Counter[str] = Counter()

    def seed(self, identity: str, branch: str, clone_url: str) -> None:
        """登记一个「已在磁盘上」的分支，模拟上一进程留下的缓存"""
        with self._lock:
            self._cloned[(identity, branch)] = clone_url

    def _count(self, op: str) -> None:
        with self._lock:
            self.calls[op] += 1

    @staticmethod
    def _key(branch: GitBranch) -> tuple[str, str]:
        return branch.repo.identity, branch.name

    def clone_branch(self, branch: GitBranch, ctx: LifecycleContext) -> None:
        ctx.raise_if_cancelled()
        with self._lock:
            self.calls["clone_branch"] += 1
            self._cloned[self._key(branch)] = branch.repo.clone_url

    def update_branch(self, branch: GitBranch, ctx: LifecycleContext) -> None:
        ctx.raise_if_cancelled()
        self._count("update_branch")

    def delete_branch(self, branch: GitBranch) -> None:
        with self._lock:
            self.calls["delete_branch"] += 1
            self._cloned.pop(self._key(branch), None)

    def delete_repo(self, repo: GitRepo) -> bool:
        with self._lock:
            self.calls["delete_repo"] += 1
            return not any(identity == repo.identity for identity, _ in self._cloned)

    def contains_branch(self, branch: GitBranch) -> bool:
        with self._lock:
            return self._key(branch) in self._cloned

    def read_file(self, branch: GitBranch, path: str) -> bytes:
        self._count("read_file")
        return self._read_file_cb(branch.repo.clone_url, branch.name, path)

    def list_tree(self, branch: GitBranch, path: str, ctx: LifecycleContext) -> bytes:
        self._count("list_tree")
        if self._list_tree_cb is None:
            raise PathNotFoundError(path)
        return self._list_tree_cb(branch.repo.clone_url, branch.name, path)

    def scan_cached_branches(self, root: str, ctx: LifecycleContext) -> list[RepoBranchInfo]:
        with self._lock:
            self.calls["scan_cached_branches"] += 1
            return [
                RepoBranchInfo(identity, branch, url)
                for (identity, branch), url in sorted(self._cloned.items())
            ]

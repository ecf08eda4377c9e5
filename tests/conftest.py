"""公共测试夹具"""

from __future__ import annotations

import logging
import threading
import time
from pathlib import Path

import pytest

from gitrestcache.core.config import Config
from gitrestcache.core.exceptions import PathNotFoundError
from gitrestcache.services.gitcache.cache import GitCache
from gitrestcache.services.gitcache.manager import CallbackGitManager


class VersionedGitManager(CallbackGitManager):
    """克隆后内容为 "Initial content for <url>/<branch>"，update 后变为 "Updated content" """

    def __init__(self, clone_delay: float = 0.0, update_gate: threading.Event | None = None) -> None:
        super().__init__(self._read)
        self.clone_delay = clone_delay
        # 设置 update_gate 时 update 中途阻塞（已持有仓库写锁），直到 gate 被 set
        self.update_gate = update_gate
        self.update_started = threading.Event()
        self._updated: set[tuple[str, str]] = set()
        self._versions_lock = threading.Lock()

    def clone_branch(self, branch, ctx) -> None:  # type: ignore[no-untyped-def]
        if self.clone_delay:
            time.sleep(self.clone_delay)
        super().clone_branch(branch, ctx)
        with self._versions_lock:
            self._updated.discard((branch.repo.clone_url, branch.name))

    def update_branch(self, branch, ctx) -> None:  # type: ignore[no-untyped-def]
        super().update_branch(branch, ctx)
        self.update_started.set()
        if self.update_gate is not None and not self.update_gate.wait(5):
            raise RuntimeError("update_gate 未在 5 秒内放行")
        with self._versions_lock:
            self._updated.add((branch.repo.clone_url, branch.name))

    def _read(self, clone_url: str, branch: str, path: str) -> bytes:
        if path.endswith("notfound.txt"):
            raise PathNotFoundError(path)
        with self._versions_lock:
            updated = (clone_url, branch) in self._updated
        if updated:
            return b"Updated content"
        return f"Initial content for {clone_url}/{branch}".encode()


class FakeClock:
    """可手动推进的单调时钟"""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture()
def storage(tmp_path: Path) -> Path:
    d = tmp_path / "storage"
    d.mkdir()
    return d


@pytest.fixture()
def make_config(storage: Path):
    """构造指向临时存储目录的配置，关键字参数覆盖默认值"""
    def _make(**overrides) -> Config:  # type: ignore[no-untyped-def]
        data = {
            "storage_folder": str(storage),
            "repo_ttl": 600,
            "token_ttl": 600,
            "repo_check_interval": 60,
        }
        data.update(overrides)
        return Config(**data)
    return _make


@pytest.fixture()
def versioned_manager() -> VersionedGitManager:
    return VersionedGitManager()


@pytest.fixture()
def manager_factory():
    """VersionedGitManager 工厂（需要自定义克隆耗时或阻塞 update 时使用）"""
    return VersionedGitManager


@pytest.fixture()
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def make_cache(make_config):
    """创建 GitCache，测试结束时统一 stop"""
    caches: list[GitCache] = []

    def _make(manager, *, clock=None, ctx=None, **overrides) -> GitCache:  # type: ignore[no-untyped-def]
        kwargs = {}
        if clock is not None:
            kwargs["clock"] = clock
        cache = GitCache(make_config(**overrides), manager=manager, ctx=ctx, **kwargs)
        caches.append(cache)
        return cache

    yield _make
    for c in caches:
        c.stop()


@pytest.fixture(autouse=True)
def _restore_root_logging():
    """setup_logging 会替换根日志器的 handlers，测试结束后还原"""
    root = logging.getLogger()
    level, handlers = root.level, root.handlers[:]
    yield
    for h in root.handlers[:]:
        if h not in handlers:
            root.removeHandler(h)
            h.close()
    for h in handlers:
        root.addHandler(h)
    root.setLevel(level)

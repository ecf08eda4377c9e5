"""GitCache 门面单元测试"""

from __future__ import annotations

import threading
import time
from concurrent.futures import ThreadPoolExecutor

import pytest

from gitrestcache.core.context import LifecycleContext
from gitrestcache.core.exceptions import (
    ConfigError,
    OperationCancelledError,
    PathNotFoundError,
    ValidationError,
)
from gitrestcache.core.models import TreeEntry
from gitrestcache.services.gitcache.manager import CallbackGitManager

PUBLIC_URL = "https://github.com/test/public-repo.git"


def _wait_until(predicate, timeout: float = 5.0) -> bool:  # type: ignore[no-untyped-def]
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.02)
    return predicate()


def _content_cb(clone_url: str, branch: str, path: str) -> bytes:
    if path == "/notfound.txt":
        raise PathNotFoundError(path)
    return f"content for url={clone_url}, file={path}".encode()


def _tree_cb(clone_url: str, branch: str, path: str) -> bytes:
    if path == "folder":
        return b"100644 blob 9c955c2818ec5a99e62966f8ad2bd0f8a5d3d487     100\tfile.txt"
    raise PathNotFoundError(path)


class TestRead:
    def test_cold_read_clones_and_caches(self, make_cache) -> None:
        mgr = CallbackGitManager(_content_cb)
        cache = make_cache(mgr)

        data = cache.get_file_content("H1", PUBLIC_URL, "main", "/file.txt")

        assert data == f"content for url={PUBLIC_URL}, file=/file.txt".encode()
        repo = cache.index.get("H1")
        assert repo is not None
        assert list(repo.branches) == ["main"]
        assert repo.branches["main"].cached is True
        assert mgr.calls["clone_branch"] == 1

    def test_warm_read_does_not_reclone(self, make_cache) -> None:
        mgr = CallbackGitManager(_content_cb)
        cache = make_cache(mgr)
        cache.get_file_content("H1", PUBLIC_URL, "main", "/a.txt")
        cache.get_file_content("H1", PUBLIC_URL, "main", "/b.txt")
        assert mgr.calls["clone_branch"] == 1
        assert mgr.calls["read_file"] == 2

    def test_file_not_found_keeps_branch_cached(self, make_cache) -> None:
        cache = make_cache(CallbackGitManager(_content_cb))
        with pytest.raises(PathNotFoundError):
            cache.get_file_content("H1", PUBLIC_URL, "main", "/notfound.txt")
        assert cache.index.get("H1").branches["main"].is_cached()

    def test_first_clone_url_wins(self, make_cache) -> None:
        mgr = CallbackGitManager(_content_cb)
        cache = make_cache(mgr)
        cache.get_file_content("H1", PUBLIC_URL, "main", "/f")
        data = cache.get_file_content("H1", "https://github.com/other/repo.git", "main", "/f")
        assert PUBLIC_URL.encode() in data
        assert cache.index.get("H1").clone_url == PUBLIC_URL

    def test_touch_on_successful_read(self, make_cache, fake_clock) -> None:
        cache = make_cache(CallbackGitManager(_content_cb), clock=fake_clock)
        cache.get_file_content("H1", PUBLIC_URL, "main", "/f")
        fake_clock.advance(30)
        cache.get_file_content("H1", PUBLIC_URL, "main", "/f")
        assert cache.index.get("H1").branches["main"].last_accessed == fake_clock.now

    @pytest.mark.parametrize("branch", ["", "-upload-pack=x", "..", ".hidden", "a/b", "a b"])
    def test_invalid_branch_rejected_without_record(self, make_cache, branch: str) -> None:
        mgr = CallbackGitManager(_content_cb)
        cache = make_cache(mgr)
        with pytest.raises(ValidationError):
            cache.get_file_content("H1", PUBLIC_URL, branch, "/f")
        assert len(cache.index) == 0
        assert mgr.calls["clone_branch"] == 0

    def test_invalid_identity_rejected(self, make_cache) -> None:
        cache = make_cache(CallbackGitManager(_content_cb))
        with pytest.raises(ValidationError):
            cache.get_file_content("../escape", PUBLIC_URL, "main", "/f")


class TestTreeListing:
    def test_listing_parsed(self, make_cache) -> None:
        cache = make_cache(CallbackGitManager(_content_cb, _tree_cb))
        entries = cache.get_tree_listing("H1", PUBLIC_URL, "main", "folder")
        assert entries == [TreeEntry(
            hash="9c955c2818ec5a99e62966f8ad2bd0f8a5d3d487",
            path="folder/file.txt", type="blob", size=100,
        )]

    def test_listing_missing_dir(self, make_cache) -> None:
        cache = make_cache(CallbackGitManager(_content_cb, _tree_cb))
        with pytest.raises(PathNotFoundError):
            cache.get_tree_listing("H1", PUBLIC_URL, "main", "folderx")


class TestConcurrency:
    def test_cold_concurrent_reads_clone_once(self, make_cache, manager_factory) -> None:
        mgr = manager_factory(clone_delay=0.1)
        cache = make_cache(mgr)
        barrier = threading.Barrier(20)

        def read() -> bytes:
            barrier.wait()
            return cache.get_file_content("H1", PUBLIC_URL, "main", "/test.txt")

        with ThreadPoolExecutor(max_workers=20) as pool:
            results = list(pool.map(lambda _: read(), range(20)))

        assert mgr.calls["clone_branch"] == 1
        assert len(set(results)) == 1

    def test_many_readers_across_repos(self, make_cache, manager_factory) -> None:
        mgr = manager_factory(clone_delay=0.05)
        cache = make_cache(mgr, repo_ttl=5, repo_check_interval=0.01)
        cache.start()

        def worker(i: int) -> int:
            url = f"https://github.com/test/repo{i % 3}"
            for _ in range(100):
                content = cache.get_file_content(f"mock-hash-{i % 3}", url, "main", "test.txt")
                assert content
            return 100

        with ThreadPoolExecutor(max_workers=10) as pool:
            total = sum(pool.map(worker, range(10)))

        assert total == 1000
        assert mgr.calls["read_file"] == 1000
        assert mgr.calls["clone_branch"] == 3


class TestMaintenanceThroughFacade:
    def test_read_blocks_during_update(self, make_cache, manager_factory) -> None:
        gate = threading.Event()
        mgr = manager_factory(update_gate=gate)
        cache = make_cache(mgr)
        initial = cache.get_file_content("H1", PUBLIC_URL, "main", "/test.txt")
        assert initial == f"Initial content for {PUBLIC_URL}/main".encode()

        updater = threading.Thread(target=cache.maintainer.tick, daemon=True)
        updater.start()
        assert mgr.update_started.wait(5)

        results: list[bytes] = []
        reader = threading.Thread(
            target=lambda: results.append(cache.get_file_content("H1", PUBLIC_URL, "main", "/test.txt")),
            daemon=True,
        )
        reader.start()
        reader.join(0.3)
        assert reader.is_alive()
        assert results == []

        gate.set()
        reader.join(5)
        updater.join(5)
        assert results == [b"Updated content"]
        assert mgr.calls["read_file"] == 2

    def test_update_visible_to_next_read(self, make_cache, versioned_manager) -> None:
        cache = make_cache(versioned_manager)
        first = cache.get_file_content("H1", PUBLIC_URL, "main", "/test.txt")
        assert first == f"Initial content for {PUBLIC_URL}/main".encode()

        cache.maintainer.tick()

        assert cache.get_file_content("H1", PUBLIC_URL, "main", "/test.txt") == b"Updated content"

    def test_idle_branch_evicted_then_recloned(self, make_cache, versioned_manager, fake_clock) -> None:
        cache = make_cache(versioned_manager, clock=fake_clock, repo_ttl=2, repo_check_interval=0.5)
        cache.get_file_content("H1", PUBLIC_URL, "main", "/f")

        fake_clock.advance(1)
        cache.maintainer.tick()
        assert "H1" in cache.index
        assert versioned_manager.calls["update_branch"] == 1

        fake_clock.advance(2)
        cache.maintainer.tick()
        assert "H1" not in cache.index
        assert versioned_manager.calls["delete_branch"] == 1

        cache.get_file_content("H1", PUBLIC_URL, "main", "/f")
        assert versioned_manager.calls["clone_branch"] == 2

    def test_recent_access_prevents_eviction(self, make_cache, versioned_manager, fake_clock) -> None:
        cache = make_cache(versioned_manager, clock=fake_clock, repo_ttl=2, repo_check_interval=0.5)
        cache.get_file_content("H1", PUBLIC_URL, "main", "/f")
        fake_clock.advance(1.5)
        cache.get_file_content("H1", PUBLIC_URL, "main", "/f")
        fake_clock.advance(1.5)
        cache.maintainer.tick()
        assert "H1" in cache.index
        assert versioned_manager.calls["delete_branch"] == 0

    def test_zero_ttl_never_evicts(self, make_cache, versioned_manager, fake_clock) -> None:
        cache = make_cache(versioned_manager, clock=fake_clock, repo_ttl=0, repo_check_interval=1)
        cache.get_file_content("H1", PUBLIC_URL, "main", "/f")
        fake_clock.advance(10 ** 6)
        cache.maintainer.tick()
        assert versioned_manager.calls["delete_branch"] == 0
        assert versioned_manager.calls["update_branch"] == 1

    def test_background_eviction(self, make_cache, versioned_manager) -> None:
        cache = make_cache(versioned_manager, repo_ttl=0.4, repo_check_interval=0.1)
        cache.start()
        cache.get_file_content("H1", PUBLIC_URL, "main", "/f")
        branch = cache.index.get("H1").branches["main"]

        assert _wait_until(lambda: not versioned_manager.contains_branch(branch))

        cache.get_file_content("H1", PUBLIC_URL, "main", "/f")
        assert versioned_manager.calls["clone_branch"] == 2


class TestAccess:
    def test_set_has_remove(self, make_cache) -> None:
        cache = make_cache(CallbackGitManager(_content_cb))
        assert cache.has_access("tok", "H1") is False
        cache.set_access("tok", "H1")
        assert cache.has_access("tok", "H1") is True
        cache.remove_access("tok", "H1")
        assert cache.has_access("tok", "H1") is False


class TestLifecycle:
    def test_start_and_stop(self, make_cache) -> None:
        cache = make_cache(CallbackGitManager(_content_cb), repo_check_interval=0.05, repo_ttl=1)
        cache.start()
        assert cache.is_running()
        cache.start()
        cache.stop()
        assert _wait_until(lambda: not cache.is_running())
        cache.stop()

    def test_restart_after_stop_rejected(self, make_cache) -> None:
        cache = make_cache(CallbackGitManager(_content_cb))
        cache.start()
        cache.stop()
        assert _wait_until(lambda: not cache.is_running())
        with pytest.raises(OperationCancelledError):
            cache.start()

    def test_parent_context_cancellation(self, make_cache) -> None:
        parent = LifecycleContext()
        cache = make_cache(
            CallbackGitManager(_content_cb), ctx=parent, repo_ttl=5, repo_check_interval=0.1,
        )
        cache.start()
        assert cache.is_running()
        parent.cancel()
        assert _wait_until(lambda: not cache.is_running())

    def test_missing_storage_folder(self, make_cache, tmp_path) -> None:
        cache = make_cache(CallbackGitManager(_content_cb), storage_folder=str(tmp_path / "missing"))
        with pytest.raises(ConfigError, match="存储目录不存在"):
            cache.start()
        assert not cache.is_running()

    def test_interval_too_long_for_ttl(self, make_cache) -> None:
        cache = make_cache(CallbackGitManager(_content_cb), repo_ttl=2, repo_check_interval=1)
        with pytest.raises(ConfigError, match="1/4"):
            cache.start()

    def test_zero_ttl_skips_interval_check(self, make_cache) -> None:
        cache = make_cache(CallbackGitManager(_content_cb), repo_ttl=0, repo_check_interval=3600)
        cache.start()
        assert cache.is_running()

"""Token 授权缓存

记录「某 token 近期被上游认可可访问某仓库」，避免每次请求都回源校验。
命中时有效期顺延 token-ttl；容量有上限，满时淘汰最久未使用的条目。
"""

from __future__ import annotations

import threading
import time
from collections import OrderedDict
from typing import Callable

from gitrestcache.core.exceptions import ValidationError

KEY_SEPARATOR = "|"


class TokenAccessCache:
    """线程安全、有界、带 TTL 的 (token, 仓库标识) 集合"""

    def __init__(
        self,
        ttl: float,
        max_size: int = 1_000_000,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl = ttl
        self.max_size = max(1, max_size)
        self._clock = clock
        self._entries: OrderedDict[str, float] = OrderedDict()
        self._lock = threading.Lock()

    @staticmethod
    def _key(token: str, identity: str) -> str:
        if KEY_SEPARATOR in identity:
            raise ValidationError(f"仓库标识不能包含分隔符 {KEY_SEPARATOR!r}: {identity}")
        return f"{token}{KEY_SEPARATOR}{identity}"

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def set(self, token: str, identity: str) -> None:
        key = self._key(token, identity)
        with self._lock:
            self._entries[key] = self._clock() + self.ttl
            self._entries.move_to_end(key)
            while len(self._entries) > self.max_size:
                self._entries.popitem(last=False)

    def has(self, token: str, identity: str) -> bool:
        """存在未过期条目时返回 True，并把有效期顺延到 now + ttl"""
        key = self._key(token, identity)
        with self._lock:
            expiry = self._entries.get(key)
            if expiry is None:
                return False
            now = self._clock()
            if expiry <= now:
                del self._entries[key]
                return False
            self._entries[key] = now + self.ttl
            self._entries.move_to_end(key)
            return True

    def remove(self, token: str, identity: str) -> None:
        key = self._key(token, identity)
        with self._lock:
            self._entries.pop(key, None)

    def purge_expired(self) -> int:
        """清理已过期条目，返回清理数量"""
        now = self._clock()
        with self._lock:
            expired = [k for k, exp in self._entries.items() if exp <= now]
            for k in expired:
                del self._entries[k]
        return len(expired)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

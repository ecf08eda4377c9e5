"""生命周期上下文：进程级取消信号

在 GitCache 构造时创建，传递给每一次 git 调用和维护循环。
cancel() 后正在运行的子进程会被终止，维护循环尽快退出。
"""

from __future__ import annotations

import threading
import weakref

from gitrestcache.core.exceptions import OperationCancelledError


class LifecycleContext:
    """可取消的上下文（线程安全）

    可选 parent：父上下文取消时级联取消子上下文。
    子上下文在创建时登记到父上下文（弱引用），已取消的父上下文会立即取消新建的子上下文。
    """

    def __init__(self, parent: LifecycleContext | None = None) -> None:
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._children: weakref.WeakSet[LifecycleContext] = weakref.WeakSet()
        # 子对父为强引用，父对子为弱引用
        self._parent = parent
        if parent is not None:
            parent._link(self)

    def _link(self, child: LifecycleContext) -> None:
        with self._lock:
            if not self._event.is_set():
                self._children.add(child)
                return
        child.cancel()

    def cancel(self) -> None:
        with self._lock:
            self._event.set()
            children = list(self._children)
            self._children.clear()
        for child in children:
            child.cancel()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise OperationCancelledError()

    def wait(self, timeout: float) -> bool:
        """最多等待 timeout 秒，期间被取消则提前返回 True"""
        return self._event.wait(timeout)

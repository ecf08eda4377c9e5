"""Shell 命令执行工具：统一子进程调用

通过 CommandExecutor 协议抽象子进程执行，方便测试替换。
所有调用都接受 LifecycleContext，上下文取消时终止正在运行的子进程。
"""

from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass
from typing import Protocol

from gitrestcache.core.context import LifecycleContext
from gitrestcache.core.exceptions import ExecutionError, OperationCancelledError

logger = logging.getLogger(__name__)

# 轮询上下文取消状态的间隔（秒）
POLL_INTERVAL = 0.1


@dataclass
class CommandResult:
    """命令执行结果（stdout 与 stderr 合并，保留原始字节）"""

    returncode: int
    output: bytes

    @property
    def success(self) -> bool:
        return self.returncode == 0

    @property
    def text(self) -> str:
        return self.output.decode("utf-8", errors="replace")


class CommandExecutor(Protocol):
    """git 子进程的执行入口；单元测试注入假实现即可脱离真实 git"""

    def execute(
        self,
        args: list[str],
        *,
        ctx: LifecycleContext,
        cwd: str | None = None,
    ) -> CommandResult:
        """执行命令并返回结果，上下文取消时抛 OperationCancelledError"""
        ...


class LocalExecutor:
    """本地子进程执行器（默认实现），无固有超时，取消即终止"""

    def __init__(self, poll_interval: float = POLL_INTERVAL) -> None:
        self.poll_interval = poll_interval

    def execute(
        self,
        args: list[str],
        *,
        ctx: LifecycleContext,
        cwd: str | None = None,
    ) -> CommandResult:
        ctx.raise_if_cancelled()
        proc = subprocess.Popen(
            args, cwd=cwd,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE, stderr=subprocess.STDOUT,
        )
        while True:
            try:
                output, _ = proc.communicate(timeout=self.poll_interval)
                break
            except subprocess.TimeoutExpired:
                if ctx.cancelled:
                    logger.info("上下文已取消，终止子进程 (pid=%d): %s", proc.pid, args[:3])
                    proc.kill()
                    proc.communicate()
                    raise OperationCancelledError() from None
        return CommandResult(returncode=proc.returncode, output=output or b"")


def run_cmd(
    executor: CommandExecutor,
    args: list[str],
    *,
    ctx: LifecycleContext,
    cwd: str | None = None,
    label: str = "cmd",
    error_cls: type[ExecutionError] = ExecutionError,
) -> CommandResult:
    """执行命令，非零退出码抛 error_cls（携带合并输出）

    Args:
        executor: 命令执行器
        args: 命令参数列表
        ctx: 生命周期上下文
        cwd: 工作目录
        label: 日志标签
        error_cls: 失败时抛出的异常类型
    """
    logger.debug("  %s: %s (cwd=%s)", label, " ".join(args[:4]), cwd or ".")
    try:
        r = executor.execute(args, ctx=ctx, cwd=cwd)
    except OSError as e:
        raise error_cls(f"{label}失败: {e}") from e
    if not r.success:
        raise error_cls(f"{label}失败 (rc={r.returncode})", output=r.text)
    return r

"""统一异常体系

所有业务异常继承 GitRestCacheError，替代散落的 OSError / RuntimeError。
Web 层可据此自动映射 HTTP 状态码，CLI 层可据此输出友好提示。
"""

from __future__ import annotations


class GitRestCacheError(Exception):
    """缓存服务基础异常"""

    code: str = "UNKNOWN"

    def __init__(self, message: str) -> None:
        super().__init__(message)


class ConfigError(GitRestCacheError):
    """配置缺失或内容无效（启动前校验失败）"""

    code = "CONFIG_ERROR"


class ValidationError(GitRestCacheError):
    """输入数据校验失败（分支名、路径等）"""

    code = "VALIDATION_ERROR"

    def __init__(self, message: str, details: list[str] | None = None) -> None:
        super().__init__(message)
        self.details = details or []


class PathNotFoundError(GitRestCacheError):
    """请求的文件或目录在分支工作树中不存在"""

    code = "FILE_NOT_FOUND"

    def __init__(self, path: str = "") -> None:
        super().__init__(f"文件不存在: {path}" if path else "文件不存在")
        self.path = path


class ExecutionError(GitRestCacheError):
    """外部命令执行失败，携带合并后的 stdout/stderr 便于排查"""

    code = "EXECUTION_ERROR"

    def __init__(self, message: str, output: str = "") -> None:
        if output:
            message = f"{message}, 输出: {output[:2000]}"
        super().__init__(message)
        self.output = output


class CloneError(ExecutionError):
    code = "CLONE_FAILED"


class UpdateError(ExecutionError):
    code = "UPDATE_FAILED"


class DeleteError(ExecutionError):
    code = "DELETE_FAILED"


class PresenceProbeError(GitRestCacheError):
    """检查分支目录时遇到「不存在」以外的文件系统错误"""

    code = "PRESENCE_PROBE_FAILED"


class OperationCancelledError(GitRestCacheError):
    """生命周期上下文已取消"""

    code = "CANCELLED"

    def __init__(self, message: str = "操作已取消") -> None:
        super().__init__(message)


class TokenValidationError(GitRestCacheError):
    """上游校验 token 时出错（网络错误或非预期状态码）"""

    code = "TOKEN_VALIDATION_FAILED"


class MaintenanceError(GitRestCacheError):
    """一轮维护巡检中有分支处理失败"""

    code = "MAINTENANCE_FAILED"

    def __init__(self, message: str, failures: list[str] | None = None) -> None:
        super().__init__(message)
        self.failures = failures or []

"""Web 层统一响应辅助函数

统一 JSON 错误体 {"error": ...}，并集中维护异常到 HTTP 状态码的映射。
"""

from __future__ import annotations

from flask import Response, jsonify

from gitrestcache.core.exceptions import (
    GitRestCacheError,
    OperationCancelledError,
    PathNotFoundError,
    TokenValidationError,
    ValidationError,
)

# 异常类型 -> (HTTP 状态码, 对外错误信息；None 表示使用异常消息)
_ERROR_STATUS: list[tuple[type[GitRestCacheError], int, str | None]] = [
    (PathNotFoundError, 404, "File not found"),
    (ValidationError, 400, None),
    (TokenValidationError, 502, None),
    (OperationCancelledError, 503, "Service is shutting down"),
]


def error(message: str, status: int) -> tuple[Response, int]:
    return jsonify(error=message), status


def unauthorized() -> tuple[Response, int]:
    return error("Unauthorized", 401)


def from_exception(exc: GitRestCacheError) -> tuple[Response, int]:
    """把业务异常映射为 JSON 错误响应，未列出的类型按 500 处理"""
    for cls, status, message in _ERROR_STATUS:
        if isinstance(exc, cls):
            return error(message or str(exc), status)
    return error(str(exc), 500)

"""HTTP 服务（基于 Flask）

启动方式:
  git-rest-cache serve --port 8080
  gunicorn --config deploy/gunicorn.conf.py "gitrestcache.web.app:create_app()"
"""

from __future__ import annotations

import logging

from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException

from gitrestcache.core.exceptions import GitRestCacheError, PathNotFoundError
from gitrestcache.services.container import ServiceContainer
from gitrestcache.web.blueprints.content_bp import make_content_bp
from gitrestcache.web.responses import from_exception

logger = logging.getLogger(__name__)

EXTENSION_KEY = "gitrestcache"


def get_service_container(app: Flask) -> ServiceContainer:
    return app.extensions[EXTENSION_KEY]


def create_app(container: ServiceContainer | None = None) -> Flask:
    """创建 Flask 应用；不会启动 GitCache 维护循环（由调用方负责）"""
    if container is None:
        container = ServiceContainer()

    app = Flask(__name__)
    # 目录列表按 hash/path/type/size 顺序输出
    app.json.sort_keys = False  # type: ignore[attr-defined]
    app.extensions[EXTENSION_KEY] = container

    cache = container.git_cache
    for provider in container.providers.get_providers():
        app.register_blueprint(make_content_bp(provider, cache))
        logger.debug("已注册托管平台路由: %s -> %s", provider.name, provider.url_path())

    @app.route("/healthz")
    def healthz():
        return jsonify(status="ok", running=cache.is_running())

    @app.errorhandler(HTTPException)
    def handle_http_exception(exc):
        """将所有 HTTP 异常统一返回 JSON"""
        return jsonify(error=exc.description), exc.code

    @app.errorhandler(GitRestCacheError)
    def handle_cache_error(exc):
        if not isinstance(exc, PathNotFoundError):
            logger.error("请求处理失败 [%s]: %s", exc.code, exc)
        return from_exception(exc)

    @app.errorhandler(Exception)
    def handle_generic_exception(exc):  # noqa: ARG001
        """捕获未处理异常，返回 500 JSON"""
        logger.exception("未处理的异常")
        return jsonify(error="服务器内部错误"), 500

    return app

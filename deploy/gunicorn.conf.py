"""Gunicorn 生产配置

缓存是单进程的（内存索引 + 本地磁盘），只能使用一个 worker，
并发由线程提供。

用法:
  gunicorn --config deploy/gunicorn.conf.py "gitrestcache.web.app:create_app()"
"""

import os

# ---------- 网络 ----------
bind = os.getenv("GUNICORN_BIND", "0.0.0.0:8080")

# ---------- 并发 ----------
workers = 1
threads = int(os.getenv("GUNICORN_THREADS", "32"))
worker_class = "gthread"
# 首次克隆大仓库可能较慢
timeout = 300

# ---------- 日志 ----------
accesslog = os.getenv("GUNICORN_ACCESS_LOG", "-")
errorlog = os.getenv("GUNICORN_ERROR_LOG", "-")
loglevel = os.getenv("GUNICORN_LOG_LEVEL", "info")

# ---------- 进程管理 ----------
graceful_timeout = 30
keepalive = 5


def post_worker_init(worker):
    """worker 加载应用后启动 GitCache 维护循环"""
    from gitrestcache.utils.logger import setup_logging
    from gitrestcache.web.app import get_service_container

    container = get_service_container(worker.wsgi)
    setup_logging(level=container.config.log_level, json_output=container.config.log_json)
    container.git_cache.start()


def worker_exit(server, worker):  # noqa: ARG001
    from gitrestcache.web.app import get_service_container

    wsgi = getattr(worker, "wsgi", None)
    if wsgi is not None:
        get_service_container(wsgi).shutdown()

"""git-rest-cache 命令行接口"""

from __future__ import annotations

import sys
from typing import Any

import click

from gitrestcache import __version__
from gitrestcache.core.config import DELETE_POLICIES, Config, load_config
from gitrestcache.core.exceptions import ConfigError, GitRestCacheError
from gitrestcache.utils.logger import setup_logging
from gitrestcache.utils.net import mask_credentials


def _load(config_path: str, overrides: dict[str, Any]) -> Config:
    try:
        return load_config(config_path, overrides=overrides)
    except ConfigError as e:
        click.echo(f"配置无效: {e}", err=True)
        sys.exit(1)


@click.group()
@click.version_option(version=__version__)
def main() -> None:
    """git-rest-cache - 远程 Git 仓库的只读 HTTP 缓存"""


@main.command()
@click.option("--config", "-c", "config_path", default="config.yaml", help="配置文件路径")
@click.option("--port", type=int, default=None, help="HTTP 监听端口")
@click.option("--host", default="0.0.0.0", help="HTTP 监听地址")
@click.option("--log-level", default=None, help="日志级别 (debug, info, warn, error)")
@click.option("--log-json/--no-log-json", default=None, help="输出 JSON 格式日志")
@click.option("--storage-folder", default=None, help="缓存仓库存储目录（必须已存在）")
@click.option("--repo-ttl", default=None, help="分支自最近访问起的保留时长，0 表示不清除")
@click.option("--token-ttl", default=None, help="token 授权在内存中的有效期（命中时顺延）")
@click.option("--repo-check-interval", default=None, help="巡检已缓存仓库的间隔")
@click.option("--repo-delete-policy", type=click.Choice(DELETE_POLICIES), default=None,
              help="清除空仓库失败后的处理策略")
def serve(config_path: str, host: str, **options: Any) -> None:
    """启动 HTTP 缓存服务"""
    cfg = _load(config_path, options)
    setup_logging(level=cfg.log_level, json_output=cfg.log_json)

    from gitrestcache.services.container import ServiceContainer
    from gitrestcache.web.app import create_app

    container = ServiceContainer(config=cfg)
    cache = container.git_cache
    try:
        cache.start()
    except GitRestCacheError as e:
        click.echo(f"启动 Git 缓存失败: {e}", err=True)
        sys.exit(1)

    app = create_app(container)
    try:
        app.run(host=host, port=cfg.port, threaded=True)
    finally:
        container.shutdown()


@main.command()
@click.option("--config", "-c", "config_path", default="config.yaml", help="配置文件路径")
@click.option("--storage-folder", default=None, help="缓存仓库存储目录")
def scan(config_path: str, storage_folder: str | None) -> None:
    """列出磁盘上已缓存的分支"""
    cfg = _load(config_path, {"storage_folder": storage_folder})

    from gitrestcache.core.context import LifecycleContext
    from gitrestcache.services.gitcache.manager import DefaultGitManager

    try:
        branches = DefaultGitManager().scan_cached_branches(cfg.storage_folder, LifecycleContext())
    except GitRestCacheError as e:
        click.echo(f"扫描失败: {e}", err=True)
        sys.exit(1)
    if not branches:
        click.echo("没有已缓存的分支。")
        return
    for b in branches:
        click.echo(f"  {b.identity}  {b.branch:20s} {mask_credentials(b.clone_url)}")


@main.command(name="hash")
@click.option("--provider", default="github", help="托管平台名称")
@click.option("--owner", required=True, help="仓库所有者")
@click.option("--repo", required=True, help="仓库名")
@click.option("--token", default="", help="访问 token（可选）")
def repo_hash(provider: str, owner: str, repo: str, token: str) -> None:
    """计算仓库标识（即存储目录名）"""
    from gitrestcache.services.provider.base import compute_repo_hash
    click.echo(compute_repo_hash(provider, owner, repo, token))


if __name__ == "__main__":
    main()

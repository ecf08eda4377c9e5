"""文件内容 / 目录列表 Blueprint（每个托管平台注册一份）

路由（以 GitHub 为例）:
  GET /github/<owner>/<repo>/<branch>/blob/<path:filepath>  文件内容
  GET /github/<owner>/<repo>/<branch>/list/<path:dirpath>   目录列表 JSON

请求头 X-Token 携带访问 token（可为空）。授权缓存未命中时回源校验，
通过后写入授权缓存。
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from flask import Blueprint, Response, g, jsonify, request

from gitrestcache.web.responses import unauthorized

if TYPE_CHECKING:
    from gitrestcache.core.protocols import Provider, ProviderRepo
    from gitrestcache.services.gitcache.cache import GitCache

logger = logging.getLogger(__name__)

TOKEN_HEADER = "X-Token"


def has_access(cache: GitCache, repo: ProviderRepo, token: str) -> bool:
    """先查授权缓存，未命中时回源校验并缓存结果（仅缓存通过的校验）

    Raises:
        TokenValidationError: 上游校验出错
    """
    identity = repo.identity()
    if cache.has_access(token, identity):
        return True
    if not repo.validate_token(token):
        return False
    cache.set_access(token, identity)
    return True


def make_content_bp(provider: Provider, cache: GitCache) -> Blueprint:
    """为托管平台创建内容 Blueprint"""
    bp = Blueprint(f"content_{provider.name}", __name__, url_prefix=provider.url_path())

    @bp.before_request
    def authorize() -> tuple[Response, int] | None:
        repo = provider.get_repo(request)
        token = request.headers.get(TOKEN_HEADER, "")
        if not has_access(cache, repo, token):
            logger.info("拒绝访问: %s", repo.repo_url())
            return unauthorized()
        g.provider_repo = repo
        return None

    @bp.route("/<branch>/blob/<path:filepath>", methods=["GET"])
    def blob(branch: str, filepath: str, **_: str) -> Response:
        repo: ProviderRepo = g.provider_repo
        data = cache.get_file_content(repo.identity(), repo.clone_url(), branch, "/" + filepath)
        return Response(data, status=200, mimetype="application/octet-stream")

    @bp.route("/<branch>/list/", defaults={"dirpath": ""}, methods=["GET"])
    @bp.route("/<branch>/list/<path:dirpath>", methods=["GET"])
    def listing(branch: str, dirpath: str, **_: str) -> Response:
        repo: ProviderRepo = g.provider_repo
        entries = cache.get_tree_listing(repo.identity(), repo.clone_url(), branch, dirpath)
        return jsonify([e.to_dict() for e in entries])

    return bp

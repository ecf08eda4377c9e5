"""GitHub 托管平台"""

from __future__ import annotations

import logging
import urllib.error
import urllib.request
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import quote

from gitrestcache.core.exceptions import TokenValidationError
from gitrestcache.services.provider.base import compute_repo_hash
from gitrestcache.utils.net import validate_url_scheme

logger = logging.getLogger(__name__)

GITHUB_HOST = "github.com"
GITHUB_API = "https://api.github.com"
USER_AGENT = "git-rest-cache/1.0"
TOKEN_HEADER = "X-Token"

# 上游校验 token 的超时（秒）
VALIDATE_TIMEOUT = 5

_DENIED_STATUSES = frozenset((401, 403, 404))


@dataclass
class GitHubRepo:
    """一次请求指向的 GitHub 仓库"""

    owner: str
    repo: str
    token: str = field(default="", repr=False)
    api_base: str = field(default=GITHUB_API, repr=False)

    def identity(self) -> str:
        return compute_repo_hash("github", self.owner, self.repo, self.token)

    def repo_url(self) -> str:
        return f"https://{GITHUB_HOST}/{self.owner}/{self.repo}"

    def clone_url(self) -> str:
        if self.token:
            return f"https://{quote(self.token, safe='')}@{GITHUB_HOST}/{self.owner}/{self.repo}.git"
        return f"https://{GITHUB_HOST}/{self.owner}/{self.repo}.git"

    def validate_token(self, token: str) -> bool:
        """请求 GitHub 仓库 API：200 有权限；401/403/404 无权限；其它抛 TokenValidationError"""
        url = f"{self.api_base.rstrip('/')}/repos/{self.owner}/{self.repo}"
        validate_url_scheme(url, context="token 校验")
        req = urllib.request.Request(url, headers={"User-Agent": USER_AGENT})
        if token:
            req.add_header("Authorization", f"Bearer {token}")
        try:
            with urllib.request.urlopen(req, timeout=VALIDATE_TIMEOUT) as resp:  # nosec B310
                status = resp.status
        except urllib.error.HTTPError as e:
            status = e.code
        except (urllib.error.URLError, OSError) as e:
            raise TokenValidationError(f"校验 token 失败: {e}") from e

        if status == 200:
            return True
        if status in _DENIED_STATUSES:
            logger.debug("token 无权访问 %s/%s (HTTP %d)", self.owner, self.repo, status)
            return False
        raise TokenValidationError(f"校验 token 时收到非预期状态码: {status}")


class GitHubProvider:
    """GitHub: 路由 /github/<owner>/<repo>，token 取自 X-Token 请求头"""

    name = "github"

    def url_path(self) -> str:
        return "/github/<owner>/<repo>"

    def get_repo(self, request: Any) -> GitHubRepo:
        args = request.view_args or {}
        return GitHubRepo(
            owner=args.get("owner", ""),
            repo=args.get("repo", ""),
            token=request.headers.get(TOKEN_HEADER, ""),
        )

"""领域协议定义

集中定义缓存引擎与外部协作者之间的接口契约（Protocol），
实现依赖倒置：缓存引擎依赖抽象而非具体实现。

使用 typing.Protocol 而非 ABC，测试替身无需继承即可满足协议。
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from gitrestcache.core.context import LifecycleContext
    from gitrestcache.core.models import RepoBranchInfo
    from gitrestcache.services.gitcache.records import GitBranch, GitRepo


# =========================================================================
# Git 执行器协议
# =========================================================================

class GitManager(Protocol):
    """Git 执行器协议

    两种实现：DefaultGitManager 调用 git 二进制；CallbackGitManager 为
    测试替身，不启动子进程。调用方负责持有仓库锁，执行器本身不加锁。
    """

    def clone_branch(self, branch: GitBranch, ctx: LifecycleContext) -> None:
        """浅克隆单个分支 (depth=1) 到分支目录"""
        ...

    def update_branch(self, branch: GitBranch, ctx: LifecycleContext) -> None:
        """fetch 分支并 reset --hard 到 origin/<branch>"""
        ...

    def delete_branch(self, branch: GitBranch) -> None:
        """递归删除分支目录"""
        ...

    def delete_repo(self, repo: GitRepo) -> bool:
        """仅当仓库目录为空时删除，返回目录是否已不存在"""
        ...

    def contains_branch(self, branch: GitBranch) -> bool:
        """分支目录存在且含 .git 子目录时返回 True"""
        ...

    def read_file(self, branch: GitBranch, path: str) -> bytes:
        """读取分支工作树中的文件，不存在时抛 PathNotFoundError"""
        ...

    def list_tree(self, branch: GitBranch, path: str, ctx: LifecycleContext) -> bytes:
        """返回 `git ls-tree -l HEAD:<path>` 的原始输出"""
        ...

    def scan_cached_branches(self, root: str, ctx: LifecycleContext) -> list[RepoBranchInfo]:
        """遍历 <root>/<identity>/<branch>，返回磁盘上已缓存的分支"""
        ...


# =========================================================================
# 托管平台协议
# =========================================================================

class ProviderRepo(Protocol):
    """一次请求所指向的远程仓库"""

    def identity(self) -> str:
        """仓库标识（24 位十六进制），缓存索引主键"""
        ...

    def repo_url(self) -> str:
        ...

    def clone_url(self) -> str:
        """HTTPS clone 地址；请求带 token 时嵌入 userinfo"""
        ...

    def validate_token(self, token: str) -> bool:
        """上游校验 token：有权限 True，无权限 False，其它情况抛 TokenValidationError"""
        ...


class Provider(Protocol):
    """托管平台（GitHub 等）"""

    name: str

    def url_path(self) -> str:
        """路由层使用的 URL 模板，如 /github/<owner>/<repo>"""
        ...

    def get_repo(self, request: Any) -> ProviderRepo:
        """从 HTTP 请求解析出仓库"""
        ...

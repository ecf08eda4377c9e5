"""git-rest-cache：远程 Git 仓库的只读 HTTP 缓存"""

__version__ = "1.0.0"

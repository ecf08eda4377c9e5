"""领域模型：与存储 / Web 层解耦的纯数据结构"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass

logger = logging.getLogger(__name__)

TREE_ENTRY_TYPES = ("blob", "tree")


@dataclass(frozen=True)
class RepoBranchInfo:
    """磁盘上发现的已缓存分支: <storage>/<identity>/<branch>"""

    identity: str
    branch: str
    clone_url: str


@dataclass(frozen=True)
class TreeEntry:
    """目录列表中的一项（git ls-tree -l 的一行）"""

    hash: str
    path: str
    type: str
    size: int

    def to_dict(self) -> dict:
        return asdict(self)


def join_tree_path(directory: str, name: str) -> str:
    """拼接列出目录与条目名，根目录时直接返回条目名"""
    directory = directory.strip("/")
    return f"{directory}/{name}" if directory else name


def parse_ls_tree(output: bytes | str, directory: str) -> list[TreeEntry]:
    """解析 `git ls-tree -l` 原始输出，保持输出顺序

    行格式: <mode> SP <type> SP <object> SP+ <size> TAB <name>
    非 blob 的 size 为 "-"，记为 0；blob/tree 以外的条目（子模块）跳过。
    """
    text = output.decode("utf-8", errors="replace") if isinstance(output, bytes) else output
    entries: list[TreeEntry] = []
    for line in text.splitlines():
        if not line.strip():
            continue
        meta, sep, name = line.partition("\t")
        parts = meta.split()
        if not sep or len(parts) != 4:
            logger.warning("无法解析的 ls-tree 行: %r", line)
            continue
        _mode, obj_type, obj_hash, size_text = parts
        if obj_type not in TREE_ENTRY_TYPES:
            logger.debug("跳过非 blob/tree 条目: %s (%s)", name, obj_type)
            continue
        size = int(size_text) if obj_type == "blob" and size_text.isdigit() else 0
        entries.append(TreeEntry(
            hash=obj_hash,
            path=join_tree_path(directory, name),
            type=obj_type,
            size=size,
        ))
    return entries

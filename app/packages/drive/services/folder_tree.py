"""文件夹树构建：由扁平的文件夹记录还原森林结构（纯函数，无 I/O）。

- 节点按 id 放入 ``nodes``，父子关系通过 ``children`` 列表维护，子节点顺序即输入顺序；
- parent_folder_id 为空的记录为树根；父节点不在输入集合中的记录视为孤儿，不出现在结果中；
- 祖先链回到自身的记录（环）被标记为 ``cyclic``，既不挂到父节点下，也不参与遍历。
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Iterator, List, Optional, Protocol, Set


class FolderLike(Protocol):
    id: str
    name: str
    parent_folder_id: Optional[str]
    path: str
    key_prefix: str


@dataclass
class FolderNode:
    id: str
    name: str
    parent_folder_id: Optional[str]
    path: str
    key_prefix: str
    children: List["FolderNode"] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "parent_folder_id": self.parent_folder_id,
            "path": self.path,
            "children": [child.to_dict() for child in self.children],
        }


@dataclass
class FolderForest:
    roots: List[FolderNode]
    nodes: Dict[str, FolderNode]
    cyclic: Set[str]

    def get(self, folder_id: str) -> Optional[FolderNode]:
        if folder_id in self.cyclic:
            return None
        return self.nodes.get(folder_id)

    def descendants(self, folder_id: str) -> Iterator[FolderNode]:
        """深度优先遍历某节点的全部后代（不含自身）。"""
        start = self.get(folder_id)
        if start is None:
            return
        visited: Set[str] = {start.id}
        stack = list(reversed(start.children))
        while stack:
            node = stack.pop()
            if node.id in visited:
                continue
            visited.add(node.id)
            yield node
            stack.extend(reversed(node.children))

    def to_dicts(self) -> List[Dict[str, Any]]:
        return [root.to_dict() for root in self.roots]


def _find_cyclic(parents: Dict[str, Optional[str]]) -> Set[str]:
    cyclic: Set[str] = set()
    for start in parents:
        seen: Set[str] = set()
        current: Optional[str] = start
        while current is not None and current in parents:
            if current in seen:
                if current == start:
                    cyclic.add(start)
                break
            seen.add(current)
            current = parents[current]
    return cyclic


def build_forest(folders: Iterable[FolderLike]) -> FolderForest:
    records = list(folders)
    nodes: Dict[str, FolderNode] = {}
    for f in records:
        nodes[f.id] = FolderNode(
            id=f.id,
            name=f.name,
            parent_folder_id=f.parent_folder_id,
            path=f.path,
            key_prefix=f.key_prefix,
        )

    cyclic = _find_cyclic({f.id: f.parent_folder_id for f in records})

    roots: List[FolderNode] = []
    for f in records:
        if f.id in cyclic:
            continue
        node = nodes[f.id]
        if f.parent_folder_id is None:
            roots.append(node)
            continue
        parent = nodes.get(f.parent_folder_id)
        if parent is not None and parent.id not in cyclic:
            parent.children.append(node)
    return FolderForest(roots=roots, nodes=nodes, cyclic=cyclic)

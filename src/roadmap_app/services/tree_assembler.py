"""Hierarchical assembly of a roadmap's flat node collection.

The structural parent edge is ``RoadmapNode.prerequisites``: a node's first
prerequisite is the node it was generated under, and a node without
prerequisites is a root. ``dependencies`` never shape the tree.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence

from ..constants import DEFAULT_MAX_TREE_DEPTH
from ..utils.logging_config import get_logger

logger = get_logger("tree")


@dataclass
class TreeNode:
    node: Any
    children: List['TreeNode'] = field(default_factory=list)

    @property
    def id(self):
        return self.node.id

    def to_dict(self) -> Dict[str, Any]:
        data = self.node.to_dict() if hasattr(self.node, 'to_dict') else {'id': self.node.id}
        data['children'] = [child.to_dict() for child in self.children]
        return data


def _sort_key(node: Any):
    return (node.depth, node.position)


def _parent_id(node: Any) -> Optional[int]:
    prerequisites = node.prerequisites
    return prerequisites[0] if prerequisites else None


def assemble_tree(nodes: Iterable[Any], max_depth: int = DEFAULT_MAX_TREE_DEPTH * 4) -> List[TreeNode]:
    """Nest nodes under their structural parent.

    Candidates are visited in ascending (depth, position) at every level. A
    child is attached only when it sits exactly one level below the parent
    and names it as its parent, so malformed edges (self references,
    cycles, depth jumps) cannot loop; nodes that fail to attach are logged
    and left out.
    """
    ordered = sorted(nodes, key=_sort_key)
    by_parent: Dict[Optional[int], List[Any]] = {}
    for node in ordered:
        by_parent.setdefault(_parent_id(node), []).append(node)

    roots = [TreeNode(node) for node in by_parent.get(None, [])]
    attached = {tree.id for tree in roots}

    stack = [(tree, 0) for tree in reversed(roots)]
    while stack:
        tree, level = stack.pop()
        if level >= max_depth:
            logger.warning(f"Tree assembly stopped at depth {level} below node {tree.id}")
            continue
        for candidate in by_parent.get(tree.id, []):
            if candidate.id in attached or candidate.depth != tree.node.depth + 1:
                continue
            child = TreeNode(candidate)
            attached.add(candidate.id)
            tree.children.append(child)
        stack.extend((child, level + 1) for child in reversed(tree.children))

    skipped = [node.id for node in ordered if node.id not in attached]
    if skipped:
        logger.warning(f"Skipped {len(skipped)} node(s) with no reachable parent: {skipped[:10]}")
    return roots


def flatten_tree(roots: Sequence[TreeNode]) -> List[Any]:
    """Pre-order flattening; inverse of :func:`assemble_tree` for well-formed trees."""
    flat: List[Any] = []
    stack = list(reversed(roots))
    while stack:
        tree = stack.pop()
        flat.append(tree.node)
        stack.extend(reversed(tree.children))
    return flat


def tree_shape(roots: Sequence[TreeNode]) -> List[Any]:
    """Nested ``(id, [children...])`` tuples, handy for comparing trees."""
    return [(tree.id, tree_shape(tree.children)) for tree in roots]

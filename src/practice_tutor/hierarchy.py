"""Resolve flat route items into an ordered topic/subtopic tree."""
import logging
from dataclasses import dataclass, field
from typing import Iterable, Iterator, Optional

from practice_tutor.models import ContentNode, NodeKind

logger = logging.getLogger(__name__)


@dataclass
class TreeNode:
    node: ContentNode
    children: list = field(default_factory=list)

    @property
    def id(self) -> int:
        return self.node.id

    @property
    def name(self) -> Optional[str]:
        return self.node.display_name

    @property
    def kind(self) -> str:
        return self.node.kind


def _closes_cycle(node_id: int, parent_id: int, parents: dict) -> bool:
    """True if linking node_id under parent_id would make node_id its own ancestor."""
    current = parent_id
    seen = set()
    while current is not None and current not in seen:
        if current == node_id:
            return True
        seen.add(current)
        current = parents.get(current)
    return False


def _sort_children(nodes: list) -> None:
    nodes.sort(key=lambda t: t.node.order_index)
    for tree_node in nodes:
        _sort_children(tree_node.children)


def resolve_tree(nodes: Iterable[ContentNode]) -> list:
    """Build the ordered forest for a route from its flat list of items.

    Items whose parent cannot be found, or whose parent link would close a
    cycle, are placed at the root. Every input item appears exactly once.
    """
    nodes = list(nodes)
    lookup = {n.id: TreeNode(node=n) for n in nodes}
    parents = {}
    roots = []

    for n in nodes:
        tree_node = lookup[n.id]
        parent_id = n.parent_id
        if parent_id is None:
            roots.append(tree_node)
            continue
        if parent_id not in lookup:
            logger.debug("Route item %s has unknown parent %s, treating as root", n.id, parent_id)
            roots.append(tree_node)
            continue
        if _closes_cycle(n.id, parent_id, parents):
            logger.warning("Route item %s would form a cycle via parent %s, treating as root", n.id, parent_id)
            roots.append(tree_node)
            continue
        parents[n.id] = parent_id
        lookup[parent_id].children.append(tree_node)

    _sort_children(roots)
    return roots


def iter_nodes(tree: list) -> Iterator[TreeNode]:
    """Depth-first walk over every node of the forest, in display order."""
    for tree_node in tree:
        yield tree_node
        yield from iter_nodes(tree_node.children)


def find_node(tree: list, node_id: int) -> Optional[TreeNode]:
    for tree_node in iter_nodes(tree):
        if tree_node.id == node_id:
            return tree_node
    return None


def topics(tree: list) -> list:
    return [t for t in tree if t.kind == NodeKind.TOPIC.value]


def subtopics_of(topic: TreeNode) -> list:
    return [c for c in topic.children if c.kind == NodeKind.SUBTOPIC.value]


def leaves_of(topic: TreeNode) -> list:
    """Subtopic children of a topic, or the topic itself when it has none."""
    return subtopics_of(topic) or [topic]

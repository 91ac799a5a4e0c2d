"""In-memory tag graph loaded from the memory server.

The server delivers the hierarchy as a rooted forest. Because a tag may have
several parents, one tag can occur at several positions of that forest. All
lookups here walk occurrences in a fixed pre-order (roots in server order,
children in server order) so that results are deterministic.

A linked forest shares one TreeNode object per tag: every position a tag
occupies points at the same subtree. Walks that only need distinct tags skip
an object they have already seen; walks defined over positions do not.
"""

from __future__ import annotations

import logging
from typing import Callable, Dict, Iterator, List, Optional, Set, Tuple

from .errors import TagHierarchyError, TreeDepthError
from .interfaces import ITagHierarchyApi
from .models import TagPath, TreeNode

logger = logging.getLogger(__name__)

DEFAULT_MAX_DEPTH = 64

# DFS colours used while linking
WHITE, GREY, BLACK = 0, 1, 2


def iter_occurrences(
    roots: List[TreeNode],
    max_depth: int = DEFAULT_MAX_DEPTH,
    distinct: bool = False,
) -> Iterator[Tuple[TreeNode, int, List[TagPath]]]:
    """Yield (node, depth, path) for every position in the forest, pre-order.

    With `distinct`, a node object already yielded is neither yielded nor
    descended into again. Its subtree was visited at its first position, so
    the first occurrence of every tag is still found.

    Raises:
        TreeDepthError: A node sits at depth max_depth or deeper.
    """
    seen: Set[int] = set()
    stack: List[Tuple[TreeNode, int, Tuple[TagPath, ...]]] = [
        (root, 0, (TagPath(id=root.id, name=root.name),)) for root in reversed(roots)
    ]
    while stack:
        node, depth, path = stack.pop()
        if distinct:
            if id(node) in seen:
                continue
            seen.add(id(node))
        if depth >= max_depth:
            raise TreeDepthError(max_depth, node.id)
        yield node, depth, list(path)
        for child in reversed(node.children):
            stack.append((child, depth + 1, path + (TagPath(id=child.id, name=child.name),)))


def collect_node_ids(roots: List[TreeNode], max_depth: int = DEFAULT_MAX_DEPTH) -> Set[int]:
    """Every tag id reachable from the roots."""
    return {node.id for node, _, _ in iter_occurrences(roots, max_depth, distinct=True)}


def needs_linking(nodes: List[TreeNode]) -> bool:
    """True when the payload lists every tag at top level with shallow stubs."""
    return any(node.parents for node in nodes)


def link_forest(nodes: List[TreeNode], max_depth: int = DEFAULT_MAX_DEPTH) -> List[TreeNode]:
    """Rebuild a rooted forest from a flat list of tags with one-level stubs.

    Roots are the listed tags without parents, in payload order. Each child
    stub is replaced by the linked node for its id. Every tag is built once
    and the same node is shared by all its positions. An edge that closes a
    cycle is cut where the depth-first walk meets it. A stub whose id is not
    listed is dropped.

    Args:
        nodes: Every tag, each with shallow `children` and `parents` stubs.
        max_depth: Maximum nesting allowed below a root.

    Returns:
        The rooted forest.

    Raises:
        TreeDepthError: Some position lies max_depth or more below a root.
    """
    by_id: Dict[int, TreeNode] = {}
    for node in nodes:
        by_id.setdefault(node.id, node)

    colour: Dict[int, int] = {}
    built: Dict[int, TreeNode] = {}
    height: Dict[int, int] = {}

    def visit(root_id: int) -> None:
        # Frames are (tag id, remaining child stubs, linked child ids).
        colour[root_id] = GREY
        stack: List[Tuple[int, Iterator[TreeNode], List[int]]] = [
            (root_id, iter(by_id[root_id].children), [])
        ]
        while stack:
            tag_id, pending, linked = stack[-1]
            stub = next(pending, None)

            if stub is None:
                stack.pop()
                source = by_id[tag_id]
                built[tag_id] = TreeNode(
                    id=source.id,
                    name=source.name,
                    children=[built[child_id] for child_id in linked],
                    parents=[TreeNode(id=p.id, name=p.name) for p in source.parents],
                )
                height[tag_id] = max((height[child_id] + 1 for child_id in linked), default=0)
                colour[tag_id] = BLACK
                if stack:
                    stack[-1][2].append(tag_id)
                continue

            if stub.id not in by_id:
                logger.warning(f"Tag {tag_id} lists unknown child {stub.id}; ignored")
                continue

            state = colour.get(stub.id, WHITE)
            if state == GREY:
                logger.warning(f"Cycle through tag {stub.id} below tag {tag_id}; edge cut")
                continue
            # The child sits at depth len(stack).
            if state == BLACK:
                if len(stack) + height[stub.id] >= max_depth:
                    raise TreeDepthError(max_depth, stub.id)
                linked.append(stub.id)
                continue
            if len(stack) >= max_depth:
                raise TreeDepthError(max_depth, stub.id)
            colour[stub.id] = GREY
            stack.append((stub.id, iter(by_id[stub.id].children), []))

    roots: List[TreeNode] = []
    for node in nodes:
        if node.parents:
            continue
        if node.id not in built:
            visit(node.id)
        roots.append(built[node.id])

    unreachable = [tag_id for tag_id in by_id if tag_id not in built]
    if unreachable:
        logger.warning(f"Tags not reachable from any root were left out: {unreachable}")
    return roots


class TagGraph:
    """Tag forest cache with deterministic lookup helpers.

    The forest is only ever replaced wholesale by `load()`. A failed load
    keeps the previous forest available.
    """

    def __init__(self, api: ITagHierarchyApi, max_depth: Optional[int] = None):
        """Initialize the graph.

        Args:
            api: Source of the tag tree.
            max_depth: Depth guard for every walk. If None, loaded from settings.
        """
        if max_depth is None:
            from ..config import settings
            max_depth = settings.max_depth

        self.api = api
        self.max_depth = max_depth
        self.roots: List[TreeNode] = []
        self.loaded = False
        self.loading = False
        self.error: Optional[str] = None
        self.version = 0
        self._reload_listeners: List[Callable[[], None]] = []

    def add_reload_listener(self, callback: Callable[[], None]) -> None:
        """Register a callback run after every successful load."""
        self._reload_listeners.append(callback)

    async def load(self) -> List[TreeNode]:
        """Replace the forest with a fresh copy from the server.

        Returns:
            The new list of roots.

        Raises:
            NetworkError, ServerError: The fetch failed; the previous forest
                is kept.
            TreeDepthError: The payload is deeper than max_depth; the
                previous forest is kept.
        """
        self.loading = True
        try:
            payload = await self.api.get_tree()
            if needs_linking(payload):
                roots = link_forest(payload, self.max_depth)
            else:
                roots = payload
                for _ in iter_occurrences(roots, self.max_depth):
                    pass
        except TagHierarchyError as e:
            self.error = e.message
            logger.warning(f"Failed to load tag tree: {e.message}")
            raise
        finally:
            self.loading = False

        self.roots = roots
        self.loaded = True
        self.error = None
        self.version += 1
        logger.info(f"Loaded tag tree: {len(roots)} roots (version {self.version})")

        for callback in self._reload_listeners:
            callback()
        return roots

    def find_node(self, tag_id: int) -> Optional[TreeNode]:
        """Return the first occurrence of a tag in pre-order, or None."""
        for node, _, _ in iter_occurrences(self.roots, self.max_depth, distinct=True):
            if node.id == tag_id:
                return node
        return None

    def path_to(self, tag_id: int) -> List[TagPath]:
        """Return the root-to-tag path of the first occurrence, or []."""
        for node, _, path in iter_occurrences(self.roots, self.max_depth, distinct=True):
            if node.id == tag_id:
                return path
        return []

    def count_nodes(self, node: TreeNode) -> int:
        """Count a node and everything below it, once per position."""
        return sum(1 for _ in iter_occurrences([node], self.max_depth))

    def total_nodes(self) -> int:
        """Count every position in the forest."""
        return sum(self.count_nodes(root) for root in self.roots)

    def all_node_ids(self) -> Set[int]:
        """Distinct ids of every tag in the forest."""
        return collect_node_ids(self.roots, self.max_depth)

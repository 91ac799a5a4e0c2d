"""Tree projection and search.

Pure functions that turn a tag forest plus an expand-set into display rows,
and a small state object holding the expand/select state they read.
Expand and select state is keyed by tag id, so every occurrence of a shared
tag expands together.
"""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional, Set, Tuple

from .errors import TreeDepthError
from .graph import DEFAULT_MAX_DEPTH, collect_node_ids
from .models import FlatTag, TagPath, TreeNode

logger = logging.getLogger(__name__)


def flatten(
    roots: List[TreeNode],
    expanded_ids: Iterable[int],
    max_depth: int = DEFAULT_MAX_DEPTH,
) -> List[FlatTag]:
    """Flatten the forest into ordered display rows.

    Every visited node contributes one row. Children are visited only when
    the node's id is in `expanded_ids`, so a collapsed node stands for its
    whole subtree.

    Args:
        roots: Forest roots in display order.
        expanded_ids: Ids of expanded tags. Unknown ids are ignored.
        max_depth: Depth guard.

    Returns:
        Rows in pre-order, depth 0 for roots.
    """
    expanded = expanded_ids if isinstance(expanded_ids, (set, frozenset)) else set(expanded_ids)
    rows: List[FlatTag] = []
    stack: List[Tuple[TreeNode, int, Tuple[TagPath, ...]]] = [
        (root, 0, ()) for root in reversed(roots)
    ]
    while stack:
        node, depth, parent_path = stack.pop()
        if depth >= max_depth:
            raise TreeDepthError(max_depth, node.id)
        path = parent_path + (TagPath(id=node.id, name=node.name),)
        is_expanded = node.id in expanded
        rows.append(
            FlatTag(
                id=node.id,
                name=node.name,
                depth=depth,
                path=list(path),
                has_children=node.has_children,
                is_expanded=is_expanded,
            )
        )
        if is_expanded:
            for child in reversed(node.children):
                stack.append((child, depth + 1, path))
    return rows


def filter_by_search_term(
    tree: List[TreeNode],
    term: Optional[str],
    max_depth: int = DEFAULT_MAX_DEPTH,
) -> List[TreeNode]:
    """Prune the forest to nodes whose name matches, plus their ancestors.

    Matching is a case-insensitive substring test on the name. A node is
    kept if it matches or if any descendant matches; a kept node keeps only
    the children that are themselves kept. A blank term returns the forest
    unchanged. The input is never modified.
    """
    if not term or not term.strip():
        return list(tree)

    needle = term.strip().lower()
    # Shared subtrees are pruned once: node object id -> (pruned node, height)
    done: Dict[int, Tuple[Optional[TreeNode], int]] = {}

    def prune(node: TreeNode, depth: int) -> Optional[TreeNode]:
        if id(node) in done:
            pruned, height = done[id(node)]
            if depth + height >= max_depth:
                raise TreeDepthError(max_depth, node.id)
            return pruned
        if depth >= max_depth:
            raise TreeDepthError(max_depth, node.id)
        kept: List[TreeNode] = []
        height = 0
        for child in node.children:
            pruned_child = prune(child, depth + 1)
            height = max(height, done[id(child)][1] + 1)
            if pruned_child is not None:
                kept.append(pruned_child)
        pruned = node.model_copy(update={"children": kept}) if kept or needle in node.name.lower() else None
        done[id(node)] = (pruned, height)
        return pruned

    return [n for n in (prune(root, 0) for root in tree) if n is not None]


class ProjectionState:
    """Client-local expand/select state.

    Starts empty and is reset whenever the graph is reloaded. Ids that no
    longer exist after a reload are harmless.
    """

    def __init__(self) -> None:
        self.expanded_ids: Set[int] = set()
        self.selected_id: Optional[int] = None

    def is_expanded(self, tag_id: int) -> bool:
        return tag_id in self.expanded_ids

    def toggle(self, tag_id: int) -> None:
        if tag_id in self.expanded_ids:
            self.expanded_ids.discard(tag_id)
        else:
            self.expanded_ids.add(tag_id)

    def expand(self, tag_id: int) -> None:
        self.expanded_ids.add(tag_id)

    def collapse(self, tag_id: int) -> None:
        self.expanded_ids.discard(tag_id)

    def expand_all(self, roots: List[TreeNode], max_depth: int = DEFAULT_MAX_DEPTH) -> None:
        # Assigned in one step: a tag reachable through two parents must not
        # be toggled twice.
        self.expanded_ids = collect_node_ids(roots, max_depth)

    def collapse_all(self) -> None:
        self.expanded_ids = set()

    def select(self, tag_id: Optional[int]) -> None:
        self.selected_id = tag_id

    def reset(self) -> None:
        logger.debug("Projection state reset")
        self.expanded_ids = set()
        self.selected_id = None

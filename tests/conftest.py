"""Shared fixtures for memtags tests."""

from typing import Dict, List, Optional, Set, Tuple

import pytest

from memtags.core.errors import ServerError
from memtags.core.interfaces import ITagHierarchyApi
from memtags.core.models import LinkedPairResult, Tag, TreeNode


def make_node(tag_id: int, name: str, children: Optional[List[TreeNode]] = None) -> TreeNode:
    return TreeNode(id=tag_id, name=name, children=children or [])


def ladder_payload(levels: int) -> List[TreeNode]:
    """Flat tree payload with two tags per level, each a parent of both tags below.

    Tag ids on level i are 2i+1 and 2i+2. Level 0 holds the two roots.
    """
    def level(i: int) -> List[TreeNode]:
        if i < 0 or i >= levels:
            return []
        return [TreeNode(id=2 * i + 1, name=f"l{i}a"), TreeNode(id=2 * i + 2, name=f"l{i}b")]

    return [
        TreeNode(id=stub.id, name=stub.name, children=level(i + 1), parents=level(i - 1))
        for i in range(levels)
        for stub in level(i)
    ]


class FakeTagApi(ITagHierarchyApi):
    """In-memory stand-in for the memory server's tag endpoints.

    Serves /tags/tree in the server's flat form: every tag at top level with
    one-level child and parent stubs, ordered by name.
    """

    def __init__(self, tags: Dict[int, str], edges: Set[Tuple[int, int]]):
        self.tags = dict(tags)
        self.edges = set(edges)  # (child_id, parent_id)
        self.calls: List[Tuple[str, tuple]] = []

    def _parents_of(self, tag_id: int) -> List[int]:
        return sorted(p for c, p in self.edges if c == tag_id)

    def _children_of(self, tag_id: int) -> List[int]:
        return sorted(c for c, p in self.edges if p == tag_id)

    def _closure(self, tag_id: int, step) -> List[int]:
        seen: List[int] = []
        frontier = step(tag_id)
        while frontier:
            current = frontier.pop(0)
            if current not in seen:
                seen.append(current)
                frontier.extend(step(current))
        return seen

    def _stub(self, tag_id: int) -> TreeNode:
        return TreeNode(id=tag_id, name=self.tags[tag_id])

    async def get_tree(self) -> List[TreeNode]:
        self.calls.append(("get_tree", ()))
        return [
            TreeNode(
                id=tag_id,
                name=name,
                children=[self._stub(c) for c in self._children_of(tag_id)],
                parents=[self._stub(p) for p in self._parents_of(tag_id)],
            )
            for tag_id, name in sorted(self.tags.items(), key=lambda item: item[1])
        ]

    async def get_ancestors(self, tag_id: int) -> List[Tag]:
        return [Tag(id=i, name=self.tags[i]) for i in self._closure(tag_id, self._parents_of)]

    async def get_descendants(self, tag_id: int) -> List[Tag]:
        return [Tag(id=i, name=self.tags[i]) for i in self._closure(tag_id, self._children_of)]

    async def get_parents(self, tag_id: int) -> List[Tag]:
        return [Tag(id=i, name=self.tags[i]) for i in self._parents_of(tag_id)]

    async def get_children(self, tag_id: int) -> List[Tag]:
        return [Tag(id=i, name=self.tags[i]) for i in self._children_of(tag_id)]

    async def add_parent(self, child_id: int, parent_id: int) -> None:
        self.calls.append(("add_parent", (child_id, parent_id)))
        if child_id not in self.tags or parent_id not in self.tags:
            raise ServerError("Invalid tag ID: One or both tags do not exist", status_code=400)
        if (child_id, parent_id) in self.edges:
            raise ServerError("Parent relationship already exists", status_code=409)
        if parent_id == child_id or parent_id in self._closure(child_id, self._children_of):
            raise ServerError(
                "Circular reference detected: Cannot create hierarchy that would result in a cycle",
                status_code=400,
            )
        self.edges.add((child_id, parent_id))

    async def remove_parent(self, child_id: int, parent_id: int) -> None:
        self.calls.append(("remove_parent", (child_id, parent_id)))
        if (child_id, parent_id) not in self.edges:
            raise ServerError("Parent relationship not found", status_code=404)
        self.edges.discard((child_id, parent_id))

    async def create_with_parent(self, child_name: str, parent_name: str) -> LinkedPairResult:
        self.calls.append(("create_with_parent", (child_name, parent_name)))
        by_name = {name: tag_id for tag_id, name in self.tags.items()}
        created = {}
        for name in (child_name, parent_name):
            created[name] = name not in by_name
            if created[name]:
                new_id = max(self.tags, default=0) + 1
                self.tags[new_id] = name
                by_name[name] = new_id
        await self.add_parent(by_name[child_name], by_name[parent_name])
        return LinkedPairResult(
            child_tag=Tag(id=by_name[child_name], name=child_name),
            parent_tag=Tag(id=by_name[parent_name], name=parent_name),
            created_child=created[child_name],
            created_parent=created[parent_name],
            relationship_created=True,
        )


@pytest.fixture
def lang_forest() -> List[TreeNode]:
    """lang(1) with children rust(2) and go(3)."""
    return [make_node(1, "lang", [make_node(2, "rust"), make_node(3, "go")])]


@pytest.fixture
def diamond_forest() -> List[TreeNode]:
    """rust(4) is shared by systems(2) and compiled(3), both under lang(1).

    lang
      systems
        rust
          cargo
      compiled
        rust
          cargo
    misc
    """
    def rust() -> TreeNode:
        return make_node(4, "rust", [make_node(5, "cargo")])

    return [
        make_node(1, "lang", [
            make_node(2, "systems", [rust()]),
            make_node(3, "compiled", [rust()]),
        ]),
        make_node(6, "misc"),
    ]


@pytest.fixture
def fake_api() -> FakeTagApi:
    """Server holding lang(1), rust(2), go(3), misc(4) with rust and go under lang."""
    return FakeTagApi(
        tags={1: "lang", 2: "rust", 3: "go", 4: "misc"},
        edges={(2, 1), (3, 1)},
    )

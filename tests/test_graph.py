"""Tests for the tag graph model."""

import logging
from unittest.mock import AsyncMock, MagicMock

import pytest

from conftest import ladder_payload, make_node
from memtags.core.errors import NetworkError, TreeDepthError
from memtags.core.graph import TagGraph, iter_occurrences, link_forest, needs_linking
from memtags.core.interfaces import ITagHierarchyApi
from memtags.core.models import TagPath, TreeNode
from memtags.core.projection import flatten


def graph_over(roots, max_depth=64) -> TagGraph:
    api = AsyncMock(spec=ITagHierarchyApi)
    api.get_tree.return_value = roots
    return TagGraph(api, max_depth=max_depth)


def chain(length: int) -> TreeNode:
    node = make_node(length, f"tag-{length}")
    for tag_id in range(length - 1, 0, -1):
        node = make_node(tag_id, f"tag-{tag_id}", [node])
    return node


class TestLoad:
    """Loading and reloading the forest."""

    @pytest.mark.asyncio
    async def test_load_replaces_roots(self, lang_forest):
        graph = graph_over(lang_forest)
        roots = await graph.load()

        assert roots == lang_forest
        assert graph.roots == lang_forest
        assert graph.loaded is True
        assert graph.version == 1
        assert graph.error is None

    @pytest.mark.asyncio
    async def test_load_notifies_listeners(self, lang_forest):
        graph = graph_over(lang_forest)
        listener = MagicMock()
        graph.add_reload_listener(listener)

        await graph.load()
        await graph.load()

        assert listener.call_count == 2
        assert graph.version == 2

    @pytest.mark.asyncio
    async def test_failed_load_keeps_previous_forest(self, lang_forest):
        graph = graph_over(lang_forest)
        listener = MagicMock()
        graph.add_reload_listener(listener)
        await graph.load()

        graph.api.get_tree.side_effect = NetworkError("Connection refused")
        with pytest.raises(NetworkError):
            await graph.load()

        assert graph.roots == lang_forest
        assert graph.version == 1
        assert graph.error == "Connection refused"
        assert graph.loading is False
        assert listener.call_count == 1

    @pytest.mark.asyncio
    async def test_too_deep_payload_is_rejected(self, lang_forest):
        graph = graph_over(lang_forest, max_depth=5)
        await graph.load()

        graph.api.get_tree.return_value = [chain(6)]
        with pytest.raises(TreeDepthError):
            await graph.load()

        assert graph.roots == lang_forest

    @pytest.mark.asyncio
    async def test_flat_payload_is_linked(self):
        payload = [
            TreeNode.model_validate(item)
            for item in [
                {"id": 3, "name": "go", "children": [], "parents": [{"id": 1, "name": "lang"}]},
                {
                    "id": 1,
                    "name": "lang",
                    "children": [{"id": 2, "name": "rust"}, {"id": 3, "name": "go"}],
                    "parents": [],
                },
                {"id": 2, "name": "rust", "children": [], "parents": [{"id": 1, "name": "lang"}]},
            ]
        ]
        graph = graph_over(payload)
        roots = await graph.load()

        assert [r.name for r in roots] == ["lang"]
        assert [c.name for c in roots[0].children] == ["rust", "go"]
        assert [p.id for p in roots[0].children[1].parents] == [1]


class TestLookup:
    """find_node, path_to and count_nodes."""

    @pytest.mark.asyncio
    async def test_count_nodes_scenario(self, lang_forest):
        graph = graph_over(lang_forest)
        await graph.load()

        assert graph.count_nodes(graph.find_node(1)) == 3
        assert graph.count_nodes(graph.find_node(2)) == 1

    @pytest.mark.asyncio
    async def test_count_nodes_counts_every_position(self, diamond_forest):
        graph = graph_over(diamond_forest)
        await graph.load()

        assert graph.count_nodes(graph.roots[0]) == 7
        assert graph.total_nodes() == 8
        assert graph.all_node_ids() == {1, 2, 3, 4, 5, 6}

    @pytest.mark.asyncio
    async def test_find_node_returns_first_preorder_occurrence(self, diamond_forest):
        graph = graph_over(diamond_forest)
        await graph.load()

        node = graph.find_node(4)
        assert node is diamond_forest[0].children[0].children[0]
        assert graph.find_node(99) is None
        assert graph.find_node(5).name == "cargo"

    @pytest.mark.asyncio
    async def test_path_to_follows_first_occurrence(self, diamond_forest):
        graph = graph_over(diamond_forest)
        await graph.load()

        assert graph.path_to(5) == [
            TagPath(id=1, name="lang"),
            TagPath(id=2, name="systems"),
            TagPath(id=4, name="rust"),
            TagPath(id=5, name="cargo"),
        ]
        assert graph.path_to(6) == [TagPath(id=6, name="misc")]
        assert graph.path_to(99) == []

    def test_lookups_on_empty_graph(self):
        graph = graph_over([])

        assert graph.find_node(1) is None
        assert graph.path_to(1) == []
        assert graph.total_nodes() == 0


class TestIterOccurrences:
    def test_preorder_with_depths(self, diamond_forest):
        visited = [(node.name, depth) for node, depth, _ in iter_occurrences(diamond_forest)]

        assert visited == [
            ("lang", 0),
            ("systems", 1),
            ("rust", 2),
            ("cargo", 3),
            ("compiled", 1),
            ("rust", 2),
            ("cargo", 3),
            ("misc", 0),
        ]

    def test_depth_guard(self):
        with pytest.raises(TreeDepthError) as exc_info:
            list(iter_occurrences([chain(4)], max_depth=3))

        assert exc_info.value.details["tag_id"] == 4

    def test_distinct_skips_shared_objects(self):
        shared = make_node(3, "c", [make_node(4, "d")])
        roots = [make_node(1, "a", [shared]), make_node(2, "b", [shared])]

        assert [n.id for n, _, _ in iter_occurrences(roots)] == [1, 3, 4, 2, 3, 4]
        assert [n.id for n, _, _ in iter_occurrences(roots, distinct=True)] == [1, 3, 4, 2]


class TestLinkForest:
    """Rebuilding a forest from the flat tree payload."""

    def test_needs_linking(self, lang_forest):
        assert needs_linking(lang_forest) is False
        assert needs_linking([TreeNode(id=2, name="rust", parents=[TreeNode(id=1, name="lang")])]) is True

    def test_shared_child_appears_under_each_parent(self):
        nodes = [
            TreeNode(id=1, name="a", children=[TreeNode(id=3, name="c")]),
            TreeNode(id=2, name="b", children=[TreeNode(id=3, name="c")]),
            TreeNode(
                id=3,
                name="c",
                children=[TreeNode(id=4, name="d")],
                parents=[TreeNode(id=1, name="a"), TreeNode(id=2, name="b")],
            ),
            TreeNode(id=4, name="d", parents=[TreeNode(id=3, name="c")]),
        ]

        roots = link_forest(nodes)

        assert [r.id for r in roots] == [1, 2]
        for root in roots:
            assert [c.id for c in root.children] == [3]
            assert [g.id for g in root.children[0].children] == [4]

    def test_cycle_is_cut(self):
        nodes = [
            TreeNode(id=1, name="root", children=[TreeNode(id=2, name="x")]),
            TreeNode(
                id=2,
                name="x",
                children=[TreeNode(id=3, name="y")],
                parents=[TreeNode(id=1, name="root"), TreeNode(id=3, name="y")],
            ),
            TreeNode(
                id=3,
                name="y",
                children=[TreeNode(id=2, name="x")],
                parents=[TreeNode(id=2, name="x")],
            ),
        ]

        roots = link_forest(nodes)

        x = roots[0].children[0]
        y = x.children[0]
        assert (x.id, y.id) == (2, 3)
        assert y.children == []

    def test_unknown_child_is_ignored(self):
        nodes = [
            TreeNode(id=1, name="root", children=[TreeNode(id=2, name="x"), TreeNode(id=9, name="ghost")]),
            TreeNode(id=2, name="x", parents=[TreeNode(id=1, name="root")]),
        ]

        roots = link_forest(nodes)

        assert [c.id for c in roots[0].children] == [2]

    def test_depth_guard(self):
        nodes = [TreeNode(id=1, name="t1", children=[TreeNode(id=2, name="t2")])]
        for tag_id in range(2, 6):
            nodes.append(
                TreeNode(
                    id=tag_id,
                    name=f"t{tag_id}",
                    children=[TreeNode(id=tag_id + 1, name=f"t{tag_id + 1}")] if tag_id < 5 else [],
                    parents=[TreeNode(id=tag_id - 1, name=f"t{tag_id - 1}")],
                )
            )

        assert len(link_forest(nodes, max_depth=5)[0].children) == 1
        with pytest.raises(TreeDepthError):
            link_forest(nodes, max_depth=4)

    def test_shared_tags_are_linked_once(self):
        roots = link_forest(ladder_payload(24))

        assert [r.id for r in roots] == [1, 2]
        assert roots[0].children[0] is roots[1].children[0]
        assert roots[0].children[0].children[1] is roots[0].children[1].children[1]

    def test_depth_guard_covers_shared_subtrees(self):
        # 4 is first built at depth 1 and met again at depth 3 via 2 -> 3.
        nodes = [
            TreeNode(id=1, name="t1", children=[TreeNode(id=4, name="t4"), TreeNode(id=2, name="t2")]),
            TreeNode(id=2, name="t2", children=[TreeNode(id=3, name="t3")], parents=[TreeNode(id=1, name="t1")]),
            TreeNode(id=3, name="t3", children=[TreeNode(id=4, name="t4")], parents=[TreeNode(id=2, name="t2")]),
            TreeNode(
                id=4,
                name="t4",
                children=[TreeNode(id=5, name="t5")],
                parents=[TreeNode(id=1, name="t1"), TreeNode(id=3, name="t3")],
            ),
            TreeNode(id=5, name="t5", parents=[TreeNode(id=4, name="t4")]),
        ]

        assert [r.id for r in link_forest(nodes, max_depth=5)] == [1]
        with pytest.raises(TreeDepthError) as exc_info:
            link_forest(nodes, max_depth=4)
        assert exc_info.value.details["tag_id"] == 4

    def test_unreachable_tags_are_logged(self, caplog):
        nodes = [
            TreeNode(id=1, name="root"),
            TreeNode(id=2, name="x", children=[TreeNode(id=3, name="y")], parents=[TreeNode(id=3, name="y")]),
            TreeNode(id=3, name="y", children=[TreeNode(id=2, name="x")], parents=[TreeNode(id=2, name="x")]),
        ]

        with caplog.at_level(logging.WARNING, logger="memtags.core.graph"):
            roots = link_forest(nodes)

        assert [r.id for r in roots] == [1]
        assert "not reachable from any root" in caplog.text
        assert "[2, 3]" in caplog.text


class TestLadderGraph:
    """Many tags with two parents each."""

    @pytest.mark.asyncio
    async def test_load_and_lookups_stay_linear(self):
        graph = graph_over(ladder_payload(24))
        roots = await graph.load()

        assert len(roots) == 2
        assert len(flatten(roots, set())) == 2
        assert graph.all_node_ids() == set(range(1, 49))
        assert graph.find_node(47).name == "l23a"
        assert [step.id for step in graph.path_to(48)] == list(range(1, 47, 2)) + [48]
        assert graph.find_node(99) is None

"""End-to-end tests of the engine against a real Neo4j database.

Run with:
    pytest tests/integration -m integration -v
"""

import pytest

from graphdone.exceptions import ErrorKind

pytestmark = [pytest.mark.integration]


async def _node(service, title, **fields):
    result = await service.create_node({"title": title, **fields})
    assert result.success, result.error
    return result.data["id"]


class TestNodesAndEdges:
    """Create, browse and traverse WorkItems."""

    async def test_create_and_browse(self, graph_service):
        node_id = await _node(
            graph_service, "Design API", type="EPIC", contributor_ids=["alice"]
        )

        result = await graph_service.browse_graph("by_contributor", {"contributor_id": "alice"})

        assert result.success
        assert [n["id"] for n in result.data["nodes"]] == [node_id]
        assert result.data["pagination"]["total_count"] == 1

    async def test_edges_and_paths(self, graph_service):
        a = await _node(graph_service, "A")
        b = await _node(graph_service, "B")
        c = await _node(graph_service, "C")
        await graph_service.create_edge(a, b, "DEPENDS_ON")
        await graph_service.create_edge(b, c, "DEPENDS_ON")

        repeat = await graph_service.create_edge(a, b, "DEPENDS_ON")
        path = await graph_service.find_path(a, c)
        details = await graph_service.get_node_details(b)

        assert repeat.data["created"] is False
        assert path.data["paths"][0]["length"] == 2
        assert details.data["relationships_pagination"]["total_count"] == 2

    async def test_cycle_detection(self, graph_service):
        a = await _node(graph_service, "A")
        b = await _node(graph_service, "B")
        await graph_service.create_edge(a, b, "DEPENDS_ON")
        await graph_service.create_edge(b, a, "DEPENDS_ON")

        result = await graph_service.detect_cycles()

        assert result.data["cycles_found"] == 1
        assert sorted(result.data["cycles"][0]["node_ids"]) == sorted([a, b])

    async def test_priorities(self, graph_service):
        node_id = await _node(graph_service, "Prioritise me")

        result = await graph_service.update_priorities(node_id, executive=1.0, individual=0.5)

        assert result.data["priorities"]["computed"] == pytest.approx(0.55)


class TestBulk:
    """Transactional bulk execution."""

    async def test_rollback_leaves_nothing(self, graph_service, test_database):
        result = await graph_service.bulk_operations(
            [
                {"type": "create_node", "params": {"title": "one"}},
                {"type": "create_node", "params": {"title": "two"}},
                {"type": "create_node", "params": {"title": "bad", "type": "SPRINT"}},
            ]
        )

        assert result.data["rolled_back"] is True
        assert await test_database.node_count("WorkItem") == 0

    async def test_commit(self, graph_service, test_database):
        result = await graph_service.bulk_operations(
            [
                {"type": "create_node", "params": {"id": "bulk_a", "title": "A"}},
                {"type": "create_node", "params": {"id": "bulk_b", "title": "B"}},
                {
                    "type": "create_edge",
                    "params": {"source_id": "bulk_a", "target_id": "bulk_b", "type": "BLOCKS"},
                },
            ]
        )

        assert result.data["committed"] is True
        assert await test_database.node_count("WorkItem") == 2


class TestGraphs:
    """Graph containers and hierarchy."""

    async def test_hierarchy_cycle_rejected(self, graph_service):
        parent = await graph_service.create_graph({"name": "Parent"})
        child = await graph_service.create_graph(
            {"name": "Child", "parent_graph_id": parent.data["id"]}
        )

        result = await graph_service.update_graph(
            parent.data["id"], {"parent_graph_id": child.data["id"]}
        )

        assert result.error_kind is ErrorKind.CONFLICT

    async def test_delete_requires_force(self, graph_service):
        graph = await graph_service.create_graph({"name": "Owned"})
        await _node(graph_service, "Inside", graph_id=graph.data["id"])

        refused = await graph_service.delete_graph(graph.data["id"])
        forced = await graph_service.delete_graph(graph.data["id"], force=True)

        assert refused.error_kind is ErrorKind.CONFLICT
        assert forced.data["nodes_deleted"] == 1

    async def test_clone(self, graph_service):
        graph = await graph_service.create_graph({"name": "Source"})
        a = await _node(graph_service, "A", graph_id=graph.data["id"])
        b = await _node(graph_service, "B", graph_id=graph.data["id"])
        await graph_service.create_edge(a, b, "DEPENDS_ON")

        clone = await graph_service.clone_graph(graph.data["id"], "Copy")
        details = await graph_service.get_graph_details(clone.data["graph_id"])

        assert clone.data["nodes_copied"] == 2
        assert clone.data["edges_copied"] == 1
        assert details.data["stats"]["node_count"] == 2
        assert details.data["stats"]["edge_count"] == 1

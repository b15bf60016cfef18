"""Tests for Graph containers and the graph hierarchy."""

import pytest
from neo4j.exceptions import ConstraintError

from graphdone.engine.graphs import (
    archive_graph,
    check_parent,
    clone_graph,
    create_graph,
    delete_graph,
    get_graph_details,
    list_graphs,
    update_graph,
)
from graphdone.exceptions import (
    ConflictError,
    LimitExceededError,
    NotFoundError,
    ValidationError,
)

REQUIRE_GRAPH = "MATCH (g:Graph {id: $graph_id}) RETURN g"


def _hierarchy(parents):
    """Answer parent lookups from a child -> parent mapping."""

    def answer(params):
        graph_id = params["graph_id"]
        if graph_id not in parents:
            return []
        return [{"parent": parents[graph_id]}]

    return answer


def _created_graph(params):
    return [
        {
            "g": {
                "id": params["id"],
                "name": params["name"],
                "type": params["type"],
                "status": params["status"],
                "parentGraphId": params["parent_graph_id"],
                "settings": params["settings"],
            }
        }
    ]


# =============================================================================
# Hierarchy
# =============================================================================


class TestCheckParent:
    """Tests for hierarchy cycle and depth checks."""

    @pytest.mark.asyncio
    async def test_root_parent_accepted(self, session):
        session.on("AS parent", _hierarchy({"graph_b": None}))

        await check_parent(session, "graph_a", "graph_b", max_depth=5)

        assert len(session.calls) == 1

    @pytest.mark.asyncio
    async def test_self_parent(self, session):
        with pytest.raises(ConflictError, match="cannot be its own parent"):
            await check_parent(session, "graph_a", "graph_a", max_depth=5)

    @pytest.mark.asyncio
    async def test_descendant_as_parent(self, session):
        # graph_b is a child of graph_a
        session.on("AS parent", _hierarchy({"graph_b": "graph_a", "graph_a": None}))

        with pytest.raises(ConflictError, match="would create a cycle"):
            await check_parent(session, "graph_a", "graph_b", max_depth=5)

    @pytest.mark.asyncio
    async def test_missing_parent(self, session):
        with pytest.raises(NotFoundError, match="Parent graph not found: graph_b"):
            await check_parent(session, "graph_a", "graph_b", max_depth=5)

    @pytest.mark.asyncio
    async def test_depth_limit(self, session):
        session.on(
            "AS parent",
            _hierarchy({"graph_b": "graph_c", "graph_c": "graph_d", "graph_d": None}),
        )

        with pytest.raises(LimitExceededError, match="maximum depth of 2"):
            await check_parent(session, "graph_a", "graph_b", max_depth=2)

    @pytest.mark.asyncio
    async def test_dangling_ancestor_ends_walk(self, session):
        session.on("AS parent", _hierarchy({"graph_b": "graph_gone"}))

        await check_parent(session, "graph_a", "graph_b", max_depth=5)


# =============================================================================
# CRUD
# =============================================================================


class TestCreateGraph:
    """Tests for create_graph."""

    @pytest.mark.asyncio
    async def test_defaults(self, session):
        session.on("CREATE (g:Graph {", _created_graph)

        graph = await create_graph(session, {"name": "  Core platform  "})

        assert graph["name"] == "Core platform"
        assert graph["type"] == "PROJECT"
        assert graph["status"] == "ACTIVE"
        assert graph["settings"] == {}
        assert graph["id"].startswith("graph_")
        assert "nodeCount: 0" in session.calls[0].query

    @pytest.mark.asyncio
    async def test_with_parent(self, session):
        session.on("AS parent", _hierarchy({"graph_root": None}))
        session.on("CREATE (g:Graph {", _created_graph)

        graph = await create_graph(
            session, {"name": "Child", "type": "subgraph", "parent_graph_id": "graph_root"}
        )

        assert graph["type"] == "SUBGRAPH"
        assert graph["parentGraphId"] == "graph_root"
        assert session.find("AS parent")

    @pytest.mark.asyncio
    async def test_name_required(self, session):
        with pytest.raises(ValidationError, match="Graph name is required"):
            await create_graph(session, {"name": "   "})

    @pytest.mark.asyncio
    async def test_invalid_type(self, session):
        with pytest.raises(ValidationError, match="Invalid graph type"):
            await create_graph(session, {"name": "Core", "type": "FOLDER"})

    @pytest.mark.asyncio
    async def test_duplicate_id(self, session):
        session.on("CREATE (g:Graph {", error=ConstraintError("already exists"))

        with pytest.raises(ConflictError, match="Graph ID already exists: graph_1"):
            await create_graph(session, {"id": "graph_1", "name": "Core"})


class TestListGraphs:
    """Tests for list_graphs."""

    @pytest.mark.asyncio
    async def test_page(self, session):
        session.on("RETURN count(g) AS total", [{"total": 3}])
        session.on(
            "ORDER BY g.updatedAt DESC",
            [{"g": {"id": "graph_1", "name": "Core", "settings": '{"color": "blue"}'}}],
        )

        result = await list_graphs(session, graph_type="project", status="active", limit=1)

        assert result["graphs"][0]["settings"] == {"color": "blue"}
        assert result["pagination"]["total_count"] == 3
        assert result["pagination"]["has_next_page"] is True
        call = session.calls[0]
        assert "g.type = $type AND g.status = $status" in call.query
        assert call.parameters == {"type": "PROJECT", "status": "ACTIVE"}

    @pytest.mark.asyncio
    async def test_empty(self, session):
        result = await list_graphs(session)

        assert result["graphs"] == []
        assert result["pagination"]["total_count"] == 0


class TestGetGraphDetails:
    """Tests for get_graph_details."""

    @pytest.mark.asyncio
    async def test_live_counts(self, session):
        session.on(REQUIRE_GRAPH, [{"g": {"id": "graph_1"}}])
        session.on(
            "AS statuses",
            [
                {
                    "g": {"id": "graph_1", "nodeCount": 3, "edgeCount": 1, "contributorCount": 2},
                    "statuses": [["PLANNED", 2], ["BLOCKED", 1], None],
                }
            ],
        )
        session.on(
            "AS child",
            [{"child": {"id": "graph_2", "name": "Sub", "type": "SUBGRAPH", "status": "ACTIVE"}}],
        )

        result = await get_graph_details(session, "graph_1")

        assert result["stats"] == {
            "node_count": 3,
            "edge_count": 1,
            "contributor_count": 2,
            "status_distribution": {"PLANNED": 2, "BLOCKED": 1},
        }
        assert result["subgraphs"][0]["id"] == "graph_2"
        assert "SET g.nodeCount = nodes" in session.find("AS statuses")[0].query

    @pytest.mark.asyncio
    async def test_missing(self, session):
        with pytest.raises(NotFoundError, match="Graph not found: graph_x"):
            await get_graph_details(session, "graph_x")


class TestUpdateGraph:
    """Tests for update_graph."""

    @pytest.mark.asyncio
    async def test_updates_supplied_fields(self, session):
        session.on(REQUIRE_GRAPH, [{"g": {"id": "graph_1"}}])
        session.on("MATCH (g:Graph {id: $graph_id}) SET", [{"g": {"id": "graph_1", "name": "New"}}])

        graph = await update_graph(session, "graph_1", {"name": "New", "settings": {"a": 1}})

        assert graph["name"] == "New"
        call = session.find("MATCH (g:Graph {id: $graph_id}) SET")[0]
        assert "g.name = $set_name" in call.query
        assert call.parameters["set_settings"] == '{"a": 1}'
        assert "g.status" not in call.query

    @pytest.mark.asyncio
    async def test_reparent_checks_hierarchy(self, session):
        session.on("AS parent", _hierarchy({"graph_2": "graph_1", "graph_1": None}))
        session.on(REQUIRE_GRAPH, [{"g": {"id": "graph_1"}}])

        with pytest.raises(ConflictError, match="would create a cycle"):
            await update_graph(session, "graph_1", {"parent_graph_id": "graph_2"})

    @pytest.mark.asyncio
    async def test_detach_from_parent(self, session):
        session.on(REQUIRE_GRAPH, [{"g": {"id": "graph_1"}}])
        session.on("MATCH (g:Graph {id: $graph_id}) SET", [{"g": {"id": "graph_1"}}])

        await update_graph(session, "graph_1", {"parent_graph_id": None})

        call = session.find("MATCH (g:Graph {id: $graph_id}) SET")[0]
        assert call.parameters["set_parentGraphId"] is None
        assert session.find("AS parent") == []

    @pytest.mark.asyncio
    async def test_empty_name(self, session):
        with pytest.raises(ValidationError, match="Graph name cannot be empty"):
            await update_graph(session, "graph_1", {"name": ""})

    @pytest.mark.asyncio
    async def test_nothing_to_update(self, session):
        with pytest.raises(ValidationError, match="No fields provided"):
            await update_graph(session, "graph_1", {})


class TestDeleteGraph:
    """Tests for delete_graph."""

    @pytest.mark.asyncio
    async def test_refuses_non_empty_graph(self, session):
        session.on("AS node_count", [{"name": "Core", "node_count": 3}])

        with pytest.raises(ConflictError, match="Graph contains 3 nodes"):
            await delete_graph(session, "graph_1")

        assert session.find("DETACH DELETE g") == []

    @pytest.mark.asyncio
    async def test_force(self, session):
        session.on("AS node_count", [{"name": "Core", "node_count": 3}])

        result = await delete_graph(session, "graph_1", force=True)

        assert result == {"deleted_graph_id": "graph_1", "name": "Core", "nodes_deleted": 3}
        delete = session.find("DETACH DELETE g")[0]
        assert "SET child.parentGraphId = null" in delete.query

    @pytest.mark.asyncio
    async def test_empty_graph(self, session):
        session.on("AS node_count", [{"name": "Empty", "node_count": 0}])

        result = await delete_graph(session, "graph_1")

        assert result["nodes_deleted"] == 0

    @pytest.mark.asyncio
    async def test_missing(self, session):
        with pytest.raises(NotFoundError):
            await delete_graph(session, "graph_x")


class TestArchiveGraph:
    """Tests for archive_graph."""

    @pytest.mark.asyncio
    async def test_archives_with_default_reason(self, session):
        session.on("SET g.status = $status", [{"g": {"id": "graph_1", "status": "ARCHIVED"}}])

        graph = await archive_graph(session, "graph_1")

        assert graph["status"] == "ARCHIVED"
        params = session.calls[0].parameters
        assert params["status"] == "ARCHIVED"
        assert params["reason"] == "Archived via API"

    @pytest.mark.asyncio
    async def test_missing(self, session):
        with pytest.raises(NotFoundError):
            await archive_graph(session, "graph_x", reason="done")


# =============================================================================
# Cloning
# =============================================================================


class TestCloneGraph:
    """Tests for clone_graph."""

    @pytest.mark.asyncio
    async def test_copies_nodes_and_edges(self, session):
        session.on(REQUIRE_GRAPH, [{"g": {"id": "graph_1", "name": "Core"}}])
        session.on("RETURN n.id AS id", [{"id": "node_a"}, {"id": "node_b"}])
        session.on("AS copied", [{"copied": 2}])
        session.on(
            "properties(r) AS properties",
            [
                {
                    "source_id": "node_a",
                    "target_id": "node_b",
                    "type": "DEPENDS_ON",
                    "properties": {"weight": 0.5},
                },
                {
                    "source_id": "node_b",
                    "target_id": "node_a",
                    "type": "LEGACY_LINK",
                    "properties": {},
                },
            ],
        )

        result = await clone_graph(session, "graph_1", "Core copy")

        assert result["nodes_copied"] == 2
        assert result["edges_copied"] == 1
        assert result["graph_id"] != "graph_1"

        mapping = session.find("AS copied")[0].parameters["mapping"]
        new_ids = {m["old_id"]: m["new_id"] for m in mapping}
        edge = session.find("CREATE (s)-[r:DEPENDS_ON]->(t)")[0].parameters["edges"][0]
        assert edge["source_id"] == new_ids["node_a"]
        assert edge["target_id"] == new_ids["node_b"]
        assert edge["properties"] == {"weight": 0.5}

        counts = session.find("SET g.nodeCount = $nodes")[0].parameters
        assert counts["nodes"] == 2
        assert counts["edges"] == 1

    @pytest.mark.asyncio
    async def test_graph_only(self, session):
        session.on(REQUIRE_GRAPH, [{"g": {"id": "graph_1", "name": "Core"}}])

        result = await clone_graph(session, "graph_1", "Shell", include_nodes=False)

        assert result["nodes_copied"] == 0
        assert session.find("RETURN n.id AS id") == []
        assert session.find("SET g = properties(src)")

    @pytest.mark.asyncio
    async def test_new_name_required(self, session):
        with pytest.raises(ValidationError, match="new_name is required"):
            await clone_graph(session, "graph_1", "")

    @pytest.mark.asyncio
    async def test_missing_source(self, session):
        with pytest.raises(NotFoundError):
            await clone_graph(session, "graph_x", "Copy")

        assert session.find("CREATE (g:Graph)") == []

"""Unit tests for the GraphDone MCP Server.

Tests cover:
- Server initialization and tool registration
- Tool execution against a scripted Neo4j session
- Error reporting through ToolError
- Lazy service creation and shutdown
"""

import json
from unittest.mock import AsyncMock, patch

import pytest
from mcp.server.fastmcp.exceptions import ToolError

from graphdone.mcp.config import MCPConfig
from graphdone.mcp.server import GraphMCPServer, create_graph_mcp_server, respond
from graphdone.models import OperationResult
from graphdone.exceptions import ErrorKind

EXPECTED_TOOLS = [
    "browse_graph",
    "get_node_details",
    "find_path",
    "detect_cycles",
    "create_node",
    "update_node",
    "delete_node",
    "create_edge",
    "delete_edge",
    "update_priorities",
    "bulk_update_priorities",
    "get_priority_insights",
    "analyze_graph_health",
    "get_bottlenecks",
    "get_workload_analysis",
    "bulk_operations",
    "get_contributor_priorities",
    "get_contributor_workload",
    "find_contributors_by_project",
    "get_project_team",
    "get_contributor_expertise",
    "get_collaboration_network",
    "get_contributor_availability",
    "create_graph",
    "list_graphs",
    "get_graph_details",
    "update_graph",
    "delete_graph",
    "archive_graph",
    "clone_graph",
]


# =============================================================================
# Test Fixtures
# =============================================================================


@pytest.fixture
def mcp_config():
    """MCP config with the health endpoint disabled."""
    return MCPConfig(server_name="graphdone-test", health_port=0, log_level="WARNING")


@pytest.fixture
def mcp_server(mcp_config, service):
    """Server bound to the fake-backed service."""
    return GraphMCPServer(config=mcp_config, service=service)


def lookup_tool(mcp_server, tool_name: str):
    """Helper to get a tool from the server."""
    return mcp_server.mcp._tool_manager._tools.get(tool_name)


def _created_node(params):
    return [
        {
            "n": {
                "id": params["id"],
                "title": params["title"],
                "type": params["type"],
                "status": params["status"],
                "metadata": params["metadata"],
            }
        }
    ]


# =============================================================================
# Initialization
# =============================================================================


class TestGraphMCPServerInit:
    """Tests for server initialization."""

    def test_server_init_custom_config(self, mcp_config, service):
        """Test server with custom config."""
        server = GraphMCPServer(config=mcp_config, service=service)

        assert server.config.server_name == "graphdone-test"
        assert server.mcp is not None

    def test_factory(self, mcp_config, service):
        """Test the factory function."""
        server = create_graph_mcp_server(config=mcp_config, service=service)

        assert isinstance(server, GraphMCPServer)


class TestToolRegistration:
    """Tests for tool registration."""

    def test_all_tools_registered(self, mcp_server):
        """Test all expected tools are registered."""
        tools = mcp_server.mcp._tool_manager._tools

        assert sorted(t.name for t in tools.values()) == sorted(EXPECTED_TOOLS)

    def test_tool_count(self, mcp_server):
        """Test correct number of tools registered."""
        assert len(mcp_server.mcp._tool_manager._tools) == 30
        assert mcp_server.tool_names() == EXPECTED_TOOLS


# =============================================================================
# respond()
# =============================================================================


class TestRespond:
    """Tests for result-to-tool-response conversion."""

    def test_success_returns_payload(self):
        assert respond(OperationResult.ok({"deleted": 1})) == {"success": True, "deleted": 1}

    def test_failure_raises(self):
        with pytest.raises(ToolError) as exc_info:
            respond(OperationResult.fail("Edge not found", ErrorKind.NOT_FOUND))

        payload = json.loads(str(exc_info.value))
        assert payload == {"success": False, "error": "Edge not found", "error_kind": "NOT_FOUND"}


# =============================================================================
# Tool execution
# =============================================================================


class TestToolExecution:
    """Tests for server tool execution."""

    @pytest.mark.asyncio
    async def test_create_node(self, mcp_server, session):
        """Test create_node tool."""
        session.on("CREATE (n:WorkItem {", _created_node)
        tool = lookup_tool(mcp_server, "create_node")

        result = await tool.fn(title="Write docs", type="STORY")

        assert result["success"] is True
        assert result["title"] == "Write docs"
        assert result["type"] == "STORY"
        assert result["status"] == "PROPOSED"

    @pytest.mark.asyncio
    async def test_not_found_raises_tool_error(self, mcp_server):
        """Test a failed operation surfaces as ToolError."""
        tool = lookup_tool(mcp_server, "delete_node")

        with pytest.raises(ToolError) as exc_info:
            await tool.fn(node_id="node_x")

        payload = json.loads(str(exc_info.value))
        assert payload["success"] is False
        assert payload["error_kind"] == "NOT_FOUND"

    @pytest.mark.asyncio
    async def test_validation_error(self, mcp_server):
        """Test invalid input is reported as VALIDATION."""
        tool = lookup_tool(mcp_server, "find_path")

        with pytest.raises(ToolError) as exc_info:
            await tool.fn(start_id="node_a", end_id="node_a")

        assert json.loads(str(exc_info.value))["error_kind"] == "VALIDATION"

    @pytest.mark.asyncio
    async def test_update_node_sends_only_supplied_fields(self, mcp_server, service):
        """Test None arguments are not treated as updates."""
        service.update_node = AsyncMock(return_value=OperationResult.ok({"id": "node_a"}))
        tool = lookup_tool(mcp_server, "update_node")

        await tool.fn(node_id="node_a", status="PLANNED")

        service.update_node.assert_awaited_once_with("node_a", {"status": "PLANNED"})

    @pytest.mark.asyncio
    async def test_update_graph_sends_only_supplied_fields(self, mcp_server, service):
        service.update_graph = AsyncMock(return_value=OperationResult.ok({"id": "graph_1"}))
        tool = lookup_tool(mcp_server, "update_graph")

        await tool.fn(graph_id="graph_1", name="Renamed")

        service.update_graph.assert_awaited_once_with("graph_1", {"name": "Renamed"})

    @pytest.mark.asyncio
    async def test_update_priorities_mapping(self, mcp_server, service):
        service.update_priorities = AsyncMock(return_value=OperationResult.ok({}))
        tool = lookup_tool(mcp_server, "update_priorities")

        await tool.fn(node_id="node_a", priority_executive=0.8, recalculate_computed=False)

        service.update_priorities.assert_awaited_once_with("node_a", 0.8, None, None, False)

    @pytest.mark.asyncio
    async def test_detect_cycles(self, mcp_server):
        tool = lookup_tool(mcp_server, "detect_cycles")

        result = await tool.fn()

        assert result == {"success": True, "cycles_found": 0, "cycles": [], "has_cycles": False}

    @pytest.mark.asyncio
    async def test_list_graphs(self, mcp_server, session):
        session.on("RETURN count(g) AS total", [{"total": 0}])
        tool = lookup_tool(mcp_server, "list_graphs")

        result = await tool.fn(type="workspace")

        assert result["graphs"] == []
        assert session.calls[0].parameters["type"] == "WORKSPACE"

    @pytest.mark.asyncio
    async def test_metrics_recorded(self, mcp_server, service):
        await lookup_tool(mcp_server, "detect_cycles").fn()

        assert service.metrics.snapshot()["calls"] == {"detect cycles": 1}


# =============================================================================
# Lifecycle
# =============================================================================


class TestLifecycle:
    """Tests for lazy connection and shutdown."""

    @pytest.mark.asyncio
    async def test_lazy_service_creation(self, mcp_config, store, session, driver):
        """Test the first tool call connects and initializes the schema."""
        server = GraphMCPServer(config=mcp_config)

        with patch(
            "graphdone.mcp.server.Neo4jGraphStore.connect", AsyncMock(return_value=store)
        ) as connect:
            await lookup_tool(server, "detect_cycles").fn()
            await lookup_tool(server, "detect_cycles").fn()

        connect.assert_awaited_once_with(mcp_config.graph.neo4j)
        assert session.find("CREATE CONSTRAINT work_item_id_unique")

        await server.close()
        assert driver.closed is True

    @pytest.mark.asyncio
    async def test_close_leaves_injected_service_open(self, mcp_server, driver):
        await mcp_server.close()

        assert driver.closed is False

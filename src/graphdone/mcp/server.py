"""GraphDone MCP Server.

This module implements an MCP server that exposes the GraphDone graph
engine as tools. MCP clients use it to browse, mutate and analyse a
Neo4j graph of WorkItems, their dependencies, priorities and
contributors.

Usage:
    # Run as module
    python -m graphdone.mcp

    # Or import and run
    from graphdone.mcp import create_graph_mcp_server
    server = create_graph_mcp_server()
    server.run()

Tools provided:
    - browse_graph, get_node_details, find_path, detect_cycles
    - create_node, update_node, delete_node, create_edge, delete_edge
    - update_priorities, bulk_update_priorities, get_priority_insights
    - analyze_graph_health, get_bottlenecks, get_workload_analysis
    - bulk_operations
    - get_contributor_* / find_contributors_by_project / get_project_team
    - create_graph, list_graphs, get_graph_details, update_graph,
      delete_graph, archive_graph, clone_graph

A successful tool returns its payload. A failed tool raises ToolError
carrying the JSON error payload, which the protocol reports as isError.
"""

import asyncio
import logging
import os
import sys
from typing import Any, Callable

from mcp.server.fastmcp import FastMCP
from mcp.server.fastmcp.exceptions import ToolError

from graphdone.engine.store import Neo4jGraphStore
from graphdone.mcp.config import MCPConfig
from graphdone.mcp.health import create_health_app, create_health_server
from graphdone.models import OperationResult
from graphdone.service import GraphService

logger = logging.getLogger(__name__)


def respond(result: OperationResult) -> dict[str, Any]:
    """Return the payload of a successful result or raise ToolError."""
    if result.success:
        return result.to_payload()
    raise ToolError(result.to_json())


# =============================================================================
# GraphDone MCP Server
# =============================================================================


class GraphMCPServer:
    """MCP server exposing graph operations.

    Attributes:
        config: Server configuration.
        mcp: FastMCP server instance.
    """

    def __init__(
        self,
        config: MCPConfig | None = None,
        service: GraphService | None = None,
    ):
        """Initialize the GraphDone MCP Server.

        Args:
            config: Server configuration (defaults to MCPConfig.from_env()).
            service: Optional pre-configured service (connects lazily otherwise).
        """
        self.config = config or MCPConfig.from_env()
        self._service = service
        self._owns_service = service is None
        self._tool_names: list[str] = []

        # Create FastMCP server
        self.mcp = FastMCP(
            name=self.config.server_name,
        )

        # Register tools
        self._register_tools()

        # Setup logging
        self._setup_logging()

    def _setup_logging(self) -> None:
        """Configure logging based on config."""
        log_level = getattr(logging, self.config.log_level.upper(), logging.INFO)
        logging.basicConfig(
            level=log_level,
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            stream=sys.stderr,
        )

    async def _get_service(self) -> GraphService:
        """Get or create the graph service.

        The first call connects to Neo4j and creates the schema.
        """
        if self._service is None:
            store = await Neo4jGraphStore.connect(self.config.graph.neo4j)
            await store.initialize()
            self._service = GraphService(store, self.config.graph)
        return self._service

    def tool_names(self) -> list[str]:
        """Names of every registered tool."""
        return list(self._tool_names)

    def _tool(self, name: str) -> Callable:
        self._tool_names.append(name)
        return self.mcp.tool(name=name)

    def _register_tools(self) -> None:
        """Register all MCP tools."""

        # =====================================================================
        # Browsing and traversal
        # =====================================================================
        @self._tool("browse_graph")
        async def browse_graph(
            query_type: str,
            filters: dict[str, Any] | None = None,
        ) -> dict[str, Any]:
            """Browse and query WorkItems.

            Args:
                query_type: all_nodes, by_type, by_status, by_contributor,
                    by_priority, dependencies or search.
                filters: node_type, status, contributor_id, min_priority,
                    node_id, search_term, limit, offset.

            Returns:
                Matching nodes with pagination, or for ``dependencies`` the
                node with what it depends on and what depends on it.
            """
            service = await self._get_service()
            return respond(await service.browse_graph(query_type, filters))

        @self._tool("get_node_details")
        async def get_node_details(
            node_id: str,
            relationships_limit: int = 20,
            relationships_offset: int = 0,
        ) -> dict[str, Any]:
            """Get a node with its contributors and a page of its relationships."""
            service = await self._get_service()
            return respond(
                await service.get_node_details(node_id, relationships_limit, relationships_offset)
            )

        @self._tool("find_path")
        async def find_path(
            start_id: str,
            end_id: str,
            max_depth: int = 5,
            limit: int = 10,
            offset: int = 0,
        ) -> dict[str, Any]:
            """Find the shortest paths between two nodes (max_depth 1-10)."""
            service = await self._get_service()
            return respond(await service.find_path(start_id, end_id, max_depth, limit, offset))

        @self._tool("detect_cycles")
        async def detect_cycles(limit: int = 10) -> dict[str, Any]:
            """Detect circular DEPENDS_ON chains."""
            service = await self._get_service()
            return respond(await service.detect_cycles(limit))

        # =====================================================================
        # Nodes and edges
        # =====================================================================
        @self._tool("create_node")
        async def create_node(
            title: str,
            type: str = "TASK",
            description: str | None = None,
            status: str = "PROPOSED",
            contributor_ids: list[str] | None = None,
            metadata: dict[str, Any] | None = None,
            graph_id: str | None = None,
            team_id: str | None = None,
        ) -> dict[str, Any]:
            """Create a new WorkItem.

            Args:
                title: Node title (truncated to 500 characters).
                type: OUTCOME, EPIC, INITIATIVE, STORY, TASK, BUG, FEATURE
                    or MILESTONE.
                description: Node description.
                status: PROPOSED, PLANNED, IN_PROGRESS, BLOCKED, COMPLETED
                    or ARCHIVED.
                contributor_ids: Contributors to link (created if missing).
                metadata: Additional structured metadata.
                graph_id: Graph the node belongs to.
                team_id: Owning team.

            Returns:
                The created node.
            """
            service = await self._get_service()
            request = {
                "title": title,
                "type": type,
                "description": description,
                "status": status,
                "contributor_ids": contributor_ids,
                "metadata": metadata,
                "graph_id": graph_id,
                "team_id": team_id,
            }
            return respond(await service.create_node(request))

        @self._tool("update_node")
        async def update_node(
            node_id: str,
            title: str | None = None,
            description: str | None = None,
            type: str | None = None,
            status: str | None = None,
            contributor_ids: list[str] | None = None,
            metadata: dict[str, Any] | None = None,
        ) -> dict[str, Any]:
            """Update an existing WorkItem. Only the supplied fields change."""
            service = await self._get_service()
            supplied = {
                "title": title,
                "description": description,
                "type": type,
                "status": status,
                "contributor_ids": contributor_ids,
                "metadata": metadata,
            }
            update = {key: value for key, value in supplied.items() if value is not None}
            return respond(await service.update_node(node_id, update))

        @self._tool("delete_node")
        async def delete_node(node_id: str) -> dict[str, Any]:
            """Delete a node and all of its relationships."""
            service = await self._get_service()
            return respond(await service.delete_node(node_id))

        @self._tool("create_edge")
        async def create_edge(
            source_id: str,
            target_id: str,
            type: str,
            weight: float = 1.0,
            metadata: dict[str, Any] | None = None,
        ) -> dict[str, Any]:
            """Create a typed edge between two nodes (idempotent per type)."""
            service = await self._get_service()
            return respond(
                await service.create_edge(source_id, target_id, type, weight, metadata)
            )

        @self._tool("delete_edge")
        async def delete_edge(source_id: str, target_id: str, type: str) -> dict[str, Any]:
            """Delete the edge of the given type between two nodes."""
            service = await self._get_service()
            return respond(await service.delete_edge(source_id, target_id, type))

        # =====================================================================
        # Priorities
        # =====================================================================
        @self._tool("update_priorities")
        async def update_priorities(
            node_id: str,
            priority_executive: float | None = None,
            priority_individual: float | None = None,
            priority_community: float | None = None,
            recalculate_computed: bool = True,
        ) -> dict[str, Any]:
            """Update a node's priority components (each in [0, 1])."""
            service = await self._get_service()
            return respond(
                await service.update_priorities(
                    node_id,
                    priority_executive,
                    priority_individual,
                    priority_community,
                    recalculate_computed,
                )
            )

        @self._tool("bulk_update_priorities")
        async def bulk_update_priorities(updates: list[dict[str, Any]]) -> dict[str, Any]:
            """Update priorities on many nodes; each item succeeds or fails alone."""
            service = await self._get_service()
            return respond(await service.bulk_update_priorities(updates))

        @self._tool("get_priority_insights")
        async def get_priority_insights(
            filter_status: list[str] | None = None,
            include_distribution: bool = True,
        ) -> dict[str, Any]:
            """Priority statistics, top items and distributions."""
            service = await self._get_service()
            return respond(await service.get_priority_insights(filter_status, include_distribution))

        # =====================================================================
        # Analytics
        # =====================================================================
        @self._tool("analyze_graph_health")
        async def analyze_graph_health(
            include_metrics: list[str] | None = None,
            depth_analysis: bool = False,
            team_id: str | None = None,
        ) -> dict[str, Any]:
            """Score graph health and recommend improvements."""
            service = await self._get_service()
            return respond(
                await service.analyze_graph_health(include_metrics, depth_analysis, team_id)
            )

        @self._tool("get_bottlenecks")
        async def get_bottlenecks(
            analysis_depth: int = 5,
            include_suggested_resolutions: bool = True,
            team_id: str | None = None,
        ) -> dict[str, Any]:
            """Find heavily depended-on items and blocked chains."""
            service = await self._get_service()
            return respond(
                await service.get_bottlenecks(
                    analysis_depth, include_suggested_resolutions, team_id
                )
            )

        @self._tool("get_workload_analysis")
        async def get_workload_analysis(
            contributor_ids: list[str] | None = None,
            time_window: dict[str, str] | None = None,
            include_capacity: bool = False,
            include_predictions: bool = False,
        ) -> dict[str, Any]:
            """Per-contributor workload with optional capacity and risk analysis."""
            service = await self._get_service()
            return respond(
                await service.get_workload_analysis(
                    contributor_ids, time_window, include_capacity, include_predictions
                )
            )

        # =====================================================================
        # Bulk
        # =====================================================================
        @self._tool("bulk_operations")
        async def bulk_operations(
            operations: list[dict[str, Any]],
            transaction: bool = True,
            rollback_on_error: bool = True,
        ) -> dict[str, Any]:
            """Run several create/update/edge operations as one batch.

            Args:
                operations: ``{"type": create_node|update_node|create_edge|
                    delete_edge, "params": {...}}`` entries, run in order.
                transaction: Use a single transaction for the batch.
                rollback_on_error: Abort and roll back on the first failure.

            Returns:
                Counts, commit state and per-operation results.
            """
            service = await self._get_service()
            return respond(
                await service.bulk_operations(operations, transaction, rollback_on_error)
            )

        # =====================================================================
        # Contributors
        # =====================================================================
        @self._tool("get_contributor_priorities")
        async def get_contributor_priorities(
            contributor_id: str,
            limit: int = 10,
            priority_type: str = "composite",
            status_filter: list[str] | None = None,
            include_dependencies: bool = False,
        ) -> dict[str, Any]:
            """A contributor's open items ordered by a priority dimension."""
            service = await self._get_service()
            return respond(
                await service.get_contributor_priorities(
                    contributor_id,
                    limit=limit,
                    priority_type=priority_type,
                    status_filter=status_filter,
                    include_dependencies=include_dependencies,
                )
            )

        @self._tool("get_contributor_workload")
        async def get_contributor_workload(
            contributor_id: str,
            include_projects: bool = False,
        ) -> dict[str, Any]:
            """Totals, statuses and projects for one contributor."""
            service = await self._get_service()
            return respond(await service.get_contributor_workload(contributor_id, include_projects))

        @self._tool("find_contributors_by_project")
        async def find_contributors_by_project(
            graph_id: str | None = None,
            graph_name: str | None = None,
            node_types: list[str] | None = None,
            active_only: bool = False,
            limit: int = 50,
        ) -> dict[str, Any]:
            """Contributors grouped by the projects they work in."""
            service = await self._get_service()
            return respond(
                await service.find_contributors_by_project(
                    graph_id=graph_id,
                    graph_name=graph_name,
                    node_types=node_types,
                    active_only=active_only,
                    limit=limit,
                )
            )

        @self._tool("get_project_team")
        async def get_project_team(graph_id: str) -> dict[str, Any]:
            """Everyone contributing to a graph, with their item counts."""
            service = await self._get_service()
            return respond(await service.get_project_team(graph_id))

        @self._tool("get_contributor_expertise")
        async def get_contributor_expertise(
            contributor_id: str,
            time_window_days: int = 90,
            min_items_threshold: int = 3,
        ) -> dict[str, Any]:
            """Per work-type expertise from recent history."""
            service = await self._get_service()
            return respond(
                await service.get_contributor_expertise(
                    contributor_id, time_window_days, min_items_threshold
                )
            )

        @self._tool("get_collaboration_network")
        async def get_collaboration_network(
            focus_contributor: str | None = None,
            project_scope: str | None = None,
            collaboration_strength: str = "all",
        ) -> dict[str, Any]:
            """Contributor pairs that share work items."""
            service = await self._get_service()
            return respond(
                await service.get_collaboration_network(
                    focus_contributor=focus_contributor,
                    project_scope=project_scope,
                    collaboration_strength=collaboration_strength,
                )
            )

        @self._tool("get_contributor_availability")
        async def get_contributor_availability(
            contributor_ids: list[str] | None = None,
            include_recommendations: bool = True,
        ) -> dict[str, Any]:
            """Capacity status and rebalancing suggestions per contributor."""
            service = await self._get_service()
            return respond(
                await service.get_contributor_availability(
                    contributor_ids, include_recommendations
                )
            )

        # =====================================================================
        # Graph containers
        # =====================================================================
        @self._tool("create_graph")
        async def create_graph(
            name: str,
            type: str = "PROJECT",
            description: str | None = None,
            status: str = "ACTIVE",
            team_id: str | None = None,
            parent_graph_id: str | None = None,
            settings: dict[str, Any] | None = None,
        ) -> dict[str, Any]:
            """Create a graph (project, workspace, subgraph or template)."""
            service = await self._get_service()
            request = {
                "name": name,
                "type": type,
                "description": description,
                "status": status,
                "team_id": team_id,
                "parent_graph_id": parent_graph_id,
                "settings": settings,
            }
            return respond(await service.create_graph(request))

        @self._tool("list_graphs")
        async def list_graphs(
            type: str | None = None,
            status: str | None = None,
            team_id: str | None = None,
            limit: int = 50,
            offset: int = 0,
        ) -> dict[str, Any]:
            """List graphs, most recently updated first."""
            service = await self._get_service()
            return respond(await service.list_graphs(type, status, team_id, limit, offset))

        @self._tool("get_graph_details")
        async def get_graph_details(graph_id: str) -> dict[str, Any]:
            """A graph with live node, edge and contributor counts."""
            service = await self._get_service()
            return respond(await service.get_graph_details(graph_id))

        @self._tool("update_graph")
        async def update_graph(
            graph_id: str,
            name: str | None = None,
            description: str | None = None,
            status: str | None = None,
            settings: dict[str, Any] | None = None,
            parent_graph_id: str | None = None,
        ) -> dict[str, Any]:
            """Update graph fields; a new parent must not create a cycle."""
            service = await self._get_service()
            supplied = {
                "name": name,
                "description": description,
                "status": status,
                "settings": settings,
                "parent_graph_id": parent_graph_id,
            }
            update = {key: value for key, value in supplied.items() if value is not None}
            return respond(await service.update_graph(graph_id, update))

        @self._tool("delete_graph")
        async def delete_graph(graph_id: str, force: bool = False) -> dict[str, Any]:
            """Delete a graph. Graphs that still own nodes need force=true."""
            service = await self._get_service()
            return respond(await service.delete_graph(graph_id, force))

        @self._tool("archive_graph")
        async def archive_graph(graph_id: str, reason: str | None = None) -> dict[str, Any]:
            """Archive a graph (soft delete)."""
            service = await self._get_service()
            return respond(await service.archive_graph(graph_id, reason))

        @self._tool("clone_graph")
        async def clone_graph(
            graph_id: str,
            new_name: str,
            include_nodes: bool = True,
        ) -> dict[str, Any]:
            """Clone a graph, optionally with its nodes and edges, in one transaction."""
            service = await self._get_service()
            return respond(await service.clone_graph(graph_id, new_name, include_nodes))

    async def serve(self, transport: str = "stdio") -> None:
        """Serve MCP on the given transport, plus the health endpoint.

        Args:
            transport: Transport to use ('stdio' or 'sse').
        """
        service = await self._get_service()
        health_server = None
        health_task = None
        if self.config.health_port:
            app = create_health_app(self.config, service, self.tool_names)
            health_server = create_health_server(
                app, self.config.health_host, self.config.health_port
            )
            health_task = asyncio.create_task(health_server.serve())

        try:
            if transport == "sse":
                await self.mcp.run_sse_async()
            else:
                await self.mcp.run_stdio_async()
        finally:
            if health_server is not None:
                health_server.should_exit = True
                await health_task
            await self.close()

    def run(self, transport: str = "stdio") -> None:
        """Run the MCP server.

        Args:
            transport: Transport to use ('stdio' or 'sse').
        """
        logger.info(f"Starting GraphDone MCP Server: {self.config.server_name}")
        asyncio.run(self.serve(transport))

    async def close(self) -> None:
        """Close the server and cleanup resources."""
        if self._service is not None and self._owns_service:
            await self._service.close()
            self._service = None


# =============================================================================
# Factory Functions
# =============================================================================


def create_graph_mcp_server(
    config: MCPConfig | None = None,
    service: GraphService | None = None,
) -> GraphMCPServer:
    """Create a GraphDone MCP Server instance.

    Args:
        config: Server configuration (defaults to MCPConfig.from_env()).
        service: Optional pre-configured graph service.

    Returns:
        Configured GraphMCPServer instance.
    """
    return GraphMCPServer(config=config, service=service)


# =============================================================================
# CLI Entry Point
# =============================================================================


def main() -> None:
    """CLI entry point for the MCP server."""
    import argparse

    parser = argparse.ArgumentParser(description="GraphDone MCP Server")
    parser.add_argument(
        "--neo4j-uri",
        default=os.environ.get("NEO4J_URI", "bolt://localhost:7687"),
        help="Neo4j connection URI",
    )
    parser.add_argument(
        "--database",
        default=os.environ.get("NEO4J_DATABASE", "neo4j"),
        help="Neo4j database name",
    )
    parser.add_argument(
        "--transport",
        choices=["stdio", "sse"],
        default="stdio",
        help="Transport to use (default: stdio)",
    )
    parser.add_argument(
        "--health-port",
        type=int,
        default=None,
        help="Port for /health and /status (0 disables; default: 3128)",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=os.environ.get("GRAPHDONE_LOG_LEVEL", "INFO").upper(),
        help="Logging level",
    )

    args = parser.parse_args()

    # Create config from env, then apply CLI overrides
    config = MCPConfig.from_env()
    config.graph.neo4j.uri = args.neo4j_uri
    config.graph.neo4j.database = args.database
    config.log_level = args.log_level
    if args.health_port is not None:
        config.health_port = args.health_port

    # Create and run server
    server = create_graph_mcp_server(config=config)
    server.run(transport=args.transport)


if __name__ == "__main__":
    main()

"""GraphService: the single entry point for every engine operation.

Opens a session per call, runs the engine function and converts any
failure into an ``OperationResult``. Nothing above this layer sees a
raw exception from the engine or the driver.

Example:
    >>> store = await Neo4jGraphStore.connect(config.neo4j)
    >>> service = GraphService(store, config)
    >>> result = await service.create_node({"title": "Ship v1"})
    >>> result.success
    True
"""

from __future__ import annotations

import logging
import threading
import time
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

from neo4j.exceptions import DriverError, Neo4jError

from graphdone.config import GraphDoneConfig, LimitsConfig
from graphdone.engine import analytics, bulk, contributors, graphs, mutations, priority, traversal
from graphdone.engine.queries import browse_graph
from graphdone.engine.store import Neo4jGraphStore
from graphdone.exceptions import ErrorKind, GraphDoneError, StorageError
from graphdone.models import OperationResult, utc_now

logger = logging.getLogger(__name__)


# =============================================================================
# Usage metrics
# =============================================================================


@dataclass
class UsageMetrics:
    """In-process counters reported by the /status endpoint."""

    started_at: float = field(default_factory=time.time)
    calls: Counter = field(default_factory=Counter)
    failures: Counter = field(default_factory=Counter)
    last_request: str | None = None
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def record(self, operation: str, success: bool) -> None:
        with self._lock:
            self.calls[operation] += 1
            self.last_request = utc_now()
            if not success:
                self.failures[operation] += 1

    def snapshot(self) -> dict[str, Any]:
        with self._lock:
            return {
                "uptime_seconds": round(time.time() - self.started_at, 3),
                "total_calls": sum(self.calls.values()),
                "total_failures": sum(self.failures.values()),
                "calls": dict(self.calls),
                "failures": dict(self.failures),
                "last_request": self.last_request,
            }


# =============================================================================
# Service
# =============================================================================


class GraphService:
    """Facade over the engine, bound to one store and configuration.

    Attributes:
        store: Neo4j store providing sessions.
        config: Engine configuration (limits, priority policy).
        metrics: Call counters.
    """

    def __init__(
        self,
        store: Neo4jGraphStore,
        config: GraphDoneConfig | None = None,
        metrics: UsageMetrics | None = None,
    ):
        self.store = store
        self.config = config or GraphDoneConfig()
        self.metrics = metrics or UsageMetrics()

    @property
    def limits(self) -> LimitsConfig:
        return self.config.limits

    def _fail(self, operation: str, exc: Exception) -> OperationResult:
        if isinstance(exc, GraphDoneError):
            error = exc
        else:
            error = StorageError(f"Database error during {operation}", cause=exc)

        if error.kind is ErrorKind.STORAGE:
            logger.error(f"Failed to {operation}: {error}")
        else:
            logger.warning(f"Rejected {operation}: {error}")
        self.metrics.record(operation, False)
        return OperationResult.from_exception(error)

    async def _execute(
        self,
        operation: str,
        fn: Callable[..., Awaitable[dict[str, Any]]],
        *args: Any,
        **kwargs: Any,
    ) -> OperationResult:
        """Run ``fn(session, *args, **kwargs)`` in a fresh auto-commit session."""
        try:
            async with self.store.session() as session:
                data = await fn(session, *args, **kwargs)
        except (GraphDoneError, Neo4jError, DriverError) as e:
            return self._fail(operation, e)
        self.metrics.record(operation, True)
        return OperationResult.ok(data)

    async def _execute_in_transaction(
        self,
        operation: str,
        fn: Callable[..., Awaitable[dict[str, Any]]],
        *args: Any,
        **kwargs: Any,
    ) -> OperationResult:
        """Run ``fn(tx, ...)`` in one explicit transaction; roll back on any failure."""
        try:
            async with self.store.session() as session:
                tx = await session.begin_transaction()
                try:
                    data = await fn(tx, *args, **kwargs)
                except Exception:
                    await tx.rollback()
                    raise
                else:
                    await tx.commit()
                finally:
                    await tx.close()
        except (GraphDoneError, Neo4jError, DriverError) as e:
            return self._fail(operation, e)
        self.metrics.record(operation, True)
        return OperationResult.ok(data)

    # -------------------------------------------------------------------------
    # Browsing and traversal
    # -------------------------------------------------------------------------

    async def browse_graph(
        self, query_type: str, filters: dict[str, Any] | None = None
    ) -> OperationResult:
        return await self._execute(
            "browse graph", browse_graph, query_type, filters, self.limits
        )

    async def get_node_details(
        self, node_id: str, relationships_limit: Any = 20, relationships_offset: Any = 0
    ) -> OperationResult:
        return await self._execute(
            "get node details",
            traversal.get_node_details,
            node_id,
            relationships_limit,
            relationships_offset,
        )

    async def find_path(
        self, start_id: str, end_id: str, max_depth: Any = 5, limit: Any = 10, offset: Any = 0
    ) -> OperationResult:
        return await self._execute(
            "find path", traversal.find_path, start_id, end_id, max_depth, limit, offset
        )

    async def detect_cycles(self, limit: Any = 10) -> OperationResult:
        return await self._execute("detect cycles", traversal.detect_cycles, limit)

    # -------------------------------------------------------------------------
    # Nodes and edges
    # -------------------------------------------------------------------------

    async def create_node(self, request: dict[str, Any]) -> OperationResult:
        return await self._execute_in_transaction(
            "create node", mutations.create_node, request, self.limits
        )

    async def update_node(self, node_id: str, update: dict[str, Any]) -> OperationResult:
        return await self._execute_in_transaction(
            "update node", mutations.update_node, node_id, update, self.limits
        )

    async def delete_node(self, node_id: str) -> OperationResult:
        return await self._execute_in_transaction("delete node", mutations.delete_node, node_id)

    async def create_edge(
        self,
        source_id: str,
        target_id: str,
        edge_type: str,
        weight: Any = None,
        metadata: dict[str, Any] | None = None,
    ) -> OperationResult:
        return await self._execute(
            "create edge",
            mutations.create_edge,
            source_id,
            target_id,
            edge_type,
            weight=weight,
            metadata=metadata,
        )

    async def delete_edge(self, source_id: str, target_id: str, edge_type: str) -> OperationResult:
        return await self._execute(
            "delete edge", mutations.delete_edge, source_id, target_id, edge_type
        )

    # -------------------------------------------------------------------------
    # Priorities
    # -------------------------------------------------------------------------

    async def update_priorities(
        self,
        node_id: str,
        executive: Any = None,
        individual: Any = None,
        community: Any = None,
        recalculate_computed: bool = True,
    ) -> OperationResult:
        return await self._execute(
            "update priorities",
            priority.update_priorities,
            node_id,
            executive,
            individual,
            community,
            recalculate_computed,
            self.limits.priority_policy,
        )

    async def bulk_update_priorities(self, updates: list[dict[str, Any]]) -> OperationResult:
        return await self._execute(
            "bulk update priorities",
            priority.bulk_update_priorities,
            updates,
            self.limits.priority_policy,
            self.limits,
        )

    async def get_priority_insights(
        self, filter_status: list[str] | None = None, include_distribution: bool = True
    ) -> OperationResult:
        return await self._execute(
            "get priority insights",
            priority.get_priority_insights,
            filter_status,
            include_distribution,
        )

    # -------------------------------------------------------------------------
    # Analytics
    # -------------------------------------------------------------------------

    async def analyze_graph_health(
        self,
        include_metrics: list[str] | None = None,
        depth_analysis: bool = False,
        team_id: str | None = None,
    ) -> OperationResult:
        return await self._execute(
            "analyze graph health",
            analytics.analyze_graph_health,
            include_metrics,
            depth_analysis,
            team_id,
        )

    async def get_bottlenecks(
        self,
        analysis_depth: Any = 5,
        include_suggested_resolutions: bool = True,
        team_id: str | None = None,
    ) -> OperationResult:
        return await self._execute(
            "get bottlenecks",
            analytics.get_bottlenecks,
            analysis_depth,
            include_suggested_resolutions,
            team_id,
        )

    async def get_workload_analysis(
        self,
        contributor_ids: list[str] | None = None,
        time_window: dict[str, str] | None = None,
        include_capacity: bool = False,
        include_predictions: bool = False,
    ) -> OperationResult:
        return await self._execute(
            "get workload analysis",
            analytics.get_workload_analysis,
            contributor_ids,
            time_window,
            include_capacity,
            include_predictions,
        )

    # -------------------------------------------------------------------------
    # Bulk
    # -------------------------------------------------------------------------

    async def bulk_operations(
        self,
        operations: list[dict[str, Any]],
        transaction: bool = True,
        rollback_on_error: bool = True,
    ) -> OperationResult:
        """Run a bulk batch; per-operation failures are reported in the payload."""
        return await self._execute(
            "execute bulk operations",
            bulk.execute_bulk_operations,
            operations,
            transaction,
            rollback_on_error,
            self.limits,
        )

    # -------------------------------------------------------------------------
    # Contributors
    # -------------------------------------------------------------------------

    async def get_contributor_priorities(self, contributor_id: str, **options: Any) -> OperationResult:
        return await self._execute(
            "get contributor priorities",
            contributors.get_contributor_priorities,
            contributor_id,
            **options,
        )

    async def get_contributor_workload(
        self, contributor_id: str, include_projects: bool = False
    ) -> OperationResult:
        return await self._execute(
            "get contributor workload",
            contributors.get_contributor_workload,
            contributor_id,
            include_projects,
        )

    async def find_contributors_by_project(self, **filters: Any) -> OperationResult:
        return await self._execute(
            "find contributors by project", contributors.find_contributors_by_project, **filters
        )

    async def get_project_team(self, graph_id: str) -> OperationResult:
        return await self._execute("get project team", contributors.get_project_team, graph_id)

    async def get_contributor_expertise(
        self, contributor_id: str, time_window_days: Any = 90, min_items_threshold: Any = 3
    ) -> OperationResult:
        return await self._execute(
            "get contributor expertise",
            contributors.get_contributor_expertise,
            contributor_id,
            time_window_days,
            min_items_threshold,
        )

    async def get_collaboration_network(self, **options: Any) -> OperationResult:
        return await self._execute(
            "get collaboration network", contributors.get_collaboration_network, **options
        )

    async def get_contributor_availability(
        self, contributor_ids: list[str] | None = None, include_recommendations: bool = True
    ) -> OperationResult:
        return await self._execute(
            "get contributor availability",
            contributors.get_contributor_availability,
            contributor_ids,
            include_recommendations,
        )

    # -------------------------------------------------------------------------
    # Graph containers
    # -------------------------------------------------------------------------

    async def create_graph(self, request: dict[str, Any]) -> OperationResult:
        return await self._execute_in_transaction(
            "create graph", graphs.create_graph, request, self.limits
        )

    async def list_graphs(
        self,
        graph_type: str | None = None,
        status: str | None = None,
        team_id: str | None = None,
        limit: Any = 50,
        offset: Any = 0,
    ) -> OperationResult:
        return await self._execute(
            "list graphs",
            graphs.list_graphs,
            graph_type,
            status,
            team_id,
            limit,
            offset,
            self.limits,
        )

    async def get_graph_details(self, graph_id: str) -> OperationResult:
        return await self._execute("get graph details", graphs.get_graph_details, graph_id)

    async def update_graph(self, graph_id: str, update: dict[str, Any]) -> OperationResult:
        return await self._execute_in_transaction(
            "update graph", graphs.update_graph, graph_id, update, self.limits
        )

    async def delete_graph(self, graph_id: str, force: bool = False) -> OperationResult:
        return await self._execute_in_transaction(
            "delete graph", graphs.delete_graph, graph_id, force
        )

    async def archive_graph(self, graph_id: str, reason: str | None = None) -> OperationResult:
        return await self._execute("archive graph", graphs.archive_graph, graph_id, reason)

    async def clone_graph(
        self, graph_id: str, new_name: str, include_nodes: bool = True
    ) -> OperationResult:
        return await self._execute_in_transaction(
            "clone graph", graphs.clone_graph, graph_id, new_name, include_nodes
        )

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def ping(self) -> bool:
        return await self.store.verify_connectivity()

    async def close(self) -> None:
        await self.store.close()

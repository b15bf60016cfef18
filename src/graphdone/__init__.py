"""GraphDone: graph query and analytics engine for work-item graphs.

Exposes a Neo4j property graph of WorkItems (tasks, epics, features and
so on), their dependencies, priorities and contributors through a
service facade and an MCP tool server.

Example:
    from graphdone import GraphDoneConfig, GraphService, Neo4jGraphStore

    config = GraphDoneConfig.from_env()
    store = await Neo4jGraphStore.connect(config.neo4j)
    service = GraphService(store, config)
    result = await service.browse_graph("by_status", {"status": "BLOCKED"})
"""

from graphdone.config import GraphDoneConfig, LimitsConfig, Neo4jConfig, PriorityPolicy
from graphdone.engine.store import Neo4jGraphStore
from graphdone.exceptions import (
    ConfigurationError,
    ConflictError,
    ErrorKind,
    GraphDoneError,
    LimitExceededError,
    NotFoundError,
    StorageError,
    ValidationError,
)
from graphdone.models import (
    EdgeType,
    GraphStatus,
    GraphType,
    NodeStatus,
    NodeType,
    OperationResult,
    PaginationInfo,
    QueryType,
)
from graphdone.service import GraphService, UsageMetrics

__version__ = "1.0.0"

__all__ = [
    # Config
    "GraphDoneConfig",
    "LimitsConfig",
    "Neo4jConfig",
    "PriorityPolicy",
    # Errors
    "ConfigurationError",
    "ConflictError",
    "ErrorKind",
    "GraphDoneError",
    "LimitExceededError",
    "NotFoundError",
    "StorageError",
    "ValidationError",
    # Models
    "EdgeType",
    "GraphStatus",
    "GraphType",
    "NodeStatus",
    "NodeType",
    "OperationResult",
    "PaginationInfo",
    "QueryType",
    # Service
    "GraphService",
    "Neo4jGraphStore",
    "UsageMetrics",
]

"""Query and mutation engine over the Neo4j WorkItem graph.

Every engine function takes a ``QueryExecutor`` (an async session or
transaction) as its first argument, sanitizes its inputs, raises
``GraphDoneError`` subclasses on failure and returns plain dicts.
"""

from graphdone.engine.bulk import BulkOperation, execute_bulk_operations
from graphdone.engine.queries import (
    BrowseQueries,
    CypherQuery,
    browse_graph,
    build_browse_queries,
    create_pagination_info,
    normalize_page,
)
from graphdone.engine.store import Neo4jGraphStore, QueryExecutor, fetch_all, fetch_one
from graphdone.engine.updates import UNSET, GraphUpdate, NodeUpdate, build_set_clause

__all__ = [
    # Storage
    "Neo4jGraphStore",
    "QueryExecutor",
    "fetch_all",
    "fetch_one",
    # Queries
    "BrowseQueries",
    "CypherQuery",
    "browse_graph",
    "build_browse_queries",
    "create_pagination_info",
    "normalize_page",
    # Updates
    "UNSET",
    "GraphUpdate",
    "NodeUpdate",
    "build_set_clause",
    # Bulk
    "BulkOperation",
    "execute_bulk_operations",
]

"""Query builder and pagination for browsing WorkItems.

A browse request is a ``query_type`` selector plus a filter bag. The
builder maps it to a main Cypher query and, for every paginated type,
a count query sharing the same predicate. Only fixed query text is
ever produced; every caller value is bound as a parameter.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Any

from graphdone.config import LimitsConfig
from graphdone.engine.store import QueryExecutor, fetch_all, fetch_one
from graphdone.exceptions import NotFoundError, ValidationError
from graphdone.models import PaginationInfo, QueryType, node_properties
from graphdone.utils.sanitizer import (
    sanitize_node_id,
    sanitize_node_status,
    sanitize_node_type,
    sanitize_string,
    to_finite_float,
)

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 50
DEFAULT_OFFSET = 0
MAX_SEARCH_LENGTH = 200

CONTRIBUTOR_TYPES = "WORKED_ON_BY|CONTRIBUTES_TO"
CONTRIBUTOR_LINK = f"[:{CONTRIBUTOR_TYPES}]"


@dataclass
class CypherQuery:
    """Query text plus its bound parameters."""

    text: str
    parameters: dict[str, Any] = field(default_factory=dict)


@dataclass
class BrowseQueries:
    """Queries produced for one browse request."""

    query_type: QueryType
    main: CypherQuery
    count: CypherQuery | None = None
    limit: int | None = None
    offset: int | None = None


# =============================================================================
# Pagination
# =============================================================================


def normalize_page(
    limit: Any = None,
    offset: Any = None,
    max_limit: int | None = None,
    default_limit: int = DEFAULT_LIMIT,
) -> tuple[int, int]:
    """Floor and default ``limit``/``offset``.

    Raises:
        ValidationError: If limit <= 0 or offset < 0.
    """
    if limit is None:
        limit_value = default_limit
    else:
        limit_value = math.floor(to_finite_float(limit, "limit"))
    if offset is None:
        offset_value = DEFAULT_OFFSET
    else:
        offset_value = math.floor(to_finite_float(offset, "offset"))

    if limit_value <= 0:
        raise ValidationError(f"limit must be greater than 0, got {limit_value}")
    if offset_value < 0:
        raise ValidationError(f"offset must not be negative, got {offset_value}")
    if max_limit is not None and limit_value > max_limit:
        logger.warning(f"Capping limit {limit_value} to {max_limit}")
        limit_value = max_limit
    return int(limit_value), int(offset_value)


def create_pagination_info(total: int, limit: int, offset: int) -> PaginationInfo:
    """Compute page metadata for a listing.

    Raises:
        ValidationError: If limit <= 0.
    """
    if limit <= 0:
        raise ValidationError(f"limit must be greater than 0, got {limit}")
    total = max(int(total), 0)
    current_page = offset // limit + 1
    total_pages = math.ceil(total / limit)
    return PaginationInfo(
        total_count=total,
        limit=limit,
        offset=offset,
        current_page=current_page,
        total_pages=total_pages,
        has_next_page=current_page < total_pages,
        has_previous_page=current_page > 1,
    )


# =============================================================================
# Query construction
# =============================================================================


def _require(filters: dict[str, Any], name: str, query_type: QueryType) -> Any:
    value = filters.get(name)
    if value is None or value == "":
        raise ValidationError(f"{name} filter is required for {query_type.value} queries")
    return value


def _predicate(query_type: QueryType, filters: dict[str, Any]) -> tuple[str, dict[str, Any]]:
    """Return (MATCH ... WHERE ... fragment, parameters) for a paginated type."""
    if query_type == QueryType.ALL_NODES:
        return "MATCH (n:WorkItem)", {}

    if query_type == QueryType.BY_TYPE:
        node_type = sanitize_node_type(_require(filters, "node_type", query_type))
        return "MATCH (n:WorkItem) WHERE n.type = $node_type", {"node_type": node_type}

    if query_type == QueryType.BY_STATUS:
        status = sanitize_node_status(_require(filters, "status", query_type))
        return "MATCH (n:WorkItem) WHERE n.status = $status", {"status": status}

    if query_type == QueryType.BY_CONTRIBUTOR:
        contributor_id = sanitize_node_id(_require(filters, "contributor_id", query_type))
        return (
            f"MATCH (n:WorkItem)-{CONTRIBUTOR_LINK}-(:Contributor {{id: $contributor_id}})",
            {"contributor_id": contributor_id},
        )

    if query_type == QueryType.BY_PRIORITY:
        raw = filters.get("min_priority")
        min_priority = 0.0 if raw is None else to_finite_float(raw, "min_priority")
        return (
            "MATCH (n:WorkItem) WHERE coalesce(n.priorityComputed, 0.0) >= $min_priority",
            {"min_priority": float(min_priority)},
        )

    if query_type == QueryType.SEARCH:
        term = sanitize_string(_require(filters, "search_term", query_type), MAX_SEARCH_LENGTH)
        return (
            "MATCH (n:WorkItem) "
            "WHERE toLower(coalesce(n.title, '')) CONTAINS toLower($search_term) "
            "OR toLower(coalesce(n.description, '')) CONTAINS toLower($search_term)",
            {"search_term": term},
        )

    raise ValidationError(f"Unsupported query type for pagination: {query_type.value}")


def _dependencies_query(filters: dict[str, Any]) -> CypherQuery:
    node_id = sanitize_node_id(_require(filters, "node_id", QueryType.DEPENDENCIES))
    return CypherQuery(
        text="""
            MATCH (n:WorkItem {id: $node_id})
            OPTIONAL MATCH (n)-[:DEPENDS_ON]->(dependency:WorkItem)
            WITH n, collect(DISTINCT dependency) AS depends_on
            OPTIONAL MATCH (dependent:WorkItem)-[:DEPENDS_ON]->(n)
            RETURN n, depends_on, collect(DISTINCT dependent) AS dependents
        """,
        parameters={"node_id": node_id},
    )


def build_browse_queries(
    query_type: str | QueryType,
    filters: dict[str, Any] | None = None,
    limits: LimitsConfig | None = None,
) -> BrowseQueries:
    """Build the main (and count) query for a browse request.

    Args:
        query_type: One of the QueryType selectors.
        filters: Filter bag (node_type, status, contributor_id,
            min_priority, node_id, search_term, limit, offset).
        limits: Resource limits (for the page-size cap).

    Raises:
        ValidationError: On an unknown selector, a missing required
            filter, or invalid pagination input.
    """
    filters = filters or {}
    limits = limits or LimitsConfig()
    try:
        selector = QueryType(query_type)
    except ValueError as e:
        valid = ", ".join(q.value for q in QueryType)
        raise ValidationError(f"Unknown query_type {query_type!r}. Must be one of: {valid}", cause=e)

    if selector == QueryType.DEPENDENCIES:
        return BrowseQueries(query_type=selector, main=_dependencies_query(filters))

    limit, offset = normalize_page(
        filters.get("limit"), filters.get("offset"), max_limit=limits.max_page_size
    )
    match, params = _predicate(selector, filters)
    distinct = "DISTINCT " if selector == QueryType.BY_CONTRIBUTOR else ""
    if selector == QueryType.BY_PRIORITY:
        order = "n.priorityComputed DESC, n.updatedAt DESC"
    else:
        order = "n.updatedAt DESC"

    main = CypherQuery(
        text=(
            f"{match} RETURN {distinct}n ORDER BY {order} "
            "SKIP $offset LIMIT $limit"
        ),
        parameters={**params, "offset": offset, "limit": limit},
    )
    count = CypherQuery(
        text=f"{match} RETURN count({distinct}n) AS total",
        parameters=dict(params),
    )
    return BrowseQueries(
        query_type=selector, main=main, count=count, limit=limit, offset=offset
    )


# =============================================================================
# Execution
# =============================================================================


async def browse_graph(
    executor: QueryExecutor,
    query_type: str | QueryType,
    filters: dict[str, Any] | None = None,
    limits: LimitsConfig | None = None,
) -> dict[str, Any]:
    """Run a browse request and shape the response.

    Returns:
        For paginated types: ``{query_type, nodes, pagination}``.
        For ``dependencies``: ``{query_type, node, depends_on, dependents}``.
    """
    queries = build_browse_queries(query_type, filters, limits)

    if queries.count is None:
        record = await fetch_one(executor, queries.main.text, queries.main.parameters)
        if record is None:
            raise NotFoundError(f"Node not found: {queries.main.parameters['node_id']}")
        return {
            "query_type": queries.query_type.value,
            "node": node_properties(record["n"]),
            "depends_on": [node_properties(n) for n in record["depends_on"]],
            "dependents": [node_properties(n) for n in record["dependents"]],
        }

    count_record = await fetch_one(executor, queries.count.text, queries.count.parameters)
    total = count_record["total"] if count_record else 0
    records = await fetch_all(executor, queries.main.text, queries.main.parameters)
    pagination = create_pagination_info(total, queries.limit, queries.offset)

    return {
        "query_type": queries.query_type.value,
        "nodes": [node_properties(record["n"]) for record in records],
        "pagination": pagination.to_dict(),
    }

"""Read-side traversals: node details, path finding, cycle detection."""

from __future__ import annotations

import logging
from typing import Any

from graphdone.engine.queries import CONTRIBUTOR_LINK, create_pagination_info, normalize_page
from graphdone.engine.store import QueryExecutor, fetch_all, fetch_one
from graphdone.exceptions import NotFoundError, ValidationError
from graphdone.models import node_properties
from graphdone.utils.sanitizer import sanitize_node_id, to_finite_float

logger = logging.getLogger(__name__)

MAX_RELATIONSHIPS_PAGE = 100
DEFAULT_RELATIONSHIPS_PAGE = 20
MAX_PATH_DEPTH = 10
MAX_CYCLE_LENGTH = 10


def _clamp_int(value: Any, label: str, low: int, high: int, default: int) -> int:
    if value is None:
        return default
    number = int(to_finite_float(value, label))
    return min(max(number, low), high)


async def get_node_details(
    executor: QueryExecutor,
    node_id: str,
    relationships_limit: Any = DEFAULT_RELATIONSHIPS_PAGE,
    relationships_offset: Any = 0,
) -> dict[str, Any]:
    """Return a node, its contributors and a page of its relationships.

    Raises:
        NotFoundError: If the node does not exist.
    """
    node_id = sanitize_node_id(node_id)
    limit = _clamp_int(
        relationships_limit, "relationships_limit", 1, MAX_RELATIONSHIPS_PAGE,
        DEFAULT_RELATIONSHIPS_PAGE,
    )
    _, offset = normalize_page(limit, relationships_offset)

    record = await fetch_one(
        executor,
        f"""
        MATCH (n:WorkItem {{id: $node_id}})
        OPTIONAL MATCH (n)-{CONTRIBUTOR_LINK}-(c:Contributor)
        RETURN n, collect(DISTINCT c {{.id, .name, .type}}) AS contributors
        """,
        {"node_id": node_id},
    )
    if record is None:
        raise NotFoundError(f"Node not found: {node_id}")

    count = await fetch_one(
        executor,
        """
        MATCH (n:WorkItem {id: $node_id})-[r]-(:WorkItem)
        RETURN count(r) AS total
        """,
        {"node_id": node_id},
    )
    rows = await fetch_all(
        executor,
        """
        MATCH (n:WorkItem {id: $node_id})-[r]-(other:WorkItem)
        RETURN type(r) AS type,
               CASE WHEN startNode(r) = n THEN 'outgoing' ELSE 'incoming' END AS direction,
               other {.id, .title, .type, .status} AS node,
               r.weight AS weight
        ORDER BY type, other.id
        SKIP $offset LIMIT $limit
        """,
        {"node_id": node_id, "offset": offset, "limit": limit},
    )

    return {
        "node": node_properties(record["n"]),
        "contributors": [c for c in record["contributors"] if c and c.get("id")],
        "relationships": [
            {
                "type": r["type"],
                "direction": r["direction"],
                "node": r["node"],
                "weight": r["weight"],
            }
            for r in rows
        ],
        "relationships_pagination": create_pagination_info(
            count["total"] if count else 0, limit, offset
        ).to_dict(),
    }


async def find_path(
    executor: QueryExecutor,
    start_id: str,
    end_id: str,
    max_depth: Any = 5,
    limit: Any = 10,
    offset: Any = 0,
) -> dict[str, Any]:
    """Find all shortest paths between two WorkItems over any relationship."""
    start_id = sanitize_node_id(start_id)
    end_id = sanitize_node_id(end_id)
    if start_id == end_id:
        raise ValidationError("start_id and end_id must differ")
    depth = _clamp_int(max_depth, "max_depth", 1, MAX_PATH_DEPTH, 5)
    limit_value, offset_value = normalize_page(limit, offset, default_limit=10)

    # Variable-length bounds cannot be parameters; depth is a clamped int.
    pattern = (
        "MATCH path = allShortestPaths("
        f"(start:WorkItem {{id: $start_id}})-[*1..{depth}]-(end:WorkItem {{id: $end_id}}))"
    )
    count = await fetch_one(
        executor,
        f"{pattern} RETURN count(path) AS total",
        {"start_id": start_id, "end_id": end_id},
    )
    total = count["total"] if count else 0
    rows = await fetch_all(
        executor,
        f"""
        {pattern}
        RETURN [n IN nodes(path) | n {{.id, .title, .type, .status}}] AS nodes,
               [r IN relationships(path) | type(r)] AS relationship_types,
               length(path) AS length
        ORDER BY length ASC
        SKIP $offset LIMIT $limit
        """,
        {"start_id": start_id, "end_id": end_id, "offset": offset_value, "limit": limit_value},
    )

    result: dict[str, Any] = {
        "start_id": start_id,
        "end_id": end_id,
        "max_depth": depth,
        "total_paths": total,
        "paths": [
            {
                "nodes": r["nodes"],
                "relationship_types": r["relationship_types"],
                "length": r["length"],
            }
            for r in rows
        ],
        "pagination": create_pagination_info(total, limit_value, offset_value).to_dict(),
    }
    if total == 0:
        result["message"] = "No path found between the specified nodes"
    return result


def _canonical_cycle(node_ids: list[str]) -> tuple[str, ...]:
    """Rotate a closed cycle so it starts at its smallest ID."""
    ring = node_ids[:-1] if len(node_ids) > 1 and node_ids[0] == node_ids[-1] else node_ids
    if not ring:
        return ()
    start = ring.index(min(ring))
    return tuple(ring[start:] + ring[:start])


async def detect_cycles(executor: QueryExecutor, limit: Any = 10) -> dict[str, Any]:
    """Find DEPENDS_ON cycles (length 2 to 10).

    Each cycle is reported once regardless of which member it was found from.
    """
    limit_value = _clamp_int(limit, "limit", 1, 100, 10)
    rows = await fetch_all(
        executor,
        f"""
        MATCH path = (n:WorkItem)-[:DEPENDS_ON*2..{MAX_CYCLE_LENGTH}]->(n)
        RETURN [x IN nodes(path) | x.id] AS node_ids, length(path) AS length
        LIMIT $scan_limit
        """,
        # Every cycle is matched once per member, so scan past the limit.
        {"scan_limit": limit_value * MAX_CYCLE_LENGTH},
    )

    seen: set[tuple[str, ...]] = set()
    cycles: list[dict[str, Any]] = []
    for row in rows:
        key = _canonical_cycle(list(row["node_ids"]))
        if not key or key in seen:
            continue
        seen.add(key)
        cycles.append({"node_ids": list(key), "length": row["length"]})
        if len(cycles) >= limit_value:
            break

    if cycles:
        logger.warning(f"Detected {len(cycles)} dependency cycles")
    return {"cycles_found": len(cycles), "cycles": cycles, "has_cycles": bool(cycles)}

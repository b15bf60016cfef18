"""Graph containers: projects and workspaces that own WorkItems.

A Graph may name a parent through ``parentGraphId``. The hierarchy is
kept acyclic by walking the ancestry of a proposed parent before it is
written; the walk is bounded by ``LimitsConfig.max_hierarchy_depth``.
"""

from __future__ import annotations

import json
import logging
from collections import defaultdict
from typing import Any

from neo4j.exceptions import ConstraintError

from graphdone.config import LimitsConfig
from graphdone.engine.queries import create_pagination_info, normalize_page
from graphdone.engine.store import QueryExecutor, fetch_all, fetch_one
from graphdone.engine.updates import GraphUpdate, build_set_clause
from graphdone.exceptions import (
    ConflictError,
    LimitExceededError,
    NotFoundError,
    ValidationError,
)
from graphdone.models import EdgeType, GraphStatus, GraphType, node_properties, utc_now
from graphdone.utils.ids import (
    generate_unique_edge_id,
    generate_unique_graph_id,
    generate_unique_node_id,
)
from graphdone.utils.sanitizer import (
    sanitize_graph_status,
    sanitize_graph_type,
    sanitize_metadata,
    sanitize_node_id,
    sanitize_string,
    validate_memory_usage,
)

logger = logging.getLogger(__name__)

MAX_NAME_LENGTH = 200
MAX_DESCRIPTION_LENGTH = 2000
DEFAULT_ARCHIVE_REASON = "Archived via API"


# =============================================================================
# Hierarchy
# =============================================================================


async def _require_graph(executor: QueryExecutor, graph_id: str) -> dict[str, Any]:
    record = await fetch_one(
        executor, "MATCH (g:Graph {id: $graph_id}) RETURN g", {"graph_id": graph_id}
    )
    if record is None:
        raise NotFoundError(f"Graph not found: {graph_id}")
    return node_properties(record["g"])


async def check_parent(
    executor: QueryExecutor,
    graph_id: str,
    parent_graph_id: str,
    max_depth: int,
) -> None:
    """Verify that making ``parent_graph_id`` the parent keeps the hierarchy acyclic.

    Walks upward from the proposed parent. Reaching ``graph_id`` means the
    parent is the graph itself or one of its descendants.

    Raises:
        NotFoundError: If the parent does not exist.
        ConflictError: If the assignment would create a cycle.
        LimitExceededError: If the resulting hierarchy is deeper than allowed.
    """
    if parent_graph_id == graph_id:
        raise ConflictError(f"Graph {graph_id} cannot be its own parent")

    current: str | None = parent_graph_id
    depth = 0
    while current:
        if current == graph_id:
            raise ConflictError(
                f"Setting parent {parent_graph_id} would create a cycle in the graph hierarchy"
            )
        depth += 1
        if depth > max_depth:
            raise LimitExceededError(f"Graph hierarchy exceeds maximum depth of {max_depth}")
        record = await fetch_one(
            executor,
            "MATCH (g:Graph {id: $graph_id}) RETURN g.parentGraphId AS parent",
            {"graph_id": current},
        )
        if record is None:
            if current == parent_graph_id:
                raise NotFoundError(f"Parent graph not found: {parent_graph_id}")
            # Dangling reference above the parent ends the chain.
            break
        current = record["parent"]


# =============================================================================
# CRUD
# =============================================================================


async def create_graph(
    executor: QueryExecutor,
    request: dict[str, Any],
    limits: LimitsConfig | None = None,
) -> dict[str, Any]:
    """Create a Graph container.

    Args:
        executor: Session or transaction.
        request: name (required), type, status, description, team_id,
            parent_graph_id, settings.
        limits: Resource limits.

    Raises:
        ValidationError: If the name is missing or a value is invalid.
        NotFoundError: If the parent graph does not exist.
        ConflictError: If the ID already exists.
    """
    limits = limits or LimitsConfig()
    validate_memory_usage(request, limits.max_payload_mb)

    name = sanitize_string(request.get("name") or "", MAX_NAME_LENGTH).strip()
    if not name:
        raise ValidationError("Graph name is required")
    graph_id = sanitize_node_id(request["id"]) if request.get("id") else generate_unique_graph_id()
    parent_id = (
        sanitize_node_id(request["parent_graph_id"]) if request.get("parent_graph_id") else None
    )
    if parent_id:
        await check_parent(executor, graph_id, parent_id, limits.max_hierarchy_depth)

    now = utc_now()
    try:
        record = await fetch_one(
            executor,
            """
            CREATE (g:Graph {
                id: $id,
                name: $name,
                description: $description,
                type: $type,
                status: $status,
                teamId: $team_id,
                parentGraphId: $parent_graph_id,
                settings: $settings,
                nodeCount: 0,
                edgeCount: 0,
                contributorCount: 0,
                createdAt: $now,
                updatedAt: $now
            })
            RETURN g
            """,
            {
                "id": graph_id,
                "name": name,
                "description": sanitize_string(
                    request.get("description") or "", MAX_DESCRIPTION_LENGTH
                ),
                "type": sanitize_graph_type(request.get("type"), default=GraphType.PROJECT),
                "status": sanitize_graph_status(request.get("status"), default=GraphStatus.ACTIVE),
                "team_id": sanitize_node_id(request["team_id"]) if request.get("team_id") else None,
                "parent_graph_id": parent_id,
                "settings": json.dumps(sanitize_metadata(request.get("settings") or {})),
                "now": now,
            },
        )
    except ConstraintError as e:
        raise ConflictError(f"Graph ID already exists: {graph_id}", cause=e)

    logger.info(f"Created graph {graph_id} ({name})")
    return node_properties(record["g"] if record else None)


async def list_graphs(
    executor: QueryExecutor,
    graph_type: str | None = None,
    status: str | None = None,
    team_id: str | None = None,
    limit: Any = 50,
    offset: Any = 0,
    limits: LimitsConfig | None = None,
) -> dict[str, Any]:
    limits = limits or LimitsConfig()
    limit_value, offset_value = normalize_page(limit, offset, max_limit=limits.max_page_size)

    conditions: list[str] = []
    params: dict[str, Any] = {}
    if graph_type:
        conditions.append("g.type = $type")
        params["type"] = sanitize_graph_type(graph_type)
    if status:
        conditions.append("g.status = $status")
        params["status"] = sanitize_graph_status(status)
    if team_id:
        conditions.append("g.teamId = $team_id")
        params["team_id"] = sanitize_node_id(team_id)
    where = f"WHERE {' AND '.join(conditions)}" if conditions else ""

    count = await fetch_one(executor, f"MATCH (g:Graph) {where} RETURN count(g) AS total", params)
    total = count["total"] if count else 0
    rows = await fetch_all(
        executor,
        f"""
        MATCH (g:Graph) {where}
        RETURN g
        ORDER BY g.updatedAt DESC, g.id
        SKIP $offset LIMIT $limit
        """,
        {**params, "offset": offset_value, "limit": limit_value},
    )
    return {
        "graphs": [node_properties(r["g"]) for r in rows],
        "pagination": create_pagination_info(total, limit_value, offset_value).to_dict(),
    }


async def get_graph_details(executor: QueryExecutor, graph_id: str) -> dict[str, Any]:
    """Return a graph with freshly computed counts.

    The stored ``nodeCount``, ``edgeCount`` and ``contributorCount`` are
    refreshed from the live data as a side effect.

    Raises:
        NotFoundError: If the graph does not exist.
    """
    graph_id = sanitize_node_id(graph_id)
    await _require_graph(executor, graph_id)

    record = await fetch_one(
        executor,
        """
        MATCH (g:Graph {id: $graph_id})
        OPTIONAL MATCH (g)<-[:BELONGS_TO]-(w:WorkItem)
        OPTIONAL MATCH (w)-[:WORKED_ON_BY|CONTRIBUTES_TO]-(c:Contributor)
        WITH g, count(DISTINCT w) AS nodes, count(DISTINCT c) AS contributors
        SET g.nodeCount = nodes,
            g.contributorCount = contributors,
            g.edgeCount = COUNT {
                (g)<-[:BELONGS_TO]-(:WorkItem)-[]->(:WorkItem)-[:BELONGS_TO]->(g)
            }
        WITH g
        OPTIONAL MATCH (g)<-[:BELONGS_TO]-(n:WorkItem)
        WITH g, n.status AS status, count(n) AS count
        RETURN g, collect(CASE WHEN status IS NULL THEN null ELSE [status, count] END) AS statuses
        """,
        {"graph_id": graph_id},
    )
    if record is None:
        raise NotFoundError(f"Graph not found: {graph_id}")
    graph = node_properties(record["g"])
    children = await fetch_all(
        executor,
        "MATCH (c:Graph {parentGraphId: $graph_id}) RETURN c {.id, .name, .type, .status} AS child",
        {"graph_id": graph_id},
    )
    return {
        "graph": graph,
        "stats": {
            "node_count": graph.get("nodeCount", 0),
            "edge_count": graph.get("edgeCount", 0),
            "contributor_count": graph.get("contributorCount", 0),
            "status_distribution": {
                status: count for status, count in (pair for pair in record["statuses"] if pair)
            },
        },
        "subgraphs": [r["child"] for r in children],
    }


def _graph_update_properties(update: GraphUpdate) -> dict[str, Any]:
    properties: dict[str, Any] = {}
    for name, value in update.provided().items():
        if name == "name":
            cleaned = sanitize_string(value or "", MAX_NAME_LENGTH).strip()
            if not cleaned:
                raise ValidationError("Graph name cannot be empty")
            properties["name"] = cleaned
        elif name == "description":
            properties["description"] = sanitize_string(value or "", MAX_DESCRIPTION_LENGTH)
        elif name == "status":
            properties["status"] = sanitize_graph_status(value)
        elif name == "settings":
            properties["settings"] = json.dumps(sanitize_metadata(value or {}))
        elif name == "parent_graph_id":
            properties["parentGraphId"] = sanitize_node_id(value) if value else None
    return properties


async def update_graph(
    executor: QueryExecutor,
    graph_id: str,
    update: GraphUpdate | dict[str, Any],
    limits: LimitsConfig | None = None,
) -> dict[str, Any]:
    """Apply a field-level update to a Graph.

    A ``parent_graph_id`` of None detaches the graph from its parent.

    Raises:
        ValidationError: If no fields are supplied.
        NotFoundError: If the graph or the new parent does not exist.
        ConflictError: If the new parent would create a hierarchy cycle.
    """
    limits = limits or LimitsConfig()
    graph_id = sanitize_node_id(graph_id)
    if isinstance(update, dict):
        update = GraphUpdate.from_request(update)
    if update.is_empty():
        raise ValidationError("No fields provided to update")

    validate_memory_usage(update.provided(), limits.max_payload_mb)
    properties = _graph_update_properties(update)
    await _require_graph(executor, graph_id)
    if properties.get("parentGraphId"):
        await check_parent(
            executor, graph_id, properties["parentGraphId"], limits.max_hierarchy_depth
        )

    clause = build_set_clause(properties, alias="g", now=utc_now())
    record = await fetch_one(
        executor,
        f"""
        MATCH (g:Graph {{id: $graph_id}})
        {clause.text}
        RETURN g
        """,
        {"graph_id": graph_id, **clause.parameters},
    )
    if record is None:
        raise NotFoundError(f"Graph not found: {graph_id}")
    logger.info(f"Updated graph {graph_id}: {sorted(update.provided())}")
    return node_properties(record["g"])


async def delete_graph(
    executor: QueryExecutor,
    graph_id: str,
    force: bool = False,
) -> dict[str, Any]:
    """Delete a graph.

    Without ``force`` a graph that still owns WorkItems is left untouched.
    With ``force`` the owned WorkItems are deleted as well. Subgraphs are
    detached, not deleted.

    Raises:
        NotFoundError: If the graph does not exist.
        ConflictError: If the graph owns WorkItems and ``force`` is false.
    """
    graph_id = sanitize_node_id(graph_id)
    record = await fetch_one(
        executor,
        """
        MATCH (g:Graph {id: $graph_id})
        RETURN g.name AS name, COUNT { (g)<-[:BELONGS_TO]-(:WorkItem) } AS node_count
        """,
        {"graph_id": graph_id},
    )
    if record is None:
        raise NotFoundError(f"Graph not found: {graph_id}")
    node_count = record["node_count"]
    if node_count > 0 and not force:
        raise ConflictError(
            f"Graph contains {node_count} nodes. Use force=true to delete anyway."
        )

    await executor.run(
        """
        MATCH (g:Graph {id: $graph_id})
        OPTIONAL MATCH (g)<-[:BELONGS_TO]-(n:WorkItem)
        DETACH DELETE n
        WITH DISTINCT g
        OPTIONAL MATCH (child:Graph {parentGraphId: $graph_id})
        SET child.parentGraphId = null
        WITH DISTINCT g
        DETACH DELETE g
        """,
        {"graph_id": graph_id},
    )
    logger.info(f"Deleted graph {graph_id} (force={force}, nodes removed={node_count})")
    return {"deleted_graph_id": graph_id, "name": record["name"], "nodes_deleted": node_count}


async def archive_graph(
    executor: QueryExecutor,
    graph_id: str,
    reason: str | None = None,
) -> dict[str, Any]:
    graph_id = sanitize_node_id(graph_id)
    now = utc_now()
    record = await fetch_one(
        executor,
        """
        MATCH (g:Graph {id: $graph_id})
        SET g.status = $status, g.archivedAt = $now, g.archiveReason = $reason,
            g.updatedAt = $now
        RETURN g
        """,
        {
            "graph_id": graph_id,
            "status": GraphStatus.ARCHIVED.value,
            "now": now,
            "reason": sanitize_string(reason or DEFAULT_ARCHIVE_REASON, 500),
        },
    )
    if record is None:
        raise NotFoundError(f"Graph not found: {graph_id}")
    logger.info(f"Archived graph {graph_id}")
    return node_properties(record["g"])


# =============================================================================
# Cloning
# =============================================================================


async def clone_graph(
    executor: QueryExecutor,
    graph_id: str,
    new_name: str,
    include_nodes: bool = True,
) -> dict[str, Any]:
    """Copy a graph, and optionally its WorkItems and the edges among them.

    Copied WorkItems get fresh IDs and keep their contributor links.
    Callers pass a transaction so a failure leaves nothing behind.

    Raises:
        ValidationError: If ``new_name`` is empty.
        NotFoundError: If the source graph does not exist.
    """
    graph_id = sanitize_node_id(graph_id)
    name = sanitize_string(new_name or "", MAX_NAME_LENGTH).strip()
    if not name:
        raise ValidationError("new_name is required")
    source = await _require_graph(executor, graph_id)

    new_graph_id = generate_unique_graph_id()
    now = utc_now()
    await executor.run(
        """
        MATCH (src:Graph {id: $graph_id})
        CREATE (g:Graph)
        SET g = properties(src),
            g.id = $new_graph_id, g.name = $name, g.status = $status,
            g.clonedFrom = $graph_id, g.nodeCount = 0, g.edgeCount = 0,
            g.createdAt = $now, g.updatedAt = $now
        REMOVE g.archivedAt, g.archiveReason
        """,
        {
            "graph_id": graph_id,
            "new_graph_id": new_graph_id,
            "name": name,
            "status": GraphStatus.ACTIVE.value,
            "now": now,
        },
    )

    nodes_copied = 0
    edges_copied = 0
    if include_nodes:
        rows = await fetch_all(
            executor,
            "MATCH (:Graph {id: $graph_id})<-[:BELONGS_TO]-(n:WorkItem) RETURN n.id AS id",
            {"graph_id": graph_id},
        )
        id_map = {r["id"]: generate_unique_node_id() for r in rows}
        if id_map:
            copied = await fetch_one(
                executor,
                """
                MATCH (g:Graph {id: $new_graph_id})
                UNWIND $mapping AS m
                MATCH (o:WorkItem {id: m.old_id})
                CREATE (c:WorkItem)
                SET c = properties(o), c.id = m.new_id, c.createdAt = $now, c.updatedAt = $now
                CREATE (c)-[:BELONGS_TO]->(g)
                WITH o, c
                OPTIONAL MATCH (o)-[:WORKED_ON_BY|CONTRIBUTES_TO]-(p:Contributor)
                FOREACH (_ IN CASE WHEN p IS NULL THEN [] ELSE [1] END |
                    MERGE (c)-[:WORKED_ON_BY]->(p))
                RETURN count(DISTINCT c) AS copied
                """,
                {
                    "new_graph_id": new_graph_id,
                    "mapping": [{"old_id": old, "new_id": new} for old, new in id_map.items()],
                    "now": now,
                },
            )
            nodes_copied = copied["copied"] if copied else 0

            edges = await fetch_all(
                executor,
                """
                MATCH (g:Graph {id: $graph_id})<-[:BELONGS_TO]-(s:WorkItem)-[r]->(t:WorkItem)
                      -[:BELONGS_TO]->(g)
                RETURN s.id AS source_id, t.id AS target_id, type(r) AS type,
                       properties(r) AS properties
                """,
                {"graph_id": graph_id},
            )
            valid_types = {t.value for t in EdgeType}
            by_type: dict[str, list[dict[str, Any]]] = defaultdict(list)
            for edge in edges:
                if edge["type"] not in valid_types:
                    continue
                by_type[edge["type"]].append(
                    {
                        "source_id": id_map[edge["source_id"]],
                        "target_id": id_map[edge["target_id"]],
                        "id": generate_unique_edge_id(),
                        "properties": dict(edge["properties"] or {}),
                    }
                )
            for rel_type, batch in by_type.items():
                # rel_type is a member of EdgeType.
                await executor.run(
                    f"""
                    UNWIND $edges AS e
                    MATCH (s:WorkItem {{id: e.source_id}}), (t:WorkItem {{id: e.target_id}})
                    CREATE (s)-[r:{rel_type}]->(t)
                    SET r = e.properties, r.id = e.id
                    """,
                    {"edges": batch},
                )
                edges_copied += len(batch)

        await executor.run(
            """
            MATCH (g:Graph {id: $new_graph_id})
            SET g.nodeCount = $nodes, g.edgeCount = $edges
            """,
            {"new_graph_id": new_graph_id, "nodes": nodes_copied, "edges": edges_copied},
        )

    logger.info(
        f"Cloned graph {graph_id} ({source.get('name')}) to {new_graph_id}: "
        f"{nodes_copied} nodes, {edges_copied} edges"
    )
    return {
        "source_graph_id": graph_id,
        "graph_id": new_graph_id,
        "name": name,
        "nodes_copied": nodes_copied,
        "edges_copied": edges_copied,
    }

"""Single-entity mutations for WorkItems and their edges.

Every function takes a ``QueryExecutor`` so it can run in an
auto-commit session or inside a bulk transaction. Inputs are sanitized
here; the functions raise GraphDoneError subclasses on failure and
return plain dicts on success.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from neo4j.exceptions import ConstraintError

from graphdone.config import LimitsConfig
from graphdone.engine.queries import CONTRIBUTOR_TYPES
from graphdone.engine.store import QueryExecutor, fetch_one
from graphdone.engine.updates import NodeUpdate, build_set_clause
from graphdone.exceptions import ConflictError, NotFoundError, ValidationError
from graphdone.models import NodeStatus, NodeType, node_properties, utc_now
from graphdone.utils.ids import generate_unique_edge_id, generate_unique_node_id
from graphdone.utils.sanitizer import (
    sanitize_edge_type,
    sanitize_metadata,
    sanitize_node_id,
    sanitize_node_status,
    sanitize_node_type,
    sanitize_string,
    to_finite_float,
    validate_memory_usage,
)

logger = logging.getLogger(__name__)

MAX_TITLE_LENGTH = 500
MAX_DESCRIPTION_LENGTH = 2000
DEFAULT_TITLE = "Untitled Node"
DEFAULT_EDGE_WEIGHT = 1.0


# =============================================================================
# Helpers
# =============================================================================


def _sanitize_contributors(contributor_ids: Any, limits: LimitsConfig) -> list[str]:
    if contributor_ids is None:
        return []
    if not isinstance(contributor_ids, (list, tuple)):
        raise ValidationError("contributor_ids must be a list")
    if len(contributor_ids) > limits.max_contributors:
        logger.warning(
            f"Truncating contributor list from {len(contributor_ids)} "
            f"to {limits.max_contributors}"
        )
        contributor_ids = contributor_ids[: limits.max_contributors]
    # Preserve order, drop duplicates
    return list(dict.fromkeys(sanitize_node_id(c) for c in contributor_ids))


async def _link_contributors(
    executor: QueryExecutor,
    node_id: str,
    contributor_ids: list[str],
    now: str,
) -> None:
    if not contributor_ids:
        return
    await executor.run(
        """
        MATCH (n:WorkItem {id: $node_id})
        UNWIND $contributor_ids AS contributor_id
        MERGE (c:Contributor {id: contributor_id})
        ON CREATE SET c.name = contributor_id, c.type = 'HUMAN', c.createdAt = $now
        MERGE (n)-[:WORKED_ON_BY]->(c)
        """,
        {"node_id": node_id, "contributor_ids": contributor_ids, "now": now},
    )


async def _endpoints_exist(executor: QueryExecutor, source_id: str, target_id: str) -> None:
    record = await fetch_one(
        executor,
        """
        OPTIONAL MATCH (s:WorkItem {id: $source_id})
        OPTIONAL MATCH (t:WorkItem {id: $target_id})
        RETURN s IS NOT NULL AS source_exists, t IS NOT NULL AS target_exists
        """,
        {"source_id": source_id, "target_id": target_id},
    )
    if record is None or not record["source_exists"]:
        raise NotFoundError(f"Source node not found: {source_id}")
    if not record["target_exists"]:
        raise NotFoundError(f"Target node not found: {target_id}")


# =============================================================================
# Nodes
# =============================================================================


async def create_node(
    executor: QueryExecutor,
    request: dict[str, Any],
    limits: LimitsConfig | None = None,
) -> dict[str, Any]:
    """Create a WorkItem.

    Args:
        executor: Session or transaction.
        request: title, description, type, status, metadata,
            contributor_ids, and optionally a caller-supplied ``id``, an
            owning ``graph_id`` and a ``team_id``.
        limits: Resource limits.

    Returns:
        The created node with metadata decoded and its contributor_ids.

    Raises:
        LimitExceededError: If the payload is too large.
        ValidationError: On an invalid type, status or ID.
        NotFoundError: If ``graph_id`` names a missing graph.
        ConflictError: If the ID already exists.
    """
    limits = limits or LimitsConfig()
    validate_memory_usage(request, limits.max_payload_mb)

    title = sanitize_string(request.get("title") or DEFAULT_TITLE, MAX_TITLE_LENGTH)
    description = sanitize_string(request.get("description") or "", MAX_DESCRIPTION_LENGTH)
    node_type = sanitize_node_type(request.get("type"), default=NodeType.TASK)
    status = sanitize_node_status(request.get("status"), default=NodeStatus.PROPOSED)
    metadata = sanitize_metadata(request.get("metadata") or {})
    contributor_ids = _sanitize_contributors(request.get("contributor_ids"), limits)
    node_id = sanitize_node_id(request["id"]) if request.get("id") else generate_unique_node_id()
    graph_id = sanitize_node_id(request["graph_id"]) if request.get("graph_id") else None
    team_id = sanitize_node_id(request["team_id"]) if request.get("team_id") else None
    now = utc_now()

    create = """
        CREATE (n:WorkItem {
            id: $id,
            title: $title,
            description: $description,
            type: $type,
            status: $status,
            createdAt: $now,
            updatedAt: $now,
            priorityExecutive: 0.0,
            priorityIndividual: 0.0,
            priorityCommunity: 0.0,
            priorityComputed: 0.0,
            sphericalRadius: 1.0,
            sphericalTheta: 0.0,
            sphericalPhi: 0.0,
            teamId: $team_id,
            metadata: $metadata
        })
    """
    if graph_id:
        query = (
            "MATCH (g:Graph {id: $graph_id})\n"
            + create
            + """
            CREATE (n)-[:BELONGS_TO]->(g)
            SET g.nodeCount = coalesce(g.nodeCount, 0) + 1, g.updatedAt = $now
            RETURN n
            """
        )
    else:
        query = create + "\nRETURN n"

    try:
        record = await fetch_one(
            executor,
            query,
            {
                "id": node_id,
                "title": title,
                "description": description,
                "type": node_type,
                "status": status,
                "now": now,
                "metadata": json.dumps(metadata),
                "graph_id": graph_id,
                "team_id": team_id,
            },
        )
    except ConstraintError as e:
        raise ConflictError(f"Node ID already exists: {node_id}", cause=e)

    if record is None:
        raise NotFoundError(f"Graph not found: {graph_id}")

    await _link_contributors(executor, node_id, contributor_ids, now)

    node = node_properties(record["n"])
    node["contributor_ids"] = contributor_ids
    if graph_id:
        node["graph_id"] = graph_id
    logger.info(f"Created node {node_id} ({node_type}) with {len(contributor_ids)} contributors")
    return node


def _node_update_properties(update: NodeUpdate) -> dict[str, Any]:
    """Sanitize supplied fields and map them to storage properties."""
    properties: dict[str, Any] = {}
    for name, value in update.provided().items():
        if name == "title":
            properties["title"] = sanitize_string(value, MAX_TITLE_LENGTH)
        elif name == "description":
            properties["description"] = sanitize_string(value, MAX_DESCRIPTION_LENGTH)
        elif name == "type":
            properties["type"] = sanitize_node_type(value)
        elif name == "status":
            properties["status"] = sanitize_node_status(value)
        elif name == "metadata":
            properties["metadata"] = json.dumps(sanitize_metadata(value or {}))
    return properties


async def update_node(
    executor: QueryExecutor,
    node_id: str,
    update: NodeUpdate | dict[str, Any],
    limits: LimitsConfig | None = None,
) -> dict[str, Any]:
    """Apply a field-level update to a WorkItem.

    Only supplied fields are written; ``updatedAt`` is always refreshed.
    A supplied ``contributor_ids`` replaces the full set of links.

    Raises:
        ValidationError: If node_id is missing or no fields are supplied.
        NotFoundError: If the node does not exist.
    """
    limits = limits or LimitsConfig()
    if not node_id:
        raise ValidationError("node_id is required")
    node_id = sanitize_node_id(node_id)
    if isinstance(update, dict):
        update = NodeUpdate.from_request(update)
    if update.is_empty():
        raise ValidationError("No fields provided to update")

    validate_memory_usage(update.provided(), limits.max_payload_mb)
    properties = _node_update_properties(update)
    replace_contributors = "contributor_ids" in update.provided()
    contributor_ids = (
        _sanitize_contributors(update.contributor_ids, limits) if replace_contributors else []
    )

    now = utc_now()
    clause = build_set_clause(properties, alias="n", now=now)
    record = await fetch_one(
        executor,
        f"""
        MATCH (n:WorkItem {{id: $node_id}})
        {clause.text}
        RETURN n
        """,
        {"node_id": node_id, **clause.parameters},
    )
    if record is None:
        raise NotFoundError(f"Node not found: {node_id}")

    if replace_contributors:
        await executor.run(
            f"""
            MATCH (n:WorkItem {{id: $node_id}})-[r:{CONTRIBUTOR_TYPES}]-(:Contributor)
            DELETE r
            """,
            {"node_id": node_id},
        )
        await _link_contributors(executor, node_id, contributor_ids, now)

    node = node_properties(record["n"])
    if replace_contributors:
        node["contributor_ids"] = contributor_ids
    logger.info(f"Updated node {node_id}: {sorted(update.provided())}")
    return node


async def delete_node(executor: QueryExecutor, node_id: str) -> dict[str, Any]:
    """Delete a WorkItem and every incident relationship.

    Returns:
        ``{deleted_node_id, relationships_removed}``.

    Raises:
        NotFoundError: If the node does not exist.
    """
    node_id = sanitize_node_id(node_id)
    impact = await fetch_one(
        executor,
        """
        MATCH (n:WorkItem {id: $node_id})
        OPTIONAL MATCH (n)-[r]-()
        RETURN count(r) AS relationship_count
        """,
        {"node_id": node_id},
    )
    if impact is None:
        raise NotFoundError(f"Node not found: {node_id}")

    await executor.run(
        """
        MATCH (n:WorkItem {id: $node_id})
        OPTIONAL MATCH (n)-[:BELONGS_TO]->(g:Graph)
        SET g.nodeCount = CASE WHEN coalesce(g.nodeCount, 0) > 0
                               THEN g.nodeCount - 1 ELSE 0 END
        WITH DISTINCT n
        DETACH DELETE n
        """,
        {"node_id": node_id},
    )
    logger.info(f"Deleted node {node_id} ({impact['relationship_count']} relationships)")
    return {
        "deleted_node_id": node_id,
        "relationships_removed": impact["relationship_count"],
    }


# =============================================================================
# Edges
# =============================================================================


async def create_edge(
    executor: QueryExecutor,
    source_id: str,
    target_id: str,
    edge_type: str,
    weight: Any = DEFAULT_EDGE_WEIGHT,
    metadata: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Create (or upsert) a typed edge between two existing WorkItems.

    Repeating the call with the same (source, target, type) updates the
    existing edge's weight and metadata instead of adding another.

    Raises:
        ValidationError: On an invalid ID, type or weight.
        NotFoundError: If either endpoint is missing.
    """
    source_id = sanitize_node_id(source_id)
    target_id = sanitize_node_id(target_id)
    # Relationship types cannot be parameterized; only closed-set values reach the query.
    rel_type = sanitize_edge_type(edge_type)
    weight_value = DEFAULT_EDGE_WEIGHT if weight is None else to_finite_float(weight, "weight")

    await _endpoints_exist(executor, source_id, target_id)

    now = utc_now()
    record = await fetch_one(
        executor,
        f"""
        MATCH (s:WorkItem {{id: $source_id}}), (t:WorkItem {{id: $target_id}})
        MERGE (s)-[r:{rel_type}]->(t)
        ON CREATE SET r.id = $edge_id, r.createdAt = $now
        SET r.weight = $weight, r.metadata = $metadata, r.updatedAt = $now
        RETURN r, r.createdAt = $now AS created
        """,
        {
            "source_id": source_id,
            "target_id": target_id,
            "edge_id": generate_unique_edge_id(),
            "now": now,
            "weight": float(weight_value),
            "metadata": json.dumps(sanitize_metadata(metadata or {})),
        },
    )
    edge = node_properties(record["r"]) if record else {}
    edge.update({"source_id": source_id, "target_id": target_id, "type": rel_type})
    created = bool(record and record["created"])
    logger.info(
        f"{'Created' if created else 'Updated'} edge {source_id} -[{rel_type}]-> {target_id}"
    )
    return {"edge": edge, "created": created}


async def delete_edge(
    executor: QueryExecutor,
    source_id: str,
    target_id: str,
    edge_type: str,
) -> dict[str, Any]:
    """Delete the edge (source)-[type]->(target).

    Raises:
        NotFoundError: If either endpoint or the edge itself is missing.
    """
    source_id = sanitize_node_id(source_id)
    target_id = sanitize_node_id(target_id)
    rel_type = sanitize_edge_type(edge_type)

    await _endpoints_exist(executor, source_id, target_id)

    record = await fetch_one(
        executor,
        f"""
        MATCH (:WorkItem {{id: $source_id}})-[r:{rel_type}]->(:WorkItem {{id: $target_id}})
        DELETE r
        RETURN count(*) AS deleted
        """,
        {"source_id": source_id, "target_id": target_id},
    )
    if record is None or record["deleted"] == 0:
        raise NotFoundError(f"Edge not found: {source_id} -[{rel_type}]-> {target_id}")

    logger.info(f"Deleted edge {source_id} -[{rel_type}]-> {target_id}")
    return {
        "source_id": source_id,
        "target_id": target_id,
        "type": rel_type,
        "deleted": record["deleted"],
    }

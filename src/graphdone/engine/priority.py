"""Priority computation for WorkItems.

Each WorkItem carries three independent priority inputs in [0, 1]. The
composite score and the layout radius are derived from them:

    computed = 0.4 * executive + 0.3 * individual + 0.3 * community
    radius   = 1 - computed

The derived values are written in the same Cypher statement as the
inputs, from the values actually persisted, so they cannot drift.
"""

from __future__ import annotations

import logging
from typing import Any

from neo4j.exceptions import DriverError, Neo4jError

from graphdone.config import LimitsConfig, PriorityPolicy
from graphdone.engine.store import QueryExecutor, fetch_all, fetch_one
from graphdone.exceptions import ErrorKind, GraphDoneError, NotFoundError, ValidationError
from graphdone.models import node_properties, utc_now
from graphdone.utils.sanitizer import (
    sanitize_node_id,
    sanitize_node_status,
    sanitize_priority,
    to_finite_float,
    validate_bulk_operation,
)

logger = logging.getLogger(__name__)

EXECUTIVE_WEIGHT = 0.4
INDIVIDUAL_WEIGHT = 0.3
COMMUNITY_WEIGHT = 0.3

HIGH_PRIORITY_THRESHOLD = 0.7
LOW_PRIORITY_THRESHOLD = 0.4


def compute_priority(
    executive: float = 0.0,
    individual: float = 0.0,
    community: float = 0.0,
) -> tuple[float, float]:
    """Return (computed, radius) for the three priority inputs."""
    computed = (
        EXECUTIVE_WEIGHT * executive
        + INDIVIDUAL_WEIGHT * individual
        + COMMUNITY_WEIGHT * community
    )
    return computed, 1.0 - computed


def resolve_priority(
    value: Any,
    policy: PriorityPolicy = PriorityPolicy.REJECT,
    label: str = "priority",
) -> float | None:
    """Validate one priority component under the configured policy.

    REJECT raises on out-of-range input; CLAMP pulls it into [0, 1] and
    logs a warning. Non-finite input is rejected under both policies.
    """
    if value is None:
        return None
    if policy == PriorityPolicy.REJECT:
        try:
            return sanitize_priority(value)
        except ValidationError as e:
            raise ValidationError(f"Invalid {label}: {e.message}")

    number = to_finite_float(value, label)
    clamped = min(max(number, 0.0), 1.0)
    if clamped != number:
        logger.warning(f"Clamped {label} from {number} to {clamped}")
    return clamped


_UPDATE_PRIORITIES = """
    MATCH (n:WorkItem {id: $node_id})
    WITH n,
         coalesce($executive, n.priorityExecutive, 0.0) AS executive,
         coalesce($individual, n.priorityIndividual, 0.0) AS individual,
         coalesce($community, n.priorityCommunity, 0.0) AS community
    SET n.priorityExecutive = executive,
        n.priorityIndividual = individual,
        n.priorityCommunity = community,
        n.updatedAt = $updated_at
"""

_RECALCULATE = """
    WITH n, $w_executive * executive + $w_individual * individual
            + $w_community * community AS computed
    SET n.priorityComputed = computed,
        n.sphericalRadius = 1.0 - computed
"""


async def update_priorities(
    executor: QueryExecutor,
    node_id: str,
    executive: Any = None,
    individual: Any = None,
    community: Any = None,
    recalculate_computed: bool = True,
    policy: PriorityPolicy = PriorityPolicy.REJECT,
) -> dict[str, Any]:
    """Update a WorkItem's priority inputs.

    Args:
        executor: Session or transaction.
        node_id: Target WorkItem.
        executive: New executive priority, or None to keep the stored one.
        individual: New individual priority, or None to keep the stored one.
        community: New community priority, or None to keep the stored one.
        recalculate_computed: Also rewrite priorityComputed/sphericalRadius.
        policy: Out-of-range handling.

    Returns:
        Dict with the updated node and its priority values.

    Raises:
        ValidationError: If no component is supplied or one is invalid.
        NotFoundError: If the node does not exist.
    """
    node_id = sanitize_node_id(node_id)
    values = {
        "executive": resolve_priority(executive, policy, "executive priority"),
        "individual": resolve_priority(individual, policy, "individual priority"),
        "community": resolve_priority(community, policy, "community priority"),
    }
    if all(v is None for v in values.values()):
        raise ValidationError("At least one priority component must be provided")

    query = _UPDATE_PRIORITIES
    if recalculate_computed:
        query += _RECALCULATE
    query += "\nRETURN n"

    record = await fetch_one(
        executor,
        query,
        {
            "node_id": node_id,
            **values,
            "updated_at": utc_now(),
            "w_executive": EXECUTIVE_WEIGHT,
            "w_individual": INDIVIDUAL_WEIGHT,
            "w_community": COMMUNITY_WEIGHT,
        },
    )
    if record is None:
        raise NotFoundError(f"Node not found: {node_id}")

    node = node_properties(record["n"])
    logger.info(f"Updated priorities for {node_id}: computed={node.get('priorityComputed')}")
    return {
        "node": node,
        "priorities": {
            "executive": node.get("priorityExecutive"),
            "individual": node.get("priorityIndividual"),
            "community": node.get("priorityCommunity"),
            "computed": node.get("priorityComputed"),
        },
        "recalculated": recalculate_computed,
    }


async def bulk_update_priorities(
    executor: QueryExecutor,
    updates: list[dict[str, Any]],
    policy: PriorityPolicy = PriorityPolicy.REJECT,
    limits: LimitsConfig | None = None,
) -> dict[str, Any]:
    """Apply priority updates to many WorkItems.

    Each item is applied independently with the same policy and formula
    as ``update_priorities``; a failing item is recorded and the batch
    continues.
    """
    limits = limits or LimitsConfig()
    if not isinstance(updates, list) or not updates:
        raise ValidationError("updates must be a list with at least one item")
    validate_bulk_operation(len(updates), limits.max_bulk_operations)

    results: list[dict[str, Any]] = []
    for index, item in enumerate(updates):
        if not isinstance(item, dict):
            logger.warning(f"Priority update {index} is not an object")
            results.append(
                {
                    "node_id": None,
                    "success": False,
                    "error": f"Update {index} must be an object",
                    "error_kind": ErrorKind.VALIDATION.value,
                }
            )
            continue

        node_id = item.get("node_id")
        try:
            updated = await update_priorities(
                executor,
                node_id,
                executive=item.get("priority_executive", item.get("executive")),
                individual=item.get("priority_individual", item.get("individual")),
                community=item.get("priority_community", item.get("community")),
                recalculate_computed=True,
                policy=policy,
            )
            results.append({"node_id": node_id, "success": True, **updated["priorities"]})
        except GraphDoneError as e:
            logger.warning(f"Priority update failed for {node_id}: {e}")
            results.append(
                {
                    "node_id": node_id,
                    "success": False,
                    "error": str(e),
                    "error_kind": e.kind.value,
                }
            )
        except (Neo4jError, DriverError) as e:
            logger.error(f"Priority update failed for {node_id}: {e}")
            results.append(
                {
                    "node_id": node_id,
                    "success": False,
                    "error": str(e),
                    "error_kind": ErrorKind.STORAGE.value,
                }
            )

    successful = sum(1 for r in results if r["success"])
    return {
        "total_updates": len(updates),
        "successful_updates": successful,
        "failed_updates": len(updates) - successful,
        "results": results,
    }


# =============================================================================
# Insights
# =============================================================================


def classify_priority(value: float | None) -> str:
    value = value or 0.0
    if value > HIGH_PRIORITY_THRESHOLD:
        return "high"
    if value >= LOW_PRIORITY_THRESHOLD:
        return "medium"
    return "low"


async def get_priority_insights(
    executor: QueryExecutor,
    filter_status: list[str] | None = None,
    include_distribution: bool = True,
) -> dict[str, Any]:
    """Summarise priorities across WorkItems.

    Args:
        executor: Session or transaction.
        filter_status: Only consider these statuses.
        include_distribution: Include high/medium/low, type and status
            breakdowns.
    """
    statuses = [sanitize_node_status(s) for s in filter_status or []]
    where = "WHERE n.status IN $statuses" if statuses else ""
    params = {"statuses": statuses}

    stats = await fetch_one(
        executor,
        f"""
        MATCH (n:WorkItem) {where}
        RETURN count(n) AS total,
               avg(coalesce(n.priorityExecutive, 0.0)) AS avg_executive,
               avg(coalesce(n.priorityIndividual, 0.0)) AS avg_individual,
               avg(coalesce(n.priorityCommunity, 0.0)) AS avg_community,
               avg(coalesce(n.priorityComputed, 0.0)) AS avg_computed,
               min(coalesce(n.priorityComputed, 0.0)) AS min_computed,
               max(coalesce(n.priorityComputed, 0.0)) AS max_computed
        """,
        params,
    )
    statistics = {
        "total_nodes": stats["total"] if stats else 0,
        "avg_executive": (stats["avg_executive"] if stats else None) or 0.0,
        "avg_individual": (stats["avg_individual"] if stats else None) or 0.0,
        "avg_community": (stats["avg_community"] if stats else None) or 0.0,
        "avg_computed": (stats["avg_computed"] if stats else None) or 0.0,
        "min_computed": (stats["min_computed"] if stats else None) or 0.0,
        "max_computed": (stats["max_computed"] if stats else None) or 0.0,
    }

    top = await fetch_all(
        executor,
        f"""
        MATCH (n:WorkItem) {where}
        RETURN n.id AS id, n.title AS title, n.type AS type, n.status AS status,
               coalesce(n.priorityComputed, 0.0) AS priority
        ORDER BY priority DESC
        LIMIT 10
        """,
        params,
    )
    insights: dict[str, Any] = {
        "statistics": statistics,
        "top_priority_items": [
            {
                "id": r["id"],
                "title": r["title"],
                "type": r["type"],
                "status": r["status"],
                "priority": r["priority"],
            }
            for r in top
        ],
    }

    if include_distribution:
        rows = await fetch_all(
            executor,
            f"""
            MATCH (n:WorkItem) {where}
            RETURN n.type AS type, n.status AS status,
                   coalesce(n.priorityComputed, 0.0) AS priority
            """,
            params,
        )
        priority_distribution = {"high": 0, "medium": 0, "low": 0}
        type_distribution: dict[str, int] = {}
        status_distribution: dict[str, int] = {}
        for r in rows:
            priority_distribution[classify_priority(r["priority"])] += 1
            type_distribution[r["type"]] = type_distribution.get(r["type"], 0) + 1
            status_distribution[r["status"]] = status_distribution.get(r["status"], 0) + 1
        insights["priority_distribution"] = priority_distribution
        insights["type_distribution"] = type_distribution
        insights["status_distribution"] = status_distribution

    return insights

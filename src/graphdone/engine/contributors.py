"""Contributor-centric queries: priorities, workload, teams, expertise."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any

from graphdone.engine.queries import CONTRIBUTOR_LINK, normalize_page
from graphdone.engine.store import QueryExecutor, fetch_all, fetch_one
from graphdone.exceptions import NotFoundError, ValidationError
from graphdone.models import TERMINAL_STATUSES, NodeStatus
from graphdone.utils.sanitizer import (
    sanitize_node_id,
    sanitize_node_status,
    sanitize_node_type,
    sanitize_string,
    to_finite_float,
)

logger = logging.getLogger(__name__)

ACTIVE_STATUSES = [NodeStatus.IN_PROGRESS.value, NodeStatus.BLOCKED.value]
OPEN_STATUSES = [s.value for s in NodeStatus if s.value not in TERMINAL_STATUSES]

PRIORITY_ORDERING = {
    "composite": "coalesce(w.priorityComputed, 0.0) DESC",
    "executive": "coalesce(w.priorityExecutive, 0.0) DESC",
    "individual": "coalesce(w.priorityIndividual, 0.0) DESC",
    "community": "coalesce(w.priorityCommunity, 0.0) DESC",
    "all": (
        "(coalesce(w.priorityExecutive, 0.0) + coalesce(w.priorityIndividual, 0.0)"
        " + coalesce(w.priorityCommunity, 0.0)) DESC"
    ),
}

STRONG_COLLABORATION = 10
MODERATE_COLLABORATION = 5


def _cutoff(days: Any, label: str) -> tuple[int, str]:
    window = int(to_finite_float(days, label))
    if window <= 0:
        raise ValidationError(f"{label} must be greater than 0")
    return window, (datetime.now(timezone.utc) - timedelta(days=window)).isoformat()


def classify_expertise(count: int, completed: int, min_items: int) -> str:
    """Expert/Proficient need at least ``min_items``; Expert needs >80% completion."""
    if count < min_items:
        return "Beginner"
    return "Expert" if completed / count > 0.8 else "Proficient"


def classify_collaboration(shared_items: int) -> str:
    if shared_items >= STRONG_COLLABORATION:
        return "strong"
    if shared_items >= MODERATE_COLLABORATION:
        return "moderate"
    return "weak"


def classify_availability(active_items: int) -> tuple[str, str]:
    """Return (capacity_status, overload_risk) for a count of active items."""
    if active_items >= 15:
        return "overloaded", "high"
    if active_items >= 10:
        return "at_capacity", "medium"
    if active_items >= 5:
        return "busy", "low"
    return "available", "low"


async def get_contributor_priorities(
    executor: QueryExecutor,
    contributor_id: str,
    limit: Any = 10,
    priority_type: str = "composite",
    status_filter: list[str] | None = None,
    include_dependencies: bool = False,
) -> dict[str, Any]:
    """List a contributor's open items ordered by one priority dimension."""
    contributor_id = sanitize_node_id(contributor_id)
    if priority_type not in PRIORITY_ORDERING:
        raise ValidationError(
            f"Invalid priority_type. Must be one of: {', '.join(PRIORITY_ORDERING)}"
        )
    limit_value, _ = normalize_page(limit, 0, max_limit=100, default_limit=10)
    statuses = [sanitize_node_status(s) for s in status_filter] if status_filter else OPEN_STATUSES

    rows = await fetch_all(
        executor,
        f"""
        MATCH (c:Contributor {{id: $contributor_id}})-{CONTRIBUTOR_LINK}-(w:WorkItem)
        WHERE w.status IN $statuses
        OPTIONAL MATCH (w)-[:DEPENDS_ON]->(dep:WorkItem)
        WITH w, count(dep) AS dependency_count, collect(DISTINCT dep.title)[0..3] AS sample
        RETURN w {{.id, .title, .type, .status, .priorityExecutive, .priorityIndividual,
                  .priorityCommunity, .priorityComputed}} AS item,
               dependency_count, sample
        ORDER BY {PRIORITY_ORDERING[priority_type]}
        LIMIT $limit
        """,
        {"contributor_id": contributor_id, "statuses": statuses, "limit": limit_value},
    )
    priorities = [
        {
            "id": r["item"]["id"],
            "title": r["item"]["title"],
            "type": r["item"]["type"],
            "status": r["item"]["status"],
            "priorities": {
                "executive": r["item"].get("priorityExecutive"),
                "individual": r["item"].get("priorityIndividual"),
                "community": r["item"].get("priorityCommunity"),
                "composite": r["item"].get("priorityComputed"),
            },
            "dependency_count": r["dependency_count"],
            "sample_dependencies": r["sample"] if include_dependencies else [],
        }
        for r in rows
    ]
    return {
        "contributor_id": contributor_id,
        "priority_type": priority_type,
        "total_items": len(priorities),
        "priorities": priorities,
    }


async def get_contributor_workload(
    executor: QueryExecutor,
    contributor_id: str,
    include_projects: bool = False,
) -> dict[str, Any]:
    """Summarise one contributor's items and the projects they span.

    Raises:
        NotFoundError: If the contributor does not exist.
    """
    contributor_id = sanitize_node_id(contributor_id)
    record = await fetch_one(
        executor,
        f"""
        MATCH (c:Contributor {{id: $contributor_id}})
        OPTIONAL MATCH (c)-{CONTRIBUTOR_LINK}-(w:WorkItem)
        OPTIONAL MATCH (w)-[:BELONGS_TO]->(g:Graph)
        RETURN c.name AS name,
               count(DISTINCT w) AS total_items,
               count(DISTINCT g) AS project_count,
               collect(DISTINCT w.status) AS statuses,
               collect(DISTINCT w.type) AS types,
               avg(w.priorityComputed) AS avg_priority,
               count(DISTINCT CASE WHEN w.status IN $active THEN w END) AS active_items
        """,
        {"contributor_id": contributor_id, "active": ACTIVE_STATUSES},
    )
    if record is None:
        raise NotFoundError(f"Contributor not found: {contributor_id}")

    result: dict[str, Any] = {
        "contributor_id": contributor_id,
        "name": record["name"],
        "workload": {
            "total_items": record["total_items"],
            "active_items": record["active_items"],
            "project_count": record["project_count"],
            "statuses": record["statuses"],
            "types": record["types"],
            "avg_priority": record["avg_priority"] or 0.0,
        },
    }
    if include_projects:
        rows = await fetch_all(
            executor,
            f"""
            MATCH (c:Contributor {{id: $contributor_id}})-{CONTRIBUTOR_LINK}-(w:WorkItem)
                  -[:BELONGS_TO]->(g:Graph)
            RETURN g.id AS project_id, g.name AS project_name,
                   count(DISTINCT w) AS item_count,
                   avg(w.priorityComputed) AS avg_priority
            ORDER BY item_count DESC
            """,
            {"contributor_id": contributor_id},
        )
        result["projects"] = [dict(r) for r in rows]
    return result


async def find_contributors_by_project(
    executor: QueryExecutor,
    graph_id: str | None = None,
    graph_name: str | None = None,
    node_types: list[str] | None = None,
    active_only: bool = False,
    limit: Any = 50,
) -> dict[str, Any]:
    conditions = ["true"]
    params: dict[str, Any] = {}
    if graph_id:
        conditions.append("g.id = $graph_id")
        params["graph_id"] = sanitize_node_id(graph_id)
    if graph_name:
        conditions.append("toLower(g.name) CONTAINS toLower($graph_name)")
        params["graph_name"] = sanitize_string(graph_name, 200)
    if node_types:
        conditions.append("w.type IN $node_types")
        params["node_types"] = [sanitize_node_type(t) for t in node_types]
    if active_only:
        conditions.append("w.status IN $active")
        params["active"] = ACTIVE_STATUSES + [NodeStatus.PLANNED.value]
    limit_value, _ = normalize_page(limit, 0, max_limit=500)
    params["limit"] = limit_value

    rows = await fetch_all(
        executor,
        f"""
        MATCH (c:Contributor)-{CONTRIBUTOR_LINK}-(w:WorkItem)-[:BELONGS_TO]->(g:Graph)
        WHERE {' AND '.join(conditions)}
        RETURN c {{.id, .name, .type}} AS contributor,
               g {{.id, .name}} AS project,
               count(DISTINCT w) AS item_count,
               collect(DISTINCT w.status) AS statuses,
               collect(DISTINCT w.type) AS work_types,
               avg(w.priorityComputed) AS avg_priority
        ORDER BY item_count DESC
        LIMIT $limit
        """,
        params,
    )
    contributors = [
        {
            "contributor": r["contributor"],
            "project": r["project"],
            "workload": {
                "item_count": r["item_count"],
                "statuses": r["statuses"],
                "work_types": r["work_types"],
                "avg_priority": r["avg_priority"],
            },
        }
        for r in rows
    ]
    return {"contributors": contributors, "total_found": len(contributors)}


async def get_project_team(executor: QueryExecutor, graph_id: str) -> dict[str, Any]:
    """List everyone contributing to items in a graph.

    Raises:
        NotFoundError: If the graph does not exist.
    """
    graph_id = sanitize_node_id(graph_id)
    exists = await fetch_one(
        executor, "MATCH (g:Graph {id: $graph_id}) RETURN g.id AS id", {"graph_id": graph_id}
    )
    if exists is None:
        raise NotFoundError(f"Graph not found: {graph_id}")

    rows = await fetch_all(
        executor,
        f"""
        MATCH (:Graph {{id: $graph_id}})<-[:BELONGS_TO]-(w:WorkItem)-{CONTRIBUTOR_LINK}-(c:Contributor)
        RETURN c {{.id, .name, .type}} AS contributor,
               count(DISTINCT w) AS total_items,
               count(DISTINCT CASE WHEN w.status IN $active THEN w END) AS active_items,
               collect(DISTINCT w.type) AS work_types,
               avg(w.priorityComputed) AS avg_priority
        ORDER BY total_items DESC
        """,
        {"graph_id": graph_id, "active": ACTIVE_STATUSES},
    )
    members = [
        {
            "contributor": r["contributor"],
            "contribution": {
                "total_items": r["total_items"],
                "active_items": r["active_items"],
                "work_types": r["work_types"],
                "avg_priority": r["avg_priority"],
            },
        }
        for r in rows
    ]
    return {
        "project_id": graph_id,
        "team_size": len(members),
        "team_members": members,
        "team_summary": {
            "total_contributors": len(members),
            "total_items": sum(m["contribution"]["total_items"] for m in members),
            "active_items": sum(m["contribution"]["active_items"] for m in members),
        },
    }


async def get_contributor_expertise(
    executor: QueryExecutor,
    contributor_id: str,
    time_window_days: Any = 90,
    min_items_threshold: Any = 3,
) -> dict[str, Any]:
    """Rate a contributor per work type from recent completion history."""
    contributor_id = sanitize_node_id(contributor_id)
    window, cutoff = _cutoff(time_window_days, "time_window_days")
    min_items = max(int(to_finite_float(min_items_threshold, "min_items_threshold")), 1)

    rows = await fetch_all(
        executor,
        f"""
        MATCH (c:Contributor {{id: $contributor_id}})-{CONTRIBUTOR_LINK}-(w:WorkItem)
        WHERE w.updatedAt >= $cutoff
        RETURN w.type AS type, w.status AS status,
               coalesce(w.priorityComputed, 0.0) AS priority
        """,
        {"contributor_id": contributor_id, "cutoff": cutoff},
    )

    by_type: dict[str, dict[str, Any]] = {}
    for r in rows:
        stats = by_type.setdefault(r["type"], {"count": 0, "completed": 0, "priority_sum": 0.0})
        stats["count"] += 1
        stats["priority_sum"] += r["priority"]
        if r["status"] == NodeStatus.COMPLETED.value:
            stats["completed"] += 1

    expertise = {
        work_type: {
            "count": s["count"],
            "completed": s["completed"],
            "completion_rate": s["completed"] / s["count"],
            "avg_priority": s["priority_sum"] / s["count"],
            "expertise_level": classify_expertise(s["count"], s["completed"], min_items),
        }
        for work_type, s in by_type.items()
    }
    total = len(rows)
    completed = sum(s["completed"] for s in by_type.values())
    return {
        "contributor_id": contributor_id,
        "analysis_period_days": window,
        "overall_stats": {
            "total_items": total,
            "completed_items": completed,
            "completion_rate": completed / total if total else 0.0,
        },
        "work_type_expertise": expertise,
    }


async def get_collaboration_network(
    executor: QueryExecutor,
    focus_contributor: str | None = None,
    project_scope: str | None = None,
    collaboration_strength: str = "all",
) -> dict[str, Any]:
    """Pairs of contributors who share work items, rated by overlap."""
    if collaboration_strength not in ("all", "strong", "moderate", "weak"):
        raise ValidationError("collaboration_strength must be all, strong, moderate or weak")
    conditions = ["c1.id < c2.id"]
    params: dict[str, Any] = {}
    if focus_contributor:
        conditions.append("(c1.id = $focus OR c2.id = $focus)")
        params["focus"] = sanitize_node_id(focus_contributor)
    if project_scope:
        conditions.append("EXISTS { (w)-[:BELONGS_TO]->(:Graph {id: $project_scope}) }")
        params["project_scope"] = sanitize_node_id(project_scope)

    rows = await fetch_all(
        executor,
        f"""
        MATCH (c1:Contributor)-{CONTRIBUTOR_LINK}-(w:WorkItem)-{CONTRIBUTOR_LINK}-(c2:Contributor)
        WHERE {' AND '.join(conditions)}
        RETURN c1 {{.id, .name}} AS contributor1, c2 {{.id, .name}} AS contributor2,
               count(DISTINCT w) AS shared_items,
               collect(DISTINCT w.type) AS shared_work_types
        ORDER BY shared_items DESC
        LIMIT 100
        """,
        params,
    )
    network = []
    for r in rows:
        strength = classify_collaboration(r["shared_items"])
        if collaboration_strength not in ("all", strength):
            continue
        network.append(
            {
                "contributor1": r["contributor1"],
                "contributor2": r["contributor2"],
                "collaboration": {
                    "shared_items": r["shared_items"],
                    "strength": strength,
                    "shared_work_types": r["shared_work_types"],
                },
            }
        )
    return {
        "collaboration_network": network,
        "network_summary": {
            "total_collaborations": len(network),
            "strong": sum(1 for n in network if n["collaboration"]["strength"] == "strong"),
            "moderate": sum(1 for n in network if n["collaboration"]["strength"] == "moderate"),
            "weak": sum(1 for n in network if n["collaboration"]["strength"] == "weak"),
        },
    }


async def get_contributor_availability(
    executor: QueryExecutor,
    contributor_ids: list[str] | None = None,
    include_recommendations: bool = True,
) -> dict[str, Any]:
    """Capacity status for contributors based on their active items."""
    where = ""
    params: dict[str, Any] = {"active": ACTIVE_STATUSES}
    if contributor_ids:
        where = "WHERE c.id IN $contributor_ids"
        params["contributor_ids"] = [sanitize_node_id(c) for c in contributor_ids]

    rows = await fetch_all(
        executor,
        f"""
        MATCH (c:Contributor) {where}
        OPTIONAL MATCH (c)-{CONTRIBUTOR_LINK}-(w:WorkItem)
        WHERE w.status IN $active
        RETURN c {{.id, .name}} AS contributor,
               count(DISTINCT w) AS active_items,
               count(DISTINCT CASE WHEN w.status = 'BLOCKED' THEN w END) AS blocked_items
        ORDER BY active_items DESC
        """,
        params,
    )
    availability = []
    for r in rows:
        capacity, risk = classify_availability(r["active_items"])
        entry: dict[str, Any] = {
            "contributor": r["contributor"],
            "availability": {
                "active_items": r["active_items"],
                "blocked_items": r["blocked_items"],
                "capacity_status": capacity,
                "overload_risk": risk,
            },
        }
        if include_recommendations:
            recommendations = []
            if capacity == "overloaded":
                recommendations.append(
                    "Consider redistributing some work items to other team members"
                )
            if r["blocked_items"] > 0:
                recommendations.append(
                    f"Help unblock {r['blocked_items']} blocked items to improve throughput"
                )
            if r["active_items"] == 0:
                recommendations.append("Available for new assignments")
            entry["recommendations"] = recommendations
        availability.append(entry)

    return {
        "contributors": availability,
        "summary": {
            "total": len(availability),
            "available": sum(
                1 for a in availability if a["availability"]["capacity_status"] == "available"
            ),
            "overloaded": sum(
                1 for a in availability if a["availability"]["capacity_status"] == "overloaded"
            ),
        },
    }

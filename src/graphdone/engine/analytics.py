"""Heuristic analytics over the WorkItem graph.

Three analyses are provided:

- Graph health: priority balance and dependency load, folded into a
  0..1 score with rule-based recommendations.
- Bottlenecks: items many others depend on, scored for severity, plus
  blocked items waiting on open work.
- Workload: per-contributor load and blocked ratios, classified against
  the cohort average.

Metric gathering (Cypher) and scoring (pure functions) are kept apart
so the heuristics can be exercised without a database.
"""

from __future__ import annotations

import logging
from typing import Any

from graphdone.engine.queries import CONTRIBUTOR_LINK
from graphdone.engine.store import QueryExecutor, fetch_all, fetch_one
from graphdone.exceptions import ValidationError
from graphdone.models import utc_now
from graphdone.utils.sanitizer import sanitize_node_id, sanitize_string, to_finite_float

logger = logging.getLogger(__name__)

# Health thresholds
PRIORITY_STDEV_THRESHOLD = 0.3
HEAVY_DEPENDENCY_COUNT = 5
HEAVY_DEPENDENCY_RATIO = 0.2
BOTTLENECK_DEPENDENT_COUNT = 3
MAX_BOTTLENECKS_BEFORE_PENALTY = 5
HIGH_PRIORITY_CUTOFF = 0.8
LOW_PRIORITY_CUTOFF = 0.2

# Workload thresholds
OVERLOAD_RATIO = 1.5
UNDERUTILIZED_RATIO = 0.5
OVERLOAD_BLOCKED_RATIO = 0.3
UNBLOCK_BLOCKED_RATIO = 0.2
PREDICTION_BLOCKED_RATIO = 0.2
WIP_LIMIT = 5

HEALTH_METRICS = ("node_distribution", "priority_balance", "dependency_health", "bottlenecks")
DEFAULT_HEALTH_METRICS = ("node_distribution", "priority_balance", "dependency_health")


def _ratio(part: float, whole: float) -> float:
    return part / whole if whole else 0.0


# =============================================================================
# Graph health: scoring
# =============================================================================


def calculate_health_score(metrics: dict[str, Any]) -> tuple[float, list[str]]:
    """Score graph health from gathered metrics.

    Starts at 1.0 and subtracts:
    - 0.10 when computed-priority standard deviation exceeds 0.3
    - 0.15 when the heavily-dependent node ratio exceeds 0.2
    - 0.10 when more than 5 bottlenecks were found

    Returns:
        (score floored at 0.0, list of triggered factors)
    """
    score = 1.0
    factors: list[str] = []

    balance = metrics.get("priority_balance")
    if balance and balance["distribution"]["standard_deviation"] > PRIORITY_STDEV_THRESHOLD:
        score -= 0.10
        factors.append("High priority variance detected")

    dependency = metrics.get("dependency_health")
    if dependency and dependency["dependency_ratio"] > HEAVY_DEPENDENCY_RATIO:
        score -= 0.15
        factors.append("Too many heavily dependent nodes")

    bottlenecks = metrics.get("potential_bottlenecks")
    if bottlenecks is not None and len(bottlenecks) > MAX_BOTTLENECKS_BEFORE_PENALTY:
        score -= 0.10
        factors.append("Multiple potential bottlenecks detected")

    return max(0.0, round(score, 4)), factors


def generate_health_recommendations(metrics: dict[str, Any]) -> list[str]:
    recommendations: list[str] = []

    balance = metrics.get("priority_balance")
    if balance:
        distribution = balance["distribution"]
        if distribution["high_priority_ratio"] > 0.3:
            recommendations.append(
                "Consider reviewing high-priority items - too many items marked as "
                "high priority may indicate poor prioritization"
            )
        if distribution["low_priority_ratio"] > 0.5:
            recommendations.append(
                "Many items have low priority - consider archiving or re-evaluating "
                "completed/stale items"
            )

    dependency = metrics.get("dependency_health")
    if dependency:
        if dependency["avg_dependencies_per_node"] > 3:
            recommendations.append(
                "High average dependencies per node - consider simplifying dependencies "
                "to reduce complexity"
            )
        if dependency["dependency_ratio"] > 0.15:
            recommendations.append(
                "Many nodes have heavy dependencies - this may create bottlenecks and "
                "slow progress"
            )

    bottlenecks = metrics.get("potential_bottlenecks")
    if bottlenecks:
        recommendations.append(
            f"{len(bottlenecks)} potential bottlenecks detected - focus on completing "
            "these high-dependency items"
        )

    if not recommendations:
        recommendations.append(
            "Graph health looks good! Continue monitoring as the project grows"
        )
    return recommendations


# =============================================================================
# Graph health: metric gathering
# =============================================================================


def _team_filter(team_id: str | None, alias: str = "n") -> tuple[str, dict[str, Any]]:
    if not team_id:
        return "", {}
    return f"WHERE {alias}.teamId = $team_id", {"team_id": sanitize_node_id(team_id)}


async def _node_distribution(executor: QueryExecutor, where: str, params: dict) -> dict[str, Any]:
    rows = await fetch_all(
        executor,
        f"""
        MATCH (n:WorkItem) {where}
        RETURN n.type AS type, n.status AS status, count(n) AS count
        """,
        params,
    )
    by_type: dict[str, int] = {}
    by_status: dict[str, int] = {}
    for r in rows:
        by_type[r["type"]] = by_type.get(r["type"], 0) + r["count"]
        by_status[r["status"]] = by_status.get(r["status"], 0) + r["count"]
    return {
        "total_nodes": sum(by_type.values()),
        "by_type": by_type,
        "by_status": by_status,
    }


async def _priority_balance(executor: QueryExecutor, where: str, params: dict) -> dict[str, Any]:
    record = await fetch_one(
        executor,
        f"""
        MATCH (n:WorkItem) {where}
        WITH coalesce(n.priorityComputed, 0.0) AS computed, n
        RETURN count(n) AS total,
               avg(coalesce(n.priorityExecutive, 0.0)) AS avg_executive,
               avg(coalesce(n.priorityIndividual, 0.0)) AS avg_individual,
               avg(coalesce(n.priorityCommunity, 0.0)) AS avg_community,
               stDev(computed) AS stdev_computed,
               sum(CASE WHEN computed > $high THEN 1 ELSE 0 END) AS high_priority,
               sum(CASE WHEN computed < $low THEN 1 ELSE 0 END) AS low_priority
        """,
        {**params, "high": HIGH_PRIORITY_CUTOFF, "low": LOW_PRIORITY_CUTOFF},
    )
    record = record or {}
    total = record.get("total") or 0
    high = record.get("high_priority") or 0
    low = record.get("low_priority") or 0
    return {
        "averages": {
            "executive": record.get("avg_executive") or 0.0,
            "individual": record.get("avg_individual") or 0.0,
            "community": record.get("avg_community") or 0.0,
        },
        "distribution": {
            "standard_deviation": record.get("stdev_computed") or 0.0,
            "high_priority_count": high,
            "low_priority_count": low,
            "high_priority_ratio": _ratio(high, total),
            "low_priority_ratio": _ratio(low, total),
        },
    }


async def _dependency_health(executor: QueryExecutor, where: str, params: dict) -> dict[str, Any]:
    record = await fetch_one(
        executor,
        f"""
        MATCH (n:WorkItem) {where}
        WITH n, COUNT {{ (n)-[:DEPENDS_ON]->(:WorkItem) }} AS deps
        RETURN count(n) AS total_nodes,
               avg(deps) AS avg_deps,
               max(deps) AS max_deps,
               sum(CASE WHEN deps > $heavy THEN 1 ELSE 0 END) AS heavily_dependent,
               sum(CASE WHEN deps = 0 THEN 1 ELSE 0 END) AS independent_nodes
        """,
        {**params, "heavy": HEAVY_DEPENDENCY_COUNT},
    )
    record = record or {}
    total = record.get("total_nodes") or 0
    heavy = record.get("heavily_dependent") or 0
    return {
        "total_nodes": total,
        "avg_dependencies_per_node": record.get("avg_deps") or 0.0,
        "max_dependencies": record.get("max_deps") or 0,
        "heavily_dependent_nodes": heavy,
        "independent_nodes": record.get("independent_nodes") or 0,
        "dependency_ratio": _ratio(heavy, total),
    }


async def _potential_bottlenecks(
    executor: QueryExecutor, where: str, params: dict
) -> list[dict[str, Any]]:
    rows = await fetch_all(
        executor,
        f"""
        MATCH (n:WorkItem) {where}
        WITH n, COUNT {{ (:WorkItem)-[:DEPENDS_ON]->(n) }} AS dependent_count
        WHERE dependent_count > $threshold
        RETURN n.id AS node_id, n.title AS title, n.type AS type, n.status AS status,
               coalesce(n.priorityComputed, 0.0) AS priority, dependent_count
        ORDER BY dependent_count DESC
        LIMIT 10
        """,
        {**params, "threshold": BOTTLENECK_DEPENDENT_COUNT},
    )
    return [dict(r) for r in rows]


async def analyze_graph_health(
    executor: QueryExecutor,
    include_metrics: list[str] | None = None,
    depth_analysis: bool = False,
    team_id: str | None = None,
) -> dict[str, Any]:
    """Gather health metrics, score them and recommend actions.

    Args:
        executor: Session or transaction.
        include_metrics: Subset of node_distribution, priority_balance,
            dependency_health, bottlenecks.
        depth_analysis: Also gather bottlenecks.
        team_id: Restrict to WorkItems with this teamId.
    """
    requested = list(include_metrics or DEFAULT_HEALTH_METRICS)
    unknown = [m for m in requested if m not in HEALTH_METRICS]
    if unknown:
        raise ValidationError(
            f"Unknown health metrics: {', '.join(unknown)}. "
            f"Must be among: {', '.join(HEALTH_METRICS)}"
        )
    where, params = _team_filter(team_id)

    metrics: dict[str, Any] = {}
    if "node_distribution" in requested:
        metrics["node_distribution"] = await _node_distribution(executor, where, params)
    if "priority_balance" in requested:
        metrics["priority_balance"] = await _priority_balance(executor, where, params)
    if "dependency_health" in requested:
        metrics["dependency_health"] = await _dependency_health(executor, where, params)
    if "bottlenecks" in requested or depth_analysis:
        metrics["potential_bottlenecks"] = await _potential_bottlenecks(executor, where, params)

    score, factors = calculate_health_score(metrics)
    logger.info(f"Graph health score {score} ({len(factors)} factors)")
    return {
        "overall_health_score": score,
        "health_factors": factors,
        "metrics": metrics,
        "recommendations": generate_health_recommendations(metrics),
        "metadata": {
            "team_id": team_id,
            "include_metrics": requested,
            "depth_analysis": depth_analysis,
            "timestamp": utc_now(),
        },
    }


# =============================================================================
# Bottlenecks
# =============================================================================


def calculate_bottleneck_severity(
    dependent_count: int,
    status: str | None,
    priority: float | None,
) -> str:
    """Map dependents, status and priority to low/medium/high/critical."""
    score = 0

    if dependent_count > 10:
        score += 3
    elif dependent_count > 5:
        score += 2
    elif dependent_count > 2:
        score += 1

    score += {"BLOCKED": 3, "PROPOSED": 2, "IN_PROGRESS": 1}.get(status or "", 0)

    priority = priority or 0.0
    if priority > 0.8:
        score += 2
    elif priority > 0.5:
        score += 1

    if score >= 7:
        return "critical"
    if score >= 5:
        return "high"
    if score >= 3:
        return "medium"
    return "low"


def suggest_resolutions(
    bottlenecks: list[dict[str, Any]],
    blocked_chains: list[dict[str, Any]],
) -> list[dict[str, Any]]:
    resolutions: list[dict[str, Any]] = []
    for item in bottlenecks:
        if item["bottleneck_severity"] not in ("critical", "high"):
            continue
        if item["status"] == "PROPOSED":
            resolutions.append(
                {
                    "type": "priority_boost",
                    "description": (
                        f'Increase priority of "{item["title"]}" to unblock '
                        f'{item["dependent_count"]} dependent items'
                    ),
                    "target": item["node_id"],
                }
            )
        elif item["status"] == "BLOCKED":
            resolutions.append(
                {
                    "type": "resolve_blocker",
                    "description": (
                        f'Focus on resolving blockers for "{item["title"]}" as it '
                        f'affects {item["dependent_count"]} other items'
                    ),
                    "target": item["node_id"],
                }
            )

    for chain in blocked_chains:
        if chain["chain_length"] > 1:
            resolutions.append(
                {
                    "type": "break_dependency_chain",
                    "description": (
                        f'Consider breaking dependency chain for "{chain["blocked_title"]}" '
                        f'- has {chain["chain_length"]} blocking items'
                    ),
                    "target": chain["blocked_id"],
                }
            )
    return resolutions


async def get_bottlenecks(
    executor: QueryExecutor,
    analysis_depth: Any = 5,
    include_suggested_resolutions: bool = True,
    team_id: str | None = None,
) -> dict[str, Any]:
    """Find high-dependency items and blocked chains.

    ``analysis_depth`` bounds how many bottlenecks and chains are
    returned, most-depended-on first.
    """
    depth = int(to_finite_float(analysis_depth, "analysis_depth"))
    if depth <= 0:
        raise ValidationError(f"analysis_depth must be greater than 0, got {depth}")
    where, params = _team_filter(team_id)
    blocked_where = " AND blocked.teamId = $team_id" if team_id else ""

    rows = await fetch_all(
        executor,
        f"""
        MATCH (n:WorkItem) {where}
        OPTIONAL MATCH (dependent:WorkItem)-[:DEPENDS_ON]->(n)
        WITH n, collect(dependent) AS dependents, count(dependent) AS dependent_count
        WHERE dependent_count > 0
        RETURN n.id AS node_id, n.title AS title, n.type AS type, n.status AS status,
               coalesce(n.priorityComputed, 0.0) AS priority, dependent_count,
               [d IN dependents | d {{.id, .title, .status}}] AS dependent_nodes
        ORDER BY dependent_count DESC
        LIMIT $analysis_depth
        """,
        {**params, "analysis_depth": depth},
    )
    bottlenecks = []
    for r in rows:
        item = dict(r)
        item["bottleneck_severity"] = calculate_bottleneck_severity(
            item["dependent_count"], item["status"], item["priority"]
        )
        bottlenecks.append(item)

    chain_rows = await fetch_all(
        executor,
        f"""
        MATCH (blocked:WorkItem {{status: 'BLOCKED'}})-[:DEPENDS_ON]->(blocker:WorkItem)
        WHERE blocker.status IN ['PROPOSED', 'PLANNED', 'IN_PROGRESS']{blocked_where}
        RETURN blocked.id AS blocked_id, blocked.title AS blocked_title,
               collect(blocker {{.id, .title, .status,
                                 priority: coalesce(blocker.priorityComputed, 0.0)}})
                   AS blocking_items
        LIMIT $analysis_depth
        """,
        {**params, "analysis_depth": depth},
    )
    blocked_chains = [
        {
            "blocked_id": r["blocked_id"],
            "blocked_title": r["blocked_title"],
            "blocking_items": r["blocking_items"],
            "chain_length": len(r["blocking_items"]),
        }
        for r in chain_rows
    ]

    result: dict[str, Any] = {
        "bottlenecks": {
            "high_dependency_bottlenecks": bottlenecks,
            "blocked_chains": blocked_chains,
        },
        "summary": {
            "high_dependency_count": len(bottlenecks),
            "blocked_chains_count": len(blocked_chains),
            "total_bottlenecks": len(bottlenecks) + len(blocked_chains),
        },
        "metadata": {"analysis_depth": depth, "team_id": team_id, "timestamp": utc_now()},
    }
    if include_suggested_resolutions:
        result["suggested_resolutions"] = suggest_resolutions(bottlenecks, blocked_chains)
    return result


# =============================================================================
# Workload
# =============================================================================


def summarize_workload(workloads: list[dict[str, Any]]) -> dict[str, Any]:
    total_items = sum(w["total_items"] for w in workloads)
    average = _ratio(total_items, len(workloads))
    ordered = sorted(workloads, key=lambda w: w["total_items"], reverse=True)
    return {
        "total_contributors": len(workloads),
        "total_items": total_items,
        "avg_items_per_contributor": average,
        "most_loaded_contributor": ordered[0]["contributor_id"] if ordered else None,
        "workload_distribution": {
            "heavily_loaded": sum(
                1 for w in workloads if w["total_items"] > average * OVERLOAD_RATIO
            ),
            "moderately_loaded": sum(
                1
                for w in workloads
                if average * UNDERUTILIZED_RATIO <= w["total_items"] <= average * OVERLOAD_RATIO
            ),
            "lightly_loaded": sum(
                1 for w in workloads if w["total_items"] < average * UNDERUTILIZED_RATIO
            ),
        },
    }


def classify_capacity(workloads: list[dict[str, Any]]) -> dict[str, Any]:
    """Classify contributors against the cohort average load.

    Overloaded: load ratio > 1.5 or blocked ratio > 0.3.
    Underutilized: load ratio < 0.5. Otherwise balanced.
    """
    overloaded: list[dict[str, Any]] = []
    underutilized: list[dict[str, Any]] = []
    balanced: list[dict[str, Any]] = []
    recommendations: list[str] = []

    if not workloads:
        return {
            "total_contributors": 0,
            "available_capacity": 0.0,
            "utilization_rate": 0.0,
            "bottlenecks": [],
            "overloaded_contributors": overloaded,
            "underutilized_contributors": underutilized,
            "balanced_contributors": balanced,
            "recommendations": recommendations,
        }

    average = sum(w["total_items"] for w in workloads) / len(workloads)
    for workload in workloads:
        load_ratio = _ratio(workload["total_items"], average)
        blocked_ratio = _ratio(workload["blocked_items"], workload["total_items"])
        entry = {**workload, "load_ratio": load_ratio, "blocked_ratio": blocked_ratio}
        if load_ratio > OVERLOAD_RATIO or blocked_ratio > OVERLOAD_BLOCKED_RATIO:
            overloaded.append(entry)
        elif load_ratio < UNDERUTILIZED_RATIO:
            underutilized.append(entry)
        else:
            balanced.append(entry)

    if overloaded and underutilized:
        recommendations.append(
            "Consider redistributing work from overloaded to underutilized contributors"
        )
    if any(c["blocked_ratio"] > UNBLOCK_BLOCKED_RATIO for c in overloaded):
        recommendations.append(
            "Focus on unblocking items for overloaded contributors to improve throughput"
        )

    return {
        "total_contributors": len(workloads),
        "available_capacity": len(underutilized) / len(workloads),
        "utilization_rate": len(balanced) / len(workloads),
        "bottlenecks": [c["contributor_id"] for c in overloaded],
        "overloaded_contributors": overloaded,
        "underutilized_contributors": underutilized,
        "balanced_contributors": balanced,
        "recommendations": recommendations,
    }


def predict_workload_risks(workloads: list[dict[str, Any]]) -> dict[str, Any]:
    return {
        "bottleneck_predictions": [
            {
                "contributor_id": w["contributor_id"],
                "predicted_issue": "High blocked item ratio may indicate future bottlenecks",
            }
            for w in workloads
            if w["blocked_items"] > w["total_items"] * PREDICTION_BLOCKED_RATIO
        ],
        "capacity_recommendations": [
            {
                "contributor_id": w["contributor_id"],
                "recommendation": "Consider limiting work in progress to improve focus",
            }
            for w in workloads
            if w["in_progress_items"] > WIP_LIMIT
        ],
        "recommended_actions": [
            "Monitor blocked item ratios across contributors",
            "Establish work-in-progress limits",
        ],
    }


async def get_workload_analysis(
    executor: QueryExecutor,
    contributor_ids: list[str] | None = None,
    time_window: dict[str, str] | None = None,
    include_capacity: bool = False,
    include_predictions: bool = False,
) -> dict[str, Any]:
    """Aggregate per-contributor workload and classify capacity.

    Args:
        executor: Session or transaction.
        contributor_ids: Restrict to these contributors.
        time_window: ``{"start": iso, "end": iso}`` filter on createdAt.
        include_capacity: Add overloaded/underutilized classification.
        include_predictions: Add rule-based risk predictions.
    """
    conditions: list[str] = []
    params: dict[str, Any] = {}
    if contributor_ids:
        conditions.append("c.id IN $contributor_ids")
        params["contributor_ids"] = [sanitize_node_id(c) for c in contributor_ids]
    if time_window:
        start, end = time_window.get("start"), time_window.get("end")
        if not start or not end:
            raise ValidationError("time_window requires both start and end")
        conditions.append("n.createdAt >= $start_time AND n.createdAt <= $end_time")
        params["start_time"] = sanitize_string(start, 64)
        params["end_time"] = sanitize_string(end, 64)
    where = f"WHERE {' AND '.join(conditions)}" if conditions else ""

    rows = await fetch_all(
        executor,
        f"""
        MATCH (n:WorkItem)-{CONTRIBUTOR_LINK}-(c:Contributor)
        {where}
        WITH c, n, coalesce(n.priorityComputed, 0.0) AS priority
        RETURN c.id AS contributor_id,
               c.name AS name,
               count(DISTINCT n) AS total_items,
               sum(CASE WHEN n.status = 'IN_PROGRESS' THEN 1 ELSE 0 END) AS in_progress_items,
               sum(CASE WHEN n.status = 'COMPLETED' THEN 1 ELSE 0 END) AS completed_items,
               sum(CASE WHEN n.status = 'BLOCKED' THEN 1 ELSE 0 END) AS blocked_items,
               avg(priority) AS avg_priority,
               sum(CASE WHEN priority > 0.8 THEN 1 ELSE 0 END) AS high_priority,
               sum(CASE WHEN priority >= 0.5 AND priority <= 0.8 THEN 1 ELSE 0 END)
                   AS medium_priority,
               sum(CASE WHEN priority < 0.5 THEN 1 ELSE 0 END) AS low_priority,
               collect(DISTINCT n.type) AS work_types
        ORDER BY total_items DESC
        """,
        params,
    )
    workloads = [
        {
            "contributor_id": r["contributor_id"],
            "name": r["name"],
            "total_items": r["total_items"],
            "in_progress_items": r["in_progress_items"],
            "completed_items": r["completed_items"],
            "blocked_items": r["blocked_items"],
            "avg_priority": r["avg_priority"] or 0.0,
            "work_types": r["work_types"],
            "priority_distribution": {
                "high_priority": r["high_priority"],
                "medium_priority": r["medium_priority"],
                "low_priority": r["low_priority"],
            },
        }
        for r in rows
    ]

    analysis: dict[str, Any] = {
        "contributor_workloads": workloads,
        "summary": summarize_workload(workloads),
    }
    if include_capacity:
        analysis["capacity_analysis"] = classify_capacity(workloads)
    if include_predictions:
        analysis["predictions"] = predict_workload_risks(workloads)

    return {
        "analysis": analysis,
        "metadata": {
            "contributor_ids": contributor_ids,
            "time_window": time_window,
            "include_capacity": include_capacity,
            "include_predictions": include_predictions,
            "timestamp": utc_now(),
        },
    }

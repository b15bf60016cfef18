"""Bulk operation coordinator.

Runs an ordered batch of heterogeneous mutations either inside one
Neo4j transaction or as independent per-operation transactions.

Transaction policy:
    transaction=True,  rollback_on_error=True
        The first failure rolls the whole batch back. Nothing persists
        and later operations are not attempted.
    transaction=True,  rollback_on_error=False
        Failures are recorded and execution continues; the transaction
        is committed at the end with whatever succeeded. The report marks
        this as ``partial_failure``. A storage-level error poisons the
        Neo4j transaction, so later operations and the commit fail too
        and the report then shows ``committed=False``.
    transaction=False
        Each operation commits or rolls back on its own.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

from neo4j import AsyncSession
from neo4j.exceptions import DriverError, Neo4jError

from graphdone.config import LimitsConfig
from graphdone.engine import mutations
from graphdone.engine.store import QueryExecutor
from graphdone.engine.updates import NodeUpdate
from graphdone.exceptions import ConflictError, ErrorKind, GraphDoneError, ValidationError
from graphdone.utils.ids import detect_id_collisions, generate_session_id
from graphdone.utils.sanitizer import sanitize_node_id, validate_bulk_operation

logger = logging.getLogger(__name__)


@dataclass
class BulkOperation:
    """One entry in a bulk request."""

    type: str
    params: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "BulkOperation":
        if not isinstance(raw, dict):
            raise ValidationError("Each operation must be an object")
        return cls(type=str(raw.get("type", "")), params=dict(raw.get("params") or {}))


async def _create_node(tx: QueryExecutor, params: dict[str, Any], limits: LimitsConfig) -> Any:
    return await mutations.create_node(tx, params, limits)


async def _update_node(tx: QueryExecutor, params: dict[str, Any], limits: LimitsConfig) -> Any:
    return await mutations.update_node(
        tx, params.get("node_id"), NodeUpdate.from_request(params), limits
    )


async def _create_edge(tx: QueryExecutor, params: dict[str, Any], limits: LimitsConfig) -> Any:
    return await mutations.create_edge(
        tx,
        params.get("source_id"),
        params.get("target_id"),
        params.get("type") or params.get("edge_type"),
        weight=params.get("weight"),
        metadata=params.get("metadata"),
    )


async def _delete_edge(tx: QueryExecutor, params: dict[str, Any], limits: LimitsConfig) -> Any:
    return await mutations.delete_edge(
        tx,
        params.get("source_id"),
        params.get("target_id"),
        params.get("type") or params.get("edge_type"),
    )


OPERATION_HANDLERS: dict[
    str, Callable[[QueryExecutor, dict[str, Any], LimitsConfig], Awaitable[Any]]
] = {
    "create_node": _create_node,
    "update_node": _update_node,
    "create_edge": _create_edge,
    "delete_edge": _delete_edge,
}


def preflight(operations: list[BulkOperation], limits: LimitsConfig) -> None:
    """Reject oversize batches and caller-supplied node IDs that collide once sanitized."""
    if not operations:
        raise ValidationError("operations must contain at least one operation")
    validate_bulk_operation(len(operations), limits.max_bulk_operations)

    supplied_ids = [
        sanitize_node_id(op.params["id"])
        for op in operations
        if op.type == "create_node" and op.params.get("id")
    ]
    collisions = detect_id_collisions(supplied_ids)
    if collisions:
        raise ConflictError(f"ID collisions detected: {', '.join(sorted(set(collisions)))}")


async def _run_operation(
    tx: QueryExecutor,
    index: int,
    operation: BulkOperation,
    limits: LimitsConfig,
) -> dict[str, Any]:
    entry: dict[str, Any] = {"index": index, "type": operation.type}
    handler = OPERATION_HANDLERS.get(operation.type)
    if handler is None:
        valid = ", ".join(OPERATION_HANDLERS)
        entry.update(
            success=False,
            error=f"Unknown operation type: {operation.type!r}. Must be one of: {valid}",
            error_kind=ErrorKind.VALIDATION.value,
        )
        return entry

    try:
        entry.update(success=True, result=await handler(tx, operation.params, limits))
    except GraphDoneError as e:
        entry.update(success=False, error=str(e), error_kind=e.kind.value)
    except (Neo4jError, DriverError) as e:
        entry.update(success=False, error=str(e), error_kind=ErrorKind.STORAGE.value)
    if not entry["success"]:
        logger.warning(f"Bulk operation {index} ({operation.type}) failed: {entry['error']}")
    return entry


async def execute_bulk_operations(
    session: AsyncSession,
    operations: list[BulkOperation | dict[str, Any]],
    transaction: bool = True,
    rollback_on_error: bool = True,
    limits: LimitsConfig | None = None,
) -> dict[str, Any]:
    """Execute a batch of operations.

    Args:
        session: Session used to open transactions.
        operations: Ordered operations (``{"type": ..., "params": {...}}``).
        transaction: Run the whole batch in one transaction.
        rollback_on_error: In transaction mode, abort and roll back on the
            first failure.
        limits: Resource limits (batch size, payload size).

    Returns:
        Report with counts, commit state and per-operation results.

    Raises:
        ValidationError: If the batch is empty.
        LimitExceededError: If the batch is too large.
        ConflictError: If caller-supplied node IDs collide.
    """
    limits = limits or LimitsConfig()
    ops = [op if isinstance(op, BulkOperation) else BulkOperation.from_dict(op) for op in operations]
    preflight(ops, limits)

    session_id = generate_session_id()
    logger.info(
        f"Bulk {session_id}: {len(ops)} operations "
        f"(transaction={transaction}, rollback_on_error={rollback_on_error})"
    )

    results: list[dict[str, Any]] = []
    committed = False
    rolled_back = False
    commit_error: str | None = None

    if transaction:
        tx = await session.begin_transaction()
        try:
            for index, op in enumerate(ops):
                entry = await _run_operation(tx, index, op, limits)
                results.append(entry)
                if not entry["success"] and rollback_on_error:
                    await tx.rollback()
                    rolled_back = True
                    logger.info(f"Bulk {session_id}: rolled back after operation {index}")
                    break

            if not rolled_back:
                try:
                    await tx.commit()
                    committed = True
                except (Neo4jError, DriverError) as e:
                    commit_error = str(e)
                    rolled_back = True
                    logger.error(f"Bulk {session_id}: commit failed: {e}")
        finally:
            await tx.close()
    else:
        for index, op in enumerate(ops):
            tx = await session.begin_transaction()
            try:
                entry = await _run_operation(tx, index, op, limits)
                if entry["success"]:
                    await tx.commit()
                else:
                    await tx.rollback()
            except (Neo4jError, DriverError) as e:
                entry = {
                    "index": index,
                    "type": op.type,
                    "success": False,
                    "error": str(e),
                    "error_kind": ErrorKind.STORAGE.value,
                }
            finally:
                await tx.close()
            results.append(entry)
        committed = any(r["success"] for r in results)

    successful = sum(1 for r in results if r["success"])
    failed = sum(1 for r in results if not r["success"])
    report: dict[str, Any] = {
        "session_id": session_id,
        "total_operations": len(ops),
        "attempted_operations": len(results),
        "successful_operations": successful if committed or not transaction else 0,
        "failed_operations": failed,
        "transaction_used": transaction,
        "committed": committed,
        "rolled_back": rolled_back,
        "partial_failure": committed and failed > 0,
        "results": results,
    }
    if commit_error:
        report["commit_error"] = commit_error
    logger.info(
        f"Bulk {session_id}: {report['successful_operations']} succeeded, {failed} failed, "
        f"committed={committed}"
    )
    return report

"""Data models shared by the GraphDone engine and MCP server.

Node, edge and graph records travel through the engine as plain dicts
(the property maps Neo4j returns). The types here cover the closed
enumerations, pagination metadata and the uniform result envelope.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from graphdone.exceptions import ErrorKind, GraphDoneError

logger = logging.getLogger(__name__)


# =============================================================================
# Enumerations
# =============================================================================


class NodeType(str, Enum):
    """Kinds of WorkItem."""

    OUTCOME = "OUTCOME"
    EPIC = "EPIC"
    INITIATIVE = "INITIATIVE"
    STORY = "STORY"
    TASK = "TASK"
    BUG = "BUG"
    FEATURE = "FEATURE"
    MILESTONE = "MILESTONE"


class NodeStatus(str, Enum):
    """WorkItem lifecycle states."""

    PROPOSED = "PROPOSED"
    PLANNED = "PLANNED"
    IN_PROGRESS = "IN_PROGRESS"
    BLOCKED = "BLOCKED"
    COMPLETED = "COMPLETED"
    ARCHIVED = "ARCHIVED"


# Statuses that no longer count toward a contributor's active load
TERMINAL_STATUSES = (NodeStatus.COMPLETED.value, NodeStatus.ARCHIVED.value)


class EdgeType(str, Enum):
    """Relationship types allowed between WorkItems."""

    DEPENDS_ON = "DEPENDS_ON"
    BLOCKS = "BLOCKS"
    ENABLES = "ENABLES"
    RELATES_TO = "RELATES_TO"
    IS_PART_OF = "IS_PART_OF"
    FOLLOWS = "FOLLOWS"
    PARALLEL_WITH = "PARALLEL_WITH"
    DUPLICATES = "DUPLICATES"
    CONFLICTS_WITH = "CONFLICTS_WITH"
    VALIDATES = "VALIDATES"
    CONTAINS = "CONTAINS"
    PART_OF = "PART_OF"


class GraphType(str, Enum):
    """Kinds of Graph container."""

    PROJECT = "PROJECT"
    WORKSPACE = "WORKSPACE"
    SUBGRAPH = "SUBGRAPH"
    TEMPLATE = "TEMPLATE"


class GraphStatus(str, Enum):
    """Graph container lifecycle states."""

    ACTIVE = "ACTIVE"
    ARCHIVED = "ARCHIVED"
    DRAFT = "DRAFT"


class QueryType(str, Enum):
    """Browse query selectors."""

    ALL_NODES = "all_nodes"
    BY_TYPE = "by_type"
    BY_STATUS = "by_status"
    BY_CONTRIBUTOR = "by_contributor"
    BY_PRIORITY = "by_priority"
    DEPENDENCIES = "dependencies"
    SEARCH = "search"


# =============================================================================
# Record helpers
# =============================================================================


def utc_now() -> str:
    """Current time as an ISO-8601 UTC string (the stored timestamp format)."""
    return datetime.now(timezone.utc).isoformat()


def node_properties(value: Any) -> dict[str, Any]:
    """Convert a Neo4j node (or property map) to a plain dict.

    The ``metadata`` and ``settings`` properties are stored as JSON
    strings and are decoded back to structured form here.
    """
    if value is None:
        return {}
    props = dict(value)
    for key in ("metadata", "settings"):
        raw = props.get(key)
        if isinstance(raw, str):
            try:
                props[key] = json.loads(raw) if raw else {}
            except json.JSONDecodeError:
                logger.warning(f"Could not decode {key} for {props.get('id')}")
                props[key] = {}
    return props


# =============================================================================
# Pagination
# =============================================================================


@dataclass
class PaginationInfo:
    """Page metadata for a paginated listing."""

    total_count: int
    limit: int
    offset: int
    current_page: int
    total_pages: int
    has_next_page: bool
    has_previous_page: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_count": self.total_count,
            "current_page": self.current_page,
            "total_pages": self.total_pages,
            "has_next_page": self.has_next_page,
            "has_previous_page": self.has_previous_page,
            "limit": self.limit,
            "offset": self.offset,
        }


# =============================================================================
# Result envelope
# =============================================================================


@dataclass
class OperationResult:
    """Uniform outcome of every engine operation.

    Exactly one of ``data`` (on success) or ``error``/``error_kind``
    (on failure) is meaningful.

    Attributes:
        success: Whether the operation completed.
        data: Operation payload on success.
        error: Human-readable failure message.
        error_kind: Failure category.
    """

    success: bool
    data: dict[str, Any] = field(default_factory=dict)
    error: str | None = None
    error_kind: ErrorKind | None = None

    @classmethod
    def ok(cls, data: dict[str, Any] | None = None) -> "OperationResult":
        return cls(success=True, data=data or {})

    @classmethod
    def fail(cls, error: str, kind: ErrorKind) -> "OperationResult":
        return cls(success=False, error=error, error_kind=kind)

    @classmethod
    def from_exception(cls, exc: GraphDoneError) -> "OperationResult":
        return cls.fail(str(exc), exc.kind)

    def to_payload(self) -> dict[str, Any]:
        """JSON-able dict with a ``success`` flag."""
        if self.success:
            return {"success": True, **self.data}
        return {
            "success": False,
            "error": self.error,
            "error_kind": self.error_kind.value if self.error_kind else None,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_payload(), indent=2, default=str)

    def to_envelope(self) -> dict[str, Any]:
        """Tool-call response: one text content block plus ``isError``."""
        return {
            "content": [{"type": "text", "text": self.to_json()}],
            "isError": not self.success,
        }

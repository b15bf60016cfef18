"""Input sanitization for user-supplied graph data.

Every value that ends up in a Neo4j property or drives a query passes
through one of these helpers. String content is neutralised rather than
rejected; identifiers, enums and priorities are validated and rejected
with ValidationError when they do not fit.
"""

from __future__ import annotations

import json
import math
import re
from enum import Enum
from typing import Any

from graphdone.exceptions import LimitExceededError, ValidationError
from graphdone.models import EdgeType, GraphStatus, GraphType, NodeStatus, NodeType

TRUNCATION_MARKER = "...[TRUNCATED]"

MAX_METADATA_DEPTH = 10
MAX_METADATA_STRING = 1000
MAX_METADATA_ARRAY = 1000
MAX_METADATA_PROPERTIES = 100
MAX_METADATA_TOP_LEVEL = 50
MAX_KEY_LENGTH = 100
MAX_NODE_ID_LENGTH = 100

_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")

# (pattern, replacement) applied in order
_HTML_RULES: list[tuple[re.Pattern[str], str]] = [
    (re.compile(r"<script[^>]*>[\s\S]*?</script>", re.IGNORECASE), "[SCRIPT_REMOVED]"),
    (re.compile(r"<script[^>]*>", re.IGNORECASE), "[SCRIPT_REMOVED]"),
    (re.compile(r"javascript:", re.IGNORECASE), "[JS_URL_REMOVED]"),
    (re.compile(r"\s*on\w+\s*=\s*[^>]*", re.IGNORECASE), "[EVENT_HANDLER_REMOVED]"),
    (
        re.compile(r"<(iframe|object|embed|link|meta|form)[^>]*>", re.IGNORECASE),
        r"[\1_REMOVED]",
    ),
    (re.compile(r"</(iframe|object|embed|link|meta|form)>", re.IGNORECASE), ""),
    (re.compile(r"data:\s*[^;]*;[^,]*,", re.IGNORECASE), ""),
    (re.compile(r"vbscript:", re.IGNORECASE), ""),
    (re.compile(r"expression\s*\(", re.IGNORECASE), ""),
    (re.compile(r"@import", re.IGNORECASE), ""),
    (
        re.compile(
            r"(eval|setTimeout|setInterval|Function|execScript|execSync|atob|btoa"
            r"|unescape|decodeURI|decodeURIComponent)\s*\(",
            re.IGNORECASE,
        ),
        "[BLOCKED_FUNCTION]",
    ),
]

_ID_INJECTION_PATTERNS = [
    re.compile(r"[';]"),
    re.compile(
        r"\b(match|delete|create|set|union|call|drop|remove|return|where)\b",
        re.IGNORECASE,
    ),
    re.compile(r"//"),
    re.compile(r"/\*"),
    re.compile(r"\$\w+"),
]
_ID_DISALLOWED = re.compile(r"[^a-zA-Z0-9\-_.]")


# =============================================================================
# Strings
# =============================================================================


def sanitize_html(value: str) -> str:
    """Neutralise script, event-handler and active-content markup."""
    if not value:
        return ""
    for pattern, replacement in _HTML_RULES:
        value = pattern.sub(replacement, value)
    return value


def sanitize_string(value: Any, max_length: int = 10000) -> str:
    """Clean a free-form string.

    Truncates to ``max_length`` (appending a marker), strips control
    characters and neutralises HTML/script payloads. ``None`` becomes
    an empty string.
    """
    if value is None:
        return ""
    text = str(value)
    if len(text) > max_length:
        text = text[:max_length] + TRUNCATION_MARKER
    text = _CONTROL_CHARS.sub("", text)
    return sanitize_html(text)


# =============================================================================
# Identifiers
# =============================================================================


def sanitize_node_id(value: Any) -> str:
    """Validate an entity ID for use as a query parameter.

    Raises:
        ValidationError: If the ID is empty, looks like a Cypher injection
            attempt, is too long, or starts with a separator character.
    """
    if value is None or value == "":
        raise ValidationError("Node ID is required")

    text = str(value).strip()
    for pattern in _ID_INJECTION_PATTERNS:
        if pattern.search(text):
            raise ValidationError("Node ID contains invalid characters or patterns")

    cleaned = _ID_DISALLOWED.sub("", text)
    if not cleaned:
        raise ValidationError(
            "Invalid node ID format - only alphanumeric, hyphens, "
            "underscores, and periods allowed"
        )
    if len(cleaned) > MAX_NODE_ID_LENGTH:
        raise ValidationError(f"Node ID too long (max {MAX_NODE_ID_LENGTH} characters)")
    if cleaned[0] in "._-":
        raise ValidationError("Node ID cannot start with special characters")
    return cleaned


# =============================================================================
# Metadata
# =============================================================================


def sanitize_metadata(metadata: Any) -> dict[str, Any]:
    """Return a bounded, JSON-safe copy of caller metadata.

    Limits nesting depth, string/array length and property counts;
    non-finite numbers become 0 and circular references are replaced.
    """
    if not isinstance(metadata, dict):
        return {}

    seen: set[int] = set()

    def clean(value: Any, depth: int) -> Any:
        if depth > MAX_METADATA_DEPTH:
            return "[MAX_DEPTH_EXCEEDED]"
        if value is None or isinstance(value, bool):
            return value
        if isinstance(value, str):
            return sanitize_string(value, MAX_METADATA_STRING)
        if isinstance(value, (int, float)):
            return value if math.isfinite(value) else 0
        if isinstance(value, (list, tuple)):
            if id(value) in seen:
                return "[CIRCULAR_REFERENCE_REMOVED]"
            seen.add(id(value))
            items = [clean(item, depth + 1) for item in value[:MAX_METADATA_ARRAY]]
            if len(value) > MAX_METADATA_ARRAY:
                items.append("[ARRAY_TRUNCATED]")
            return items
        if isinstance(value, dict):
            if id(value) in seen:
                return "[CIRCULAR_REFERENCE_REMOVED]"
            seen.add(id(value))
            return clean_object(value, depth, MAX_METADATA_PROPERTIES)
        return sanitize_string(value)

    def clean_object(obj: dict, depth: int, max_keys: int) -> dict[str, Any]:
        result: dict[str, Any] = {}
        entries = list(obj.items())
        if len(entries) > max_keys and depth > 0:
            result["[OBJECT_TRUNCATED]"] = f"{len(entries) - max_keys} properties removed"
        for key, val in entries[:max_keys]:
            clean_key = sanitize_string(key, MAX_KEY_LENGTH)
            if clean_key:
                result[clean_key] = clean(val, depth + 1)
        return result

    seen.add(id(metadata))
    return clean_object(metadata, 0, MAX_METADATA_TOP_LEVEL)


# =============================================================================
# Closed sets
# =============================================================================


def _sanitize_enum(value: Any, enum_cls: type[Enum], label: str, default: Enum | None) -> str:
    if value is None or value == "":
        if default is None:
            raise ValidationError(f"{label} is required")
        return default.value
    if isinstance(value, enum_cls):
        return value.value
    if not isinstance(value, str):
        raise ValidationError(f"{label} must be a string")
    upper = value.strip().upper()
    valid = [member.value for member in enum_cls]
    if upper not in valid:
        raise ValidationError(f"Invalid {label.lower()}. Must be one of: {', '.join(valid)}")
    return upper


def sanitize_node_type(value: Any, default: NodeType | None = None) -> str:
    return _sanitize_enum(value, NodeType, "Node type", default)


def sanitize_node_status(value: Any, default: NodeStatus | None = None) -> str:
    return _sanitize_enum(value, NodeStatus, "Node status", default)


def sanitize_edge_type(value: Any) -> str:
    return _sanitize_enum(value, EdgeType, "Edge type", None)


def sanitize_graph_type(value: Any, default: GraphType | None = None) -> str:
    return _sanitize_enum(value, GraphType, "Graph type", default)


def sanitize_graph_status(value: Any, default: GraphStatus | None = None) -> str:
    return _sanitize_enum(value, GraphStatus, "Graph status", default)


# =============================================================================
# Numbers
# =============================================================================


def sanitize_priority(value: Any) -> float | None:
    """Validate a priority component.

    Returns None for a missing value. Does not clamp.

    Raises:
        ValidationError: If the value is not a finite number in [0, 1].
    """
    if value is None:
        return None
    number = to_finite_float(value, "Priority")
    if number < 0 or number > 1:
        raise ValidationError("Priority must be between 0 and 1")
    return number


def to_finite_float(value: Any, label: str) -> float:
    if isinstance(value, bool):
        raise ValidationError(f"{label} must be a finite number")
    try:
        number = float(value)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"{label} must be a finite number", cause=e)
    if not math.isfinite(number):
        raise ValidationError(f"{label} must be a finite number")
    return number


# =============================================================================
# Resource guards
# =============================================================================


def validate_bulk_operation(count: int, max_count: int = 100) -> None:
    if count > max_count:
        raise LimitExceededError(
            f"Bulk operation limit exceeded. Maximum {max_count} items allowed, got {count}"
        )


def validate_memory_usage(data: Any, max_size_mb: float = 10) -> None:
    try:
        encoded = json.dumps(data, default=str)
    except ValueError as e:
        raise ValidationError("Payload contains circular references", cause=e)
    size_bytes = len(encoded.encode("utf-8"))
    size_mb = size_bytes / (1024 * 1024)
    if size_mb > max_size_mb:
        raise LimitExceededError(
            f"Data size limit exceeded. Maximum {max_size_mb}MB allowed, got {size_mb:.2f}MB"
        )

"""Sanitization and ID generation helpers."""

from graphdone.utils.ids import (
    detect_id_collisions,
    generate_session_id,
    generate_unique_edge_id,
    generate_unique_graph_id,
    generate_unique_node_id,
)
from graphdone.utils.sanitizer import (
    sanitize_edge_type,
    sanitize_graph_status,
    sanitize_graph_type,
    sanitize_metadata,
    sanitize_node_id,
    sanitize_node_status,
    sanitize_node_type,
    sanitize_priority,
    sanitize_string,
    validate_bulk_operation,
    validate_memory_usage,
)

__all__ = [
    # IDs
    "detect_id_collisions",
    "generate_session_id",
    "generate_unique_edge_id",
    "generate_unique_graph_id",
    "generate_unique_node_id",
    # Sanitization
    "sanitize_edge_type",
    "sanitize_graph_status",
    "sanitize_graph_type",
    "sanitize_metadata",
    "sanitize_node_id",
    "sanitize_node_status",
    "sanitize_node_type",
    "sanitize_priority",
    "sanitize_string",
    "validate_bulk_operation",
    "validate_memory_usage",
]

"""Standard exception hierarchy for GraphDone.

All graphdone exceptions inherit from GraphDoneError, making it easy
to catch all library-specific errors. Every exception carries an
ErrorKind so callers can branch on the category instead of matching
message text.

Exception Hierarchy:
    GraphDoneError (base)
    ├── ValidationError - Missing/invalid input (VALIDATION)
    │   └── ConfigurationError - Invalid configuration
    ├── NotFoundError - Referenced node/edge/graph absent (NOT_FOUND)
    ├── ConflictError - ID collisions, non-empty deletes, cycles (CONFLICT)
    ├── LimitExceededError - Bulk/payload guards tripped (LIMIT_EXCEEDED)
    └── StorageError - Neo4j driver or query failure (STORAGE)
"""

from enum import Enum


class ErrorKind(str, Enum):
    """Category of a failed operation, surfaced in every error payload."""

    VALIDATION = "VALIDATION"
    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"
    LIMIT_EXCEEDED = "LIMIT_EXCEEDED"
    STORAGE = "STORAGE"


class GraphDoneError(Exception):
    """Base exception for all graphdone errors.

    Catch this to handle any library-specific exception:
        try:
            node = await create_node(session, request, limits)
        except GraphDoneError as e:
            logger.error(f"GraphDone error ({e.kind.value}): {e}")
    """

    kind: ErrorKind = ErrorKind.STORAGE

    def __init__(self, message: str, cause: Exception | None = None):
        super().__init__(message)
        self.message = message
        self.cause = cause

    def __str__(self) -> str:
        if self.cause:
            return f"{super().__str__()} (caused by: {self.cause})"
        return super().__str__()


# =============================================================================
# Input Errors
# =============================================================================


class ValidationError(GraphDoneError):
    """Invalid caller input.

    Raised when:
    - A required field or filter is missing
    - An enum value is outside its closed set
    - A numeric input is non-finite or out of range
    - A node ID fails sanitization
    """

    kind = ErrorKind.VALIDATION


class ConfigurationError(ValidationError):
    """Invalid configuration.

    Raised when GraphDoneConfig has invalid settings, missing required
    values, or incompatible options.
    """

    pass


class LimitExceededError(GraphDoneError):
    """An injectable resource guard was exceeded.

    Raised when:
    - A bulk request carries more operations than allowed
    - A request payload is larger than the configured size
    """

    kind = ErrorKind.LIMIT_EXCEEDED


# =============================================================================
# State Errors
# =============================================================================


class NotFoundError(GraphDoneError):
    """A referenced entity does not exist."""

    kind = ErrorKind.NOT_FOUND


class ConflictError(GraphDoneError):
    """The request conflicts with existing state.

    Raised when:
    - Caller-supplied IDs collide within a batch or with stored nodes
    - A graph that still owns work items is deleted without force
    - A parent link would create a cycle in the graph hierarchy
    """

    kind = ErrorKind.CONFLICT


# =============================================================================
# Storage Errors
# =============================================================================


class StorageError(GraphDoneError):
    """Neo4j storage error.

    Raised when:
    - The driver cannot connect
    - A query fails inside the database
    - A transaction cannot be committed
    """

    kind = ErrorKind.STORAGE

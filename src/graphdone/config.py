"""Unified configuration for GraphDone.

GraphDoneConfig provides a clean way to configure all engine components:
- Neo4j connection
- Injectable resource limits (bulk size, payload size, contributors)
- Priority component policy (reject or clamp)
"""

from dataclasses import dataclass, field
from enum import Enum
import os

from graphdone.exceptions import ConfigurationError


class PriorityPolicy(str, Enum):
    """How out-of-range priority components are handled.

    Applied uniformly by single and bulk priority updates.
    """

    REJECT = "reject"
    CLAMP = "clamp"


def env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}", cause=e)


def env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}", cause=e)


@dataclass
class Neo4jConfig:
    """Configuration for the Neo4j connection."""

    uri: str = field(
        default_factory=lambda: os.environ.get("NEO4J_URI", "bolt://localhost:7687")
    )
    username: str = field(
        default_factory=lambda: os.environ.get("NEO4J_USER", "neo4j")
    )
    password: str = field(
        default_factory=lambda: os.environ.get("NEO4J_PASSWORD", "graphdone_password")
    )
    database: str = field(
        default_factory=lambda: os.environ.get("NEO4J_DATABASE", "neo4j")
    )

    # Driver pool settings
    max_connection_pool_size: int = 50
    connection_timeout: float = 30.0


@dataclass
class LimitsConfig:
    """Resource guards enforced by the engine.

    These are policy knobs, not engine logic: every guard reads its
    threshold from here so deployments can tune them.
    """

    max_bulk_operations: int = 100
    max_payload_mb: float = 10.0
    max_contributors: int = 50
    max_page_size: int = 1000
    max_hierarchy_depth: int = 32
    priority_policy: PriorityPolicy = PriorityPolicy.REJECT

    def __post_init__(self) -> None:
        if isinstance(self.priority_policy, str):
            try:
                self.priority_policy = PriorityPolicy(self.priority_policy.lower())
            except ValueError as e:
                raise ConfigurationError(
                    f"Unknown priority policy: {self.priority_policy}", cause=e
                )
        if self.max_bulk_operations < 1:
            raise ConfigurationError("max_bulk_operations must be at least 1")
        if self.max_page_size < 1:
            raise ConfigurationError("max_page_size must be at least 1")
        if self.max_payload_mb <= 0:
            raise ConfigurationError("max_payload_mb must be positive")


@dataclass
class GraphDoneConfig:
    """Main configuration for graphdone.

    Create from environment variables:
        config = GraphDoneConfig.from_env()

    Or configure explicitly:
        config = GraphDoneConfig(
            neo4j=Neo4jConfig(uri="bolt://db:7687"),
            limits=LimitsConfig(max_bulk_operations=50),
        )
    """

    neo4j: Neo4jConfig = field(default_factory=Neo4jConfig)
    limits: LimitsConfig = field(default_factory=LimitsConfig)

    @classmethod
    def from_env(cls) -> "GraphDoneConfig":
        """Load configuration from environment variables.

        Environment variables:
        - NEO4J_URI, NEO4J_USER, NEO4J_PASSWORD, NEO4J_DATABASE
        - NEO4J_MAX_POOL_SIZE: Driver connection pool size
        - NEO4J_CONNECTION_TIMEOUT: Seconds before a connection attempt fails
        - GRAPHDONE_MAX_BULK_OPERATIONS: Max operations per bulk request
        - GRAPHDONE_MAX_PAYLOAD_MB: Max request payload size
        - GRAPHDONE_MAX_CONTRIBUTORS: Max contributors linked on create
        - GRAPHDONE_MAX_PAGE_SIZE: Upper bound for browse limits
        - GRAPHDONE_PRIORITY_POLICY: reject or clamp
        """
        return cls(
            neo4j=Neo4jConfig(
                max_connection_pool_size=env_int("NEO4J_MAX_POOL_SIZE", 50),
                connection_timeout=env_float("NEO4J_CONNECTION_TIMEOUT", 30.0),
            ),
            limits=LimitsConfig(
                max_bulk_operations=env_int("GRAPHDONE_MAX_BULK_OPERATIONS", 100),
                max_payload_mb=env_float("GRAPHDONE_MAX_PAYLOAD_MB", 10.0),
                max_contributors=env_int("GRAPHDONE_MAX_CONTRIBUTORS", 50),
                max_page_size=env_int("GRAPHDONE_MAX_PAGE_SIZE", 1000),
                max_hierarchy_depth=env_int("GRAPHDONE_MAX_HIERARCHY_DEPTH", 32),
                priority_policy=os.environ.get("GRAPHDONE_PRIORITY_POLICY", "reject"),
            ),
        )

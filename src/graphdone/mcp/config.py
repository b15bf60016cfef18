"""Configuration for the GraphDone MCP server.

This module defines the server-level settings (name, logging, health
endpoint) and embeds the engine's GraphDoneConfig.
"""

import os
from dataclasses import dataclass, field

from graphdone.config import GraphDoneConfig, env_int


@dataclass
class MCPConfig:
    """Configuration for the GraphDone MCP server.

    Create from environment variables:
        config = MCPConfig.from_env()
    """

    # Server settings
    server_name: str = field(
        default_factory=lambda: os.environ.get("GRAPHDONE_MCP_NAME", "graphdone")
    )
    """MCP server name."""

    server_version: str = "1.0.0"
    """MCP server version."""

    # Health endpoint
    health_host: str = field(
        default_factory=lambda: os.environ.get("GRAPHDONE_HEALTH_HOST", "127.0.0.1")
    )
    """Interface the health endpoint binds to."""

    health_port: int = 3128
    """Port for /health and /status (0 disables the endpoint)."""

    # Logging
    log_level: str = field(
        default_factory=lambda: os.environ.get("GRAPHDONE_LOG_LEVEL", "INFO")
    )
    """Logging level."""

    # Engine
    graph: GraphDoneConfig = field(default_factory=GraphDoneConfig)
    """Neo4j connection and resource limits."""

    @classmethod
    def from_env(cls) -> "MCPConfig":
        """Create config from environment variables.

        Environment variables:
        - GRAPHDONE_MCP_NAME: MCP server name
        - GRAPHDONE_HEALTH_HOST: Health endpoint bind address
        - GRAPHDONE_HEALTH_PORT: Health endpoint port (0 disables)
        - GRAPHDONE_LOG_LEVEL: Logging level
        - Everything read by GraphDoneConfig.from_env()
        """
        return cls(
            health_port=env_int("GRAPHDONE_HEALTH_PORT", 3128),
            graph=GraphDoneConfig.from_env(),
        )

"""MCP Server for GraphDone.

This module provides an MCP (Model Context Protocol) server that exposes
the GraphDone graph engine as tools, so MCP-compatible applications can
browse, update and analyse a shared Neo4j graph of work items.

Example:
    # Start the MCP server
    python -m graphdone.mcp

    # Or use programmatically
    from graphdone.mcp import GraphMCPServer, MCPConfig

    config = MCPConfig.from_env()
    server = GraphMCPServer(config)
    server.run()

Configuration for an MCP client:
    {
      "mcpServers": {
        "graphdone": {
          "command": "graphdone-mcp",
          "env": {
            "NEO4J_URI": "bolt://localhost:7687",
            "NEO4J_PASSWORD": "graphdone_password"
          }
        }
      }
    }
"""

from graphdone.mcp.config import MCPConfig
from graphdone.mcp.health import create_health_app, create_health_server
from graphdone.mcp.server import GraphMCPServer, create_graph_mcp_server, respond

__all__ = [
    # Config
    "MCPConfig",
    # Health
    "create_health_app",
    "create_health_server",
    # Server
    "GraphMCPServer",
    "create_graph_mcp_server",
    "respond",
]

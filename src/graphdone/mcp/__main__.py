"""Run the GraphDone MCP server: ``python -m graphdone.mcp``."""

from graphdone.mcp.server import main

main()

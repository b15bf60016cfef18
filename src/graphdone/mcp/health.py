"""HTTP health and status endpoints for the MCP server.

The MCP transport owns stdin/stdout, so liveness is reported on a small
Starlette app served by uvicorn in the same event loop:

    GET /health  -> process liveness and registered capabilities
    GET /status  -> usage counters and live Neo4j connectivity

Every other path answers with a JSON 404.
"""

from __future__ import annotations

import logging
import os
import time
from typing import TYPE_CHECKING, Callable

import uvicorn
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route

from graphdone.models import utc_now

if TYPE_CHECKING:
    from graphdone.mcp.config import MCPConfig
    from graphdone.service import GraphService

logger = logging.getLogger(__name__)


def create_health_app(
    config: "MCPConfig",
    service: "GraphService",
    capabilities: Callable[[], list[str]],
) -> Starlette:
    """Build the health/status ASGI app.

    Args:
        config: Server configuration (name, version, Neo4j URI).
        service: Service whose usage metrics and store are reported.
        capabilities: Returns the registered tool names.
    """
    started_at = time.time()

    async def health(request: Request) -> JSONResponse:
        snapshot = service.metrics.snapshot()
        return JSONResponse(
            {
                "status": "healthy",
                "timestamp": utc_now(),
                "server": config.server_name,
                "version": config.server_version,
                "uptime": round(time.time() - started_at, 3),
                "pid": os.getpid(),
                "capabilities": capabilities(),
                "lastAccessed": snapshot["last_request"],
            }
        )

    async def status(request: Request) -> JSONResponse:
        snapshot = service.metrics.snapshot()
        connected = await service.ping()
        return JSONResponse(
            {
                "active": True,
                "totalRequests": snapshot["total_calls"],
                "failedRequests": snapshot["total_failures"],
                "lastRequest": snapshot["last_request"],
                "toolCalls": snapshot["calls"],
                "neo4j": {"connected": connected, "uri": config.graph.neo4j.uri},
            }
        )

    async def not_found(request: Request, exc: Exception) -> JSONResponse:
        return JSONResponse(
            {"error": "Not found", "path": request.url.path}, status_code=404
        )

    return Starlette(
        routes=[
            Route("/health", health, methods=["GET"]),
            Route("/status", status, methods=["GET"]),
        ],
        exception_handlers={404: not_found},
    )


def create_health_server(app: Starlette, host: str, port: int) -> uvicorn.Server:
    """Wrap the app in a uvicorn server that can share the running loop."""
    server_config = uvicorn.Config(
        app,
        host=host,
        port=port,
        log_level="warning",
        access_log=False,
        lifespan="off",
    )
    logger.info(f"Health endpoint configured on http://{host}:{port}")
    return uvicorn.Server(server_config)

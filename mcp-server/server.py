#!/usr/bin/env python3
"""
Portfolio Tracker MCP Server

Serves the tools defined in stdio_server.py over SSE transport for
HTTP-based connections. The backend API and identity are configured with
the same PORTFOLIO_TRACKER_* environment variables.
"""

import os
from mcp.server.sse import SseServerTransport
from starlette.applications import Starlette
from starlette.routing import Route
from starlette.responses import JSONResponse
import uvicorn

from stdio_server import server, validate_user_id, API_BASE_URL

# Configuration
MCP_PORT = int(os.getenv("MCP_PORT", "6000"))

# SSE Transport setup
sse = SseServerTransport("/messages/")


async def handle_sse(request):
    """Handle SSE connections."""
    async with sse.connect_sse(
        request.scope, request.receive, request._send
    ) as streams:
        await server.run(
            streams[0], streams[1], server.create_initialization_options()
        )


async def handle_messages(request):
    """Handle POST messages."""
    await sse.handle_post_message(request.scope, request.receive, request._send)


async def health_check(request):
    """Health check endpoint."""
    return JSONResponse({"status": "healthy", "server": "portfolio-tracker-mcp", "port": MCP_PORT})


# Create Starlette app
app = Starlette(
    routes=[
        Route("/health", health_check, methods=["GET"]),
        Route("/sse", handle_sse, methods=["GET"]),
        Route("/messages/", handle_messages, methods=["POST"]),
    ],
)

if __name__ == "__main__":
    validate_user_id()
    print(f"Portfolio Tracker MCP Server starting on port {MCP_PORT}")
    print(f"SSE endpoint: http://localhost:{MCP_PORT}/sse")
    print(f"Messages endpoint: http://localhost:{MCP_PORT}/messages/")
    print(f"Backend API: {API_BASE_URL}")
    uvicorn.run(app, host="0.0.0.0", port=MCP_PORT)

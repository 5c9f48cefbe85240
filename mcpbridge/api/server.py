"""FastAPI server exposing the stdio MCP peer over HTTP.

One POST endpoint (/mcp) carries JSON-RPC messages in both directions; the
session token travels in the configured session header. Sessions live in
app.state and are shut down with the application lifespan.
"""

import json
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger

from mcpbridge import __version__
from mcpbridge.api.error_boundary import classify_http_status, describe_exception, error_body
from mcpbridge.bridge.endpoint import BridgeEndpoint
from mcpbridge.bridge.enrichment import ToolListingEnricher
from mcpbridge.bridge.protocol import make_error
from mcpbridge.bridge.registry import SessionRegistry
from mcpbridge.bridge.session import PeerCommand
from mcpbridge.config.access import get_config as get_cached_config
from mcpbridge.config.schema import Config
from mcpbridge.utils.exceptions import PARSE_ERROR, BridgeError


def build_endpoint(config: Config) -> BridgeEndpoint:
    """Wire registry, enricher and endpoint from config."""
    bridge = config.bridge
    enricher = ToolListingEnricher(timeout=bridge.enrichment_timeout_seconds) if bridge.enrich_tools else None
    registry = SessionRegistry(
        PeerCommand.from_config(config.peer),
        call_timeout=bridge.call_timeout_seconds,
        enricher=enricher,
        allow_recent_fallback=bridge.allow_recent_fallback,
        shutdown_grace=bridge.shutdown_grace_seconds,
    )
    return BridgeEndpoint(
        registry,
        session_policy=bridge.session_policy,
        call_timeout=bridge.call_timeout_seconds,
        prime_tools_after_initialized=bridge.prime_tools_after_initialized,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the session registry on startup; terminate every peer on shutdown."""
    config: Config = app.state.config
    endpoint = build_endpoint(config)
    app.state.endpoint = endpoint
    logger.info("MCP bridge ready, peer: {}", " ".join(config.peer.argv))
    try:
        yield
    finally:
        await endpoint.registry.close_all()
        logger.info("MCP bridge stopped")


def _endpoint(request: Request) -> BridgeEndpoint:
    return request.app.state.endpoint


def create_app(config: Config | None = None) -> FastAPI:
    """Create the FastAPI application for the given (or cached) config."""
    config = config or get_cached_config()
    session_header = config.gateway.session_header

    app = FastAPI(
        title="mcpbridge",
        description="HTTP bridge for stdio MCP servers",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.config = config

    @app.exception_handler(BridgeError)
    async def bridge_exception_handler(request: Request, exc: BridgeError):
        return JSONResponse(status_code=classify_http_status(exc), content=error_body(exc))

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception):
        code, sanitized = describe_exception(exc)
        logger.exception(f"Unhandled exception [{code}]: {sanitized}")
        return JSONResponse(status_code=500, content=error_body(exc))

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.gateway.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "Accept", "Origin", session_header],
        expose_headers=[session_header],
    )

    @app.post("/mcp")
    async def mcp(request: Request):
        """Forward one JSON-RPC message to the session's peer."""
        try:
            body = json.loads(await request.body())
        except (json.JSONDecodeError, UnicodeDecodeError):
            return JSONResponse(status_code=400, content=make_error(None, PARSE_ERROR, "Parse error"))
        reply = await _endpoint(request).handle(body, request.headers.get(session_header))
        headers = {session_header: reply.session_id} if reply.session_id else None
        return JSONResponse(status_code=reply.status_code, content=reply.body, headers=headers)

    @app.get("/")
    async def root():
        """Root endpoint."""
        return {"service": "mcpbridge", "version": __version__, "status": "running"}

    @app.get("/health")
    async def health(request: Request):
        """Health check endpoint."""
        return _endpoint(request).health()

    @app.get("/sessions")
    async def sessions(request: Request):
        """Read-only view of live sessions."""
        return {"sessions": _endpoint(request).registry.snapshot()}

    return app


def run_server(config: Config, host: str | None = None, port: int | None = None):
    """Run the API server."""
    uvicorn.run(
        create_app(config),
        host=host or config.gateway.host,
        port=port or config.gateway.port,
        timeout_keep_alive=30,
        timeout_graceful_shutdown=int(config.bridge.shutdown_grace_seconds) + 5,
        log_level="warning",
    )

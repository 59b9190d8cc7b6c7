"""
FastAPI Capability Proxy Application Factory
============================================

This is the main entry point for the capability proxy: a reverse proxy that
forwards a request only if the caller's signed token grants its HTTP verb,
target server and path.

Architecture:
    Client (token) → Capability Proxy (this service) → Target origin

Routes:
    - OPTIONS /*          : CORS preflight, no token required
    - GET/POST/PUT/PATCH/DELETE /* : proxied to the URL encoded in the path
    - /health             : Health check endpoint

Environment Variables:
    - JWT_SIGNING_PUBLIC_KEY: PEM RSA public key (required)
    - TOKEN_HEADER_NAME: Token header (default: x-bump-proxy-token)
    - UPSTREAM_TIMEOUT_SECONDS: Upstream timeout (default: 30)
    - DECOMPRESS_RESPONSES: Decode gzip upstream bodies (default: true)
    - PROXY_HOST / PROXY_PORT: Bind address (default: 0.0.0.0:4567)
    - WEB_CONCURRENCY: Worker processes (default: 2)
    - LOG_LEVEL: Logging level (default: INFO)

Running the Service:
    Development:
        uvicorn capproxy.app.main:create_app --factory --reload --port 4567

    Production:
        python -m capproxy.app.main
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import Dict, Optional

import httpx
import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from capproxy import __version__
from capproxy.app.auth.tokens import TokenValidator
from capproxy.app.config import Settings, get_settings
from capproxy.app.errors import ProxyError
from capproxy.app.models import ErrorResponse, HealthResponse
from capproxy.app.proxy.forwarder import RequestForwarder
from capproxy.app.proxy.routes import proxy_router


# Configure structured JSON logging
def setup_logging(log_level: str = "INFO") -> None:
    """
    Configure structured logging for the application.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format='{"timestamp": "%(asctime)s", "level": "%(levelname)s", "logger": "%(name)s", "message": "%(message)s", "module": "%(module)s", "function": "%(funcName)s"}',
        handlers=[logging.StreamHandler(sys.stdout)]
    )


def cors_headers(settings: Settings) -> Dict[str, str]:
    """Static CORS headers attached to every response."""
    return {
        "Access-Control-Allow-Origin": "*",
        "Access-Control-Allow-Methods": ", ".join(settings.cors_allow_methods),
        "Access-Control-Allow-Headers": ", ".join(settings.cors_allow_headers),
    }


# Lifespan context manager for startup/shutdown
@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Startup tasks:
        - Configure logging from settings
        - Log service startup information

    The verification key and forwarder are created in ``create_app`` so they
    exist even when the app is driven without a lifespan (e.g. in tests).
    """
    settings: Settings = app.state.settings

    setup_logging(settings.LOG_LEVEL)
    logger = logging.getLogger("capproxy.main")

    logger.info(
        "Capability proxy started",
        extra={
            "token_header": settings.TOKEN_HEADER_NAME,
            "upstream_timeout": settings.UPSTREAM_TIMEOUT_SECONDS,
            "decompress_responses": settings.DECOMPRESS_RESPONSES,
            "version": __version__,
        }
    )

    yield

    logger.info("Capability proxy shutdown complete")


# Create FastAPI application
def create_app(
    settings: Optional[Settings] = None,
    upstream_transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    """
    Application factory function.

    Creates and configures the FastAPI application instance with:
        - Pinned verification key and upstream forwarder on ``app.state``
        - CORS headers on every response
        - Health and proxy routes
        - Exception handlers

    Args:
        settings: Settings to use instead of the environment
        upstream_transport: httpx transport for upstream calls (tests)

    Returns:
        FastAPI: Configured application instance

    Raises:
        ValueError: If the configured public key is not a usable RSA key
    """
    settings = settings or get_settings()

    # Every path is a proxy target, so no docs routes
    app = FastAPI(
        title="Capability Proxy",
        description="Reverse proxy gated by signed capability tokens",
        version=__version__,
        lifespan=lifespan,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )

    # Shared, read-only for the life of the process
    app.state.settings = settings
    app.state.token_validator = TokenValidator.from_pem(settings.JWT_SIGNING_PUBLIC_KEY)
    app.state.forwarder = RequestForwarder(
        token_header=settings.TOKEN_HEADER_NAME,
        timeout=settings.UPSTREAM_TIMEOUT_SECONDS,
        decompress=settings.DECOMPRESS_RESPONSES,
        transport=upstream_transport,
    )

    static_cors_headers = cors_headers(settings)

    @app.middleware("http")
    async def add_cors_headers(request: Request, call_next):
        response = await call_next(request)
        response.headers.update(static_cors_headers)
        return response

    # Health check endpoint
    @app.get("/health", response_model=HealthResponse, tags=["System"])
    async def health_check() -> HealthResponse:
        """
        Health check endpoint.

        Returns:
            HealthResponse: Service health information
        """
        return HealthResponse(version=__version__)

    app.include_router(proxy_router, tags=["Proxy"])

    @app.exception_handler(ProxyError)
    async def proxy_error_handler(request: Request, exc: ProxyError) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content=ErrorResponse(error=exc.message).model_dump(),
        )

    # Global exception handler
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """
        Global exception handler for unhandled errors.

        This handler runs outside the middleware stack, so the CORS headers
        are attached here directly.
        """
        logger = logging.getLogger("capproxy.main")
        logger.error(
            f"Unhandled exception: {str(exc)}",
            extra={
                "path": request.url.path,
                "method": request.method,
                "exception_type": type(exc).__name__
            },
            exc_info=True
        )

        return JSONResponse(
            status_code=502,
            content=ErrorResponse(error=str(exc) or type(exc).__name__).model_dump(),
            headers=static_cors_headers,
        )

    return app


if __name__ == "__main__":
    """
    Direct execution entry point.

    Runs the service with: python -m capproxy.app.main
    """
    settings = get_settings()

    uvicorn.run(
        "capproxy.app.main:create_app",
        factory=True,
        host=settings.PROXY_HOST,
        port=settings.PROXY_PORT,
        workers=settings.WEB_CONCURRENCY,
        log_level=settings.LOG_LEVEL.lower()
    )

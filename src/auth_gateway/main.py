"""Auth Gateway

Main FastAPI application entry point.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

import httpx
from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from auth_gateway.api.dependencies import public, require_authentication
from auth_gateway.api.routes import auth, providers
from auth_gateway.config.settings import Settings, get_settings
from auth_gateway.core.auth.gateway import AuthGateway, build_gateway
from auth_gateway.domain.exceptions import AuthGatewayError
from auth_gateway.domain.models import AuthErrorResponse
from auth_gateway.infrastructure.auth.auth_code_store import (
    MemoryAuthCodeStore,
    RedisAuthCodeStore,
)
from auth_gateway.infrastructure.auth.user_store import MemoryUserStore, RedisUserStore
from auth_gateway.infrastructure.redis.client import RedisClient

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


async def _build_gateway(app: FastAPI, settings: Settings) -> AuthGateway:
    """Connect storage and assemble the gateway for this process"""
    auth_config = settings.to_auth_config()
    expiry = auth_config.auth_code_expiry_seconds

    if settings.storage_backend == "redis":
        redis_client = RedisClient(settings.redis_url)
        try:
            await redis_client.connect()
        except Exception as e:
            logger.error(f"Failed to connect to Redis: {e}")
            raise
        app.state.redis_client = redis_client
        client = redis_client.get_client()
        user_store = RedisUserStore(client)
        code_store = RedisAuthCodeStore(client, expiry_seconds=expiry)
    else:
        logger.warning("Using in-memory storage: single instance only, data lost on restart")
        user_store = MemoryUserStore()
        code_store = MemoryAuthCodeStore(expiry_seconds=expiry)

    app.state.http_client = httpx.AsyncClient(timeout=settings.provider_timeout_seconds)
    return build_gateway(
        auth_config,
        user_store,
        code_store,
        http_client=app.state.http_client,
        timeout=settings.provider_timeout_seconds,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events"""
    settings: Settings = app.state.settings

    # Startup
    logger.info(f"Starting {settings.service_name} v{settings.service_version}")
    logger.info(f"Environment: {settings.environment}")

    if getattr(app.state, "gateway", None) is None:
        app.state.gateway = await _build_gateway(app, settings)

    yield

    # Shutdown
    logger.info(f"Shutting down {settings.service_name}")
    http_client = getattr(app.state, "http_client", None)
    if http_client is not None:
        await http_client.aclose()
    redis_client = getattr(app.state, "redis_client", None)
    if redis_client is not None:
        await redis_client.disconnect()


def create_app(
    settings: Optional[Settings] = None, gateway: Optional[AuthGateway] = None
) -> FastAPI:
    """Create the FastAPI application

    Args:
        settings: Settings (defaults to the cached environment settings)
        gateway: Prebuilt gateway; when None it is built at startup

    Returns:
        Configured FastAPI application
    """
    settings = settings or get_settings()
    logging.getLogger().setLevel(settings.log_level.upper())

    app = FastAPI(
        title="Auth Gateway",
        version=settings.service_version,
        description="Pluggable authentication gateway issuing application sessions",
        lifespan=lifespan,
        dependencies=[Depends(require_authentication)],
    )
    app.state.settings = settings
    app.state.gateway = gateway

    # CORS configuration
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=settings.cors_allow_methods,
        allow_headers=settings.cors_allow_headers,
    )

    # Health check endpoint
    @app.get("/health")
    @public
    async def root_health_check(request: Request):
        """Root health check endpoint

        Reports degraded when the Redis storage backend stops answering.
        """
        health = {
            "status": "healthy",
            "service": settings.service_name,
            "version": settings.service_version,
            "environment": settings.environment,
            "storage": settings.storage_backend,
        }
        redis_client = getattr(request.app.state, "redis_client", None)
        if redis_client is not None and not await redis_client.health_check():
            health["status"] = "degraded"
        return health

    @app.get("/")
    @public
    async def root():
        """Root endpoint with service information"""
        return {
            "service": settings.service_name,
            "version": settings.service_version,
            "description": "Auth Gateway",
            "docs": "/docs",
            "health": "/health",
        }

    # Fixed paths first so /auth/me and /auth/signout are not taken as provider names
    app.include_router(auth.router)
    app.include_router(providers.router)

    @app.exception_handler(AuthGatewayError)
    async def auth_gateway_exception_handler(request: Request, exc: AuthGatewayError):
        """Render gateway errors as {error, message} with their mapped status"""
        if exc.status_code >= 500:
            logger.error(f"{type(exc).__name__} on {request.url.path}: {exc.message}")
        else:
            logger.info(f"{type(exc).__name__} on {request.url.path}: {exc.message}")

        headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
        return JSONResponse(
            status_code=exc.status_code,
            content=AuthErrorResponse(error=exc.error, message=exc.message).model_dump(),
            headers=headers,
        )

    # Global exception handler
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Global exception handler for unhandled errors"""
        logger.error(f"Unhandled exception: {exc}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={
                "error": "internal_server_error",
                "message": "An unexpected error occurred. Please try again later.",
            },
        )

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "auth_gateway.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )

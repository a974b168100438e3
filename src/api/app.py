"""Application factory for the site API.

Wires the backend adapters into an ``AppState`` during the lifespan, registers
the health checks served by ``/health`` and ``/ready`` and mounts the public
site routes (carousel feeds, detail pages, newsletter and contact forms) next
to the gated back-office routes.

Example:
    uvicorn src.api.app:app --reload
"""

import os
import uuid
from collections.abc import AsyncGenerator, Awaitable, Callable
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware

from src.api.dependencies import AppState, get_app_state
from src.api.routes import (
    admin_router,
    auth_router,
    carousel_router,
    health_router,
    public_router,
)
from src.core.health import HealthChecker, ServiceCheck, ServiceStatus, table_store_check
from src.core.logging import bind_contextvars, clear_contextvars, get_logger

logger = get_logger(__name__)

APP_VERSION = os.getenv("APP_VERSION", "1.0.0")
REQUEST_ID_HEADER = "X-Request-ID"


def _cors_origins_from_env() -> list[str]:
    raw = os.getenv("CORS_ORIGINS", "*").strip()
    if raw == "*":
        return ["*"]
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


def _create_health_checker(app_state: AppState) -> HealthChecker:
    """Health checks for the backend services held by ``app_state``."""
    checker = HealthChecker(version=APP_VERSION)

    def not_initialized(name: str) -> ServiceCheck:
        return ServiceCheck(
            name=name, status=ServiceStatus.UNHEALTHY, message="App state not initialized"
        )

    async def check_backend() -> ServiceCheck:
        if not app_state.is_initialized:
            return not_initialized("backend")
        if app_state.backend.is_connected:
            return ServiceCheck(name="backend", status=ServiceStatus.HEALTHY, message="Connected")
        return ServiceCheck(
            name="backend", status=ServiceStatus.UNHEALTHY, message="Backend disconnected"
        )

    async def check_tables() -> ServiceCheck:
        if not app_state.is_initialized:
            return not_initialized("tables")
        return await table_store_check(app_state.tables)()

    async def check_signing_key() -> ServiceCheck:
        if os.getenv("JWT_SECRET_KEY"):
            return ServiceCheck(
                name="auth", status=ServiceStatus.HEALTHY, message="Signing key configured"
            )
        return ServiceCheck(
            name="auth", status=ServiceStatus.DEGRADED, message="Using development signing key"
        )

    for name, check in (
        ("backend", check_backend),
        ("tables", check_tables),
        ("auth", check_signing_key),
    ):
        checker.add_check(name, check)
    return checker


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    app_state = get_app_state()
    await app_state.initialize()
    app.state.health_checker = _create_health_checker(app_state)
    logger.info("api_ready", version=APP_VERSION)
    try:
        yield
    finally:
        await app_state.shutdown()
        logger.info("api_stopped")


async def _request_context(
    request: Request, call_next: Callable[[Request], Awaitable[Response]]
) -> Response:
    # Every log line emitted while serving the request carries its id
    request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
    bind_contextvars(request_id=request_id, path=request.url.path)
    try:
        response = await call_next(request)
    finally:
        clear_contextvars()
    response.headers[REQUEST_ID_HEADER] = request_id
    return response


def create_app(
    title: str = "RKC Site API",
    description: str = "Public content feeds and back-office API for the RKC website",
    cors_origins: list[str] | None = None,
) -> FastAPI:
    """Build the API.

    ``cors_origins`` defaults to the comma-separated CORS_ORIGINS variable,
    or ``*`` when unset.
    """
    app = FastAPI(title=title, description=description, version=APP_VERSION, lifespan=lifespan)

    origins = cors_origins if cors_origins is not None else _cors_origins_from_env()
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.middleware("http")(_request_context)

    for router in (health_router, auth_router, carousel_router, public_router, admin_router):
        app.include_router(router)

    logger.debug("app_configured", title=title, cors_origins=origins)
    return app


app = create_app()

"""FastAPI application entry point."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from factgraph.api.errors import register_exception_handlers
from factgraph.api.v1.router import api_router
from factgraph.core.config import Settings, get_settings
from factgraph.core.container import ServiceContainer
from factgraph.utils.logging import get_logger, set_default_level

LOGGER = get_logger(__name__)


class RootResponse(BaseModel):
    """Root endpoint response payload."""

    message: str = Field(..., description="Service status message")
    version: str = Field(..., description="Running application version")
    docs: str = Field(..., description="Path to the interactive API docs")
    health: str = Field(..., description="Path to the health check endpoint")


class HealthCheckResponse(BaseModel):
    status: str = Field(..., description="healthy or degraded")
    version: str
    service: str
    database: dict = Field(default_factory=dict)
    graph: dict = Field(default_factory=dict)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Builds the shared clients on startup and closes them on shutdown.

    A container already present on `app.state` is used as-is.
    """
    settings: Settings = app.state.settings
    set_default_level(settings.log_level)

    LOGGER.info(
        "Starting application",
        extra={
            "app_name": settings.app_name,
            "version": settings.app_version,
            "environment": settings.environment,
        },
    )

    if getattr(app.state, "container", None) is None:
        app.state.container = ServiceContainer(settings)
    container: ServiceContainer = app.state.container
    await container.startup()

    yield

    LOGGER.info("Shutting down application")
    await container.shutdown()


def create_app(settings: Optional[Settings] = None, container: Optional[ServiceContainer] = None) -> FastAPI:
    settings = settings or get_settings()

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Temporal fact graph over company filings with corrections and hybrid retrieval",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.container = container

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_exception_handlers(app)

    @app.get(
        "/health",
        response_model=HealthCheckResponse,
        tags=["Health"],
        summary="Health check endpoint",
        operation_id="get_service_health_status",
    )
    async def health_check(request: Request) -> HealthCheckResponse:
        container: ServiceContainer = request.app.state.container
        db_health = await container.db.health_check()
        graph_health = await container.neo4j.health_check()

        healthy = db_health.get("status") == "healthy" and graph_health.get("status") == "healthy"
        return HealthCheckResponse(
            status="healthy" if healthy else "degraded",
            version=settings.app_version,
            service=settings.app_name,
            database=db_health,
            graph=graph_health,
        )

    @app.get(
        "/",
        response_model=RootResponse,
        tags=["Root"],
        summary="Root endpoint",
        operation_id="get_public_root_metadata",
    )
    async def root() -> RootResponse:
        return RootResponse(
            message="Server is running",
            version=settings.app_version,
            docs="/docs",
            health="/health",
        )

    app.include_router(api_router, prefix=settings.api_v1_prefix)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    _settings = get_settings()
    uvicorn.run(
        "factgraph.main:app",
        host=_settings.host,
        port=_settings.port,
        reload=_settings.debug,
        log_level=_settings.log_level.lower(),
    )

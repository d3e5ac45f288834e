"""
gateway/main.py

FastAPI application entry point for the CGM Sentinel gateway.
Builds the service container in the lifespan and registers routers.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

import structlog
from fastapi import FastAPI

from config import settings
from gateway.container import Services, build_services
from gateway.logging_config import configure_logging
from gateway.routers.alerts import router as alerts_router
from gateway.routers.readings import router as readings_router
from gateway.routers.sensor import router as sensor_router

logger = structlog.get_logger(__name__)


def create_app(services: Optional[Services] = None) -> FastAPI:
    """Build the app; tests pass a pre-wired Services instance."""

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Manage application lifecycle: startup and shutdown."""
        configure_logging(settings)
        app.state.services = services or build_services(settings=settings)
        await app.state.services.start()
        logger.info("gateway_starting", port=8000)
        yield
        logger.info("gateway_shutting_down")
        await app.state.services.shutdown()

    app = FastAPI(
        title="CGM Sentinel Gateway",
        description="Sensor status tracking and glucose alerting service",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.include_router(sensor_router)
    app.include_router(readings_router)
    app.include_router(alerts_router)
    return app


app = create_app()

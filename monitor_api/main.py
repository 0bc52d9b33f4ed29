from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from monitor_engine.service import MonitoringService

from .endpoints import (
    error_log_router,
    fleet_router,
    health_router,
    sensors_router,
    settings_router,
)

logger = logging.getLogger(__name__)


def create_app(service: Optional[MonitoringService] = None) -> FastAPI:
    """Crea la app HTTP.

    Si no se pasa ``service`` se construye uno desde el entorno al
    arrancar. El lifespan arranca y detiene el servicio en ambos casos.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if app.state.service is None:
            app.state.service = MonitoringService.from_settings()
        app.state.service.start()
        logger.info("[API] Monitoring service started")
        try:
            yield
        finally:
            app.state.service.stop()
            logger.info("[API] Monitoring service stopped")

    app = FastAPI(title="Condition Monitor", version="0.1.0", lifespan=lifespan)
    app.state.service = service

    app.include_router(health_router)
    app.include_router(fleet_router)
    app.include_router(sensors_router)
    app.include_router(settings_router)
    app.include_router(error_log_router)
    return app


app = create_app()

"""Módulo de endpoints HTTP.

Contiene los endpoints de la API de monitoreo organizados por función.
"""

from .health import router as health_router
from .fleet import router as fleet_router
from .sensors import router as sensors_router
from .settings import router as settings_router
from .error_log import router as error_log_router

__all__ = [
    "health_router",
    "fleet_router",
    "sensors_router",
    "settings_router",
    "error_log_router",
]

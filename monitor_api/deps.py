"""Dependencias compartidas de la API."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator

from fastapi import HTTPException, Request

from monitor_engine.errors import (
    MonitorError,
    QueryError,
    UnknownDeviceError,
    UnknownSensorError,
    ValidationError,
)
from monitor_engine.service import MonitoringService

logger = logging.getLogger(__name__)


def get_service(request: Request) -> MonitoringService:
    service = getattr(request.app.state, "service", None)
    if service is None:
        raise HTTPException(status_code=503, detail="Monitoring service not initialized")
    return service


@contextmanager
def service_errors() -> Iterator[None]:
    """Traduce excepciones del motor a HTTPException."""
    try:
        yield
    except (UnknownDeviceError, UnknownSensorError) as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except QueryError as e:
        logger.warning("[API] Device database unavailable: %s", e)
        raise HTTPException(status_code=503, detail="Device database unavailable")
    except MonitorError as e:
        logger.exception("[API] Unexpected engine error: %s", e)
        raise HTTPException(status_code=500, detail=type(e).__name__)

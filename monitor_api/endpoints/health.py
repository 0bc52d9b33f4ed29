"""Health and metrics endpoints."""

from fastapi import APIRouter, Depends, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from monitor_engine.devices.models import DeviceState
from monitor_engine.service import MonitoringService

from ..deps import get_service

router = APIRouter(tags=["health"])


@router.get("/health")
def health(service: MonitoringService = Depends(get_service)):
    """Liveness probe con un resumen de conexión de la flota."""
    devices = service.list_devices()
    return {
        "status": "ok" if service.is_running else "stopped",
        "devices": len(devices),
        "devicesAttached": sum(1 for d in devices if d.state == DeviceState.ATTACHED),
        "devicesPending": len(service.orchestrator.pending()),
        "errorLogEntries": len(service.error_log),
    }


@router.get("/metrics")
def metrics():
    """Métricas Prometheus (formato texto)."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

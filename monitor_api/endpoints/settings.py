"""Configuración general: histéresis e intervalo de evaluación."""

from fastapi import APIRouter, Depends

from monitor_engine.service import MonitoringService

from ..deps import get_service, service_errors
from ..schemas import GeneralSettings, GeneralSettingsUpdate

router = APIRouter(prefix="/settings", tags=["settings"])


@router.get("", response_model=GeneralSettings)
def get_general_settings(service: MonitoringService = Depends(get_service)):
    return service.get_general_settings()


@router.put("", response_model=GeneralSettings)
def update_general_settings(
    payload: GeneralSettingsUpdate,
    service: MonitoringService = Depends(get_service),
):
    """Aplica solo los campos enviados; los cambios de histéresis alcanzan a todos los sensores."""
    with service_errors():
        if payload.samples_to_fail is not None:
            service.set_samples_to_fail(payload.samples_to_fail)
        if payload.samples_to_heal is not None:
            service.set_samples_to_heal(payload.samples_to_heal)
        if payload.evaluation_interval_ms is not None:
            service.set_evaluation_interval(payload.evaluation_interval_ms)
    return service.get_general_settings()

"""Endpoints por sensor (puerto de un gateway)."""

from typing import List

from fastapi import APIRouter, Depends, Query

from monitor_engine.service import MonitoringService

from ..deps import get_service, service_errors
from ..schemas import (
    AggregatePointOut,
    SensorHealthOut,
    SensorRename,
    ThresholdsOut,
    ThresholdsUpdate,
)

router = APIRouter(prefix="/devices/{device_id}/sensors/{port_id}", tags=["sensors"])


@router.get("")
def get_sensor(device_id: str, port_id: str, service: MonitoringService = Depends(get_service)):
    """Snapshot completo: flags, umbrales, última lectura y último error."""
    with service_errors():
        return service.get_sensor_snapshot(device_id, port_id)


@router.get("/state", response_model=SensorHealthOut)
def get_sensor_state(device_id: str, port_id: str, service: MonitoringService = Depends(get_service)):
    with service_errors():
        return service.get_sensor_state(device_id, port_id).to_dict()


@router.get("/thresholds", response_model=ThresholdsOut)
def get_thresholds(device_id: str, port_id: str, service: MonitoringService = Depends(get_service)):
    with service_errors():
        return service.get_thresholds(device_id, port_id).to_dict()


@router.put("/thresholds", response_model=ThresholdsOut)
def set_thresholds(
    device_id: str,
    port_id: str,
    payload: ThresholdsUpdate,
    service: MonitoringService = Depends(get_service),
):
    """Fija límites estáticos.

    Se rechaza toda la actualización (400) si para alguna métrica el
    límite de falla no queda por encima del de warning.
    """
    with service_errors():
        applied = service.set_thresholds(
            device_id,
            port_id,
            vib_failure=payload.vib_failure,
            vib_warning=payload.vib_warning,
            temp_failure=payload.temp_failure,
            temp_warning=payload.temp_warning,
        )
    return applied.to_dict()


@router.post("/clear-warnings", response_model=SensorHealthOut)
def clear_warnings(device_id: str, port_id: str, service: MonitoringService = Depends(get_service)):
    with service_errors():
        return service.clear_warnings(device_id, port_id).to_dict()


@router.put("/name")
def rename_sensor(
    device_id: str,
    port_id: str,
    payload: SensorRename,
    service: MonitoringService = Depends(get_service),
):
    with service_errors():
        label = service.rename_sensor(device_id, port_id, payload.name)
    return {"sensorId": port_id, "name": label}


@router.get("/history", response_model=List[AggregatePointOut])
def get_history(
    device_id: str,
    port_id: str,
    duration: str = Query("24h", description="Ventana: segundos o sufijo s/m/h/d"),
    service: MonitoringService = Depends(get_service),
):
    """Medias por minuto del puerto para gráficos."""
    with service_errors():
        points = service.query_recent_aggregate(device_id, port_id, duration)
    return [p.to_dict() for p in points]

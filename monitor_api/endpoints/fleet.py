"""Endpoints de flota: áreas, gateways y alta/baja en caliente."""

import logging
from typing import Dict, List

from fastapi import APIRouter, Depends

from monitor_engine.devices.models import Device
from monitor_engine.service import MonitoringService

from ..deps import get_service, service_errors
from ..schemas import (
    DeviceCreate,
    DeviceCreateResult,
    DeviceHealthOut,
    DeviceInfo,
    DeviceSummary,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["fleet"])


def _summary(device: Device) -> DeviceSummary:
    return DeviceSummary(
        id=device.id,
        area=device.area,
        address=device.address,
        description=device.description,
        state=device.state.value,
    )


@router.get("/fleet/health", response_model=Dict[str, Dict[str, DeviceHealthOut]])
def get_fleet_health(service: MonitoringService = Depends(get_service)):
    """``{area: {gateway: {warningState, failureState}}}``."""
    return service.get_fleet_health()


@router.get("/areas", response_model=List[str])
def list_areas(service: MonitoringService = Depends(get_service)):
    return service.list_areas()


@router.get("/areas/{area}/devices", response_model=List[DeviceSummary])
def list_area_devices(area: str, service: MonitoringService = Depends(get_service)):
    return [_summary(d) for d in service.list_devices(area)]


@router.get("/devices", response_model=List[DeviceSummary])
def list_devices(service: MonitoringService = Depends(get_service)):
    return [_summary(d) for d in service.list_devices()]


@router.get("/devices/{device_id}", response_model=DeviceInfo)
def get_device(device_id: str, service: MonitoringService = Depends(get_service)):
    with service_errors():
        return service.get_device_info(device_id)


@router.get("/devices/{device_id}/ports", response_model=List[str])
def list_ports(device_id: str, service: MonitoringService = Depends(get_service)):
    with service_errors():
        return service.get_device_info(device_id)["enabledPorts"]


@router.post("/devices", response_model=DeviceCreateResult, status_code=201)
def add_device(payload: DeviceCreate, service: MonitoringService = Depends(get_service)):
    """Registra un gateway y lo intenta conectar; si falla queda en reintento."""
    with service_errors():
        state = service.add_device(
            area=payload.area,
            device_id=payload.id,
            address=payload.address,
            description=payload.description,
        )
    return DeviceCreateResult(id=payload.id, state=state.value)


@router.delete("/devices/{device_id}", status_code=204)
def remove_device(device_id: str, service: MonitoringService = Depends(get_service)):
    with service_errors():
        service.remove_device(device_id)

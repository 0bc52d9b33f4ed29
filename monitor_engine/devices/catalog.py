"""Catálogo en memoria de gateways y sensores.

Arena indexada por id: los gateways se guardan por ``device_id`` y los
sensores por ``(device_id, port_id)``. Solo ConnectionOrchestrator y el
servicio mutan el catálogo; scheduler y API leen copias.
"""

from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

from ..errors import UnknownDeviceError, UnknownSensorError
from ..sensors.monitor import SensorMonitor
from .models import Device, DeviceState

logger = logging.getLogger(__name__)

SensorKey = Tuple[str, str]


class DeviceCatalog:
    def __init__(self, devices: Optional[Iterable[Device]] = None) -> None:
        self._lock = threading.RLock()
        self._devices: Dict[str, Device] = {}
        self._sensors: Dict[SensorKey, SensorMonitor] = {}
        for device in devices or ():
            self.add_device(device)

    # -- gateways -------------------------------------------------------

    def add_device(self, device: Device) -> Device:
        with self._lock:
            if device.id in self._devices:
                raise ValueError(f"Device '{device.id}' already in catalog")
            self._devices[device.id] = device
            return device

    def remove_device(self, device_id: str) -> Device:
        """Quita el gateway y todos sus sensores."""
        with self._lock:
            device = self._devices.pop(device_id, None)
            if device is None:
                raise UnknownDeviceError(device_id)
            for port_id in device.sensor_ids:
                self._sensors.pop((device_id, port_id), None)
            return device

    def get_device(self, device_id: str) -> Device:
        with self._lock:
            device = self._devices.get(device_id)
            if device is None:
                raise UnknownDeviceError(device_id)
            return device

    def has_device(self, device_id: str) -> bool:
        with self._lock:
            return device_id in self._devices

    def devices(self) -> List[Device]:
        with self._lock:
            return list(self._devices.values())

    def areas(self) -> List[str]:
        with self._lock:
            seen: Dict[str, None] = {}
            for device in self._devices.values():
                seen.setdefault(device.area, None)
            return list(seen)

    def devices_in_area(self, area: str) -> List[Device]:
        with self._lock:
            return [d for d in self._devices.values() if d.area == area]

    def set_state(self, device_id: str, state: DeviceState) -> None:
        with self._lock:
            self.get_device(device_id).transition_to(state)

    # -- sensores -------------------------------------------------------

    def replace_sensors(self, device_id: str, monitors: List[SensorMonitor]) -> None:
        """Reemplaza el conjunto de sensores del gateway."""
        with self._lock:
            device = self.get_device(device_id)
            for port_id in device.sensor_ids:
                self._sensors.pop((device_id, port_id), None)
            device.sensor_ids = [m.sensor_id for m in monitors]
            for monitor in monitors:
                self._sensors[(device_id, monitor.sensor_id)] = monitor

    def get_sensor(self, device_id: str, port_id: str) -> SensorMonitor:
        with self._lock:
            self.get_device(device_id)
            monitor = self._sensors.get((device_id, port_id))
            if monitor is None:
                raise UnknownSensorError(device_id, port_id)
            return monitor

    def sensors_of(self, device_id: str) -> List[SensorMonitor]:
        with self._lock:
            device = self.get_device(device_id)
            return [
                self._sensors[(device_id, p)]
                for p in device.sensor_ids
                if (device_id, p) in self._sensors
            ]

    def all_sensors(self) -> List[SensorMonitor]:
        with self._lock:
            return list(self._sensors.values())

    def attached_sensors(self) -> List[Tuple[Device, SensorMonitor]]:
        """Pares (gateway, sensor) de todos los gateways ATTACHED."""
        with self._lock:
            return [
                (device, self._sensors[(device.id, p)])
                for device in self._devices.values()
                if device.attached
                for p in device.sensor_ids
                if (device.id, p) in self._sensors
            ]


def load_catalog(path: str) -> DeviceCatalog:
    """Carga el catálogo desde un JSON ``{area: {device_id: {...}}}``.

    Cada gateway admite ``address`` (o ``ip``) y ``description``.
    Si el archivo no existe se arranca con un catálogo vacío.
    """
    file = Path(path)
    if not file.exists():
        logger.warning("[CATALOG] Catalog file not found path=%s, starting empty", path)
        return DeviceCatalog()

    data = json.loads(file.read_text(encoding="utf-8"))
    catalog = DeviceCatalog()

    for area, devices in data.items():
        for device_id, info in (devices or {}).items():
            info = info or {}
            address = info.get("address") or info.get("ip")
            if not address:
                logger.warning("[CATALOG] Device without address skipped id=%s area=%s", device_id, area)
                continue
            catalog.add_device(
                Device(
                    id=str(device_id),
                    address=str(address),
                    area=str(area),
                    description=str(info.get("description", "")),
                )
            )

    logger.info("[CATALOG] Loaded devices=%d areas=%d", len(catalog.devices()), len(catalog.areas()))
    return catalog

"""Excepciones del motor de monitoreo de condición.

Jerarquía:
- BufferFullError / BufferEmptyError: locales al RingBuffer.
- NoPortsError: el gateway no reporta puertos activos (se reintenta).
- QueryError / SubscriptionError: fallos de colaboradores externos.
- ValidationError: actualización de umbrales rechazada.
- UnknownDeviceError / UnknownSensorError: búsquedas de la API.
"""

from __future__ import annotations


class MonitorError(Exception):
    """Base de todas las excepciones del motor."""


class BufferFullError(MonitorError):
    def __init__(self, capacity: int):
        self.capacity = capacity
        super().__init__(f"Ring buffer is full (capacity={capacity})")


class BufferEmptyError(MonitorError):
    def __init__(self):
        super().__init__("Ring buffer is empty")


class NoPortsError(MonitorError):
    def __init__(self, device_id: str):
        self.device_id = device_id
        super().__init__(f"No active ports reported by device '{device_id}'")


class QueryError(MonitorError):
    """Fallo (o timeout) de una consulta a la base de series temporales."""


class SubscriptionError(MonitorError):
    """Fallo (o timeout) al suscribirse al feed de telemetría."""


class ValidationError(MonitorError):
    """Actualización rechazada; no se aplicó ningún valor."""


class UnknownDeviceError(MonitorError):
    def __init__(self, device_id: str):
        self.device_id = device_id
        super().__init__(f"Unknown device '{device_id}'")


class UnknownSensorError(MonitorError):
    def __init__(self, device_id: str, port_id: str):
        self.device_id = device_id
        self.port_id = port_id
        super().__init__(f"Unknown sensor '{port_id}' on device '{device_id}'")

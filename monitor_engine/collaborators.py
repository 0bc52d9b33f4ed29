from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Callable, List, Optional, Protocol

from .devices.models import Device
from .sensors.models import SensorReading


@dataclass(frozen=True)
class AggregatePoint:
    """Media por minuto de un puerto (para gráficos históricos)."""

    time: datetime
    mean_temp: Optional[float]
    mean_vib_x: Optional[float]
    mean_vib_y: Optional[float]
    mean_vib_z: Optional[float]

    def to_dict(self) -> dict:
        return {
            "time": self.time.isoformat(),
            "meanTemp": self.mean_temp,
            "meanVibX": self.mean_vib_x,
            "meanVibY": self.mean_vib_y,
            "meanVibZ": self.mean_vib_z,
        }


class Subscription(Protocol):
    def unsubscribe(self) -> None:
        ...


class TelemetryFeed(Protocol):
    """Feed de lecturas en vivo por puerto.

    El motor solo depende de esta interfaz; la implementación MQTT vive en
    ``transports.mqtt_feed``.
    """

    def subscribe(
        self,
        device: Device,
        port_id: str,
        handler: Callable[[SensorReading], None],
    ) -> Subscription:
        """Entrega cada lectura del puerto a ``handler``.

        Raises:
            SubscriptionError: si no se pudo suscribir (incluye timeout).
        """
        ...

    def close_device(self, device_id: str) -> None:
        ...

    def close(self) -> None:
        ...


class DeviceDatabase(Protocol):
    """Base de series temporales de un gateway."""

    def list_active_ports(self, device: Device) -> List[str]:
        """Raises: QueryError."""
        ...

    def query_recent_aggregate(
        self, device: Device, port_id: str, duration_seconds: float
    ) -> List[AggregatePoint]:
        """Raises: QueryError."""
        ...

    def dispose(self) -> None:
        """Cierra los pools abiertos hacia los gateways."""
        ...

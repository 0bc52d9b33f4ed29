"""Modelo de gateway (dispositivo) y su ciclo de conexión."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List


class DeviceState(str, Enum):
    """Estados de conexión de un gateway.

    Transiciones válidas:
        UNATTACHED → ATTACHING → ATTACHED
        ATTACHING  → UNATTACHED   (intento fallido)

    No hay ATTACHED → UNATTACHED automático.
    """
    UNATTACHED = "unattached"
    ATTACHING = "attaching"
    ATTACHED = "attached"


_VALID_TRANSITIONS = {
    DeviceState.UNATTACHED: {DeviceState.ATTACHING},
    DeviceState.ATTACHING: {DeviceState.ATTACHED, DeviceState.UNATTACHED},
    DeviceState.ATTACHED: set(),
}


def is_valid_transition(current: DeviceState, new: DeviceState) -> bool:
    return new in _VALID_TRANSITIONS.get(current, set())


@dataclass
class Device:
    """Gateway del catálogo.

    ``sensor_ids`` referencia sensores del catálogo por id (sin punteros
    de vuelta): cada SensorMonitor guarda su ``device_id``.
    """
    id: str
    address: str
    area: str
    description: str = ""
    state: DeviceState = DeviceState.UNATTACHED
    sensor_ids: List[str] = field(default_factory=list)
    enabled_ports: List[str] = field(default_factory=list)

    @property
    def attached(self) -> bool:
        return self.state == DeviceState.ATTACHED

    def transition_to(self, new_state: DeviceState) -> None:
        if not is_valid_transition(self.state, new_state):
            raise ValueError(
                f"Invalid device transition {self.state.value} -> {new_state.value} ({self.id})"
            )
        self.state = new_state

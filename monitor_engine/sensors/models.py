"""Modelos de datos de un sensor monitoreado."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional


TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


class Metric(str, Enum):
    VIBRATION = "vibration"
    TEMPERATURE = "temperature"


class LimitKind(str, Enum):
    WARNING = "warning"
    FAILURE = "failure"


class ErrorCause(str, Enum):
    """Texto registrado en ``last_error.cause`` y en el log de errores."""
    VIBRATION_ERROR = "Vibration Error"
    TEMPERATURE_ERROR = "Temperature Error"
    VIBRATION_WARNING = "Vibration Warning"
    TEMPERATURE_WARNING = "Temperature Warning"


@dataclass(frozen=True)
class SensorReading:
    """Lectura en vivo de un puerto.

    Las velocidades son RMS por eje (mm/s), la temperatura es de contacto (°C).
    """
    temperature: float
    velocity_x: float
    velocity_y: float
    velocity_z: float
    timestamp: Optional[str] = None
    raw_alarm_bits: Dict[str, bool] = field(default_factory=dict)

    @property
    def vibration_magnitude(self) -> float:
        return math.sqrt(
            self.velocity_x ** 2 + self.velocity_y ** 2 + self.velocity_z ** 2
        )

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp,
            "temperature": self.temperature,
            "velocityX": self.velocity_x,
            "velocityY": self.velocity_y,
            "velocityZ": self.velocity_z,
        }


@dataclass
class SensorThresholds:
    """Límites vigentes de un sensor (estáticos o recalculados)."""
    vib_failure: float = 4.0
    vib_warning: float = 2.0
    temp_failure: float = 20.0
    temp_warning: float = 10.0

    def get(self, metric: Metric, kind: LimitKind) -> float:
        return getattr(self, _LIMIT_ATTRS[(metric, kind)])

    def set(self, metric: Metric, kind: LimitKind, value: float) -> None:
        setattr(self, _LIMIT_ATTRS[(metric, kind)], float(value))

    def to_dict(self) -> dict:
        return {
            "vibFailureLimit": self.vib_failure,
            "vibWarningLimit": self.vib_warning,
            "tempFailureLimit": self.temp_failure,
            "tempWarningLimit": self.temp_warning,
        }


_LIMIT_ATTRS = {
    (Metric.VIBRATION, LimitKind.FAILURE): "vib_failure",
    (Metric.VIBRATION, LimitKind.WARNING): "vib_warning",
    (Metric.TEMPERATURE, LimitKind.FAILURE): "temp_failure",
    (Metric.TEMPERATURE, LimitKind.WARNING): "temp_warning",
}


@dataclass(frozen=True)
class HysteresisConfig:
    """Nº de muestras consecutivas para activar / desactivar un flag."""
    samples_to_fail: int = 10
    samples_to_heal: int = 20

    def __post_init__(self) -> None:
        if self.samples_to_fail < 1 or self.samples_to_heal < 1:
            raise ValueError("samples_to_fail and samples_to_heal must be >= 1")


@dataclass
class LastError:
    cause: Optional[str] = None
    timestamp: Optional[str] = None

    def clear(self) -> None:
        self.cause = None
        self.timestamp = None

    def to_dict(self) -> dict:
        return {"cause": self.cause, "timestamp": self.timestamp}


@dataclass(frozen=True)
class SensorHealth:
    temp_warning: bool
    vib_warning: bool
    temp_failure: bool
    vib_failure: bool

    @property
    def warning(self) -> bool:
        return self.temp_warning or self.vib_warning

    @property
    def failure(self) -> bool:
        return self.temp_failure or self.vib_failure

    def to_dict(self) -> dict:
        return {
            "tempWarning": self.temp_warning,
            "vibWarning": self.vib_warning,
            "tempFailure": self.temp_failure,
            "vibFailure": self.vib_failure,
        }


@dataclass(frozen=True)
class StatusBits:
    """Bits de alarma que reporta el propio sensor (solo informativos)."""
    velocity_main_alarm: bool = False
    velocity_pre_alarm: bool = False
    temp_main_alarm: bool = False

    @classmethod
    def from_raw(cls, raw: Dict[str, bool]) -> "StatusBits":
        return cls(
            velocity_main_alarm=any(
                raw.get(k, False) for k in ("mainAlarmX", "mainAlarmY", "mainAlarmZ")
            ),
            velocity_pre_alarm=any(
                raw.get(k, False) for k in ("preAlarmX", "preAlarmY", "preAlarmZ")
            ),
            temp_main_alarm=bool(raw.get("tempUpperAlarm", False)),
        )

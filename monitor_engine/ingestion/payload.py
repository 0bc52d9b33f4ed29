"""Validación de mensajes del feed de telemetría.

Acepta dos formatos:

1. IO-Link (lo que publica el gateway):
    {
        "timestamp": "2025-02-12T01:31:34.452Z",
        "data": {"items": {
            "Contact Temperature Contact Temperature": 23.4,
            "Vibration Velocity RMS v-RMS X": 0.8,
            "Vibration Velocity RMS v-RMS Y": 0.7,
            "Vibration Velocity RMS v-RMS Z": 1.1,
            "Status Bits Main-Alarm v-RMS X Status": false,
            ...
        }}
    }

2. Plano:
    {"timestamp": ..., "temperature": ..., "velocityX": ..., "velocityY": ...,
     "velocityZ": ..., "rawAlarmBits": {...}}
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError as PydanticValidationError, field_validator

from ..sensors.models import SensorReading

logger = logging.getLogger(__name__)

IOLINK_TEMPERATURE = "Contact Temperature Contact Temperature"
IOLINK_VELOCITY_X = "Vibration Velocity RMS v-RMS X"
IOLINK_VELOCITY_Y = "Vibration Velocity RMS v-RMS Y"
IOLINK_VELOCITY_Z = "Vibration Velocity RMS v-RMS Z"

# item IO-Link -> clave de raw_alarm_bits
IOLINK_STATUS_BITS = {
    "Status Bits Contact Temperature Upper Alarm Status": "tempUpperAlarm",
    "Status Bits Main-Alarm v-RMS X Status": "mainAlarmX",
    "Status Bits Main-Alarm v-RMS Y Status": "mainAlarmY",
    "Status Bits Main-Alarm v-RMS Z Status": "mainAlarmZ",
    "Status Bits Pre-Alarm v-RMS X Status": "preAlarmX",
    "Status Bits Pre-Alarm v-RMS Y Status": "preAlarmY",
    "Status Bits Pre-Alarm v-RMS Z Status": "preAlarmZ",
}


class FeedReadingPayload(BaseModel):
    """Schema de una lectura en vivo (formato plano)."""

    model_config = ConfigDict(populate_by_name=True)

    timestamp: Optional[str] = None
    temperature: float
    velocity_x: float = Field(..., alias="velocityX")
    velocity_y: float = Field(..., alias="velocityY")
    velocity_z: float = Field(..., alias="velocityZ")
    raw_alarm_bits: Dict[str, bool] = Field(default_factory=dict, alias="rawAlarmBits")

    @field_validator("temperature", "velocity_x", "velocity_y", "velocity_z")
    @classmethod
    def validate_finite(cls, v: float) -> float:
        if math.isnan(v):
            raise ValueError("Value is NaN")
        if math.isinf(v):
            raise ValueError("Value is infinite")
        return v

    def to_reading(self) -> SensorReading:
        return SensorReading(
            temperature=self.temperature,
            velocity_x=self.velocity_x,
            velocity_y=self.velocity_y,
            velocity_z=self.velocity_z,
            timestamp=self.timestamp,
            raw_alarm_bits=dict(self.raw_alarm_bits),
        )


@dataclass
class ValidationResult:
    valid: bool
    reading: Optional[SensorReading] = None
    error: Optional[str] = None
    warnings: List[str] = field(default_factory=list)


def _flatten_iolink(data: Dict[str, Any]) -> Dict[str, Any]:
    items = (data.get("data") or {}).get("items") or {}
    return {
        "timestamp": data.get("timestamp"),
        "temperature": items.get(IOLINK_TEMPERATURE),
        "velocityX": items.get(IOLINK_VELOCITY_X),
        "velocityY": items.get(IOLINK_VELOCITY_Y),
        "velocityZ": items.get(IOLINK_VELOCITY_Z),
        "rawAlarmBits": {
            key: bool(items[name]) for name, key in IOLINK_STATUS_BITS.items() if name in items
        },
    }


def parse_feed_message(data: Dict[str, Any]) -> ValidationResult:
    """Valida un mensaje del feed y lo convierte a SensorReading."""
    warnings: List[str] = []

    if not isinstance(data, dict):
        return ValidationResult(valid=False, error="Payload must be a JSON object")

    if "data" in data and isinstance(data.get("data"), dict):
        data = _flatten_iolink(data)
        warnings.append("Converted IO-Link items payload")

    if data.get("timestamp") is not None and not isinstance(data["timestamp"], str):
        data = {**data, "timestamp": str(data["timestamp"])}

    try:
        payload = FeedReadingPayload.model_validate(data)
    except PydanticValidationError as e:
        first = e.errors()[0] if e.errors() else {}
        loc = ".".join(str(p) for p in first.get("loc", ()))
        return ValidationResult(
            valid=False,
            error=f"{loc}: {first.get('msg', 'invalid payload')}",
            warnings=warnings,
        )

    return ValidationResult(valid=True, reading=payload.to_reading(), warnings=warnings)

"""Estado de monitoreo por sensor.

- models.py: Lecturas, umbrales, configuración de histéresis
- monitor.py: SensorMonitor (máquina de estados con histéresis)
"""

from .models import (
    ErrorCause,
    HysteresisConfig,
    LimitKind,
    Metric,
    SensorHealth,
    SensorReading,
    SensorThresholds,
)
from .monitor import EvaluationResult, SensorMonitor

__all__ = [
    "ErrorCause",
    "HysteresisConfig",
    "LimitKind",
    "Metric",
    "SensorHealth",
    "SensorReading",
    "SensorThresholds",
    "EvaluationResult",
    "SensorMonitor",
]

"""Historial de fallas detectadas (solo append, depurado por antigüedad)."""

from __future__ import annotations

import logging
import threading
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta
from typing import Callable, List, Optional, Union

from ..metrics import ERROR_LOG_SIZE
from ..sensors.models import TIMESTAMP_FORMAT

logger = logging.getLogger(__name__)

DEFAULT_RETENTION_HOURS = 12.0


@dataclass(frozen=True)
class ErrorLogEntry:
    device_id: str
    sensor_id: str
    area: str
    cause: str
    timestamp: str  # YYYY-MM-DD HH:MM:SS

    def to_dict(self) -> dict:
        data = asdict(self)
        return {
            "deviceId": data["device_id"],
            "sensorId": data["sensor_id"],
            "area": data["area"],
            "cause": data["cause"],
            "timestamp": data["timestamp"],
        }


class ErrorLog:
    def __init__(
        self,
        retention_hours: float = DEFAULT_RETENTION_HOURS,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.retention_hours = float(retention_hours)
        self._clock = clock
        self._entries: List[ErrorLogEntry] = []
        self._lock = threading.Lock()

    def append(self, entry: ErrorLogEntry) -> None:
        with self._lock:
            self._entries.append(entry)
            ERROR_LOG_SIZE.set(len(self._entries))

    def entries(self) -> List[ErrorLogEntry]:
        with self._lock:
            return list(self._entries)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def clear(self) -> int:
        with self._lock:
            removed = len(self._entries)
            self._entries.clear()
            ERROR_LOG_SIZE.set(0)
        logger.info("[ERROR_LOG] Cleared entries=%d", removed)
        return removed

    def prune(self, cutoff: Union[datetime, str]) -> int:
        """Elimina las entradas con timestamp anterior a ``cutoff``.

        Los timestamps tienen formato fijo, así que comparar strings
        equivale a comparar fechas.
        """
        if isinstance(cutoff, datetime):
            cutoff = cutoff.strftime(TIMESTAMP_FORMAT)

        with self._lock:
            kept = [e for e in self._entries if e.timestamp >= cutoff]
            removed = len(self._entries) - len(kept)
            self._entries = kept
            ERROR_LOG_SIZE.set(len(kept))

        if removed:
            logger.info("[ERROR_LOG] Pruned entries=%d cutoff=%s", removed, cutoff)
        return removed

    def prune_expired(self, now: Optional[datetime] = None) -> int:
        """Aplica la ventana de retención (housekeeping periódico)."""
        now = now or self._clock()
        return self.prune(now - timedelta(hours=self.retention_hours))

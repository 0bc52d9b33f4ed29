"""Driver periódico de evaluación.

En cada tick evalúa todos los SensorMonitor de los gateways ATTACHED y
agrega al log de errores cada falla nueva con su contexto (gateway, área,
sensor).
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, List, Optional

from ..devices.catalog import DeviceCatalog
from ..metrics import TRANSITIONS
from ..sensors.models import TIMESTAMP_FORMAT
from .error_log import ErrorLog, ErrorLogEntry
from .periodic import PeriodicTask

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_MS = 1000


class MonitoringScheduler:
    def __init__(
        self,
        catalog: DeviceCatalog,
        error_log: ErrorLog,
        interval_ms: int = DEFAULT_INTERVAL_MS,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._catalog = catalog
        self._error_log = error_log
        self._clock = clock
        self._interval_ms = _validate_interval(interval_ms)
        self._task: Optional[PeriodicTask] = None
        self._ticks = 0

    @property
    def interval_ms(self) -> int:
        return self._interval_ms

    @property
    def is_running(self) -> bool:
        return self._task is not None and self._task.is_running

    def run_every(self, interval_ms: Optional[int] = None) -> None:
        """Arranca (o re-arma) el timer de evaluación.

        Si ya estaba corriendo se cancela el timer anterior; una evaluación
        en curso termina normalmente, solo cambia el próximo disparo.
        """
        if interval_ms is not None:
            self._interval_ms = _validate_interval(interval_ms)

        seconds = self._interval_ms / 1000.0
        if self._task is None:
            self._task = PeriodicTask("evaluation", self.tick, seconds)
            self._task.start()
        else:
            self._task.reschedule(seconds)

        logger.info("[SCHED] Evaluation timer armed interval_ms=%d", self._interval_ms)

    def set_interval(self, interval_ms: int) -> int:
        self._interval_ms = _validate_interval(interval_ms)
        if self.is_running:
            self.run_every()
        return self._interval_ms

    def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
        logger.info("[SCHED] Stopped after ticks=%d", self._ticks)

    def tick(self) -> List[ErrorLogEntry]:
        """Evalúa una vez todos los sensores conectados."""
        new_entries: List[ErrorLogEntry] = []
        self._ticks += 1

        for device, monitor in self._catalog.attached_sensors():
            try:
                result = monitor.evaluate_tick()
            except Exception as e:
                logger.exception(
                    "[SCHED] Evaluation failed device=%s sensor=%s: %s",
                    device.id, monitor.sensor_id, e,
                )
                continue

            if result.raised_warnings:
                TRANSITIONS.labels(kind="warning").inc(len(result.raised_warnings))
            if result.cleared:
                TRANSITIONS.labels(kind="recovery").inc(len(result.cleared))

            for cause in result.raised_failures:
                entry = ErrorLogEntry(
                    device_id=device.id,
                    sensor_id=monitor.sensor_id,
                    area=device.area,
                    cause=cause,
                    timestamp=self._clock().strftime(TIMESTAMP_FORMAT),
                )
                self._error_log.append(entry)
                new_entries.append(entry)
                TRANSITIONS.labels(kind="failure").inc()

        return new_entries


def _validate_interval(interval_ms) -> int:
    if isinstance(interval_ms, bool):
        raise ValueError("interval_ms must be a positive integer")
    value = int(interval_ms)
    if value <= 0:
        raise ValueError("interval_ms must be a positive integer")
    return value

"""Despacho de lecturas en vivo a los SensorMonitor.

Desacopla el hilo del cliente MQTT del procesamiento: el callback solo
encola (no bloquea) y un pool de workers llama a ``monitor.ingest``.

Cada sensor se asigna siempre a la misma partición (cola acotada + un
único worker), así las lecturas de un sensor nunca se procesan en paralelo
entre sí. La exclusión frente a ``evaluate`` la da el lock del monitor.
"""

from __future__ import annotations

import logging
import queue
import threading
import zlib
from typing import List, Optional, Tuple

from ..metrics import READINGS_INGESTED
from ..sensors.models import SensorReading
from ..sensors.monitor import SensorMonitor

logger = logging.getLogger(__name__)

DEFAULT_QUEUE_SIZE = 1000
DEFAULT_NUM_WORKERS = 4

_Item = Tuple[SensorMonitor, SensorReading]


class ReadingDispatcher:
    """Colas particionadas por sensor + un worker por partición."""

    def __init__(
        self,
        max_queue_size: int = DEFAULT_QUEUE_SIZE,
        num_workers: int = DEFAULT_NUM_WORKERS,
    ) -> None:
        self._num_workers = max(1, int(num_workers))
        self._queues: List["queue.Queue[_Item]"] = [
            queue.Queue(maxsize=max_queue_size) for _ in range(self._num_workers)
        ]
        self._stop_event = threading.Event()
        self._workers: List[threading.Thread] = []

        self._enqueued = 0
        self._dropped = 0
        self._processed = 0
        self._errors = 0
        self._lock = threading.Lock()

    def start(self) -> None:
        if self._workers:
            return
        self._stop_event.clear()
        for i in range(self._num_workers):
            t = threading.Thread(
                target=self._worker_loop,
                args=(i,),
                daemon=True,
                name=f"ingest-worker-{i}",
            )
            t.start()
            self._workers.append(t)
        logger.info(
            "[DISPATCH] Started workers=%d queue_max=%d",
            self._num_workers, self._queues[0].maxsize,
        )

    def stop(self, drain: bool = False) -> None:
        """Deja de aceptar trabajo. Con ``drain`` procesa lo ya encolado."""
        if drain and self._workers:
            for q in self._queues:
                q.join()
        self._stop_event.set()
        for t in self._workers:
            t.join(timeout=5.0)
        self._workers.clear()
        logger.info("[DISPATCH] Stopped. %s", self.metrics)

    def partition_for(self, monitor: SensorMonitor) -> int:
        key = f"{monitor.device_id}/{monitor.sensor_id}".encode("utf-8")
        return zlib.crc32(key) % self._num_workers

    def enqueue(self, monitor: SensorMonitor, reading: SensorReading) -> bool:
        """Encola sin bloquear. False si la partición está llena o parada."""
        if self._stop_event.is_set():
            return False

        try:
            self._queues[self.partition_for(monitor)].put_nowait((monitor, reading))
        except queue.Full:
            with self._lock:
                self._dropped += 1
            READINGS_INGESTED.labels(status="dropped").inc()
            logger.warning(
                "[DISPATCH] Queue full, dropped device=%s sensor=%s",
                monitor.device_id, monitor.sensor_id,
            )
            return False

        with self._lock:
            self._enqueued += 1
        return True

    def _worker_loop(self, worker_id: int) -> None:
        q = self._queues[worker_id]
        while not self._stop_event.is_set():
            try:
                monitor, reading = q.get(timeout=0.5)
            except queue.Empty:
                continue

            try:
                monitor.ingest(reading)
                with self._lock:
                    self._processed += 1
                READINGS_INGESTED.labels(status="ingested").inc()
            except Exception as e:
                with self._lock:
                    self._errors += 1
                READINGS_INGESTED.labels(status="error").inc()
                logger.exception(
                    "[DISPATCH] Worker %d error device=%s sensor=%s: %s",
                    worker_id, monitor.device_id, monitor.sensor_id, e,
                )
            finally:
                q.task_done()

    @property
    def is_running(self) -> bool:
        return bool(self._workers) and not self._stop_event.is_set()

    @property
    def metrics(self) -> dict:
        with self._lock:
            return {
                "queue_depth": sum(q.qsize() for q in self._queues),
                "partitions": self._num_workers,
                "enqueued": self._enqueued,
                "dropped": self._dropped,
                "processed": self._processed,
                "errors": self._errors,
            }

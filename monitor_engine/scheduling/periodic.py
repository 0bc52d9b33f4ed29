"""Timer periódico cancelable sobre un hilo daemon."""

from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class PeriodicTask:
    """Ejecuta ``func`` cada ``interval_seconds`` hasta que se cancele.

    - ``start`` arma el timer (no-op si ya está corriendo).
    - ``cancel`` impide futuras ejecuciones; no interrumpe una en curso.
    - ``reschedule`` cancela y vuelve a armar con otro intervalo.
    - ``func`` puede cancelar su propio timer desde dentro.
    """

    def __init__(
        self,
        name: str,
        func: Callable[[], None],
        interval_seconds: float,
    ) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be > 0")
        self.name = name
        self._func = func
        self._interval = float(interval_seconds)
        self._lock = threading.Lock()
        self._stop_event: Optional[threading.Event] = None
        self._thread: Optional[threading.Thread] = None

    @property
    def interval_seconds(self) -> float:
        return self._interval

    @property
    def is_running(self) -> bool:
        with self._lock:
            return self._stop_event is not None and not self._stop_event.is_set()

    def start(self) -> bool:
        """Arma el timer. Devuelve False si ya estaba armado."""
        with self._lock:
            if self._stop_event is not None and not self._stop_event.is_set():
                return False
            stop_event = threading.Event()
            self._stop_event = stop_event
            self._thread = threading.Thread(
                target=self._run,
                args=(stop_event, self._interval),
                daemon=True,
                name=f"periodic-{self.name}",
            )
            self._thread.start()
        logger.debug("[TIMER] %s armed interval=%.3fs", self.name, self._interval)
        return True

    def cancel(self) -> None:
        with self._lock:
            if self._stop_event is not None:
                self._stop_event.set()
        logger.debug("[TIMER] %s cancelled", self.name)

    def reschedule(self, interval_seconds: float) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be > 0")
        self.cancel()
        with self._lock:
            self._interval = float(interval_seconds)
        self.start()

    def join(self, timeout: Optional[float] = None) -> None:
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)

    def _run(self, stop_event: threading.Event, interval: float) -> None:
        # Cada armado tiene su propio Event: un reschedule no despierta al
        # hilo nuevo, solo detiene al anterior.
        while not stop_event.wait(interval):
            try:
                self._func()
            except Exception as e:
                logger.exception("[TIMER] %s tick failed: %s", self.name, e)

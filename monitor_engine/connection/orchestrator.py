"""Ciclo de vida de conexión de los gateways.

Por gateway:  UNATTACHED → ATTACHING → ATTACHED, o ATTACHING → UNATTACHED
si el intento falla. Los gateways que no conectan quedan en un conjunto de
pendientes que un timer reintenta; el timer se cancela solo cuando el
conjunto queda vacío y se vuelve a armar cuando entra un pendiente nuevo.

Ninguna llamada a colaboradores bloquea indefinidamente: consultas y
suscripciones corren con timeout y un timeout cuenta como intento fallido.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeoutError
from typing import Callable, Dict, List, Optional, Set

from ..collaborators import AggregatePoint, DeviceDatabase, Subscription, TelemetryFeed
from ..devices.catalog import DeviceCatalog
from ..devices.models import Device, DeviceState
from ..errors import NoPortsError, QueryError, SubscriptionError, UnknownDeviceError
from ..metrics import ATTACH_ATTEMPTS, DEVICES_ATTACHED, DEVICES_PENDING
from ..scheduling.periodic import PeriodicTask
from ..sensors.models import SensorReading
from ..sensors.monitor import SensorMonitor

logger = logging.getLogger(__name__)

DEFAULT_RETRY_INTERVAL_MS = 1000
DEFAULT_TIMEOUT_SECONDS = 5.0

MonitorFactory = Callable[[Device, str], SensorMonitor]
ReadingSink = Callable[[SensorMonitor, SensorReading], object]


class ConnectionOrchestrator:
    def __init__(
        self,
        catalog: DeviceCatalog,
        database: DeviceDatabase,
        feed: TelemetryFeed,
        monitor_factory: MonitorFactory,
        reading_sink: ReadingSink,
        retry_interval_ms: int = DEFAULT_RETRY_INTERVAL_MS,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self._catalog = catalog
        self._database = database
        self._feed = feed
        self._monitor_factory = monitor_factory
        self._reading_sink = reading_sink
        self._timeout = float(timeout_seconds)
        self._retry_interval_ms = int(retry_interval_ms)

        self._pending: Set[str] = set()
        self._pending_lock = threading.Lock()
        self._attach_lock = threading.RLock()
        self._subscriptions: Dict[str, List[Subscription]] = {}
        self._retry_task: Optional[PeriodicTask] = None
        self._stopped = False

        self._executor = ThreadPoolExecutor(max_workers=4, thread_name_prefix="collab")

    # ------------------------------------------------------------------
    # Attach
    # ------------------------------------------------------------------

    def attach_device(self, device_id: str) -> bool:
        """Intenta conectar un gateway.

        True solo si la enumeración de puertos tuvo éxito. Un fallo de
        suscripción en un puerto se loguea pero no hace fallar al gateway.
        """
        with self._attach_lock:
            device = self._catalog.get_device(device_id)
            if device.attached:
                return True

            self._catalog.set_state(device.id, DeviceState.ATTACHING)
            try:
                ports = self._list_ports(device)
            except NoPortsError as e:
                ATTACH_ATTEMPTS.labels(result="no_ports").inc()
                logger.warning("[ORCH] %s address=%s", e, device.address)
                self._catalog.set_state(device.id, DeviceState.UNATTACHED)
                return False
            except QueryError as e:
                ATTACH_ATTEMPTS.labels(result="query_error").inc()
                logger.warning(
                    "[ORCH] Port query failed device=%s address=%s: %s",
                    device.id, device.address, e,
                )
                self._catalog.set_state(device.id, DeviceState.UNATTACHED)
                return False

            device.enabled_ports = list(ports)
            monitors: List[SensorMonitor] = []
            subscriptions: List[Subscription] = []

            try:
                for port_id in ports:
                    monitor = self._monitor_factory(device, port_id)
                    monitors.append(monitor)
                    try:
                        subscriptions.append(self._subscribe(device, monitor))
                    except SubscriptionError as e:
                        logger.error(
                            "[ORCH] Subscription failed device=%s port=%s: %s",
                            device.id, port_id, e,
                        )
            except Exception as e:
                ATTACH_ATTEMPTS.labels(result="error").inc()
                logger.exception("[ORCH] Attach failed device=%s: %s", device.id, e)
                self._unsubscribe_all(device.id, subscriptions)
                self._catalog.set_state(device.id, DeviceState.UNATTACHED)
                return False

            try:
                self._catalog.replace_sensors(device.id, monitors)
                self._catalog.set_state(device.id, DeviceState.ATTACHED)
            except UnknownDeviceError:
                # Dado de baja mientras se conectaba: no deja feeds huérfanos.
                self._release(device.id, subscriptions)
                raise
            self._subscriptions[device.id] = subscriptions

        ATTACH_ATTEMPTS.labels(result="attached").inc()
        self._update_gauges()
        logger.info(
            "[ORCH] Attached device=%s ports=%d subscribed=%d",
            device.id, len(monitors), len(subscriptions),
        )
        return True

    def attach_all(self) -> int:
        """Conecta todos los gateways del catálogo; los fallidos quedan pendientes.

        Devuelve la cantidad de gateways conectados.
        """
        attached = 0
        for device in self._catalog.devices():
            if device.attached:
                attached += 1
                continue
            if self.attach_device(device.id):
                attached += 1
            else:
                self.mark_pending(device.id)
        logger.info(
            "[ORCH] Startup attach done attached=%d pending=%d",
            attached, len(self.pending()),
        )
        return attached

    def _list_ports(self, device: Device) -> List[str]:
        future = self._executor.submit(self._database.list_active_ports, device)
        try:
            ports = future.result(timeout=self._timeout)
        except FutureTimeoutError:
            future.cancel()
            raise QueryError(f"Port query timed out after {self._timeout:.1f}s")
        except QueryError:
            raise
        except Exception as e:
            raise QueryError(f"{type(e).__name__}: {e}") from e

        if not ports:
            raise NoPortsError(device.id)
        return [str(p) for p in ports]

    def query_recent_aggregate(
        self, device_id: str, port_id: str, duration_seconds: float
    ) -> List[AggregatePoint]:
        """Datos históricos de un puerto (para gráficos), con timeout."""
        device = self._catalog.get_device(device_id)
        future = self._executor.submit(
            self._database.query_recent_aggregate, device, port_id, duration_seconds
        )
        try:
            return future.result(timeout=self._timeout)
        except FutureTimeoutError:
            future.cancel()
            raise QueryError(f"Aggregate query timed out after {self._timeout:.1f}s")
        except QueryError:
            raise
        except Exception as e:
            raise QueryError(f"{type(e).__name__}: {e}") from e

    def _subscribe(self, device: Device, monitor: SensorMonitor) -> Subscription:
        sink = self._reading_sink

        def handler(reading: SensorReading) -> None:
            sink(monitor, reading)

        future = self._executor.submit(self._feed.subscribe, device, monitor.sensor_id, handler)
        try:
            return future.result(timeout=self._timeout)
        except FutureTimeoutError:
            future.cancel()
            raise SubscriptionError(f"Subscription timed out after {self._timeout:.1f}s")
        except SubscriptionError:
            raise
        except Exception as e:
            raise SubscriptionError(f"{type(e).__name__}: {e}") from e

    # ------------------------------------------------------------------
    # Retry loop
    # ------------------------------------------------------------------

    def mark_pending(self, device_id: str) -> None:
        """Agrega un gateway a los pendientes y arma el timer si hace falta."""
        with self._pending_lock:
            if self._stopped:
                return
            self._pending.add(device_id)
        self._update_gauges()
        self.run_retry_loop()

    def pending(self) -> Set[str]:
        with self._pending_lock:
            return set(self._pending)

    @property
    def retry_loop_running(self) -> bool:
        return self._retry_task is not None and self._retry_task.is_running

    def run_retry_loop(self, interval_ms: Optional[int] = None) -> None:
        if interval_ms is not None:
            self._retry_interval_ms = int(interval_ms)
        if self._stopped or not self.pending():
            return

        if self._retry_task is None:
            self._retry_task = PeriodicTask(
                "attach-retry", self.retry_pending, self._retry_interval_ms / 1000.0
            )
        if self._retry_task.start():
            logger.info(
                "[ORCH] Retry loop armed interval_ms=%d pending=%d",
                self._retry_interval_ms, len(self.pending()),
            )

    def retry_pending(self) -> Set[str]:
        """Un tick del retry loop. Devuelve los gateways que conectaron."""
        connected: Set[str] = set()

        for device_id in sorted(self.pending()):
            if self._stopped:
                break
            if device_id not in self.pending():
                continue
            try:
                ok = self.attach_device(device_id)
            except UnknownDeviceError:
                logger.info("[ORCH] Pending device removed from catalog device=%s", device_id)
                ok = True
            if ok:
                connected.add(device_id)
                with self._pending_lock:
                    self._pending.discard(device_id)
                logger.info("[ORCH] Retry succeeded device=%s", device_id)

        self._update_gauges()
        if not self.pending() and self._retry_task is not None:
            self._retry_task.cancel()
            logger.info("[ORCH] All devices attached, retry loop stopped")
            # Un pendiente que llegó durante la cancelación vuelve a armar el timer.
            self.run_retry_loop()
        return connected

    # ------------------------------------------------------------------
    # Detach / shutdown
    # ------------------------------------------------------------------

    def detach_device(self, device_id: str) -> None:
        """Desuscribe los feeds del gateway y lo saca de pendientes."""
        with self._pending_lock:
            self._pending.discard(device_id)
        with self._attach_lock:
            subscriptions = self._subscriptions.pop(device_id, [])
        self._release(device_id, subscriptions)
        self._update_gauges()

    def stop(self) -> None:
        """Cancela el timer y desuscribe todos los feeds."""
        with self._pending_lock:
            self._stopped = True
            self._pending.clear()
        if self._retry_task is not None:
            self._retry_task.cancel()

        with self._attach_lock:
            all_subs = dict(self._subscriptions)
            self._subscriptions.clear()
        for device_id, subscriptions in all_subs.items():
            self._unsubscribe_all(device_id, subscriptions)

        try:
            self._feed.close()
        except Exception as e:
            logger.warning("[ORCH] Error closing telemetry feed: %s", e)

        self._executor.shutdown(wait=False, cancel_futures=True)
        logger.info("[ORCH] Stopped")

    def _release(self, device_id: str, subscriptions: List[Subscription]) -> None:
        self._unsubscribe_all(device_id, subscriptions)
        try:
            self._feed.close_device(device_id)
        except Exception as e:
            logger.warning("[ORCH] Error closing feed device=%s: %s", device_id, e)

    def _unsubscribe_all(self, device_id: str, subscriptions: List[Subscription]) -> None:
        for subscription in subscriptions:
            try:
                subscription.unsubscribe()
            except Exception as e:
                logger.warning("[ORCH] Error unsubscribing device=%s: %s", device_id, e)

    def _update_gauges(self) -> None:
        DEVICES_ATTACHED.set(sum(1 for d in self._catalog.devices() if d.attached))
        DEVICES_PENDING.set(len(self.pending()))

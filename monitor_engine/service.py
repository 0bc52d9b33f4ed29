"""Fachada del motor de monitoreo.

Arma los componentes (catálogo, dispatcher, orchestrator, scheduler, log
de errores) y expone las operaciones que consume la capa HTTP:

- Estado: get_sensor_state, get_fleet_health, get_thresholds, ...
- Configuración: set_thresholds, set_samples_to_fail/heal,
  set_evaluation_interval
- Log de errores: get_error_log, clear_error_log
- Catálogo: add_device, remove_device, listados
"""

from __future__ import annotations

import logging
import math
import numbers
import re
import threading
from datetime import datetime
from typing import Dict, List, Optional, Union

from common.config import Settings, get_settings
from common.db import create_device_engine

from .collaborators import AggregatePoint, DeviceDatabase, TelemetryFeed
from .connection.orchestrator import ConnectionOrchestrator
from .devices.catalog import DeviceCatalog, load_catalog
from .devices.models import Device, DeviceState
from .errors import QueryError, ValidationError
from .ingestion.dispatcher import ReadingDispatcher
from .scheduling.error_log import ErrorLog, ErrorLogEntry
from .scheduling.periodic import PeriodicTask
from .scheduling.scheduler import MonitoringScheduler
from .sensors.models import HysteresisConfig, SensorHealth, SensorThresholds
from .sensors.monitor import SensorMonitor
from .storage.device_database import SqlDeviceDatabase
from .thresholds.calculator import ThresholdCalculator
from .transports.mqtt_feed import MqttTelemetryFeed

logger = logging.getLogger(__name__)

_DURATION_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*([smhd]?)\s*$")
_DURATION_UNITS = {"": 1, "s": 1, "m": 60, "h": 3600, "d": 86400}


def parse_duration(value: Union[str, int, float]) -> float:
    """Convierte "30m", "24h", "7d" o segundos a segundos."""
    if isinstance(value, bool):
        raise ValidationError(f"Invalid duration {value!r}")
    if isinstance(value, numbers.Real):
        seconds = float(value)
    else:
        match = _DURATION_RE.match(str(value))
        if not match:
            raise ValidationError(f"Invalid duration {value!r}")
        seconds = float(match.group(1)) * _DURATION_UNITS[match.group(2)]
    if seconds <= 0:
        raise ValidationError(f"Duration must be positive, got {value!r}")
    return seconds


def _coerce_limit(name: str, value) -> float:
    if isinstance(value, bool) or not isinstance(value, numbers.Real):
        raise ValidationError(f"{name} must be numeric, got {value!r}")
    value = float(value)
    if math.isnan(value) or math.isinf(value):
        raise ValidationError(f"{name} must be finite")
    return value


def _coerce_positive_int(name: str, value) -> int:
    if isinstance(value, bool):
        raise ValidationError(f"{name} must be a positive integer")
    try:
        number = int(value)
    except (TypeError, ValueError, OverflowError):
        raise ValidationError(f"{name} must be a positive integer, got {value!r}")
    if number != value and not isinstance(value, str):
        raise ValidationError(f"{name} must be an integer, got {value!r}")
    if number < 1:
        raise ValidationError(f"{name} must be >= 1, got {value!r}")
    return number


class MonitoringService:
    def __init__(
        self,
        catalog: DeviceCatalog,
        database: DeviceDatabase,
        feed: TelemetryFeed,
        settings: Optional[Settings] = None,
        clock=datetime.now,
    ) -> None:
        self.settings = settings or get_settings()
        self.catalog = catalog
        self._database = database
        self._clock = clock
        self._calculator = ThresholdCalculator()
        self._hysteresis = HysteresisConfig(
            samples_to_fail=self.settings.samples_to_fail,
            samples_to_heal=self.settings.samples_to_heal,
        )
        self._config_lock = threading.Lock()

        self.error_log = ErrorLog(
            retention_hours=self.settings.error_retention_hours, clock=clock
        )
        self.dispatcher = ReadingDispatcher(
            max_queue_size=self.settings.ingest_queue_size,
            num_workers=self.settings.ingest_num_workers,
        )
        self.scheduler = MonitoringScheduler(
            catalog,
            self.error_log,
            interval_ms=self.settings.evaluation_interval_ms,
            clock=clock,
        )
        self.orchestrator = ConnectionOrchestrator(
            catalog,
            database,
            feed,
            monitor_factory=self._create_monitor,
            reading_sink=self.dispatcher.enqueue,
            retry_interval_ms=self.settings.retry_interval_ms,
            timeout_seconds=self.settings.collaborator_timeout_seconds,
        )
        self._prune_task = PeriodicTask(
            "error-log-prune",
            self.error_log.prune_expired,
            self.settings.prune_interval_ms / 1000.0,
        )
        self._running = False

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "MonitoringService":
        """Construye el servicio con los colaboradores reales (MQTT + SQL)."""
        settings = settings or get_settings()
        catalog = load_catalog(settings.catalog_path)
        database = SqlDeviceDatabase(lambda address: create_device_engine(address, settings))
        feed = MqttTelemetryFeed(
            topic_template=settings.mqtt_topic_template,
            broker_port=settings.mqtt_port,
            username=settings.mqtt_username,
            password=settings.mqtt_password,
            connect_timeout=settings.collaborator_timeout_seconds,
        )
        return cls(catalog, database, feed, settings=settings)

    # ------------------------------------------------------------------
    # Ciclo de vida
    # ------------------------------------------------------------------

    def start(self) -> None:
        if self._running:
            return
        self._running = True
        self.dispatcher.start()
        self.orchestrator.attach_all()
        self.scheduler.run_every()
        self._prune_task.start()
        logger.info(
            "[SERVICE] Started devices=%d samples_to_fail=%d samples_to_heal=%d interval_ms=%d",
            len(self.catalog.devices()),
            self._hysteresis.samples_to_fail,
            self._hysteresis.samples_to_heal,
            self.scheduler.interval_ms,
        )

    def stop(self) -> None:
        """Deja de aceptar trabajo: cancela timers y desuscribe feeds."""
        if not self._running:
            return
        self._running = False
        self.scheduler.stop()
        self._prune_task.cancel()
        self.orchestrator.stop()
        self.dispatcher.stop()
        self._database.dispose()
        logger.info("[SERVICE] Stopped")

    @property
    def is_running(self) -> bool:
        return self._running

    def _create_monitor(self, device: Device, port_id: str) -> SensorMonitor:
        s = self.settings
        return SensorMonitor(
            sensor_id=port_id,
            device_id=device.id,
            label=port_id,
            thresholds=SensorThresholds(
                vib_failure=s.default_vib_failure,
                vib_warning=s.default_vib_warning,
                temp_failure=s.default_temp_failure,
                temp_warning=s.default_temp_warning,
            ),
            hysteresis=self._hysteresis,
            history_capacity=s.history_capacity,
            calculator=self._calculator,
            clock=self._clock,
        )

    # ------------------------------------------------------------------
    # Estado
    # ------------------------------------------------------------------

    def get_sensor_state(self, device_id: str, port_id: str) -> SensorHealth:
        return self.catalog.get_sensor(device_id, port_id).health()

    def get_sensor_snapshot(self, device_id: str, port_id: str) -> dict:
        return self.catalog.get_sensor(device_id, port_id).snapshot()

    def get_fleet_health(self) -> Dict[str, Dict[str, Dict[str, bool]]]:
        """``{area: {device: {warningState, failureState}}}``.

        Un gateway está en warning/falla si al menos uno de sus puertos lo está.
        Los gateways sin conectar aparecen con ambos estados en False.
        """
        fleet: Dict[str, Dict[str, Dict[str, bool]]] = {}
        for device in self.catalog.devices():
            warning = False
            failure = False
            for monitor in self.catalog.sensors_of(device.id):
                health = monitor.health()
                warning = warning or health.warning
                failure = failure or health.failure
            fleet.setdefault(device.area, {})[device.id] = {
                "warningState": warning,
                "failureState": failure,
            }
        return fleet

    def get_thresholds(self, device_id: str, port_id: str) -> SensorThresholds:
        return self.catalog.get_sensor(device_id, port_id).get_thresholds()

    # ------------------------------------------------------------------
    # Configuración
    # ------------------------------------------------------------------

    def set_thresholds(
        self,
        device_id: str,
        port_id: str,
        *,
        vib_failure=None,
        vib_warning=None,
        temp_failure=None,
        temp_warning=None,
    ) -> SensorThresholds:
        """Fija límites estáticos de un sensor.

        Atómico: si algún valor no es numérico, o si para alguna métrica el
        límite de falla resultante no es mayor que el de warning, no se
        aplica ninguno.

        Nota: un recálculo adaptativo posterior reemplaza estos valores.
        """
        monitor = self.catalog.get_sensor(device_id, port_id)
        updates = {
            "vib_failure": vib_failure,
            "vib_warning": vib_warning,
            "temp_failure": temp_failure,
            "temp_warning": temp_warning,
        }
        updates = {k: _coerce_limit(k, v) for k, v in updates.items() if v is not None}
        if not updates:
            raise ValidationError("No threshold values supplied")

        applied = monitor.update_thresholds(
            updates, validate=lambda candidate: _validate_limit_order(candidate, updates)
        )
        logger.info(
            "[SERVICE] Thresholds updated device=%s sensor=%s %s",
            device_id, port_id, applied.to_dict(),
        )
        return applied

    def set_samples_to_fail(self, n) -> int:
        n = _coerce_positive_int("samples_to_fail", n)
        with self._config_lock:
            self._hysteresis = HysteresisConfig(
                samples_to_fail=n, samples_to_heal=self._hysteresis.samples_to_heal
            )
            self._broadcast_hysteresis()
        return n

    def set_samples_to_heal(self, n) -> int:
        n = _coerce_positive_int("samples_to_heal", n)
        with self._config_lock:
            self._hysteresis = HysteresisConfig(
                samples_to_fail=self._hysteresis.samples_to_fail, samples_to_heal=n
            )
            self._broadcast_hysteresis()
        return n

    def _broadcast_hysteresis(self) -> None:
        for monitor in self.catalog.all_sensors():
            monitor.update_hysteresis(self._hysteresis)
        logger.info(
            "[SERVICE] Hysteresis updated samples_to_fail=%d samples_to_heal=%d",
            self._hysteresis.samples_to_fail, self._hysteresis.samples_to_heal,
        )

    @property
    def hysteresis(self) -> HysteresisConfig:
        return self._hysteresis

    def set_evaluation_interval(self, interval_ms) -> int:
        interval_ms = _coerce_positive_int("interval_ms", interval_ms)
        return self.scheduler.set_interval(interval_ms)

    def get_general_settings(self) -> dict:
        return {
            "samplesToFail": self._hysteresis.samples_to_fail,
            "samplesToHeal": self._hysteresis.samples_to_heal,
            "evaluationIntervalMs": self.scheduler.interval_ms,
        }

    def clear_warnings(self, device_id: str, port_id: str) -> SensorHealth:
        monitor = self.catalog.get_sensor(device_id, port_id)
        monitor.clear_warnings()
        return monitor.health()

    def rename_sensor(self, device_id: str, port_id: str, label: str) -> str:
        if not label or not str(label).strip():
            raise ValidationError("Sensor label cannot be empty")
        return self.catalog.get_sensor(device_id, port_id).rename(str(label).strip())

    # ------------------------------------------------------------------
    # Log de errores
    # ------------------------------------------------------------------

    def get_error_log(self) -> List[ErrorLogEntry]:
        return self.error_log.entries()

    def clear_error_log(self) -> int:
        return self.error_log.clear()

    # ------------------------------------------------------------------
    # Catálogo
    # ------------------------------------------------------------------

    def list_areas(self) -> List[str]:
        return self.catalog.areas()

    def list_devices(self, area: Optional[str] = None) -> List[Device]:
        if area is None:
            return self.catalog.devices()
        return self.catalog.devices_in_area(area)

    def get_device_info(self, device_id: str) -> dict:
        device = self.catalog.get_device(device_id)
        return {
            "id": device.id,
            "area": device.area,
            "address": device.address,
            "description": device.description,
            "state": device.state.value,
            "enabledPorts": list(device.enabled_ports),
            "sensors": {m.sensor_id: m.label for m in self.catalog.sensors_of(device.id)},
        }

    def add_device(
        self, area: str, device_id: str, address: str, description: str = ""
    ) -> DeviceState:
        """Registra un gateway y lo intenta conectar (o lo deja pendiente)."""
        if not area or not device_id or not address:
            raise ValidationError("area, device_id and address are required")
        if self.catalog.has_device(device_id):
            raise ValidationError(f"Device '{device_id}' already exists")

        self.catalog.add_device(
            Device(id=device_id, address=address, area=area, description=description)
        )
        logger.info("[SERVICE] Device added device=%s area=%s address=%s", device_id, area, address)

        if not self._running:
            return DeviceState.UNATTACHED
        if not self.orchestrator.attach_device(device_id):
            self.orchestrator.mark_pending(device_id)
        return self.catalog.get_device(device_id).state

    def remove_device(self, device_id: str) -> None:
        self.catalog.get_device(device_id)
        self.orchestrator.detach_device(device_id)
        self.catalog.remove_device(device_id)
        logger.info("[SERVICE] Device removed device=%s", device_id)

    def query_recent_aggregate(
        self, device_id: str, port_id: str, duration: Union[str, int, float]
    ) -> List[AggregatePoint]:
        seconds = parse_duration(duration)
        try:
            return self.orchestrator.query_recent_aggregate(device_id, port_id, seconds)
        except QueryError as e:
            logger.warning("[SERVICE] Aggregate query failed device=%s port=%s: %s", device_id, port_id, e)
            raise


def _validate_limit_order(thresholds: SensorThresholds, supplied) -> None:
    """Solo se validan las métricas incluidas en la actualización."""
    errors = []
    if {"temp_failure", "temp_warning"} & set(supplied):
        if thresholds.temp_failure <= thresholds.temp_warning:
            errors.append("temperature failure limit must be greater than warning limit")
    if {"vib_failure", "vib_warning"} & set(supplied):
        if thresholds.vib_failure <= thresholds.vib_warning:
            errors.append("vibration failure limit must be greater than warning limit")
    if errors:
        raise ValidationError("; ".join(errors))

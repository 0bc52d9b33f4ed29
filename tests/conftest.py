"""Fixtures compartidas: fakes de colaboradores y builders de sensores."""

from datetime import datetime
from typing import Dict, List, Optional
from unittest.mock import MagicMock

import pytest

from common.config import Settings
from monitor_engine.devices.catalog import DeviceCatalog
from monitor_engine.devices.models import Device
from monitor_engine.errors import QueryError, SubscriptionError
from monitor_engine.sensors.models import HysteresisConfig, SensorReading
from monitor_engine.sensors.monitor import SensorMonitor

FIXED_NOW = datetime(2025, 2, 12, 10, 30, 0)


def fixed_clock() -> datetime:
    return FIXED_NOW


def reading(
    velocity_x: float = 0.0,
    velocity_y: float = 0.0,
    velocity_z: float = 0.0,
    temperature: float = 0.0,
) -> SensorReading:
    return SensorReading(
        temperature=temperature,
        velocity_x=velocity_x,
        velocity_y=velocity_y,
        velocity_z=velocity_z,
    )


def feed(monitor: SensorMonitor, sample: SensorReading, ticks: int = 1) -> List[bool]:
    """Ingresa ``sample`` y evalúa ``ticks`` veces; devuelve cada resultado."""
    results = []
    for _ in range(ticks):
        monitor.ingest(sample)
        results.append(monitor.evaluate())
    return results


class FakeFeed:
    """TelemetryFeed en memoria: guarda los handlers por (device, port)."""

    def __init__(self, failing_ports: Optional[set] = None):
        self.handlers: Dict[tuple, object] = {}
        self.subscriptions: List[MagicMock] = []
        self.failing_ports = failing_ports or set()
        self.closed_devices: List[str] = []
        self.closed = False

    def subscribe(self, device, port_id, handler):
        if (device.id, port_id) in self.failing_ports:
            raise SubscriptionError(f"refused {device.id}/{port_id}")
        self.handlers[(device.id, port_id)] = handler
        subscription = MagicMock()
        self.subscriptions.append(subscription)
        return subscription

    def push(self, device_id: str, port_id: str, sample: SensorReading) -> None:
        self.handlers[(device_id, port_id)](sample)

    def close_device(self, device_id: str) -> None:
        self.closed_devices.append(device_id)

    def close(self) -> None:
        self.closed = True


class FakeDatabase:
    """DeviceDatabase con resultados guionados por gateway.

    ``succeed_on[device_id]`` es el nº de intento en el que la consulta de
    puertos empieza a funcionar (None = nunca). Los intentos fallidos
    lanzan QueryError, salvo los de ``empty_devices`` que devuelven [].
    """

    def __init__(
        self,
        ports: Optional[Dict[str, List[str]]] = None,
        succeed_on: Optional[Dict[str, Optional[int]]] = None,
        empty_devices: Optional[set] = None,
    ):
        self.ports = ports or {}
        self.succeed_on = succeed_on or {}
        self.empty_devices = empty_devices or set()
        self.attempts: Dict[str, int] = {}
        self.aggregate = MagicMock(return_value=[])
        self.disposed = False

    def list_active_ports(self, device):
        self.attempts[device.id] = self.attempts.get(device.id, 0) + 1
        threshold = self.succeed_on.get(device.id, 1)
        if threshold is None or self.attempts[device.id] < threshold:
            if device.id in self.empty_devices:
                return []
            raise QueryError(f"unreachable {device.address}")
        return list(self.ports.get(device.id, ["1"]))

    def query_recent_aggregate(self, device, port_id, duration_seconds):
        return self.aggregate(device.id, port_id, duration_seconds)

    def dispose(self):
        self.disposed = True


@pytest.fixture
def clock():
    return fixed_clock


@pytest.fixture
def make_monitor():
    def _make(samples_to_fail: int = 3, samples_to_heal: int = 3, **kwargs) -> SensorMonitor:
        kwargs.setdefault("history_capacity", 1000)
        return SensorMonitor(
            sensor_id=kwargs.pop("sensor_id", "1"),
            device_id=kwargs.pop("device_id", "cmtk-1"),
            hysteresis=HysteresisConfig(samples_to_fail, samples_to_heal),
            clock=fixed_clock,
            **kwargs,
        )

    return _make


@pytest.fixture
def settings() -> Settings:
    return Settings(
        catalog_path="does-not-exist.json",
        samples_to_fail=3,
        samples_to_heal=3,
        evaluation_interval_ms=3_600_000,
        retry_interval_ms=3_600_000,
        prune_interval_ms=3_600_000,
        error_retention_hours=12,
        history_capacity=50,
        default_vib_failure=4.0,
        default_vib_warning=2.0,
        default_temp_failure=20.0,
        default_temp_warning=10.0,
        mqtt_port=1883,
        mqtt_username=None,
        mqtt_password=None,
        mqtt_topic_template="balluff/cmtk/master1/iolink/devices/{port}/data/fromdevice",
        device_db_url_template="sqlite://",
        collaborator_timeout_seconds=2.0,
        ingest_queue_size=100,
        ingest_num_workers=2,
    )


@pytest.fixture
def catalog() -> DeviceCatalog:
    return DeviceCatalog(
        [
            Device(id="cmtk-1", address="10.0.0.1", area="Molienda", description="Molino SAG"),
            Device(id="cmtk-2", address="10.0.0.2", area="Molienda"),
            Device(id="cmtk-3", address="10.0.0.3", area="Flotación"),
        ]
    )


@pytest.fixture
def fake_feed() -> FakeFeed:
    return FakeFeed()


@pytest.fixture
def fake_db() -> FakeDatabase:
    return FakeDatabase(
        ports={"cmtk-1": ["1", "2"], "cmtk-2": ["1"], "cmtk-3": ["4"]},
    )

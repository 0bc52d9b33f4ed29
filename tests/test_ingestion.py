"""Tests de ingesta: validación del feed, dispatcher y base de series temporales."""

import json
import threading
import time
from datetime import datetime, timedelta

import pytest
from sqlalchemy import DateTime, bindparam, create_engine, text
from sqlalchemy.pool import StaticPool

from monitor_engine.devices.catalog import load_catalog
from monitor_engine.devices.models import Device
from monitor_engine.errors import QueryError
from monitor_engine.ingestion.dispatcher import ReadingDispatcher
from monitor_engine.ingestion.payload import parse_feed_message
from monitor_engine.storage.device_database import SqlDeviceDatabase, bucket_by_minute

from conftest import reading


@pytest.fixture
def iolink_payload():
    """Mensaje tal como lo publica el gateway."""
    return {
        "timestamp": "2025-02-12T01:31:34.452Z",
        "data": {
            "items": {
                "Contact Temperature Contact Temperature": 23.4,
                "Vibration Velocity RMS v-RMS X": 0.8,
                "Vibration Velocity RMS v-RMS Y": 0.7,
                "Vibration Velocity RMS v-RMS Z": 1.1,
                "Status Bits Main-Alarm v-RMS X Status": False,
                "Status Bits Pre-Alarm v-RMS Z Status": True,
                "Status Bits Contact Temperature Upper Alarm Status": False,
            }
        },
    }


# =============================================================================
# PAYLOAD
# =============================================================================

class TestFeedPayload:

    def test_iolink_payload(self, iolink_payload):
        result = parse_feed_message(iolink_payload)

        assert result.valid is True
        assert result.reading.temperature == 23.4
        assert result.reading.velocity_z == 1.1
        assert result.reading.timestamp == "2025-02-12T01:31:34.452Z"
        assert result.reading.raw_alarm_bits == {
            "mainAlarmX": False,
            "preAlarmZ": True,
            "tempUpperAlarm": False,
        }
        assert "Converted IO-Link items payload" in result.warnings

    def test_flat_payload(self):
        result = parse_feed_message(
            {"temperature": 20, "velocityX": 1, "velocityY": 2, "velocityZ": 3}
        )
        assert result.valid is True
        assert result.reading.velocity_y == 2.0
        assert result.warnings == []

    def test_missing_axis(self, iolink_payload):
        del iolink_payload["data"]["items"]["Vibration Velocity RMS v-RMS Y"]
        result = parse_feed_message(iolink_payload)

        assert result.valid is False
        assert "velocityY" in result.error

    def test_nan_value(self):
        result = parse_feed_message(
            {"temperature": float("nan"), "velocityX": 1, "velocityY": 2, "velocityZ": 3}
        )
        assert result.valid is False
        assert "NaN" in result.error

    def test_non_numeric(self):
        result = parse_feed_message(
            {"temperature": "hot", "velocityX": 1, "velocityY": 2, "velocityZ": 3}
        )
        assert result.valid is False

    def test_not_an_object(self):
        result = parse_feed_message([1, 2, 3])
        assert result.valid is False
        assert "JSON object" in result.error


# =============================================================================
# DISPATCHER
# =============================================================================

class TestReadingDispatcher:

    def test_readings_reach_monitor(self, make_monitor):
        monitor = make_monitor()
        dispatcher = ReadingDispatcher(max_queue_size=10, num_workers=2)
        dispatcher.start()
        try:
            assert dispatcher.enqueue(monitor, reading(velocity_x=1.5)) is True
            deadline = time.monotonic() + 5
            while monitor.last_reading is None and time.monotonic() < deadline:
                time.sleep(0.01)
        finally:
            dispatcher.stop()

        assert monitor.last_reading.velocity_x == 1.5
        assert dispatcher.metrics["processed"] == 1

    def test_same_sensor_same_partition(self, make_monitor):
        dispatcher = ReadingDispatcher(num_workers=8)
        a = make_monitor(sensor_id="3", device_id="cmtk-9")
        b = make_monitor(sensor_id="3", device_id="cmtk-9")
        assert dispatcher.partition_for(a) == dispatcher.partition_for(b)

    def test_full_queue_drops_without_blocking(self, make_monitor):
        monitor = make_monitor()
        dispatcher = ReadingDispatcher(max_queue_size=2, num_workers=1)

        results = [dispatcher.enqueue(monitor, reading()) for _ in range(3)]

        assert results == [True, True, False]
        assert dispatcher.metrics["dropped"] == 1

    def test_stopped_dispatcher_rejects(self, make_monitor):
        dispatcher = ReadingDispatcher()
        dispatcher.start()
        dispatcher.stop()
        assert dispatcher.enqueue(make_monitor(), reading()) is False

    def test_ingest_is_serialized_with_evaluate(self, make_monitor):
        """Lecturas y ticks concurrentes no pierden muestras del contador."""
        monitor = make_monitor(samples_to_fail=10_000)
        dispatcher = ReadingDispatcher(max_queue_size=5000, num_workers=2)
        dispatcher.start()
        bad = reading(velocity_x=5.0)

        stop = threading.Event()
        ticks = []

        def ticker():
            while not stop.is_set():
                if monitor.last_reading is not None:
                    monitor.evaluate()
                    ticks.append(1)

        t = threading.Thread(target=ticker)
        t.start()
        try:
            for _ in range(500):
                dispatcher.enqueue(monitor, bad)
            dispatcher.stop(drain=True)
        finally:
            stop.set()
            t.join(5)

        assert monitor.vib_error_count == len(ticks)


# =============================================================================
# DEVICE DATABASE (SQLAlchemy sobre SQLite en memoria)
# =============================================================================

@pytest.fixture
def sqlite_engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    with engine.begin() as conn:
        conn.execute(
            text(
                "CREATE TABLE port_readings ("
                " port TEXT, time TIMESTAMP, temperature REAL,"
                " velocity_x REAL, velocity_y REAL, velocity_z REAL)"
            )
        )
    return engine


class TestSqlDeviceDatabase:

    NOW = datetime(2025, 2, 12, 10, 30, 0)

    def _insert(self, engine, rows):
        with engine.begin() as conn:
            conn.execute(
                text(
                    "INSERT INTO port_readings VALUES (:port, :time, :t, :x, :y, :z)"
                ).bindparams(bindparam("time", type_=DateTime())),
                rows,
            )

    def test_list_active_ports(self, sqlite_engine):
        self._insert(
            sqlite_engine,
            [
                {"port": "2", "time": self.NOW, "t": 1, "x": 1, "y": 1, "z": 1},
                {"port": "1", "time": self.NOW, "t": 1, "x": 1, "y": 1, "z": 1},
                {"port": "2", "time": self.NOW, "t": 1, "x": 1, "y": 1, "z": 1},
            ],
        )
        db = SqlDeviceDatabase(lambda address: sqlite_engine)

        assert db.list_active_ports(Device("cmtk-1", "10.0.0.1", "Molienda")) == ["1", "2"]

    def test_missing_table_is_query_error(self):
        engine = create_engine("sqlite://")
        db = SqlDeviceDatabase(lambda address: engine)

        with pytest.raises(QueryError):
            db.list_active_ports(Device("cmtk-1", "10.0.0.1", "Molienda"))

    def test_query_recent_aggregate_buckets_by_minute(self, sqlite_engine):
        base = self.NOW - timedelta(minutes=5)
        self._insert(
            sqlite_engine,
            [
                {"port": "1", "time": base, "t": 20, "x": 1, "y": 0, "z": 0},
                {"port": "1", "time": base + timedelta(seconds=30), "t": 22, "x": 3, "y": 0, "z": 0},
                {"port": "1", "time": base + timedelta(minutes=1), "t": 25, "x": 2, "y": 0, "z": 0},
                {"port": "2", "time": base, "t": 90, "x": 9, "y": 9, "z": 9},
                {"port": "1", "time": self.NOW - timedelta(hours=3), "t": 0, "x": 0, "y": 0, "z": 0},
            ],
        )
        db = SqlDeviceDatabase(lambda address: sqlite_engine, clock=lambda: self.NOW)

        points = db.query_recent_aggregate(Device("cmtk-1", "10.0.0.1", "Molienda"), "1", 3600)

        assert [p.mean_temp for p in points] == [21.0, 25.0]
        assert points[0].mean_vib_x == 2.0
        assert points[0].time == base.replace(second=0)

    def test_bucket_by_minute_ignores_nulls(self):
        t = datetime(2025, 2, 12, 10, 0, 10)
        points = bucket_by_minute([(t, None, 1.0, 1.0, 1.0), (t, 4.0, None, 1.0, 1.0)])
        assert points[0].mean_temp == 4.0
        assert points[0].mean_vib_x == 1.0


# =============================================================================
# CATÁLOGO
# =============================================================================

class TestLoadCatalog:

    def test_load(self, tmp_path):
        path = tmp_path / "devices.json"
        path.write_text(
            json.dumps(
                {
                    "Molienda": {
                        "cmtk-1": {"address": "10.0.0.1", "description": "Molino SAG"},
                        "cmtk-2": {"ip": "10.0.0.2"},
                        "sin-ip": {},
                    },
                    "Flotación": {"cmtk-3": {"address": "10.0.0.3"}},
                }
            ),
            encoding="utf-8",
        )

        catalog = load_catalog(str(path))

        assert catalog.areas() == ["Molienda", "Flotación"]
        assert [d.id for d in catalog.devices_in_area("Molienda")] == ["cmtk-1", "cmtk-2"]
        assert catalog.get_device("cmtk-2").address == "10.0.0.2"
        assert catalog.get_device("cmtk-1").description == "Molino SAG"

    def test_missing_file_is_empty_catalog(self, tmp_path):
        assert load_catalog(str(tmp_path / "nope.json")).devices() == []

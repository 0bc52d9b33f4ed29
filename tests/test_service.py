"""Tests de la fachada MonitoringService con colaboradores falsos."""

import time

import pytest

from monitor_engine.devices.models import DeviceState
from monitor_engine.errors import (
    QueryError,
    UnknownDeviceError,
    UnknownSensorError,
    ValidationError,
)
from monitor_engine.service import MonitoringService, parse_duration

from conftest import FakeDatabase, fixed_clock, reading


@pytest.fixture
def service(settings, catalog, fake_db, fake_feed):
    svc = MonitoringService(catalog, fake_db, fake_feed, settings=settings, clock=fixed_clock)
    svc.start()
    yield svc
    svc.stop()


def _latch_failure(service, device_id="cmtk-1", port_id="1"):
    monitor = service.catalog.get_sensor(device_id, port_id)
    monitor.ingest(reading(velocity_x=5.0))
    for _ in range(service.hysteresis.samples_to_fail):
        service.scheduler.tick()
    return monitor


# =============================================================================
# ESTADO
# =============================================================================

class TestState:

    def test_start_attaches_catalog(self, service):
        assert all(d.state == DeviceState.ATTACHED for d in service.list_devices())
        assert service.orchestrator.pending() == set()

    def test_sensor_state_and_fleet_health(self, service):
        _latch_failure(service)

        state = service.get_sensor_state("cmtk-1", "1")
        assert state.vib_failure is True

        fleet = service.get_fleet_health()
        assert fleet["Molienda"]["cmtk-1"] == {"warningState": True, "failureState": True}
        assert fleet["Molienda"]["cmtk-2"] == {"warningState": False, "failureState": False}
        assert fleet["Flotación"]["cmtk-3"]["failureState"] is False

    def test_error_log(self, service):
        _latch_failure(service)

        entries = service.get_error_log()
        assert [(e.device_id, e.sensor_id, e.area, e.cause) for e in entries] == [
            ("cmtk-1", "1", "Molienda", "Vibration Error")
        ]
        assert service.clear_error_log() == 1
        assert service.get_error_log() == []

    def test_unknown_lookups(self, service):
        with pytest.raises(UnknownDeviceError):
            service.get_sensor_state("nope", "1")
        with pytest.raises(UnknownSensorError):
            service.get_sensor_state("cmtk-1", "99")

    def test_unattached_device_shows_healthy(self, settings, catalog, fake_feed):
        db = FakeDatabase(succeed_on={"cmtk-3": None})
        svc = MonitoringService(catalog, db, fake_feed, settings=settings)
        svc.start()
        try:
            assert svc.orchestrator.pending() == {"cmtk-3"}
            assert svc.get_fleet_health()["Flotación"]["cmtk-3"] == {
                "warningState": False,
                "failureState": False,
            }
        finally:
            svc.stop()

    def test_stop_disposes_device_database(self, settings, catalog, fake_db, fake_feed):
        svc = MonitoringService(catalog, fake_db, fake_feed, settings=settings)
        svc.start()

        svc.stop()

        assert fake_db.disposed is True
        assert fake_feed.closed is True

    def test_live_feed_reaches_monitor(self, service, fake_feed):
        fake_feed.push("cmtk-2", "1", reading(temperature=30.0))
        monitor = service.catalog.get_sensor("cmtk-2", "1")
        deadline = time.monotonic() + 5
        while monitor.last_reading is None and time.monotonic() < deadline:
            time.sleep(0.01)

        assert monitor.last_reading.temperature == 30.0


# =============================================================================
# UMBRALES
# =============================================================================

class TestSetThresholds:

    def test_applies_all_values(self, service):
        applied = service.set_thresholds(
            "cmtk-1", "1", vib_failure=8, vib_warning=5, temp_failure=60, temp_warning=45
        )
        assert applied.to_dict() == {
            "vibFailureLimit": 8.0,
            "vibWarningLimit": 5.0,
            "tempFailureLimit": 60.0,
            "tempWarningLimit": 45.0,
        }
        assert service.get_thresholds("cmtk-1", "1") == applied

    def test_failure_not_above_warning_rejects_whole_update(self, service):
        with pytest.raises(ValidationError):
            service.set_thresholds(
                "cmtk-1", "1", vib_failure=8, vib_warning=5, temp_failure=40, temp_warning=40
            )

        thresholds = service.get_thresholds("cmtk-1", "1")
        assert thresholds.vib_failure == 4.0
        assert thresholds.temp_failure == 20.0

    def test_partial_update_checked_against_current(self, service):
        # warning actual de vibración = 2
        with pytest.raises(ValidationError):
            service.set_thresholds("cmtk-1", "1", vib_failure=1.5)

        assert service.set_thresholds("cmtk-1", "1", vib_failure=3).vib_failure == 3.0

    @pytest.mark.parametrize("value", ["8", True, float("nan"), float("inf")])
    def test_non_numeric_rejected(self, service, value):
        with pytest.raises(ValidationError):
            service.set_thresholds("cmtk-1", "1", vib_failure=value)

    def test_empty_update_rejected(self, service):
        with pytest.raises(ValidationError):
            service.set_thresholds("cmtk-1", "1")

    def test_untouched_metric_is_not_validated(self, service):
        # Lecturas constantes: sigma = 0, warning == failure en ambas métricas.
        monitor = service.catalog.get_sensor("cmtk-1", "1")
        for _ in range(service.settings.history_capacity):
            monitor.ingest(reading(temperature=25.0))
        assert monitor.thresholds.vib_failure == monitor.thresholds.vib_warning == 0.0

        applied = service.set_thresholds("cmtk-1", "1", temp_warning=30, temp_failure=40)

        assert applied.temp_failure == 40.0
        assert applied.vib_failure == 0.0

    def test_does_not_affect_other_sensors(self, service):
        service.set_thresholds("cmtk-1", "1", temp_failure=50, temp_warning=30)
        assert service.get_thresholds("cmtk-1", "2").temp_failure == 20.0


# =============================================================================
# CONFIGURACIÓN GENERAL
# =============================================================================

class TestGeneralSettings:

    def test_samples_broadcast_to_all_monitors(self, service):
        service.set_samples_to_fail(7)
        service.set_samples_to_heal(9)

        for monitor in service.catalog.all_sensors():
            assert monitor.hysteresis.samples_to_fail == 7
            assert monitor.hysteresis.samples_to_heal == 9

        assert service.get_general_settings() == {
            "samplesToFail": 7,
            "samplesToHeal": 9,
            "evaluationIntervalMs": 3_600_000,
        }

    def test_new_devices_get_current_hysteresis(self, service, fake_db):
        service.set_samples_to_fail(6)
        fake_db.ports["cmtk-4"] = ["2"]

        service.add_device("Chancado", "cmtk-4", "10.0.0.4")

        assert service.catalog.get_sensor("cmtk-4", "2").hysteresis.samples_to_fail == 6

    @pytest.mark.parametrize("value", [0, -1, 2.5, "x", True, float("inf")])
    def test_invalid_samples(self, service, value):
        with pytest.raises(ValidationError):
            service.set_samples_to_fail(value)
        assert service.hysteresis.samples_to_fail == 3

    def test_evaluation_interval(self, service):
        assert service.set_evaluation_interval(250) == 250
        assert service.get_general_settings()["evaluationIntervalMs"] == 250

        with pytest.raises(ValidationError):
            service.set_evaluation_interval(0)


# =============================================================================
# ACCIONES DE OPERADOR
# =============================================================================

class TestOperatorActions:

    def test_clear_warnings(self, service):
        monitor = service.catalog.get_sensor("cmtk-1", "2")
        monitor.ingest(reading(velocity_x=3.0))
        for _ in range(3):
            service.scheduler.tick()
        assert monitor.vib_warning is True

        health = service.clear_warnings("cmtk-1", "2")
        assert health.warning is False

    def test_rename_sensor(self, service):
        assert service.rename_sensor("cmtk-1", "1", "  Bomba 3 ") == "Bomba 3"
        assert service.get_device_info("cmtk-1")["sensors"]["1"] == "Bomba 3"

        with pytest.raises(ValidationError):
            service.rename_sensor("cmtk-1", "1", "   ")


# =============================================================================
# CATÁLOGO
# =============================================================================

class TestCatalogOperations:

    def test_listings(self, service):
        assert service.list_areas() == ["Molienda", "Flotación"]
        assert [d.id for d in service.list_devices("Molienda")] == ["cmtk-1", "cmtk-2"]

        info = service.get_device_info("cmtk-1")
        assert info["address"] == "10.0.0.1"
        assert info["description"] == "Molino SAG"
        assert info["enabledPorts"] == ["1", "2"]
        assert info["state"] == "attached"

    def test_add_device_unreachable_goes_pending(self, service, fake_db):
        fake_db.succeed_on["cmtk-9"] = None

        state = service.add_device("Chancado", "cmtk-9", "10.0.0.9", "Chancador primario")

        assert state == DeviceState.UNATTACHED
        assert service.orchestrator.pending() == {"cmtk-9"}
        assert "Chancado" in service.list_areas()

    def test_add_duplicate_rejected(self, service):
        with pytest.raises(ValidationError):
            service.add_device("Molienda", "cmtk-1", "10.0.0.1")

    def test_remove_device(self, service, fake_feed):
        service.remove_device("cmtk-2")

        with pytest.raises(UnknownDeviceError):
            service.get_device_info("cmtk-2")
        assert "cmtk-2" in fake_feed.closed_devices
        assert "cmtk-2" not in service.get_fleet_health()["Molienda"]

    def test_remove_pending_device_stops_retry(self, service, fake_db):
        fake_db.succeed_on["cmtk-9"] = None
        service.add_device("Chancado", "cmtk-9", "10.0.0.9")

        service.remove_device("cmtk-9")

        assert service.orchestrator.pending() == set()


# =============================================================================
# HISTÓRICO
# =============================================================================

class TestHistory:

    @pytest.mark.parametrize(
        "value, seconds",
        [("30m", 1800), ("24h", 86400), ("7d", 604800), ("90", 90), (45, 45), ("1.5h", 5400)],
    )
    def test_parse_duration(self, value, seconds):
        assert parse_duration(value) == seconds

    @pytest.mark.parametrize("value", ["", "abc", "5w", 0, -3, True])
    def test_parse_duration_invalid(self, value):
        with pytest.raises(ValidationError):
            parse_duration(value)

    def test_query_recent_aggregate(self, service, fake_db):
        fake_db.aggregate.return_value = ["point"]

        assert service.query_recent_aggregate("cmtk-1", "2", "1h") == ["point"]
        fake_db.aggregate.assert_called_once_with("cmtk-1", "2", 3600.0)

    def test_query_error_propagates(self, service, fake_db):
        fake_db.aggregate.side_effect = QueryError("down")
        with pytest.raises(QueryError):
            service.query_recent_aggregate("cmtk-1", "2", "1h")

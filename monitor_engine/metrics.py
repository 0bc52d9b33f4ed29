"""Métricas Prometheus del motor de monitoreo."""

from __future__ import annotations

from prometheus_client import Counter, Gauge

READINGS_INGESTED = Counter(
    "condition_monitor_readings_total",
    "Live readings received from the telemetry feed",
    ["status"],  # ingested, invalid, dropped, error
)

TRANSITIONS = Counter(
    "condition_monitor_transitions_total",
    "Hysteresis latch transitions",
    ["kind"],  # failure, warning, recovery
)

ATTACH_ATTEMPTS = Counter(
    "condition_monitor_attach_attempts_total",
    "Device attach attempts",
    ["result"],  # attached, no_ports, query_error, error
)

DEVICES_ATTACHED = Gauge(
    "condition_monitor_devices_attached",
    "Devices currently attached to live telemetry",
)

DEVICES_PENDING = Gauge(
    "condition_monitor_devices_pending",
    "Devices waiting for a retry attempt",
)

ERROR_LOG_SIZE = Gauge(
    "condition_monitor_error_log_entries",
    "Entries currently held in the error log",
)

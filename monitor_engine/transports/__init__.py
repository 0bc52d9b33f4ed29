"""Transports de telemetría en vivo."""

from .mqtt_feed import MqttTelemetryFeed

__all__ = ["MqttTelemetryFeed"]

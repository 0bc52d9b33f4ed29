"""Feed de telemetría en vivo sobre MQTT (paho-mqtt).

Un cliente MQTT por gateway (broker del propio gateway) y un topic por
puerto. El callback de paho solo valida y entrega la lectura al handler,
que a su vez solo encola; no se hace trabajo pesado en el hilo de red.
"""

from __future__ import annotations

import json
import logging
import threading
import time
from typing import Callable, Dict, Optional

import paho.mqtt.client as mqtt

from ..devices.models import Device
from ..errors import SubscriptionError
from ..ingestion.payload import parse_feed_message
from ..metrics import READINGS_INGESTED
from ..sensors.models import SensorReading

logger = logging.getLogger(__name__)

ReadingHandler = Callable[[SensorReading], None]


class MqttSubscription:
    def __init__(self, connection: "GatewayConnection", topic: str) -> None:
        self._connection = connection
        self.topic = topic
        self._active = True

    def unsubscribe(self) -> None:
        if not self._active:
            return
        self._active = False
        self._connection.unsubscribe(self.topic)


class GatewayConnection:
    """Cliente MQTT contra el broker de un gateway."""

    def __init__(
        self,
        device: Device,
        broker_port: int = 1883,
        username: Optional[str] = None,
        password: Optional[str] = None,
        connect_timeout: float = 5.0,
    ) -> None:
        self.device_id = device.id
        self.broker_host = device.address
        self.broker_port = broker_port
        self.username = username
        self.password = password
        self.connect_timeout = connect_timeout
        self.client_id = f"condition-monitor-{device.id}-{int(time.time())}"

        self._client: Optional[mqtt.Client] = None
        self._connected = threading.Event()
        self._handlers: Dict[str, ReadingHandler] = {}
        self._lock = threading.Lock()

        self.messages_received = 0
        self.messages_invalid = 0

    @property
    def is_connected(self) -> bool:
        return self._connected.is_set()

    def connect(self) -> None:
        """Conecta y espera el CONNACK.

        Raises:
            SubscriptionError: si no conecta dentro de ``connect_timeout``.
        """
        if self._client is not None and self.is_connected:
            return

        try:
            self._client = mqtt.Client(
                callback_api_version=mqtt.CallbackAPIVersion.VERSION2,
                client_id=self.client_id,
                protocol=mqtt.MQTTv311,
            )
            self._client.on_connect = self._on_connect
            self._client.on_disconnect = self._on_disconnect
            self._client.on_message = self._on_message

            if self.username and self.password:
                self._client.username_pw_set(self.username, self.password)

            logger.info("[MQTT_FEED] Connecting to %s:%d", self.broker_host, self.broker_port)
            self._client.connect(self.broker_host, self.broker_port, keepalive=60)
            self._client.loop_start()
        except Exception as e:
            self._shutdown_client()
            raise SubscriptionError(
                f"Cannot connect to {self.broker_host}:{self.broker_port}: {e}"
            ) from e

        if not self._connected.wait(self.connect_timeout):
            self._shutdown_client()
            raise SubscriptionError(
                f"Connection timeout to {self.broker_host}:{self.broker_port}"
            )

    def subscribe(self, topic: str, handler: ReadingHandler) -> MqttSubscription:
        self.connect()
        with self._lock:
            self._handlers[topic] = handler

        result, _mid = self._client.subscribe(topic, qos=1)
        if result != mqtt.MQTT_ERR_SUCCESS:
            with self._lock:
                self._handlers.pop(topic, None)
            raise SubscriptionError(f"Subscribe to {topic} failed rc={result}")

        logger.info("[MQTT_FEED] Subscribed device=%s topic=%s", self.device_id, topic)
        return MqttSubscription(self, topic)

    def unsubscribe(self, topic: str) -> None:
        with self._lock:
            self._handlers.pop(topic, None)
        if self._client is not None:
            self._client.unsubscribe(topic)
        logger.info("[MQTT_FEED] Unsubscribed device=%s topic=%s", self.device_id, topic)

    def disconnect(self) -> None:
        with self._lock:
            self._handlers.clear()
        self._shutdown_client()
        logger.info(
            "[MQTT_FEED] Disconnected device=%s received=%d invalid=%d",
            self.device_id, self.messages_received, self.messages_invalid,
        )

    def _shutdown_client(self) -> None:
        if self._client is not None:
            try:
                self._client.loop_stop()
                self._client.disconnect()
            except Exception as e:
                logger.warning("[MQTT_FEED] Disconnect error device=%s: %s", self.device_id, e)
        self._client = None
        self._connected.clear()

    def _on_connect(self, client, userdata, flags, reason_code, properties=None):
        if reason_code == 0:
            self._connected.set()
            logger.info("[MQTT_FEED] Connected device=%s", self.device_id)
            # Re-suscribir tras una reconexión
            with self._lock:
                topics = list(self._handlers)
            for topic in topics:
                client.subscribe(topic, qos=1)
        else:
            self._connected.clear()
            logger.error("[MQTT_FEED] Connection refused device=%s rc=%s", self.device_id, reason_code)

    def _on_disconnect(self, client, userdata, flags, reason_code, properties=None):
        self._connected.clear()
        logger.warning("[MQTT_FEED] Disconnected device=%s rc=%s", self.device_id, reason_code)

    def _on_message(self, client, userdata, msg):
        self.messages_received += 1
        with self._lock:
            handler = self._handlers.get(msg.topic)
        if handler is None:
            return

        try:
            data = json.loads(msg.payload)
        except (ValueError, UnicodeDecodeError) as e:
            self.messages_invalid += 1
            READINGS_INGESTED.labels(status="invalid").inc()
            logger.warning("[MQTT_FEED] Malformed JSON topic=%s: %s", msg.topic, e)
            return

        validation = parse_feed_message(data)
        if not validation.valid:
            self.messages_invalid += 1
            READINGS_INGESTED.labels(status="invalid").inc()
            logger.warning("[MQTT_FEED] Invalid message: %s (topic=%s)", validation.error, msg.topic)
            return

        handler(validation.reading)


class MqttTelemetryFeed:
    """TelemetryFeed con un GatewayConnection por gateway."""

    def __init__(
        self,
        topic_template: str,
        broker_port: int = 1883,
        username: Optional[str] = None,
        password: Optional[str] = None,
        connect_timeout: float = 5.0,
    ) -> None:
        self.topic_template = topic_template
        self.broker_port = broker_port
        self.username = username
        self.password = password
        self.connect_timeout = connect_timeout
        self._connections: Dict[str, GatewayConnection] = {}
        self._lock = threading.Lock()

    def topic_for(self, device: Device, port_id: str) -> str:
        return self.topic_template.format(port=port_id, device=device.id)

    def subscribe(self, device: Device, port_id: str, handler: ReadingHandler) -> MqttSubscription:
        with self._lock:
            connection = self._connections.get(device.id)
            if connection is None:
                connection = GatewayConnection(
                    device,
                    broker_port=self.broker_port,
                    username=self.username,
                    password=self.password,
                    connect_timeout=self.connect_timeout,
                )
                self._connections[device.id] = connection
        return connection.subscribe(self.topic_for(device, port_id), handler)

    def close_device(self, device_id: str) -> None:
        with self._lock:
            connection = self._connections.pop(device_id, None)
        if connection is not None:
            connection.disconnect()

    def close(self) -> None:
        with self._lock:
            connections = list(self._connections.values())
            self._connections.clear()
        for connection in connections:
            connection.disconnect()

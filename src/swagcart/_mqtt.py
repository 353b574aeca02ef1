"""Internal MQTT channel announcing storage writes across processes."""

from __future__ import annotations

import asyncio
import json
import logging
import uuid
from collections.abc import Callable
from typing import Any, cast

import paho.mqtt.client as mqtt

from swagcart._logfmt import summarize_for_log
from swagcart.config import CartConfig
from swagcart.exceptions import CartStorageError
from swagcart.storage import StorageEvent, StorageListener


def encode_storage_message(key: str, value: str | None, origin: str) -> bytes:
    """Serialize a storage change announcement."""
    return json.dumps({"key": key, "value": value, "origin": origin}, separators=(",", ":")).encode("utf-8")


def decode_storage_message(payload: bytes) -> StorageEvent | None:
    """Parse an announcement; ``None`` when it is not a well-formed message."""
    try:
        parsed = json.loads(payload.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError):
        return None
    if not isinstance(parsed, dict):
        return None

    key = parsed.get("key")
    value = parsed.get("value")
    origin = parsed.get("origin")
    if key is not None and not isinstance(key, str):
        return None
    if value is not None and not isinstance(value, str):
        return None
    if not isinstance(origin, str) or not origin:
        return None
    return StorageEvent(key=key, new_value=value, origin=origin)


class MqttStorageChannel:
    """Threaded paho-mqtt channel that emits storage events onto an asyncio loop."""

    def __init__(
        self,
        *,
        topic: str,
        host: str,
        port: int = 1883,
        keepalive: int = 60,
        origin: str | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._topic = topic
        self._host = host
        self._port = port
        self._keepalive = keepalive
        self._origin = origin or uuid.uuid4().hex
        self._logger = logger or logging.getLogger(__name__)
        self._client: mqtt.Client | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._listeners: list[StorageListener] = []
        self._running = False

    @classmethod
    def from_config(cls, config: CartConfig, *, origin: str | None = None) -> MqttStorageChannel:
        return cls(
            topic=config.mqtt_topic,
            host=config.mqtt_host,
            port=config.mqtt_port,
            keepalive=config.mqtt_keepalive,
            origin=origin,
        )

    @property
    def origin(self) -> str:
        return self._origin

    @property
    def is_running(self) -> bool:
        """Whether the MQTT network loop is running."""
        return self._running

    def add_listener(self, listener: StorageListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _remove

    def start(self, loop: asyncio.AbstractEventLoop) -> None:
        """Connect, subscribe and start the paho network thread."""
        self.stop()
        self._loop = loop
        self._logger.debug(
            "MQTT storage channel start host=%s port=%s topic=%s origin=%s",
            self._host,
            self._port,
            self._topic,
            self._origin,
        )

        client = mqtt.Client(
            callback_api_version=cast(Any, mqtt).CallbackAPIVersion.VERSION2,
            client_id=f"swagcart_{self._origin}",
            protocol=mqtt.MQTTv5,
        )
        client.enable_logger(self._logger)

        def on_connect(
            c: mqtt.Client,
            _userdata: Any,
            _flags: Any,
            reason_code: Any,
            _properties: Any,
        ) -> None:
            if reason_code.value != 0:
                self._logger.warning("MQTT connect failed: %s", reason_code)
                return
            self._logger.debug("MQTT connected, subscribing topic=%s", self._topic)
            c.subscribe(self._topic, qos=1)

        def on_message(_c: mqtt.Client, _userdata: Any, msg: mqtt.MQTTMessage) -> None:
            self._handle_payload(msg.payload)

        def on_disconnect(
            _client: mqtt.Client,
            _userdata: Any,
            _disconnect_flags: Any,
            reason_code: Any,
            _properties: Any,
        ) -> None:
            if self._running:
                self._logger.debug("MQTT disconnected: %s", reason_code)

        client.on_connect = on_connect
        client.on_message = on_message
        client.on_disconnect = on_disconnect

        client.connect(self._host, self._port, keepalive=self._keepalive)
        client.loop_start()

        self._client = client
        self._running = True

    def stop(self) -> None:
        """Stop and disconnect the current MQTT client if running."""
        client = self._client
        self._client = None
        was_running = self._running
        self._running = False

        if client is None:
            return
        try:
            if was_running:
                client.disconnect()
        finally:
            client.loop_stop()
            self._logger.debug("MQTT storage channel stopped")

    def publish(self, key: str, value: str | None) -> None:
        client = self._client
        if client is None or not self._running:
            raise CartStorageError("MQTT storage channel is not running", key=key)
        client.publish(self._topic, encode_storage_message(key, value, self._origin), qos=1)

    def _handle_payload(self, payload: bytes) -> None:
        """Decode an incoming message and hand it to listeners on the owning loop.

        Runs on the paho network thread.
        """
        event = decode_storage_message(payload)
        if event is None:
            self._logger.debug("Ignoring malformed storage message %s", summarize_for_log(payload))
            return
        if event.origin == self._origin:
            return
        loop = self._loop
        if loop is None or loop.is_closed():
            return
        for listener in list(self._listeners):
            loop.call_soon_threadsafe(listener, event)

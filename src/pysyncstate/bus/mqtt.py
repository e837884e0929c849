"""Broadcast bus over MQTT, for engines living in different processes or hosts."""

from __future__ import annotations

import asyncio
import copy
import logging
import threading
from collections.abc import Callable
from typing import Any, cast

import paho.mqtt.client as mqtt

from pysyncstate._codec import decode_text, encode_text
from pysyncstate.bus.local import BusListener
from pysyncstate.config import MqttBusConfig
from pysyncstate.exceptions import SyncPayloadError, SyncStateError


class MqttBroadcastBus:
    """Threaded paho-mqtt bus that delivers messages onto an asyncio loop.

    Each channel maps to the topic ``<topic_prefix>/<channel>``. Payloads are
    JSON encoded. Listener callbacks always run on the event loop thread.

    Topics are subscribed with the MQTTv5 ``noLocal`` option, so the broker
    never returns this client's own publishes. Listeners of the same bus
    instance receive a publish directly, as with :class:`LocalBroadcastBus`.

    Usage::

        bus = MqttBroadcastBus(MqttBusConfig(host="broker.local"))
        await bus.connect()
        ...
        await bus.disconnect()
    """

    def __init__(
        self,
        config: MqttBusConfig,
        *,
        loop: asyncio.AbstractEventLoop | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._config = config
        self._loop = loop
        self._logger = logger or logging.getLogger(__name__)
        self._client: mqtt.Client | None = None
        self._running = False
        self._listeners: dict[str, list[BusListener]] = {}
        self._lock = threading.Lock()

    @property
    def is_running(self) -> bool:
        """Whether the MQTT network loop is active."""
        return self._running

    async def connect(self) -> None:
        """Start the network loop without blocking the event loop."""
        self._loop = asyncio.get_running_loop()
        await self._loop.run_in_executor(None, self.start)

    async def disconnect(self) -> None:
        loop = self._loop or asyncio.get_running_loop()
        await loop.run_in_executor(None, self.stop)

    def start(self) -> None:
        """Connect to the broker and subscribe to every channel with listeners."""
        if self._loop is None:
            try:
                self._loop = asyncio.get_running_loop()
            except RuntimeError as exc:
                raise SyncStateError("MqttBroadcastBus needs an event loop; use 'await bus.connect()'") from exc

        self.stop()
        config = self._config
        self._logger.debug(
            "MQTT bus start requested host=%s port=%s prefix=%s client_id=%s",
            config.host,
            config.port,
            config.topic_prefix,
            config.client_id,
        )

        client = mqtt.Client(
            callback_api_version=cast(Any, mqtt).CallbackAPIVersion.VERSION2,
            client_id=config.client_id,
            protocol=mqtt.MQTTv5,
        )
        client.enable_logger(self._logger)
        if config.username is not None:
            client.username_pw_set(config.username, config.password)
        if config.tls:
            client.tls_set()

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
            self._logger.debug("MQTT bus connected reason=%s", reason_code)
            with self._lock:
                channels = list(self._listeners)
            for channel in channels:
                c.subscribe(config.topic(channel), options=self._subscribe_options())

        def on_message(_c: mqtt.Client, _userdata: Any, msg: mqtt.MQTTMessage) -> None:
            channel = self._channel_for_topic(msg.topic)
            if channel is None:
                return
            try:
                payload = decode_text(msg.payload, key=channel)
            except SyncPayloadError:
                self._logger.debug("MQTT bus dropped malformed payload topic=%s", msg.topic, exc_info=True)
                return
            loop = self._loop
            if loop is not None and not loop.is_closed():
                loop.call_soon_threadsafe(self._dispatch, channel, payload)

        def on_disconnect(
            _client: mqtt.Client,
            _userdata: Any,
            _disconnect_flags: Any,
            reason_code: Any,
            _properties: Any,
        ) -> None:
            if self._running:
                self._logger.debug("MQTT bus disconnected: %s", reason_code)

        client.on_connect = on_connect
        client.on_message = on_message
        client.on_disconnect = on_disconnect

        client.connect(config.host, config.port, keepalive=config.keepalive)
        client.loop_start()

        self._client = client
        self._running = True
        self._logger.debug("MQTT bus network loop started")

    def stop(self) -> None:
        """Disconnect and stop the network loop if running."""
        client = self._client
        self._client = None
        was_running = self._running
        self._running = False

        if client is None:
            return
        try:
            if was_running:
                self._logger.debug("MQTT bus disconnect requested")
                client.disconnect()
        finally:
            client.loop_stop()
            self._logger.debug("MQTT bus network loop stopped")

    def publish(self, channel: str, payload: Any) -> None:
        self._dispatch(channel, payload)
        client = self._client
        if client is None or not self._running:
            self._logger.debug("MQTT bus not running; message stays local channel=%s", channel)
            return
        client.publish(self._config.topic(channel), encode_text(payload).encode("utf-8"), qos=self._config.qos)

    def listen(self, channel: str, callback: BusListener) -> Callable[[], None]:
        with self._lock:
            listeners = self._listeners.setdefault(channel, [])
            first = not listeners
            listeners.append(callback)
        client = self._client
        if first and client is not None and self._running:
            client.subscribe(self._config.topic(channel), options=self._subscribe_options())

        def unsubscribe() -> None:
            with self._lock:
                current = self._listeners.get(channel)
                if current is None or callback not in current:
                    return
                current.remove(callback)
                emptied = not current
                if emptied:
                    self._listeners.pop(channel, None)
            active = self._client
            if emptied and active is not None and self._running:
                active.unsubscribe(self._config.topic(channel))

        return unsubscribe

    def _subscribe_options(self) -> mqtt.SubscribeOptions:
        return mqtt.SubscribeOptions(qos=self._config.qos, noLocal=True)

    def _channel_for_topic(self, topic: str) -> str | None:
        prefix = self._config.topic_prefix
        if not prefix:
            return topic
        if not topic.startswith(f"{prefix}/"):
            return None
        return topic[len(prefix) + 1 :]

    def _dispatch(self, channel: str, payload: Any) -> None:
        with self._lock:
            listeners = list(self._listeners.get(channel, ()))
        for listener in listeners:
            try:
                listener(copy.deepcopy(payload))
            except Exception:
                self._logger.exception("Bus listener failed on channel=%s", channel)

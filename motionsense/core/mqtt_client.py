"""MQTT transport for MotionSense."""

from __future__ import annotations

import asyncio
import logging
from functools import partial
from typing import Any, Callable, Optional

import paho.mqtt.client as paho
from paho.mqtt.client import MQTTMessage

from ..config import BrokerEndpoint, ensure_valid, parse_broker_url
from ..const import (
    CONNECT_TIMEOUT,
    MQTT_KEEPALIVE,
    MQTT_QOS,
    RECONNECT_MAX_DELAY,
    RECONNECT_MIN_DELAY,
)
from ..models.broker_config import BrokerConfig
from .exceptions import (
    ConfigError,
    ConnectError,
    DisconnectError,
    PublishError,
    SubscribeError,
)
from .transport import ConnectedCallback, TransportAdapter

_LOGGER = logging.getLogger(__name__)


class MqttTransport(TransportAdapter):
    """Network-backed transport over paho-mqtt.

    The paho network loop runs on its own thread; every callback result is
    marshalled onto the asyncio loop that called ``connect``.
    """

    __slots__ = (
        "_config",
        "_endpoint",
        "_mqttc",
        "_loop",
        "_connect_lock",
        "_connect_timeout",
        "_keepalive",
        "_qos",
        "_is_connected",
        "_subscribed",
        "_stopping",
        "_connected_future",
        "_subscribed_future",
    )

    simulated = False

    def __init__(
        self,
        *,
        connect_timeout: float = CONNECT_TIMEOUT,
        keepalive: int = MQTT_KEEPALIVE,
        qos: int = MQTT_QOS,
    ) -> None:
        """Initialize the transport.

        Args:
            connect_timeout: Seconds to wait for CONNACK and SUBACK
            keepalive: MQTT keepalive in seconds
            qos: QoS used for the subscription and publishes
        """
        super().__init__()
        self._config: Optional[BrokerConfig] = None
        self._endpoint: Optional[BrokerEndpoint] = None
        self._mqttc: Optional[paho.Client] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._connect_lock = asyncio.Lock()
        self._connect_timeout = connect_timeout
        self._keepalive = keepalive
        self._qos = qos
        self._is_connected = False
        self._subscribed = False
        self._stopping = False
        self._connected_future: Optional[asyncio.Future] = None
        self._subscribed_future: Optional[asyncio.Future] = None

    @property
    def is_connected(self) -> bool:
        """Check if MQTT is connected and subscribed."""
        return self._is_connected and self._subscribed

    @property
    def client_id(self) -> Optional[str]:
        return self._config.client_id if self._config else None

    @property
    def topic(self) -> Optional[str]:
        return self._config.topic if self._config else None

    def configure(self, config: Optional[BrokerConfig]) -> None:
        """Validate and store the broker configuration.

        Raises:
            ConfigError: If the configuration is missing or invalid
        """
        if config is None:
            raise ConfigError("MQTT transport requires a broker configuration")
        config = ensure_valid(config)
        self._endpoint = parse_broker_url(config.broker_url)
        self._config = config

    def _create_client(self) -> paho.Client:
        config = self._config
        endpoint = self._endpoint
        mqttc = paho.Client(
            callback_api_version=paho.CallbackAPIVersion.VERSION2,
            client_id=config.client_id,
            protocol=paho.MQTTv311,
            transport=endpoint.transport,
        )
        if endpoint.transport == "websockets":
            mqttc.ws_set_options(path=endpoint.path)
        if endpoint.tls:
            mqttc.tls_set()
        if config.username:
            mqttc.username_pw_set(username=config.username, password=config.password)
        mqttc.reconnect_delay_set(min_delay=RECONNECT_MIN_DELAY, max_delay=RECONNECT_MAX_DELAY)
        mqttc.on_connect = self._on_connect
        mqttc.on_disconnect = self._on_disconnect
        mqttc.on_subscribe = self._on_subscribe
        mqttc.on_message = self._on_message
        return mqttc

    async def connect(self, on_connected: Optional[ConnectedCallback] = None) -> None:
        """Connect to the broker and subscribe to the configured topic.

        Raises:
            ConfigError: If ``configure`` was not called
            ConnectError: If the broker cannot be reached or refuses the session
            SubscribeError: If the subscription is rejected; the connection is
                left open and the caller must ``disconnect``
        """
        if self._config is None or self._endpoint is None:
            raise ConfigError("MQTT transport is not configured")

        async with self._connect_lock:
            if self._mqttc is not None and self.is_connected:
                if _LOGGER.isEnabledFor(logging.DEBUG):
                    _LOGGER.debug("MQTT already connected for %s", self.client_id)
                return

            loop = asyncio.get_running_loop()
            self._loop = loop
            self._stopping = False
            self._connected_future = loop.create_future()
            self._subscribed_future = None
            self._mqttc = self._create_client()
            endpoint = self._endpoint

            _LOGGER.info(
                f"MQTT connecting: {endpoint.host}:{endpoint.port} "
                f"({endpoint.transport}, tls={endpoint.tls}) client: {self.client_id}"
            )

            try:
                await loop.run_in_executor(
                    None, self._mqttc.connect, endpoint.host, endpoint.port, self._keepalive
                )
                self._mqttc.loop_start()
                if _LOGGER.isEnabledFor(logging.DEBUG):
                    _LOGGER.debug(
                        "MQTT loop started %s. Waiting for CONNACK (%ss)",
                        self.client_id,
                        self._connect_timeout,
                    )
                await asyncio.wait_for(self._connected_future, timeout=self._connect_timeout)
            except asyncio.TimeoutError:
                _LOGGER.error(f"MQTT connection timeout {self.client_id}")
                await self._teardown()
                raise ConnectError(
                    f"Timed out after {self._connect_timeout}s waiting for broker"
                ) from None
            except ConnectError:
                await self._teardown()
                raise
            except asyncio.CancelledError:
                await self._teardown()
                raise
            except Exception as exc:
                _LOGGER.error(f"Failed MQTT connect {self.client_id}: {exc}")
                await self._teardown()
                raise ConnectError(f"MQTT setup error: {exc}") from exc

            _LOGGER.info(f"MQTT connected successfully {self.client_id}")
            if on_connected is not None:
                on_connected()
            await self._subscribe()

    async def _subscribe(self) -> None:
        topic = self._config.topic
        self._subscribed_future = self._loop.create_future()
        try:
            result, mid = self._mqttc.subscribe(topic, self._qos)
        except ValueError as exc:
            raise SubscribeError(topic, str(exc)) from exc

        if result != paho.MQTT_ERR_SUCCESS:
            _LOGGER.error(f"MQTT subscribe request failed for {topic}: {paho.error_string(result)}")
            raise SubscribeError(topic, paho.error_string(result))

        if _LOGGER.isEnabledFor(logging.DEBUG):
            _LOGGER.debug("Subscribe requested %s (mid=%s)", topic, mid)

        try:
            await asyncio.wait_for(self._subscribed_future, timeout=self._connect_timeout)
        except asyncio.TimeoutError:
            raise SubscribeError(topic, "timed out waiting for SUBACK") from None

        self._subscribed = True
        _LOGGER.info(f"Subscribed to topic: {topic}")

    async def unsubscribe(self, topic: str) -> None:
        """Drop a topic subscription, best effort."""
        mqttc = self._mqttc
        if mqttc is None:
            return
        loop = asyncio.get_running_loop()
        result, _mid = await loop.run_in_executor(None, mqttc.unsubscribe, topic)
        if result != paho.MQTT_ERR_SUCCESS:
            _LOGGER.warning(f"Unsubscribe from {topic} failed: {paho.error_string(result)}")
            return
        if _LOGGER.isEnabledFor(logging.DEBUG):
            _LOGGER.debug("Unsubscribed from topic %s", topic)

    async def publish(self, topic: str, payload: bytes) -> None:
        """Publish a payload with the configured QoS.

        Raises:
            PublishError: If not connected or paho rejects the publish
        """
        mqttc = self._mqttc
        if not self.is_connected or mqttc is None:
            raise PublishError(f"MQTT not connected {self.client_id}, cannot publish")

        if _LOGGER.isEnabledFor(logging.DEBUG):
            _LOGGER.debug("Publishing to %s (%s): %s bytes", topic, self.client_id, len(payload))

        loop = asyncio.get_running_loop()
        try:
            msg_info = await loop.run_in_executor(
                None, partial(mqttc.publish, topic, payload=payload, qos=self._qos)
            )
        except (TypeError, ValueError) as exc:
            raise PublishError(f"Invalid publish to {topic}: {exc}") from exc

        if msg_info is None or msg_info.rc != paho.MQTT_ERR_SUCCESS:
            rc = msg_info.rc if msg_info else "Executor Error"
            _LOGGER.error(f"MQTT publish failed {self.client_id} RC: {rc}")
            raise PublishError(f"Publish to {topic} failed (rc={rc})")

        if _LOGGER.isEnabledFor(logging.DEBUG):
            _LOGGER.debug("Publish OK (mid=%s) %s", msg_info.mid, self.client_id)

    async def disconnect(self) -> None:
        """Unsubscribe, disconnect and stop the network loop.

        Raises:
            DisconnectError: If paho fails while closing the connection
        """
        self._stopping = True
        self._fail_pending(ConnectError("Disconnect requested"))

        async with self._connect_lock:
            mqttc = self._mqttc
            subscribed = self._subscribed
            self._mqttc = None
            self._is_connected = False
            self._subscribed = False

        if mqttc is None:
            if _LOGGER.isEnabledFor(logging.DEBUG):
                _LOGGER.debug("MQTT client already disconnected %s", self.client_id)
            return

        _LOGGER.info(f"Disconnecting MQTT {self.client_id}")
        loop = asyncio.get_running_loop()
        if subscribed:
            try:
                await loop.run_in_executor(None, mqttc.unsubscribe, self._config.topic)
            except Exception as unsub_exc:
                _LOGGER.warning(
                    f"Error unsubscribing from {self._config.topic} {self.client_id}: {unsub_exc}"
                )

        try:
            await loop.run_in_executor(None, mqttc.disconnect)
            await loop.run_in_executor(None, mqttc.loop_stop)
        except Exception as exc:
            _LOGGER.warning(f"Error during MQTT disconnect {self.client_id}: {exc}")
            raise DisconnectError(str(exc)) from exc
        _LOGGER.info(f"MQTT client disconnected {self.client_id}")

    async def _teardown(self) -> None:
        """Release the paho client after a failed connect."""
        mqttc = self._mqttc
        self._mqttc = None
        self._is_connected = False
        self._subscribed = False
        if mqttc is None:
            return
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, mqttc.disconnect)
        except Exception as exc:
            _LOGGER.warning(f"Disconnect error after failed connect {self.client_id}: {exc}")
        try:
            await loop.run_in_executor(None, mqttc.loop_stop)
            if _LOGGER.isEnabledFor(logging.DEBUG):
                _LOGGER.debug("MQTT loop stopped after failure %s", self.client_id)
        except Exception as exc:
            _LOGGER.warning(f"Loop stop error: {exc}")

    def _fail_pending(self, exc: Exception) -> None:
        for future in (self._connected_future, self._subscribed_future):
            if future is not None and not future.done():
                future.set_exception(exc)
                # mark retrieved so an abandoned future does not log
                future.exception()

    def _call_soon(self, callback: Callable[..., Any], *args: Any) -> None:
        loop = self._loop
        if loop is None or loop.is_closed():
            return
        try:
            loop.call_soon_threadsafe(callback, *args)
        except RuntimeError:
            if _LOGGER.isEnabledFor(logging.DEBUG):
                _LOGGER.debug("Event loop closed, dropping MQTT callback %s", self.client_id)

    # paho callbacks, invoked on the paho network thread

    def _on_connect(self, client, userdata, flags, reason_code, properties=None) -> None:
        if reason_code.is_failure:
            _LOGGER.error(f"MQTT connection refused {self.client_id}: {reason_code}")
            self._call_soon(self._connect_refused, str(reason_code))
            return
        _LOGGER.info(f"MQTT connected ({reason_code}) {self.client_id}")
        self._call_soon(self._connect_accepted)

    def _on_disconnect(self, client, userdata, disconnect_flags, reason_code, properties=None) -> None:
        self._call_soon(self._connection_lost, str(reason_code))

    def _on_subscribe(self, client, userdata, mid, reason_code_list, properties=None) -> None:
        failures = [rc for rc in reason_code_list if rc.is_failure]
        self._call_soon(self._subscribe_acked, str(failures[0]) if failures else None)

    def _on_message(self, client, userdata, msg: MQTTMessage) -> None:
        if _LOGGER.isEnabledFor(logging.DEBUG):
            _LOGGER.debug(
                "MQTT message received %s: topic='%s' (len: %s)",
                self.client_id,
                msg.topic,
                len(msg.payload),
            )
        self._call_soon(self._deliver, msg.topic, bytes(msg.payload))

    # loop-side handlers

    def _connect_accepted(self) -> None:
        self._is_connected = True
        future = self._connected_future
        if future is not None and not future.done():
            future.set_result(None)
            return
        # broker-initiated reconnect: clean session lost the subscription
        if self._subscribed and not self._stopping and self._mqttc is not None:
            _LOGGER.info(f"MQTT reconnected {self.client_id}, resubscribing to {self.topic}")
            result, _mid = self._mqttc.subscribe(self._config.topic, self._qos)
            if result != paho.MQTT_ERR_SUCCESS:
                _LOGGER.error(f"MQTT resubscribe failed: {paho.error_string(result)}")

    def _connect_refused(self, reason: str) -> None:
        self._is_connected = False
        future = self._connected_future
        if future is not None and not future.done():
            future.set_exception(ConnectError(f"Connection refused: {reason}"))

    def _connection_lost(self, reason: str) -> None:
        self._is_connected = False
        if self._stopping:
            _LOGGER.info(f"MQTT disconnected cleanly {self.client_id}")
            return
        _LOGGER.warning(f"MQTT unexpected disconnect {self.client_id} ({reason})")
        future = self._connected_future
        if future is not None and not future.done():
            future.set_exception(ConnectError(f"Connection closed: {reason}"))
        future = self._subscribed_future
        if future is not None and not future.done():
            future.set_exception(SubscribeError(self._config.topic, f"Connection closed: {reason}"))

    def _subscribe_acked(self, failure: Optional[str]) -> None:
        future = self._subscribed_future
        if future is not None and not future.done():
            if failure:
                future.set_exception(SubscribeError(self._config.topic, failure))
            else:
                future.set_result(None)
        elif failure:
            _LOGGER.error(f"MQTT resubscribe to {self.topic} rejected: {failure}")

    def _deliver(self, topic: str, payload: bytes) -> None:
        if self._stopping or self._handler is None:
            return
        if not paho.topic_matches_sub(self._config.topic, topic):
            _LOGGER.warning(f"Unexpected topic {self.client_id}: {topic}")
            return
        try:
            self._handler(topic, payload)
        except Exception:
            _LOGGER.exception(f"Error processing MQTT message {topic} {self.client_id}")

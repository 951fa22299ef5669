"""Telemetry client: connection lifecycle and sample delivery."""

from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import dataclass
from enum import Enum
from functools import partial
from typing import Awaitable, Callable, List, Optional, Union

from ..config import ensure_valid
from ..const import CONNECT_TIMEOUT, DISCONNECT_TIMEOUT, SIMULATION_INTERVAL_MS
from ..models.broker_config import BrokerConfig
from ..models.sensor_data import SensorSample
from .exceptions import BusyError, ConnectError, DecodeError, PublishError
from .mqtt_client import MqttTransport
from .sample_parser import decode_sample
from .simulator import SimulatedTransport
from .stream import SampleStream
from .transport import TransportAdapter

_LOGGER = logging.getLogger(__name__)

SampleObserver = Callable[[SensorSample], Union[None, Awaitable[None]]]
TransportFactory = Callable[[], TransportAdapter]


class ConnectionState(str, Enum):
    """Connection lifecycle of a TelemetryClient."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    SUBSCRIBING = "subscribing"
    STREAMING = "streaming"
    DISCONNECTING = "disconnecting"
    FAILED = "failed"


class FallbackReason(str, Enum):
    """Why a session streams simulated data."""

    NOT_CONFIGURED = "not_configured"
    UNREACHABLE = "unreachable"


@dataclass(frozen=True)
class ConnectResult:
    simulated: bool
    fallback_reason: Optional[FallbackReason] = None


StateListener = Callable[[ConnectionState, ConnectionState], None]


class TelemetryClient:
    """Owns one transport session and forwards decoded samples.

    A session is either live (MQTT) or simulated; the transport variant is
    chosen once per ``connect`` and discarded on ``disconnect``. Decoded
    samples go into a single-consumer SampleStream; when an observer is
    passed to ``connect`` a pump task drains the stream into it one sample
    at a time.
    """

    def __init__(
        self,
        *,
        transport_factory: Optional[TransportFactory] = None,
        simulator_factory: Optional[TransportFactory] = None,
        simulation_interval_ms: int = SIMULATION_INTERVAL_MS,
        connect_timeout: float = CONNECT_TIMEOUT,
        disconnect_timeout: float = DISCONNECT_TIMEOUT,
        fallback_to_simulation: bool = True,
        on_decode_error: Optional[Callable[[DecodeError], None]] = None,
    ) -> None:
        """Initialize the client.

        Args:
            transport_factory: Builds the live transport for each session
            simulator_factory: Builds the simulated transport for each session
            simulation_interval_ms: Period of simulated samples
            connect_timeout: Seconds the live transport waits for the broker
            disconnect_timeout: Upper bound for transport teardown
            fallback_to_simulation: Stream simulated data when the broker
                cannot be reached instead of failing
            on_decode_error: Called with every dropped malformed message
        """
        self._transport_factory = transport_factory or partial(
            MqttTransport, connect_timeout=connect_timeout
        )
        self._simulator_factory = simulator_factory or partial(
            SimulatedTransport, interval_ms=simulation_interval_ms
        )
        self._disconnect_timeout = disconnect_timeout
        self._fallback_to_simulation = fallback_to_simulation
        self._on_decode_error = on_decode_error

        self._state = ConnectionState.DISCONNECTED
        self._state_listeners: List[StateListener] = []
        self._config: Optional[BrokerConfig] = None
        self._transport: Optional[TransportAdapter] = None
        self._stream: Optional[SampleStream] = None
        self._connect_task: Optional[asyncio.Task] = None
        self._pump_task: Optional[asyncio.Task] = None
        self._disconnect_lock = asyncio.Lock()
        self._cancel_requested = False
        self._session = 0
        self._simulated = False
        self._fallback_reason: Optional[FallbackReason] = None
        self._received_count = 0
        self._decode_error_count = 0

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def simulated(self) -> bool:
        return self._simulated

    @property
    def fallback_reason(self) -> Optional[FallbackReason]:
        return self._fallback_reason

    @property
    def config(self) -> Optional[BrokerConfig]:
        return self._config

    @property
    def stream(self) -> Optional[SampleStream]:
        """Stream of the current session, None before the first connect."""
        return self._stream

    @property
    def received_count(self) -> int:
        return self._received_count

    @property
    def decode_error_count(self) -> int:
        return self._decode_error_count

    @property
    def is_streaming(self) -> bool:
        return self._state is ConnectionState.STREAMING

    def add_state_listener(self, listener: StateListener) -> Callable[[], None]:
        """Register a ``(old, new)`` transition listener; returns its remover."""
        self._state_listeners.append(listener)

        def _remove() -> None:
            if listener in self._state_listeners:
                self._state_listeners.remove(listener)

        return _remove

    def _set_state(self, new_state: ConnectionState) -> None:
        old_state = self._state
        if old_state is new_state:
            return
        self._state = new_state
        _LOGGER.info(f"Telemetry state {old_state.value} -> {new_state.value}")
        for listener in list(self._state_listeners):
            try:
                listener(old_state, new_state)
            except Exception:
                _LOGGER.exception("Error in telemetry state listener")

    async def connect(
        self,
        config: Optional[BrokerConfig] = None,
        observer: Optional[SampleObserver] = None,
    ) -> ConnectResult:
        """Start a session and stream samples.

        With no config the session is simulated. With a config the MQTT
        transport is used; if the broker cannot be reached the session falls
        back to simulation unless ``fallback_to_simulation`` is off.

        Args:
            config: Broker settings, or None for simulation
            observer: Optional callable (sync or async) receiving every
                sample in arrival order; without it consume ``stream``

        Returns:
            ConnectResult telling whether data is simulated and why

        Raises:
            BusyError: If the client is not Disconnected
            ConfigError: If the configuration is invalid
            ConnectError: If the broker is unreachable and fallback is off,
                or the attempt was cancelled by ``disconnect``
            SubscribeError: If the broker rejects the topic subscription
        """
        if self._state is not ConnectionState.DISCONNECTED:
            raise BusyError(f"Cannot connect while {self._state.value}")
        if config is not None:
            config = ensure_valid(config)

        self._cancel_requested = False
        self._session += 1
        self._received_count = 0
        self._decode_error_count = 0
        self._simulated = False
        self._fallback_reason = None
        self._config = config
        self._stream = SampleStream()
        self._set_state(ConnectionState.CONNECTING)

        task = asyncio.get_running_loop().create_task(
            self._async_connect(config, observer, self._session)
        )
        self._connect_task = task
        try:
            return await task
        except asyncio.CancelledError:
            if self._cancel_requested and task.cancelled():
                raise ConnectError("Connect cancelled by disconnect") from None
            raise
        finally:
            if self._connect_task is task:
                self._connect_task = None

    async def _async_connect(
        self,
        config: Optional[BrokerConfig],
        observer: Optional[SampleObserver],
        session: int,
    ) -> ConnectResult:
        fallback: Optional[FallbackReason] = None
        try:
            if config is None:
                _LOGGER.info("No broker configured, streaming simulated data")
                fallback = FallbackReason.NOT_CONFIGURED
            else:
                live = self._attach(self._transport_factory(), config, session)
                try:
                    await live.connect(on_connected=self._on_transport_connected)
                except ConnectError as exc:
                    await self._close_transport()
                    if not self._fallback_to_simulation:
                        raise
                    _LOGGER.warning(
                        f"Broker {config.broker_url} unreachable ({exc.reason}), "
                        "streaming simulated data"
                    )
                    fallback = FallbackReason.UNREACHABLE

            if fallback is not None:
                simulator = self._attach(self._simulator_factory(), config, session)
                await simulator.connect()
        except asyncio.CancelledError:
            await self._close_transport()
            if not self._cancel_requested:
                self._stream.discard()
                self._set_state(ConnectionState.DISCONNECTED)
            raise
        except Exception as exc:
            _LOGGER.error(f"Telemetry connect failed: {exc}")
            self._set_state(ConnectionState.FAILED)
            await self._close_transport()
            self._stream.discard()
            self._set_state(ConnectionState.DISCONNECTED)
            raise

        self._simulated = fallback is not None
        self._fallback_reason = fallback
        self._set_state(ConnectionState.STREAMING)
        if observer is not None:
            self._pump_task = asyncio.get_running_loop().create_task(
                self._pump(self._stream, observer)
            )
        return ConnectResult(simulated=self._simulated, fallback_reason=fallback)

    def _attach(
        self, transport: TransportAdapter, config: Optional[BrokerConfig], session: int
    ) -> TransportAdapter:
        transport.configure(config)
        transport.on_message(partial(self._handle_message, session))
        self._transport = transport
        return transport

    def _on_transport_connected(self) -> None:
        if self._state is ConnectionState.CONNECTING:
            self._set_state(ConnectionState.CONNECTED)
            self._set_state(ConnectionState.SUBSCRIBING)

    def _handle_message(self, session: int, topic: str, payload: bytes) -> None:
        if session != self._session or self._stream is None:
            return
        if self._state not in (ConnectionState.SUBSCRIBING, ConnectionState.STREAMING):
            return
        try:
            sample = decode_sample(payload)
        except DecodeError as exc:
            self._decode_error_count += 1
            _LOGGER.warning(f"Dropping malformed message on {topic}: {exc.reason}")
            if self._on_decode_error is not None:
                try:
                    self._on_decode_error(exc)
                except Exception:
                    _LOGGER.exception("Error in decode error callback")
            return

        self._received_count += 1
        if _LOGGER.isEnabledFor(logging.DEBUG):
            _LOGGER.debug("Sample %s on %s: %s", self._received_count, topic, sample)
        self._stream.put(sample)

    async def _pump(self, stream: SampleStream, observer: SampleObserver) -> None:
        async for sample in stream:
            try:
                result = observer(sample)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                _LOGGER.exception("Observer failed to handle sample")

    async def publish(self, topic: str, payload: Union[bytes, str]) -> None:
        """Publish through the active transport, best effort.

        Raises:
            PublishError: If not streaming or the transport rejects it
        """
        transport = self._transport
        if self._state is not ConnectionState.STREAMING or transport is None:
            raise PublishError(f"Cannot publish while {self._state.value}")
        if isinstance(payload, str):
            payload = payload.encode("utf-8")
        await transport.publish(topic, payload)

    async def disconnect(self) -> None:
        """Stop the active data source and return to Disconnected.

        Cancels a pending ``connect``. Never raises for teardown problems and
        is a no-op when already Disconnected.
        """
        async with self._disconnect_lock:
            if self._state is ConnectionState.FAILED:
                # a failed connect tears itself down and reports its own error
                task = self._connect_task
                if task is not None and not task.done():
                    await asyncio.wait([task], timeout=self._disconnect_timeout * 2)

            if self._state is ConnectionState.DISCONNECTED:
                if _LOGGER.isEnabledFor(logging.DEBUG):
                    _LOGGER.debug("Telemetry client already disconnected")
                return

            self._cancel_requested = True
            self._set_state(ConnectionState.DISCONNECTING)
            # drop deliveries still queued on the loop for this session
            self._session += 1
            if self._stream is not None:
                dropped = self._stream.discard()
                if dropped and _LOGGER.isEnabledFor(logging.DEBUG):
                    _LOGGER.debug("Discarded %s undelivered samples", dropped)

            pump = self._pump_task
            self._pump_task = None
            if pump is asyncio.current_task():
                pump = None
            if pump is not None and not pump.done():
                pump.cancel()

            task = self._connect_task
            if task is not None and not task.done():
                task.cancel()
                await asyncio.wait([task], timeout=self._disconnect_timeout)

            await self._close_transport()

            if pump is not None:
                await asyncio.wait([pump], timeout=self._disconnect_timeout)

            self._simulated = False
            self._fallback_reason = None
            self._set_state(ConnectionState.DISCONNECTED)

    async def _close_transport(self) -> None:
        transport = self._transport
        self._transport = None
        if transport is None:
            return
        transport.on_message(None)
        try:
            await asyncio.wait_for(transport.disconnect(), timeout=self._disconnect_timeout)
        except asyncio.TimeoutError:
            _LOGGER.warning(
                f"Transport teardown exceeded {self._disconnect_timeout}s, abandoning it"
            )
        except Exception as exc:
            _LOGGER.warning(f"Error during transport teardown: {exc}")

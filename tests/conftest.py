"""Pytest configuration and fixtures for MotionSense tests."""

from __future__ import annotations

import asyncio
import json
from typing import Any, Callable, List, Optional

import pytest

from motionsense.core.exceptions import ConnectError
from motionsense.core.telemetry_client import TelemetryClient
from motionsense.core.transport import TransportAdapter
from motionsense.models.broker_config import BrokerConfig

TEST_TOPIC = "esp32/sensor_data"


def make_payload(
    acc: tuple = (0.1, 9.8, -0.2),
    gyro: tuple = (0.01, -0.02, 0.03),
    timestamp: Any = 1700000000000,
    **overrides: Any,
) -> bytes:
    """Build a wire payload; overrides replace top-level keys."""
    document = {
        "acceleration": dict(zip("xyz", acc)),
        "gyroscope": dict(zip("xyz", gyro)),
        "timestamp": timestamp,
    }
    document.update(overrides)
    return json.dumps(document).encode("utf-8")


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    """Poll ``predicate`` on the event loop until true or fail."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.005)


class FakeTransport(TransportAdapter):
    """Scriptable transport standing in for the broker."""

    def __init__(
        self,
        *,
        simulated: bool = False,
        connect_error: Optional[Exception] = None,
        subscribe_error: Optional[Exception] = None,
        connect_delay: float = 0.0,
        disconnect_delay: float = 0.0,
    ) -> None:
        super().__init__()
        self.simulated = simulated
        self.config: Optional[BrokerConfig] = None
        self.connected = False
        self.connect_calls = 0
        self.disconnect_calls = 0
        self.published: List[tuple] = []
        self._connect_error = connect_error
        self._subscribe_error = subscribe_error
        self._connect_delay = connect_delay
        self._disconnect_delay = disconnect_delay

    @property
    def is_connected(self) -> bool:
        return self.connected

    @property
    def handler(self):
        return self._handler

    def configure(self, config: Optional[BrokerConfig]) -> None:
        self.config = config

    async def connect(self, on_connected=None) -> None:
        self.connect_calls += 1
        if self._connect_delay:
            await asyncio.sleep(self._connect_delay)
        if self._connect_error is not None:
            raise self._connect_error
        if on_connected is not None:
            on_connected()
        self.connected = True
        if self._subscribe_error is not None:
            raise self._subscribe_error

    async def publish(self, topic: str, payload: bytes) -> None:
        self.published.append((topic, payload))

    async def disconnect(self) -> None:
        self.disconnect_calls += 1
        if self._disconnect_delay:
            await asyncio.sleep(self._disconnect_delay)
        self.connected = False

    def emit(self, payload: bytes, topic: str = TEST_TOPIC) -> None:
        if self._handler is not None:
            self._handler(topic, payload)


@pytest.fixture
def broker_config() -> BrokerConfig:
    """Broker config pointing at a test broker."""
    return BrokerConfig(
        broker_url="mqtt://broker.test:1883",
        client_id="motionsense_test",
        topic=TEST_TOPIC,
    )


@pytest.fixture
def fake_transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def fake_simulator() -> FakeTransport:
    return FakeTransport(simulated=True)


@pytest.fixture
def live_client(fake_transport, fake_simulator) -> TelemetryClient:
    """Client whose live and simulated transports are fakes."""
    return TelemetryClient(
        transport_factory=lambda: fake_transport,
        simulator_factory=lambda: fake_simulator,
        disconnect_timeout=0.5,
    )


@pytest.fixture
def unreachable_client(fake_simulator) -> TelemetryClient:
    """Client whose broker always refuses and whose simulator is a fake."""
    return TelemetryClient(
        transport_factory=lambda: FakeTransport(connect_error=ConnectError("Name or service not known")),
        simulator_factory=lambda: fake_simulator,
        disconnect_timeout=0.5,
    )

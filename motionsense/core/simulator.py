"""Synthetic sensor data for running without a broker."""

from __future__ import annotations

import asyncio
import logging
import random
import time
from typing import Callable, Optional, Tuple

from ..const import SIMULATION_INTERVAL_MS, SIMULATION_RANGE
from ..models.broker_config import BrokerConfig
from ..models.sensor_data import SensorSample, Vector3
from .exceptions import PublishError
from .sample_parser import encode_sample
from .transport import ConnectedCallback, TransportAdapter

_LOGGER = logging.getLogger(__name__)

SampleCallback = Callable[[SensorSample], None]


class SimulationGenerator:
    """Emits uniformly random samples on a fixed period."""

    def __init__(
        self,
        value_range: Tuple[float, float] = SIMULATION_RANGE,
        rng: Optional[random.Random] = None,
    ) -> None:
        low, high = value_range
        if low > high:
            raise ValueError(f"Invalid simulation range {value_range}")
        self._low = float(low)
        self._high = float(high)
        self._rng = rng or random.Random()
        self._task: Optional[asyncio.Task] = None
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    def generate(self) -> SensorSample:
        """Build one sample with every axis drawn independently."""
        uniform = self._rng.uniform
        low, high = self._low, self._high
        return SensorSample(
            acceleration=Vector3(uniform(low, high), uniform(low, high), uniform(low, high)),
            gyroscope=Vector3(uniform(low, high), uniform(low, high), uniform(low, high)),
            timestamp=int(time.time() * 1000),
        )

    def start(self, interval_ms: int, emit: SampleCallback) -> None:
        """Start emitting one sample every ``interval_ms`` milliseconds.

        Must be called from a running event loop. Restarting replaces the
        previous timer.
        """
        if interval_ms <= 0:
            raise ValueError("interval_ms must be positive")
        self.stop()
        self._running = True
        self._task = asyncio.get_running_loop().create_task(
            self._run(interval_ms / 1000.0, emit)
        )
        _LOGGER.info(f"Simulation started ({interval_ms} ms interval)")

    def stop(self) -> None:
        """Stop emitting. No sample is emitted once this returns."""
        self._running = False
        task = self._task
        self._task = None
        if task is not None and not task.done():
            task.cancel()
            _LOGGER.info("Simulation stopped")

    async def _run(self, interval: float, emit: SampleCallback) -> None:
        loop = asyncio.get_running_loop()
        next_tick = loop.time() + interval
        while True:
            await asyncio.sleep(max(0.0, next_tick - loop.time()))
            next_tick += interval
            if not self._running:
                return
            try:
                emit(self.generate())
            except Exception:
                _LOGGER.exception("Error emitting simulated sample")


class SimulatedTransport(TransportAdapter):
    """Transport variant backed by a SimulationGenerator.

    Samples are encoded on the wire format and delivered through the same
    raw-message path as live data.
    """

    simulated = True

    def __init__(
        self,
        *,
        interval_ms: int = SIMULATION_INTERVAL_MS,
        generator: Optional[SimulationGenerator] = None,
    ) -> None:
        super().__init__()
        self._interval_ms = interval_ms
        self._generator = generator or SimulationGenerator()
        self._topic: Optional[str] = None
        self._connected = False

    @property
    def is_connected(self) -> bool:
        return self._connected

    @property
    def generator(self) -> SimulationGenerator:
        return self._generator

    def configure(self, config: Optional[BrokerConfig]) -> None:
        # the topic only labels simulated messages
        self._topic = config.topic if config is not None else "simulated"

    async def connect(self, on_connected: Optional[ConnectedCallback] = None) -> None:
        if self._connected:
            return
        if self._topic is None:
            self.configure(None)
        self._connected = True
        self._generator.start(self._interval_ms, self._emit)

    def _emit(self, sample: SensorSample) -> None:
        handler = self._handler
        if not self._connected or handler is None:
            return
        handler(self._topic, encode_sample(sample))

    async def publish(self, topic: str, payload: bytes) -> None:
        if not self._connected:
            raise PublishError("Simulation is not running, cannot publish")
        if _LOGGER.isEnabledFor(logging.DEBUG):
            _LOGGER.debug("Simulated publish to %s (%s bytes)", topic, len(payload))

    async def disconnect(self) -> None:
        self._connected = False
        self._generator.stop()

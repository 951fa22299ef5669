"""Bounded window of the most recent samples."""

from __future__ import annotations

from collections import deque
from typing import Deque, Iterator, Tuple

from ..const import WINDOW_SIZE
from ..models.sensor_data import SensorSample


class SampleWindow:
    """FIFO window keeping the last ``capacity`` samples in arrival order.

    Once frozen the window is a read-only snapshot.
    """

    __slots__ = ("_samples", "_frozen")

    def __init__(self, capacity: int = WINDOW_SIZE) -> None:
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self._samples: Deque[SensorSample] = deque(maxlen=capacity)
        self._frozen = False

    @property
    def capacity(self) -> int:
        return self._samples.maxlen

    @property
    def frozen(self) -> bool:
        return self._frozen

    def append(self, sample: SensorSample) -> None:
        """Append a sample, evicting the oldest one when full."""
        if self._frozen:
            raise RuntimeError("SampleWindow is frozen")
        self._samples.append(sample)

    def freeze(self) -> None:
        self._frozen = True

    def snapshot(self) -> Tuple[SensorSample, ...]:
        return tuple(self._samples)

    def __len__(self) -> int:
        return len(self._samples)

    def __iter__(self) -> Iterator[SensorSample]:
        return iter(tuple(self._samples))

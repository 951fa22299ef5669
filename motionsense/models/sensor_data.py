"""Sensor sample models for MotionSense."""

from dataclasses import dataclass
from typing import Any, Dict


@dataclass(frozen=True)
class Vector3:
    """Three-axis reading."""

    x: float
    y: float
    z: float

    def as_dict(self) -> Dict[str, float]:
        return {"x": self.x, "y": self.y, "z": self.z}


@dataclass(frozen=True)
class SensorSample:
    """One accelerometer + gyroscope reading.

    Timestamps are epoch milliseconds as reported by the device and are not
    guaranteed to be ordered across a stream.
    """

    acceleration: Vector3
    gyroscope: Vector3
    timestamp: int

    def as_dict(self) -> Dict[str, Any]:
        return {
            "acceleration": self.acceleration.as_dict(),
            "gyroscope": self.gyroscope.as_dict(),
            "timestamp": self.timestamp,
        }

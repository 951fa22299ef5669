"""Data models for MotionSense.

This package contains data models and validation.
"""

from .broker_config import BrokerConfig
from .sensor_data import SensorSample, Vector3

__all__ = [
    "BrokerConfig",
    "SensorSample",
    "Vector3",
]

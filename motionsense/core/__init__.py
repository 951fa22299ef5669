"""Core ingestion logic for MotionSense.

This package contains the core functionality:
- Transport adapters (MQTT and simulated)
- Sample decoder for wire payloads
- Simulation generator
- Telemetry client state machine
- Custom exceptions
"""

from .exceptions import (
    BusyError,
    ConfigError,
    ConnectError,
    DecodeError,
    DisconnectError,
    MotionSenseException,
    PublishError,
    SubscribeError,
    TransportException,
)

__all__ = [
    "MotionSenseException",
    "ConfigError",
    "BusyError",
    "TransportException",
    "ConnectError",
    "SubscribeError",
    "PublishError",
    "DisconnectError",
    "DecodeError",
]

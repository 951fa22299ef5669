"""MotionSense telemetry ingestion client.

Collects accelerometer and gyroscope samples published by a remote device
over MQTT, falls back to simulated data when no broker is available, and
drives a start/stop/save recording workflow.
"""

from __future__ import annotations

from .config import load_broker_config, parse_broker_url
from .core.exceptions import (
    BusyError,
    ConfigError,
    ConnectError,
    DecodeError,
    DisconnectError,
    DuplicateActivityError,
    MotionSenseException,
    NoDataError,
    PublishError,
    SaveError,
    SubscribeError,
    ValidationError,
)
from .core.sample_parser import decode_sample, encode_sample
from .core.telemetry_client import (
    ConnectionState,
    ConnectResult,
    FallbackReason,
    TelemetryClient,
)
from .models import BrokerConfig, SensorSample, Vector3
from .services import JsonFileSink, RecordingController, RecordingState, SampleWindow

__version__ = "1.0.0"

__all__ = [
    "BrokerConfig",
    "SensorSample",
    "Vector3",
    "TelemetryClient",
    "ConnectionState",
    "ConnectResult",
    "FallbackReason",
    "RecordingController",
    "RecordingState",
    "SampleWindow",
    "JsonFileSink",
    "decode_sample",
    "encode_sample",
    "load_broker_config",
    "parse_broker_url",
    "MotionSenseException",
    "ConfigError",
    "BusyError",
    "ConnectError",
    "SubscribeError",
    "PublishError",
    "DisconnectError",
    "DecodeError",
    "ValidationError",
    "DuplicateActivityError",
    "NoDataError",
    "SaveError",
]

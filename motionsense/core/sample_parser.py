"""Sensor payload parser for MotionSense.

Wire payloads are JSON objects of the form::

    {"acceleration": {"x": .., "y": .., "z": ..},
     "gyroscope": {"x": .., "y": .., "z": ..},
     "timestamp": 1700000000000}

Every axis must be a finite number and the timestamp an integral epoch
millisecond value. Unknown keys are ignored.
"""

from __future__ import annotations

import json
import logging
import math
from typing import Any, Union

import voluptuous as vol

from ..const import AXES, KEY_ACCELERATION, KEY_GYROSCOPE, KEY_TIMESTAMP
from ..models.sensor_data import SensorSample, Vector3
from .exceptions import DecodeError

_LOGGER = logging.getLogger(__name__)

RawPayload = Union[bytes, bytearray, memoryview, str]


def _finite_number(value: Any) -> float:
    # bool is an int subclass and must not pass as a reading
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise vol.Invalid("expected a number")
    try:
        number = float(value)
    except OverflowError as exc:
        raise vol.Invalid("number out of range") from exc
    if not math.isfinite(number):
        raise vol.Invalid("expected a finite number")
    return number


def _epoch_millis(value: Any) -> int:
    number = _finite_number(value)
    if not number.is_integer():
        raise vol.Invalid("expected integral epoch milliseconds")
    return int(number)


_VECTOR_SCHEMA = vol.Schema(
    {vol.Required(axis): _finite_number for axis in AXES},
    extra=vol.ALLOW_EXTRA,
)

SAMPLE_SCHEMA = vol.Schema(
    {
        vol.Required(KEY_ACCELERATION): _VECTOR_SCHEMA,
        vol.Required(KEY_GYROSCOPE): _VECTOR_SCHEMA,
        vol.Required(KEY_TIMESTAMP): _epoch_millis,
    },
    extra=vol.ALLOW_EXTRA,
)


def decode_sample(raw: RawPayload) -> SensorSample:
    """Decode one wire payload into a SensorSample.

    Args:
        raw: Payload bytes or text

    Returns:
        Decoded sample

    Raises:
        DecodeError: If the payload is not well-formed JSON, or a required
            field is missing or not numeric
    """
    if isinstance(raw, (bytes, bytearray, memoryview)):
        try:
            text = bytes(raw).decode("utf-8")
        except UnicodeDecodeError as exc:
            raise DecodeError(f"Payload is not UTF-8: {exc}") from exc
    elif isinstance(raw, str):
        text = raw
    else:
        raise DecodeError(f"Unsupported payload type {type(raw).__name__}")

    if not text.strip():
        raise DecodeError("Empty payload")

    try:
        document = json.loads(text)
    except ValueError as exc:
        raise DecodeError(f"Malformed JSON: {exc}") from exc

    if not isinstance(document, dict):
        raise DecodeError(f"Expected JSON object, got {type(document).__name__}")

    try:
        data = SAMPLE_SCHEMA(document)
    except vol.Invalid as exc:
        raise DecodeError(f"Invalid sample: {exc}") from exc

    acc = data[KEY_ACCELERATION]
    gyro = data[KEY_GYROSCOPE]
    return SensorSample(
        acceleration=Vector3(acc["x"], acc["y"], acc["z"]),
        gyroscope=Vector3(gyro["x"], gyro["y"], gyro["z"]),
        timestamp=data[KEY_TIMESTAMP],
    )


def encode_sample(sample: SensorSample) -> bytes:
    """Encode a SensorSample into the wire format."""
    return json.dumps(sample.as_dict(), separators=(",", ":")).encode("utf-8")

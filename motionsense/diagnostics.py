"""Diagnostics support for MotionSense."""

from __future__ import annotations

from typing import Any, Mapping, Optional

from .const import CONF_PASSWORD, CONF_USERNAME
from .core.telemetry_client import TelemetryClient
from .services.recording import RecordingController

TO_REDACT = {CONF_PASSWORD, CONF_USERNAME, "token", "secret"}
REDACTED = "**REDACTED**"


def redact_data(data: Mapping[str, Any], to_redact=TO_REDACT) -> dict[str, Any]:
    """Return a copy of ``data`` with sensitive values masked, recursively."""
    redacted: dict[str, Any] = {}
    for key, value in data.items():
        if key in to_redact and value is not None:
            redacted[key] = REDACTED
        elif isinstance(value, Mapping):
            redacted[key] = redact_data(value, to_redact)
        else:
            redacted[key] = value
    return redacted


def get_diagnostics(
    client: TelemetryClient, controller: Optional[RecordingController] = None
) -> dict[str, Any]:
    """Return a redacted snapshot of the ingestion state."""
    config = client.config
    diagnostics_data: dict[str, Any] = {
        "config": redact_data(config.as_dict()) if config else None,
        "telemetry": {
            "state": client.state.value,
            "simulated": client.simulated,
            "fallback_reason": client.fallback_reason.value if client.fallback_reason else None,
            "received_count": client.received_count,
            "decode_error_count": client.decode_error_count,
        },
    }

    if controller is not None:
        status = controller.status()
        diagnostics_data["recording"] = {
            "state": status.state.value,
            "activity": status.activity,
            "selected_activity": status.selected_activity,
            "activities": list(controller.activities),
            "total_collected": status.total_collected,
            "pending_samples": status.pending_samples,
            "window_size": len(status.window),
        }
    else:
        diagnostics_data["recording"] = {"status": "not_initialized"}

    return diagnostics_data

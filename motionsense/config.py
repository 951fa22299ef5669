"""Configuration loading and validation for MotionSense."""

from __future__ import annotations

import logging
import os
import time
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional
from urllib.parse import urlsplit

import voluptuous as vol

from .const import (
    CONF_ALIASES,
    CONF_BROKER_URL,
    CONF_CLIENT_ID,
    CONF_PASSWORD,
    CONF_TOPIC,
    CONF_USERNAME,
    DEFAULT_TOPIC,
    ENV_BROKER_URL,
    ENV_CLIENT_ID,
    ENV_PASSWORD,
    ENV_TOPIC,
    ENV_USERNAME,
    MQTT_CLIENT_ID_FORMAT,
    MQTT_DEFAULT_PORTS,
    MQTT_DEFAULT_WS_PATH,
    MQTT_TLS_SCHEMES,
    MQTT_WEBSOCKET_SCHEMES,
)
from .core.exceptions import ConfigError
from .models.broker_config import BrokerConfig

_LOGGER = logging.getLogger(__name__)


def default_client_id() -> str:
    """Return a client identifier unique to this process start."""
    return MQTT_CLIENT_ID_FORMAT.format(timestamp=int(time.time() * 1000))


def _non_blank(value: Any) -> str:
    if not isinstance(value, str) or not value.strip():
        raise vol.Invalid("must be a non-empty string")
    return value.strip()


def _broker_url(value: Any) -> str:
    value = _non_blank(value)
    try:
        parse_broker_url(value)
    except ConfigError as exc:
        raise vol.Invalid(str(exc)) from exc
    return value


def _optional_str(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    if not isinstance(value, str):
        raise vol.Invalid("must be a string")
    return value


BROKER_CONFIG_SCHEMA = vol.Schema(
    {
        vol.Required(CONF_BROKER_URL): _broker_url,
        vol.Required(CONF_TOPIC): _non_blank,
        vol.Optional(CONF_CLIENT_ID): vol.Any(None, _non_blank),
        vol.Optional(CONF_USERNAME): _optional_str,
        vol.Optional(CONF_PASSWORD): _optional_str,
    }
)


@dataclass(frozen=True)
class BrokerEndpoint:
    """Network endpoint derived from a broker URL."""

    host: str
    port: int
    transport: str
    tls: bool
    path: Optional[str] = None


def parse_broker_url(url: str) -> BrokerEndpoint:
    """Split a broker URL into the pieces paho needs.

    Raises:
        ConfigError: If the scheme is unsupported or the host is missing
    """
    try:
        parts = urlsplit(url)
        port = parts.port
    except ValueError as exc:
        raise ConfigError(f"Invalid broker URL '{url}': {exc}") from exc

    scheme = parts.scheme.lower()
    if scheme not in MQTT_DEFAULT_PORTS:
        raise ConfigError(f"Unsupported broker URL scheme '{parts.scheme}' in '{url}'")
    if not parts.hostname:
        raise ConfigError(f"Broker URL '{url}' has no host")

    websocket = scheme in MQTT_WEBSOCKET_SCHEMES
    return BrokerEndpoint(
        host=parts.hostname,
        port=port or MQTT_DEFAULT_PORTS[scheme],
        transport="websockets" if websocket else "tcp",
        tls=scheme in MQTT_TLS_SCHEMES,
        path=(parts.path or MQTT_DEFAULT_WS_PATH) if websocket else None,
    )


def validate_broker_config(data: Mapping[str, Any]) -> Dict[str, Any]:
    """Validate raw configuration and return normalized BrokerConfig kwargs.

    Args:
        data: Mapping with snake_case or camelCase keys

    Returns:
        Dictionary suitable for ``BrokerConfig(**result)``

    Raises:
        ConfigError: If required fields are missing or malformed
    """
    normalized = {CONF_ALIASES.get(key, key): value for key, value in data.items()}
    try:
        validated = BROKER_CONFIG_SCHEMA(normalized)
    except vol.Invalid as exc:
        raise ConfigError(f"Invalid broker configuration: {exc}") from exc

    validated[CONF_CLIENT_ID] = validated.get(CONF_CLIENT_ID) or default_client_id()
    validated.setdefault(CONF_USERNAME, None)
    validated.setdefault(CONF_PASSWORD, None)
    return validated


def ensure_valid(config: BrokerConfig) -> BrokerConfig:
    """Re-validate a BrokerConfig built directly through its constructor."""
    validated = validate_broker_config(config.as_dict())
    return BrokerConfig(**validated)


def load_broker_config(environ: Optional[Mapping[str, str]] = None) -> Optional[BrokerConfig]:
    """Build a BrokerConfig from environment variables.

    Returns None when no broker URL is set, which selects simulation.
    """
    env = os.environ if environ is None else environ
    broker_url = env.get(ENV_BROKER_URL, "").strip()
    if not broker_url:
        _LOGGER.info(f"{ENV_BROKER_URL} not set, no broker configured")
        return None

    return BrokerConfig.from_dict(
        {
            CONF_BROKER_URL: broker_url,
            CONF_TOPIC: env.get(ENV_TOPIC) or DEFAULT_TOPIC,
            CONF_CLIENT_ID: env.get(ENV_CLIENT_ID),
            CONF_USERNAME: env.get(ENV_USERNAME),
            CONF_PASSWORD: env.get(ENV_PASSWORD),
        }
    )

# motionsense/const.py

import logging
from typing import Final

DOMAIN: Final = "motionsense"
_LOGGER = logging.getLogger(__package__)

# --- MQTT Constants ---
DEFAULT_TOPIC: Final = "esp32/sensor_data"
MQTT_CLIENT_ID_FORMAT: Final = "motionsense_{timestamp}"
MQTT_KEEPALIVE: Final = 20
MQTT_QOS: Final = 0

MQTT_DEFAULT_PORTS: Final = {
    "mqtt": 1883,
    "tcp": 1883,
    "mqtts": 8883,
    "ssl": 8883,
    "ws": 80,
    "wss": 443,
}
MQTT_TLS_SCHEMES: Final = frozenset({"mqtts", "ssl", "wss"})
MQTT_WEBSOCKET_SCHEMES: Final = frozenset({"ws", "wss"})
MQTT_DEFAULT_WS_PATH: Final = "/mqtt"

# --- Timeouts (seconds) ---
CONNECT_TIMEOUT: Final = 20
DISCONNECT_TIMEOUT: Final = 5
RECONNECT_MIN_DELAY: Final = 1
RECONNECT_MAX_DELAY: Final = 60

# --- Simulation ---
SIMULATION_INTERVAL_MS: Final = 1000
SIMULATION_RANGE: Final = (-10.0, 10.0)

# --- Recording ---
WINDOW_SIZE: Final = 20
DEFAULT_ACTIVITIES: Final = ("standing", "sitting", "walking")

# --- Configuration Keys ---
CONF_BROKER_URL: Final = "broker_url"
CONF_CLIENT_ID: Final = "client_id"
CONF_TOPIC: Final = "topic"
CONF_USERNAME: Final = "username"
CONF_PASSWORD: Final = "password"

# camelCase aliases used by the UI layer
CONF_ALIASES: Final = {
    "brokerUrl": CONF_BROKER_URL,
    "brokerURL": CONF_BROKER_URL,
    "clientId": CONF_CLIENT_ID,
    "clientID": CONF_CLIENT_ID,
}

# --- Environment ---
ENV_BROKER_URL: Final = "MOTIONSENSE_BROKER_URL"
ENV_TOPIC: Final = "MOTIONSENSE_TOPIC"
ENV_CLIENT_ID: Final = "MOTIONSENSE_CLIENT_ID"
ENV_USERNAME: Final = "MOTIONSENSE_USERNAME"
ENV_PASSWORD: Final = "MOTIONSENSE_PASSWORD"

# --- Wire format keys ---
KEY_ACCELERATION: Final = "acceleration"
KEY_GYROSCOPE: Final = "gyroscope"
KEY_TIMESTAMP: Final = "timestamp"
AXES: Final = ("x", "y", "z")

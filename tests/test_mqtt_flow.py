"""Tests for the MQTT transport and message handling."""

from __future__ import annotations

import asyncio
from unittest.mock import MagicMock, patch

import paho.mqtt.client as paho
import pytest

from motionsense.core.exceptions import (
    ConfigError,
    ConnectError,
    PublishError,
    SubscribeError,
)
from motionsense.core.mqtt_client import MqttTransport
from motionsense.models.broker_config import BrokerConfig

from conftest import TEST_TOPIC, make_payload


def _reason(failure: bool = False) -> MagicMock:
    reason = MagicMock()
    reason.is_failure = failure
    reason.__str__.return_value = "Not authorized" if failure else "Success"
    return reason


def _message(topic: str, payload: bytes) -> MagicMock:
    msg = MagicMock()
    msg.topic = topic
    msg.payload = payload
    return msg


def _wire_broker(transport: MqttTransport, mock_client: MagicMock, *, accept=True, grant=True) -> None:
    """Make the mocked paho client answer CONNACK and SUBACK."""
    mock_client.connect = MagicMock(return_value=0)
    mock_client.loop_start.side_effect = lambda: transport._on_connect(
        mock_client, None, {}, _reason(failure=not accept), None
    )

    def _subscribe(topic, qos):
        transport._on_subscribe(mock_client, None, 1, [_reason(failure=not grant)], None)
        return (paho.MQTT_ERR_SUCCESS, 1)

    mock_client.subscribe.side_effect = _subscribe
    mock_client.unsubscribe.return_value = (paho.MQTT_ERR_SUCCESS, 2)


async def _settle() -> None:
    await asyncio.sleep(0.01)


@pytest.mark.asyncio
async def test_mqtt_connect_success(broker_config):
    """Test successful MQTT connection and subscription."""
    with patch("paho.mqtt.client.Client") as mock_client_class:
        mock_client = MagicMock()
        mock_client_class.return_value = mock_client
        transport = MqttTransport(connect_timeout=1)
        transport.configure(broker_config)
        _wire_broker(transport, mock_client)
        on_connected = MagicMock()

        await transport.connect(on_connected=on_connected)

        mock_client.connect.assert_called_once_with("broker.test", 1883, 20)
        mock_client.subscribe.assert_called_once_with(TEST_TOPIC, 0)
        on_connected.assert_called_once_with()
        assert transport.is_connected
        assert mock_client_class.call_args.kwargs["client_id"] == "motionsense_test"
        assert mock_client_class.call_args.kwargs["transport"] == "tcp"
        mock_client.tls_set.assert_not_called()


@pytest.mark.asyncio
async def test_mqtt_websocket_tls_and_credentials():
    """Test wss URLs configure websockets, TLS and credentials."""
    config = BrokerConfig(
        broker_url="wss://broker.emqx.io:8084/mqtt",
        client_id="motionsense_ws",
        topic=TEST_TOPIC,
        username="device",
        password="secret",
    )
    with patch("paho.mqtt.client.Client") as mock_client_class:
        mock_client = MagicMock()
        mock_client_class.return_value = mock_client
        transport = MqttTransport(connect_timeout=1)
        transport.configure(config)
        _wire_broker(transport, mock_client)

        await transport.connect()

        assert mock_client_class.call_args.kwargs["transport"] == "websockets"
        mock_client.ws_set_options.assert_called_once_with(path="/mqtt")
        mock_client.tls_set.assert_called_once()
        mock_client.username_pw_set.assert_called_once_with(username="device", password="secret")
        mock_client.connect.assert_called_once_with("broker.emqx.io", 8084, 20)


@pytest.mark.asyncio
async def test_mqtt_connect_refused(broker_config):
    """Test a refused CONNACK raises ConnectError and stops the loop."""
    with patch("paho.mqtt.client.Client") as mock_client_class:
        mock_client = MagicMock()
        mock_client_class.return_value = mock_client
        transport = MqttTransport(connect_timeout=1)
        transport.configure(broker_config)
        _wire_broker(transport, mock_client, accept=False)

        with pytest.raises(ConnectError):
            await transport.connect()

        mock_client.disconnect.assert_called_once()
        mock_client.loop_stop.assert_called_once()
        mock_client.subscribe.assert_not_called()
        assert not transport.is_connected


@pytest.mark.asyncio
async def test_mqtt_broker_unreachable(broker_config):
    """Test socket errors become ConnectError."""
    with patch("paho.mqtt.client.Client") as mock_client_class:
        mock_client = MagicMock()
        mock_client_class.return_value = mock_client
        mock_client.connect.side_effect = OSError("Name or service not known")
        transport = MqttTransport(connect_timeout=1)
        transport.configure(broker_config)

        with pytest.raises(ConnectError) as err:
            await transport.connect()

        assert "Name or service not known" in err.value.reason
        mock_client.loop_start.assert_not_called()


@pytest.mark.asyncio
async def test_mqtt_connect_timeout(broker_config):
    """Test a missing CONNACK times out."""
    with patch("paho.mqtt.client.Client") as mock_client_class:
        mock_client = MagicMock()
        mock_client_class.return_value = mock_client
        mock_client.connect.return_value = 0
        transport = MqttTransport(connect_timeout=0.05)
        transport.configure(broker_config)

        with pytest.raises(ConnectError):
            await transport.connect()

        mock_client.disconnect.assert_called_once()
        mock_client.loop_stop.assert_called_once()
        assert not transport.is_connected


@pytest.mark.asyncio
async def test_mqtt_failed_connect_teardown_tolerates_errors(broker_config):
    """Test a failing socket close still stops the loop."""
    with patch("paho.mqtt.client.Client") as mock_client_class:
        mock_client = MagicMock()
        mock_client_class.return_value = mock_client
        mock_client.connect.return_value = 0
        mock_client.disconnect.side_effect = OSError("socket already closed")
        transport = MqttTransport(connect_timeout=0.05)
        transport.configure(broker_config)

        with pytest.raises(ConnectError):
            await transport.connect()

        mock_client.loop_stop.assert_called_once()


@pytest.mark.asyncio
async def test_mqtt_subscribe_rejected_leaves_connection_open(broker_config):
    """Test SUBACK failure raises SubscribeError without closing."""
    with patch("paho.mqtt.client.Client") as mock_client_class:
        mock_client = MagicMock()
        mock_client_class.return_value = mock_client
        transport = MqttTransport(connect_timeout=1)
        transport.configure(broker_config)
        _wire_broker(transport, mock_client, grant=False)

        with pytest.raises(SubscribeError) as err:
            await transport.connect()

        assert err.value.topic == TEST_TOPIC
        assert not transport.is_connected
        mock_client.loop_stop.assert_not_called()

        await transport.disconnect()
        mock_client.disconnect.assert_called_once()
        mock_client.loop_stop.assert_called_once()


@pytest.mark.asyncio
async def test_mqtt_messages_delivered_in_order(broker_config):
    """Test on_message hands payloads to the handler in arrival order."""
    with patch("paho.mqtt.client.Client") as mock_client_class:
        mock_client = MagicMock()
        mock_client_class.return_value = mock_client
        transport = MqttTransport(connect_timeout=1)
        transport.configure(broker_config)
        _wire_broker(transport, mock_client)
        received = []
        transport.on_message(lambda topic, payload: received.append(payload))
        await transport.connect()

        payloads = [make_payload(timestamp=ts) for ts in (3, 1, 2)]
        for payload in payloads:
            transport._on_message(mock_client, None, _message(TEST_TOPIC, payload))
        transport._on_message(mock_client, None, _message("other/topic", b"{}"))
        await _settle()

        assert received == payloads


@pytest.mark.asyncio
async def test_mqtt_wildcard_topic_filter():
    """Test wildcard subscriptions accept matching topics."""
    config = BrokerConfig(broker_url="mqtt://broker.test", client_id="c", topic="esp32/+/imu")
    with patch("paho.mqtt.client.Client") as mock_client_class:
        mock_client = MagicMock()
        mock_client_class.return_value = mock_client
        transport = MqttTransport(connect_timeout=1)
        transport.configure(config)
        _wire_broker(transport, mock_client)
        received = []
        transport.on_message(lambda topic, payload: received.append(topic))
        await transport.connect()

        transport._on_message(mock_client, None, _message("esp32/dev1/imu", b"{}"))
        transport._on_message(mock_client, None, _message("esp32/dev1/temp", b"{}"))
        await _settle()

        assert received == ["esp32/dev1/imu"]


@pytest.mark.asyncio
async def test_mqtt_replacing_handler(broker_config):
    """Test only the latest handler receives messages."""
    with patch("paho.mqtt.client.Client") as mock_client_class:
        mock_client = MagicMock()
        mock_client_class.return_value = mock_client
        transport = MqttTransport(connect_timeout=1)
        transport.configure(broker_config)
        _wire_broker(transport, mock_client)
        first, second = [], []
        transport.on_message(lambda topic, payload: first.append(payload))
        transport.on_message(lambda topic, payload: second.append(payload))
        await transport.connect()

        transport._on_message(mock_client, None, _message(TEST_TOPIC, b"{}"))
        await _settle()

        assert first == []
        assert second == [b"{}"]


@pytest.mark.asyncio
async def test_mqtt_disconnect_cleanup(broker_config):
    """Test MQTT disconnect unsubscribes, stops and silences delivery."""
    with patch("paho.mqtt.client.Client") as mock_client_class:
        mock_client = MagicMock()
        mock_client_class.return_value = mock_client
        transport = MqttTransport(connect_timeout=1)
        transport.configure(broker_config)
        _wire_broker(transport, mock_client)
        received = []
        transport.on_message(lambda topic, payload: received.append(payload))
        await transport.connect()

        await transport.disconnect()
        transport._on_message(mock_client, None, _message(TEST_TOPIC, b"{}"))
        await _settle()

        mock_client.unsubscribe.assert_called_once_with(TEST_TOPIC)
        mock_client.disconnect.assert_called_once()
        mock_client.loop_stop.assert_called_once()
        assert received == []
        assert not transport.is_connected

        # second call is a no-op
        await transport.disconnect()
        mock_client.disconnect.assert_called_once()


@pytest.mark.asyncio
async def test_mqtt_disconnect_when_never_connected(broker_config):
    transport = MqttTransport()
    transport.configure(broker_config)
    await transport.disconnect()
    assert not transport.is_connected


@pytest.mark.asyncio
async def test_mqtt_resubscribes_after_reconnect(broker_config):
    """Test a broker-initiated reconnect renews the subscription."""
    with patch("paho.mqtt.client.Client") as mock_client_class:
        mock_client = MagicMock()
        mock_client_class.return_value = mock_client
        transport = MqttTransport(connect_timeout=1)
        transport.configure(broker_config)
        _wire_broker(transport, mock_client)
        await transport.connect()

        transport._on_disconnect(mock_client, None, None, _reason(failure=True), None)
        await _settle()
        transport._on_connect(mock_client, None, {}, _reason(), None)
        await _settle()

        assert mock_client.subscribe.call_count == 2
        assert transport.is_connected


@pytest.mark.asyncio
async def test_mqtt_publish(broker_config):
    """Test publish success and failure paths."""
    with patch("paho.mqtt.client.Client") as mock_client_class:
        mock_client = MagicMock()
        mock_client_class.return_value = mock_client
        transport = MqttTransport(connect_timeout=1)
        transport.configure(broker_config)

        with pytest.raises(PublishError):
            await transport.publish("esp32/commands", b"{}")

        _wire_broker(transport, mock_client)
        await transport.connect()

        mock_client.publish.return_value = MagicMock(rc=paho.MQTT_ERR_SUCCESS, mid=5)
        await transport.publish("esp32/commands", b"{}")
        mock_client.publish.assert_called_once_with("esp32/commands", payload=b"{}", qos=0)

        mock_client.publish.return_value = MagicMock(rc=paho.MQTT_ERR_NO_CONN, mid=6)
        with pytest.raises(PublishError):
            await transport.publish("esp32/commands", b"{}")


@pytest.mark.asyncio
async def test_mqtt_requires_configuration(broker_config):
    """Test configure validation."""
    transport = MqttTransport()
    with pytest.raises(ConfigError):
        await transport.connect()
    with pytest.raises(ConfigError):
        transport.configure(None)
    with pytest.raises(ConfigError):
        transport.configure(BrokerConfig(broker_url="", client_id="c", topic=TEST_TOPIC))
    with pytest.raises(ConfigError):
        transport.configure(BrokerConfig(broker_url="mqtt://broker.test", client_id="c", topic=" "))

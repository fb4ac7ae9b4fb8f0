import pytest

from moltstream.config.schema import GatewayConfig
from moltstream.gateway.factory import create_gateway_client
from moltstream.gateway.relay_client import RelayGatewayClient
from moltstream.gateway.socket_client import SocketGatewayClient
from moltstream.utils.exceptions import ConfigError


def test_socket_transport_builds_socket_client(device_identity):
    config = GatewayConfig(url="ws://gw:1", token="tok", session_key="work", handshake_timeout_s=3)
    client = create_gateway_client(config, device_identity)
    assert isinstance(client, SocketGatewayClient)
    assert client.session_key == "work"
    assert client.handshake_timeout == 3
    assert client.is_connected() is False


def test_socket_transport_requires_token_and_identity(device_identity):
    with pytest.raises(ConfigError):
        create_gateway_client(GatewayConfig(token=""), device_identity)
    with pytest.raises(ConfigError):
        create_gateway_client(GatewayConfig(token="tok"), None)


def test_relay_transport_needs_no_identity():
    config = GatewayConfig(transport="relay", token="")
    config.relay.command = "my-agent"
    client = create_gateway_client(config)
    assert isinstance(client, RelayGatewayClient)
    assert client.command == "my-agent"

"""Gateway clients: direct socket and subprocess relay transports."""

from moltstream.gateway.base import ConnectionState, GatewayClient
from moltstream.gateway.factory import create_gateway_client

__all__ = ["ConnectionState", "GatewayClient", "create_gateway_client"]

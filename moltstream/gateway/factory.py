"""Transport selection: one gateway client variant per deployment mode."""

from __future__ import annotations

from moltstream.config.schema import GatewayConfig
from moltstream.gateway.base import GatewayClient
from moltstream.gateway.relay_client import RelayGatewayClient
from moltstream.gateway.socket_client import SocketGatewayClient
from moltstream.infra.device_identity import DeviceIdentity
from moltstream.utils.exceptions import ConfigError


def create_gateway_client(config: GatewayConfig, identity: DeviceIdentity | None = None) -> GatewayClient:
    """Build the client for `config.transport`. The socket transport needs identity and token."""
    if config.transport == "relay":
        return RelayGatewayClient(
            command=config.relay.command,
            session_id=config.relay.session_id,
            timeout=config.relay.timeout_s,
        )
    if not config.token:
        raise ConfigError("gateway token is empty (set OPENCLAW_TOKEN or gateway.token)")
    if identity is None:
        raise ConfigError("socket transport requires a device identity")
    return SocketGatewayClient(
        url=config.url,
        token=config.token,
        identity=identity,
        session_key=config.session_key,
        client_id=config.client_id,
        client_mode=config.client_mode,
        role=config.role,
        scopes=config.scopes,
        handshake_timeout=config.handshake_timeout_s,
    )

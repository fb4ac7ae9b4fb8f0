"""Device auth payload and connect params for the gateway handshake (OpenClaw-aligned)."""

from __future__ import annotations

import sys
from typing import Any

from moltstream import __version__
from moltstream.infra.device_identity import DeviceIdentity

PROTOCOL_VERSION = 3
PAYLOAD_VERSION = "v2"


def build_device_auth_payload(
    *,
    device_id: str,
    client_id: str,
    client_mode: str,
    role: str,
    scopes: list[str],
    signed_at_ms: int,
    token: str | None,
    nonce: str,
) -> str:
    """Build canonical payload string the gateway verifies. Field order is fixed."""
    parts = [
        PAYLOAD_VERSION,
        device_id,
        client_id,
        client_mode,
        role,
        ",".join(scopes),
        str(signed_at_ms),
        token or "",
        nonce,
    ]
    return "|".join(parts)


def build_connect_params(
    *,
    identity: DeviceIdentity,
    token: str,
    nonce: str,
    signed_at_ms: int,
    client_id: str,
    client_mode: str,
    role: str,
    scopes: list[str],
) -> dict[str, Any]:
    """Signed `connect` request params. Only the public key and signature cross the wire."""
    payload = build_device_auth_payload(
        device_id=identity.device_id,
        client_id=client_id,
        client_mode=client_mode,
        role=role,
        scopes=scopes,
        signed_at_ms=signed_at_ms,
        token=token,
        nonce=nonce,
    )
    return {
        "minProtocol": PROTOCOL_VERSION,
        "maxProtocol": PROTOCOL_VERSION,
        "client": {
            "id": client_id,
            "version": __version__,
            "platform": sys.platform,
            "mode": client_mode,
        },
        "role": role,
        "scopes": list(scopes),
        "caps": [],
        "auth": {"token": token},
        "userAgent": f"moltstream/{__version__}",
        "device": {
            "id": identity.device_id,
            "publicKey": identity.public_key_base64url,
            "signature": identity.sign(payload),
            "signedAt": signed_at_ms,
            "nonce": nonce,
        },
    }

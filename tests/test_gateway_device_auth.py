from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PublicKey

from moltstream.gateway.device_auth import build_connect_params, build_device_auth_payload
from moltstream.infra.device_identity import b64url_decode


def test_payload_field_order_is_fixed():
    payload = build_device_auth_payload(
        device_id="dev",
        client_id="cli",
        client_mode="cli",
        role="operator",
        scopes=["operator.read", "operator.write"],
        signed_at_ms=123,
        token="tok",
        nonce="n_1",
    )
    assert payload == "v2|dev|cli|cli|operator|operator.read,operator.write|123|tok|n_1"


def test_missing_token_signs_empty_field():
    payload = build_device_auth_payload(
        device_id="dev",
        client_id="cli",
        client_mode="cli",
        role="operator",
        scopes=[],
        signed_at_ms=1,
        token=None,
        nonce="n",
    )
    assert payload == "v2|dev|cli|cli|operator||1||n"


def test_connect_params_carry_verifiable_signature(device_identity):
    params = build_connect_params(
        identity=device_identity,
        token="tok",
        nonce="n_1",
        signed_at_ms=42,
        client_id="cli",
        client_mode="cli",
        role="operator",
        scopes=["operator.write"],
    )
    assert params["client"]["id"] == "cli"
    assert params["role"] == "operator"
    assert params["scopes"] == ["operator.write"]
    device = params["device"]
    assert set(device) == {"id", "publicKey", "signature", "signedAt", "nonce"}
    assert "privateKeyPem" not in str(params)

    expected = build_device_auth_payload(
        device_id=device_identity.device_id,
        client_id="cli",
        client_mode="cli",
        role="operator",
        scopes=["operator.write"],
        signed_at_ms=42,
        token="tok",
        nonce="n_1",
    )
    key = Ed25519PublicKey.from_public_bytes(b64url_decode(device["publicKey"]))
    key.verify(b64url_decode(device["signature"]), expected.encode("utf-8"))

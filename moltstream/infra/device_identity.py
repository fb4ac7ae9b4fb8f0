"""Device identity: Ed25519 keypair, device id derivation, payload signing.

Aligned with OpenClaw device-identity: deviceId = SHA256(publicKey raw),
sign payload with private key, publish public key as base64url raw.
The identity is loaded once at startup and passed to the gateway client.
"""

from __future__ import annotations

import base64
import hashlib
import json
from dataclasses import dataclass, field
from pathlib import Path

from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey, Ed25519PublicKey
from cryptography.hazmat.primitives.serialization import (
    Encoding,
    NoEncryption,
    PrivateFormat,
    PublicFormat,
    load_pem_private_key,
)
from loguru import logger

from moltstream.utils.exceptions import IdentityError
from moltstream.utils.helpers import ensure_dir, now_ms

DEFAULT_IDENTITY_PATH = Path.home() / ".openclaw" / "identity" / "device.json"


def b64url_encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def b64url_decode(text: str) -> bytes:
    pad = 4 - (len(text) % 4)
    if pad != 4:
        text += "=" * pad
    return base64.urlsafe_b64decode(text)


def derive_device_id(public_key: Ed25519PublicKey) -> str:
    raw = public_key.public_bytes(encoding=Encoding.Raw, format=PublicFormat.Raw)
    return hashlib.sha256(raw).hexdigest()


@dataclass(frozen=True)
class DeviceIdentity:
    """Device keypair plus its stable identifier. The private key never leaves the process."""

    device_id: str
    private_key: Ed25519PrivateKey = field(repr=False)
    created_at_ms: int = 0

    @property
    def public_key(self) -> Ed25519PublicKey:
        return self.private_key.public_key()

    @property
    def public_key_base64url(self) -> str:
        raw = self.public_key.public_bytes(encoding=Encoding.Raw, format=PublicFormat.Raw)
        return b64url_encode(raw)

    def public_key_pem(self) -> str:
        return self.public_key.public_bytes(
            encoding=Encoding.PEM, format=PublicFormat.SubjectPublicKeyInfo
        ).decode("utf-8")

    def private_key_pem(self) -> str:
        return self.private_key.private_bytes(
            encoding=Encoding.PEM,
            format=PrivateFormat.PKCS8,
            encryption_algorithm=NoEncryption(),
        ).decode("utf-8")

    def sign(self, payload: str) -> str:
        """Sign payload with the device key; return signature as base64url."""
        return b64url_encode(self.private_key.sign(payload.encode("utf-8")))


def generate_device_identity() -> DeviceIdentity:
    key = Ed25519PrivateKey.generate()
    return DeviceIdentity(
        device_id=derive_device_id(key.public_key()),
        private_key=key,
        created_at_ms=now_ms(),
    )


def load_device_identity(path: Path | None = None) -> DeviceIdentity:
    """Load the device identity file (OpenClaw layout)."""
    path = path or DEFAULT_IDENTITY_PATH
    if not path.exists():
        raise IdentityError(f"device identity not found: {path}", path=str(path))
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise IdentityError(f"failed to read device identity {path}: {e}", path=str(path)) from e
    if not isinstance(data, dict):
        raise IdentityError(f"device identity must be a JSON object: {path}", path=str(path))

    private_pem = str(data.get("privateKeyPem") or "")
    if not private_pem:
        raise IdentityError(f"device identity has no privateKeyPem: {path}", path=str(path))
    try:
        key = load_pem_private_key(private_pem.encode("utf-8"), password=None)
    except ValueError as e:
        raise IdentityError(f"invalid private key in {path}: {e}", path=str(path)) from e
    if not isinstance(key, Ed25519PrivateKey):
        raise IdentityError(f"not an Ed25519 private key: {path}", path=str(path))

    derived = derive_device_id(key.public_key())
    stored = str(data.get("deviceId") or "").strip()
    if stored and stored != derived:
        logger.warning("Device id in {} does not match its key; using derived id {}", path, derived[:12])
    created = data.get("createdAtMs")
    return DeviceIdentity(
        device_id=derived,
        private_key=key,
        created_at_ms=int(created) if isinstance(created, (int, float)) else 0,
    )


def save_device_identity(identity: DeviceIdentity, path: Path | None = None) -> Path:
    """Write identity in OpenClaw layout with owner-only permissions."""
    path = path or DEFAULT_IDENTITY_PATH
    ensure_dir(path.parent)
    payload = {
        "version": 1,
        "deviceId": identity.device_id,
        "publicKeyPem": identity.public_key_pem(),
        "privateKeyPem": identity.private_key_pem(),
        "createdAtMs": identity.created_at_ms,
    }
    path.write_text(json.dumps(payload, indent=2) + "\n", encoding="utf-8")
    try:
        path.chmod(0o600)
    except OSError:
        pass
    return path

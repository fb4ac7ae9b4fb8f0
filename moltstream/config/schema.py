"""Configuration schema using Pydantic.

Single data model and defaults, persisted at ~/.config/moltstream/config.json.
"""

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings


class RelayConfig(BaseModel):
    """Subprocess relay transport (external CLI)."""
    command: str = "openclaw"
    session_id: str = "moltstream"
    timeout_s: float = 600.0


class GatewayConfig(BaseModel):
    """Remote gateway connection."""
    url: str = "ws://127.0.0.1:18789"
    token: str = "${OPENCLAW_TOKEN}"  # Bearer token; ${VAR} is expanded from the environment
    transport: Literal["socket", "relay"] = "socket"
    session_key: str = "main"
    handshake_timeout_s: float = 10.0
    client_id: str = "cli"
    client_mode: str = "cli"
    role: str = "operator"
    scopes: list[str] = Field(default_factory=lambda: ["operator.read", "operator.write"])
    relay: RelayConfig = Field(default_factory=RelayConfig)


class SessionConfig(BaseModel):
    """Session log location and rotation."""
    directory: str = "~/.local/share/moltstream"
    max_size_bytes: int = 1024 * 1024 * 1024  # 1 GiB
    auto_archive: bool = True

    @property
    def directory_path(self) -> Path:
        return Path(self.directory).expanduser()


class IdentityConfig(BaseModel):
    """Device identity file used to sign the connect handshake."""
    path: str = "~/.openclaw/identity/device.json"

    @property
    def file_path(self) -> Path:
        return Path(self.path).expanduser()


class LoggingConfig(BaseModel):
    level: str = "INFO"  # file sink
    stderr_level: str = "WARNING"  # stderr is surfaced to the editor user
    file: bool = True


class Config(BaseSettings):
    """Root configuration for moltstream."""
    gateway: GatewayConfig = Field(default_factory=GatewayConfig)
    session: SessionConfig = Field(default_factory=SessionConfig)
    identity: IdentityConfig = Field(default_factory=IdentityConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @property
    def log_dir(self) -> Path:
        return self.session.directory_path / "logs"

    model_config = ConfigDict(
        env_prefix="MOLTSTREAM_",
        env_nested_delimiter="__",
    )

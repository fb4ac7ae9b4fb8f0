"""Load and expand the moltstream JSON config."""

import json
import os
import re
from pathlib import Path
from typing import Any, Callable

from pydantic import ValidationError

from moltstream.config.schema import Config
from moltstream.utils.exceptions import ConfigError

_ENV_REF = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")
_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")


def get_config_path() -> Path:
    return Path.home() / ".config" / "moltstream" / "config.json"


def load_config(config_path: Path | None = None) -> Config:
    """
    Read the config file, or use defaults when it does not exist.

    `${VAR}` references are expanded after validation, so the file may keep
    secrets such as the gateway token out of band.

    Raises:
        ConfigError: the file exists but is not a valid config object.
    """
    path = config_path or get_config_path()
    if not path.exists():
        return _expanded(Config())

    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
        if not isinstance(raw, dict):
            raise ValueError("top level must be a JSON object")
        cfg = Config.model_validate(convert_keys(raw))
    except (OSError, ValidationError, ValueError) as e:
        raise ConfigError(f"Invalid config {path}: {e}", path=str(path)) from e
    return _expanded(cfg)


def _expanded(cfg: Config) -> Config:
    return Config.model_validate(expand_env_refs(cfg.model_dump()))


def _expand_value(value: Any) -> Any:
    if isinstance(value, str):
        return _ENV_REF.sub(lambda m: os.environ.get(m.group(1), ""), value)
    return value


def expand_env_refs(data: Any) -> Any:
    """Replace ${NAME} in every string value with os.environ[NAME] (empty if unset)."""
    return _walk(data, values=_expand_value)


def convert_keys(data: Any) -> Any:
    return _walk(data, keys=camel_to_snake)


def _walk(
    data: Any,
    *,
    keys: Callable[[str], str] | None = None,
    values: Callable[[Any], Any] | None = None,
) -> Any:
    """Rebuild nested dicts/lists, renaming keys and/or mapping leaf values."""
    if isinstance(data, dict):
        return {
            (keys(k) if keys else k): _walk(v, keys=keys, values=values)
            for k, v in data.items()
        }
    if isinstance(data, list):
        return [_walk(item, keys=keys, values=values) for item in data]
    return values(data) if values else data


def camel_to_snake(name: str) -> str:
    return _CAMEL_BOUNDARY.sub("_", name).lower()


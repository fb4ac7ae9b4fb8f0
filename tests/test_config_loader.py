import json

import pytest

from moltstream.config.loader import (
    camel_to_snake,
    expand_env_refs,
    load_config,
)
from moltstream.utils.exceptions import ConfigError


def test_missing_file_yields_defaults(tmp_path, monkeypatch):
    monkeypatch.setenv("OPENCLAW_TOKEN", "from-env")
    cfg = load_config(tmp_path / "absent.json")
    assert cfg.gateway.url == "ws://127.0.0.1:18789"
    assert cfg.gateway.token == "from-env"
    assert cfg.gateway.transport == "socket"
    assert cfg.session.max_size_bytes == 1024 * 1024 * 1024
    assert cfg.session.auto_archive is True


def test_camel_case_file_is_loaded(tmp_path, monkeypatch):
    monkeypatch.delenv("OPENCLAW_TOKEN", raising=False)
    path = tmp_path / "config.json"
    path.write_text(
        json.dumps(
            {
                "gateway": {"url": "ws://gw:1", "token": "literal", "sessionKey": "work", "transport": "relay"},
                "session": {"directory": str(tmp_path / "s"), "maxSizeBytes": 2048, "autoArchive": False},
            }
        )
    )
    cfg = load_config(path)
    assert cfg.gateway.url == "ws://gw:1"
    assert cfg.gateway.token == "literal"
    assert cfg.gateway.session_key == "work"
    assert cfg.gateway.transport == "relay"
    assert cfg.session.max_size_bytes == 2048
    assert cfg.session.auto_archive is False
    assert cfg.session.directory_path == tmp_path / "s"
    assert cfg.log_dir == tmp_path / "s" / "logs"


def test_unset_env_reference_expands_to_empty(tmp_path, monkeypatch):
    monkeypatch.delenv("OPENCLAW_TOKEN", raising=False)
    assert load_config(tmp_path / "absent.json").gateway.token == ""


@pytest.mark.parametrize(
    "content",
    ["{not json", "[]", json.dumps({"gateway": {"transport": "carrier-pigeon"}})],
)
def test_invalid_file_raises_config_error(tmp_path, content):
    path = tmp_path / "config.json"
    path.write_text(content)
    with pytest.raises(ConfigError) as exc_info:
        load_config(path)
    assert exc_info.value.details["path"] == str(path)


def test_expand_env_refs_walks_nested_values(monkeypatch):
    monkeypatch.setenv("A_VAR", "a")
    assert expand_env_refs({"x": ["${A_VAR}-1", 2], "y": "${A_VAR}"}) == {"x": ["a-1", 2], "y": "a"}


def test_key_case_conversion():
    assert camel_to_snake("maxSizeBytes") == "max_size_bytes"
    assert camel_to_snake("handshakeTimeoutS") == "handshake_timeout_s"
    assert camel_to_snake("url") == "url"

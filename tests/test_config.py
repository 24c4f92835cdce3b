"""Tests for contactsync configuration loading and validation."""

from __future__ import annotations

from pathlib import Path

import pytest

from contactsync.config import (
    ConfigError,
    StoreBackend,
    SyncConfig,
    load_config,
    parse_config,
    resolve_env_vars,
)

pytestmark = pytest.mark.unit

FULL_TOML = """\
device = "laptop"

[remote]
base_url = "https://contacts.example.com/"
timeout_s = 5
connect_timeout_s = 2.5

[store]
backend = "memory"
db_name = "contacts_dev"

[sync]
max_concurrency = 4

[logging]
level = "debug"
format = "json"
log_root = "logs"
"""


def _write(tmp_path: Path, content: str) -> Path:
    path = tmp_path / "contactsync.toml"
    path.write_text(content)
    return path


def test_full_config(tmp_path: Path):
    config = load_config(_write(tmp_path, FULL_TOML))

    assert config.device == "laptop"
    assert config.remote.base_url == "https://contacts.example.com"
    assert config.remote.timeout_s == 5.0
    assert config.remote.connect_timeout_s == 2.5
    assert config.store.backend is StoreBackend.MEMORY
    assert config.store.db_name == "contacts_dev"
    assert config.sync.max_concurrency == 4
    assert config.logging.level == "DEBUG"
    assert config.logging.format == "json"
    assert config.logging.log_root == "logs"


def test_directory_path_resolves_default_filename(tmp_path: Path):
    _write(tmp_path, 'device = "phone"\n')
    assert load_config(tmp_path).device == "phone"


def test_empty_config_uses_defaults(tmp_path: Path):
    config = load_config(_write(tmp_path, ""))
    assert config == SyncConfig()
    assert config.remote.base_url == "https://daa.iict.ch"
    assert config.store.backend is StoreBackend.POSTGRES


def test_missing_file(tmp_path: Path):
    with pytest.raises(ConfigError, match="not found"):
        load_config(tmp_path / "nope.toml")


def test_invalid_toml(tmp_path: Path):
    with pytest.raises(ConfigError, match="Invalid TOML"):
        load_config(_write(tmp_path, "[remote\n"))


def test_env_vars_are_resolved(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("CONTACTS_API", "https://api.internal")
    config = parse_config({"remote": {"base_url": "${CONTACTS_API}"}})
    assert config.remote.base_url == "https://api.internal"


def test_missing_env_vars_are_reported_together(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.delenv("MISSING_ONE", raising=False)
    monkeypatch.delenv("MISSING_TWO", raising=False)
    with pytest.raises(ConfigError, match="MISSING_ONE, MISSING_TWO"):
        resolve_env_vars({"x": ["${MISSING_ONE}-${MISSING_TWO}"]})


@pytest.mark.parametrize(
    "data",
    [
        {"remote": {"base_url": "ftp://contacts"}},
        {"remote": {"base_url": ""}},
        {"remote": {"timeout_s": 0}},
        {"remote": {"timeout_s": "soon"}},
        {"store": {"backend": "sqlite"}},
        {"store": {"db_name": "  "}},
        {"sync": {"max_concurrency": 0}},
        {"sync": {"max_concurrency": "many"}},
        {"logging": {"format": "xml"}},
        {"remote": "https://contacts"},
        {"device": ""},
    ],
)
def test_invalid_values_are_rejected(data):
    with pytest.raises(ConfigError):
        parse_config(data)

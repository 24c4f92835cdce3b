"""contactsync configuration loading and validation.

Reads ``contactsync.toml``, resolves ``${VAR}`` references from the
environment and returns a validated :class:`SyncConfig`.
"""

from __future__ import annotations

import enum
import os
import re
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from contactsync.remote import DEFAULT_BASE_URL, DEFAULT_CONNECT_TIMEOUT_S, DEFAULT_TIMEOUT_S

CONFIG_FILENAME = "contactsync.toml"

# ${VAR_NAME} with alphanumeric + underscore names.
_ENV_VAR_PATTERN = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")


class ConfigError(Exception):
    """Raised when configuration is missing, malformed, or invalid."""


class StoreBackend(enum.StrEnum):
    """Where local contacts and the device token are kept."""

    POSTGRES = "postgres"
    MEMORY = "memory"


@dataclass
class RemoteConfig:
    """Contacts API settings from the [remote] section."""

    base_url: str = DEFAULT_BASE_URL
    timeout_s: float = DEFAULT_TIMEOUT_S
    connect_timeout_s: float = DEFAULT_CONNECT_TIMEOUT_S


@dataclass
class StoreConfig:
    """Local persistence settings from the [store] section."""

    backend: StoreBackend = StoreBackend.POSTGRES
    db_name: str = "contactsync"


@dataclass
class SyncSettings:
    """Reconciliation settings from the [sync] section."""

    max_concurrency: int = 1


@dataclass
class LoggingConfig:
    """Logging settings from the [logging] section."""

    level: str = "INFO"
    format: str = "text"  # "text" or "json"
    log_root: str | None = None


@dataclass
class SyncConfig:
    """Parsed and validated contactsync configuration."""

    device: str = "default"
    remote: RemoteConfig = field(default_factory=RemoteConfig)
    store: StoreConfig = field(default_factory=StoreConfig)
    sync: SyncSettings = field(default_factory=SyncSettings)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def resolve_env_vars(value: Any) -> Any:
    """Recursively resolve ``${VAR_NAME}`` references in config values.

    Walks dicts, lists and strings; other leaf values pass through.

    Raises
    ------
    ConfigError
        If a referenced environment variable is not set.
    """
    if isinstance(value, dict):
        return {k: resolve_env_vars(v) for k, v in value.items()}

    if isinstance(value, list):
        return [resolve_env_vars(item) for item in value]

    if isinstance(value, str):
        return _resolve_string(value)

    return value


def _resolve_string(s: str) -> str:
    """Replace all ``${VAR_NAME}`` occurrences in *s*, reporting every missing one."""
    missing: list[str] = []

    def _replace(match: re.Match) -> str:
        var_name = match.group(1)
        env_value = os.environ.get(var_name)
        if env_value is None:
            missing.append(var_name)
            return match.group(0)
        return env_value

    result = _ENV_VAR_PATTERN.sub(_replace, s)

    if missing:
        vars_str = ", ".join(missing)
        raise ConfigError(
            f"Unresolved environment variable(s) in config value: {vars_str} (original: {s!r})"
        )

    return result


def _section(data: dict[str, Any], name: str) -> dict[str, Any]:
    raw = data.get(name, {})
    if not isinstance(raw, dict):
        raise ConfigError(f"[{name}] must be a TOML table")
    return raw


def _positive_float(raw: Any, path: str) -> float:
    try:
        value = float(raw)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid {path}: {raw!r}. Must be a number.") from exc
    if value <= 0:
        raise ConfigError(f"Invalid {path}: {raw!r}. Must be positive.")
    return value


def _parse_remote(section: dict[str, Any]) -> RemoteConfig:
    base_url = section.get("base_url", DEFAULT_BASE_URL)
    if not isinstance(base_url, str) or not base_url.strip():
        raise ConfigError("remote.base_url must be a non-empty string")
    base_url = base_url.strip()
    if not base_url.startswith(("http://", "https://")):
        raise ConfigError(f"Invalid remote.base_url: {base_url!r}. Expected an http(s) URL.")
    return RemoteConfig(
        base_url=base_url.rstrip("/"),
        timeout_s=_positive_float(section.get("timeout_s", DEFAULT_TIMEOUT_S), "remote.timeout_s"),
        connect_timeout_s=_positive_float(
            section.get("connect_timeout_s", DEFAULT_CONNECT_TIMEOUT_S),
            "remote.connect_timeout_s",
        ),
    )


def _parse_store(section: dict[str, Any]) -> StoreConfig:
    raw_backend = str(section.get("backend", StoreBackend.POSTGRES.value)).strip().lower()
    try:
        backend = StoreBackend(raw_backend)
    except ValueError as exc:
        valid = ", ".join(b.value for b in StoreBackend)
        raise ConfigError(
            f"Invalid store.backend: {raw_backend!r}. Expected one of: {valid}."
        ) from exc
    db_name = str(section.get("db_name", "contactsync")).strip()
    if not db_name:
        raise ConfigError("store.db_name must be a non-empty string")
    return StoreConfig(backend=backend, db_name=db_name)


def _parse_sync(section: dict[str, Any]) -> SyncSettings:
    raw = section.get("max_concurrency", 1)
    try:
        max_concurrency = int(raw)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid sync.max_concurrency: {raw!r}. Must be an integer.") from exc
    if max_concurrency <= 0:
        raise ConfigError(
            f"Invalid sync.max_concurrency: {max_concurrency!r}. Must be a positive integer."
        )
    return SyncSettings(max_concurrency=max_concurrency)


def _parse_logging(section: dict[str, Any]) -> LoggingConfig:
    log_format = str(section.get("format", "text")).lower()
    if log_format not in ("text", "json"):
        raise ConfigError(f"Invalid logging.format: {log_format!r}. Expected 'text' or 'json'.")
    return LoggingConfig(
        level=str(section.get("level", "INFO")).upper(),
        format=log_format,
        log_root=section.get("log_root"),
    )


def parse_config(data: dict[str, Any]) -> SyncConfig:
    """Validate an already-parsed TOML document."""
    data = resolve_env_vars(data)

    device = data.get("device", "default")
    if not isinstance(device, str) or not device.strip():
        raise ConfigError("device must be a non-empty string")

    return SyncConfig(
        device=device.strip(),
        remote=_parse_remote(_section(data, "remote")),
        store=_parse_store(_section(data, "store")),
        sync=_parse_sync(_section(data, "sync")),
        logging=_parse_logging(_section(data, "logging")),
    )


def load_config(path: Path) -> SyncConfig:
    """Load and validate a config file.

    *path* may be the TOML file itself or a directory containing
    ``contactsync.toml``.

    Raises
    ------
    ConfigError
        If the file is missing, contains invalid TOML, or fails validation.
    """
    toml_path = path / CONFIG_FILENAME if path.is_dir() else path

    if not toml_path.exists():
        raise ConfigError(f"Config file not found: {toml_path}")

    try:
        data = tomllib.loads(toml_path.read_bytes().decode())
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"Invalid TOML in {toml_path}: {exc}") from exc

    return parse_config(data)

"""Configuration models and TOML loading.

Discovery order (later overrides earlier):
    1. Built-in defaults (Pydantic model defaults)
    2. Project-local config: ``./peerlink.toml``
    3. ``$PEERLINK_CONFIG`` environment variable (explicit path)
    4. Explicit ``path`` argument
    5. Programmatic overrides (passed to ``load_config``)

Example::

    [client]
    request_timeout = 5.0

    [[peers]]
    name = "calculator"
    command = "python"
    args = ["-m", "peerlink.servers.calculator"]
    env = { LOG_LEVEL = "DEBUG" }
"""

from __future__ import annotations

import os
import tomllib
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator

from peerlink import __version__
from peerlink.errors import ConfigError


class PeerConfig(BaseModel):
    """How to launch one peer process."""

    name: str
    command: str
    args: list[str] = Field(default_factory=list)
    env: dict[str, str] = Field(default_factory=dict)
    cwd: str | None = None

    @field_validator("name", "command")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            msg = "must not be empty"
            raise ValueError(msg)
        return value

    @property
    def command_line(self) -> list[str]:
        return [self.command, *self.args]


class ClientSettings(BaseModel):
    """Identity and timeouts for every protocol client."""

    name: str = "peerlink"
    version: str = __version__
    protocol_version: str = "1.0"
    request_timeout: float = 10.0
    shutdown_grace: float = 2.0


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"
    format: str = "%(levelname)s: %(message)s"


class PeerlinkConfig(BaseModel):
    """Top-level configuration for peerlink."""

    client: ClientSettings = Field(default_factory=ClientSettings)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    peers: list[PeerConfig] = Field(default_factory=list)

    @model_validator(mode="after")
    def _unique_peer_names(self) -> PeerlinkConfig:
        seen: set[str] = set()
        for peer in self.peers:
            if peer.name in seen:
                msg = f"duplicate peer name: {peer.name}"
                raise ValueError(msg)
            seen.add(peer.name)
        return self

    def peer(self, name: str) -> PeerConfig | None:
        return next((p for p in self.peers if p.name == name), None)


def _project_config_path() -> Path:
    return Path.cwd() / "peerlink.toml"


def _discover_config_files() -> list[Path]:
    """Return config files in merge order (first = lowest priority)."""
    paths: list[Path] = []

    project = _project_config_path()
    if project.is_file():
        paths.append(project)

    env_path = os.environ.get("PEERLINK_CONFIG")
    if env_path:
        p = Path(env_path)
        if not p.is_file():
            msg = f"PEERLINK_CONFIG points to non-existent file: {env_path}"
            raise ConfigError(msg)
        paths.append(p)

    return paths


def _read_toml(path: Path) -> dict[str, Any]:
    try:
        with path.open("rb") as f:
            return tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        msg = f"Invalid TOML in {path}: {e}"
        raise ConfigError(msg) from e
    except OSError as e:
        msg = f"Cannot read config file {path}: {e}"
        raise ConfigError(msg) from e


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge override into base. Override wins on conflicts.

    Lists (such as ``peers``) are replaced, not concatenated.
    """
    merged = base.copy()
    for key, value in override.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(
    path: str | Path | None = None,
    overrides: dict[str, Any] | None = None,
) -> PeerlinkConfig:
    """Load and validate configuration.

    Raises:
        ConfigError: On invalid TOML, missing files, or validation failure.
    """
    files = _discover_config_files()

    if path is not None:
        p = Path(path)
        if not p.is_file():
            msg = f"Config file not found: {path}"
            raise ConfigError(msg)
        files.append(p)

    merged: dict[str, Any] = {}
    for config_file in files:
        merged = _deep_merge(merged, _read_toml(config_file))

    if overrides:
        merged = _deep_merge(merged, overrides)

    try:
        return PeerlinkConfig.model_validate(merged)
    except Exception as e:
        msg = f"Configuration validation failed: {e}"
        raise ConfigError(msg) from e

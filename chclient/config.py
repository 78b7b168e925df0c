"""Layered client configuration and config-file loading helpers."""

from __future__ import annotations

from pathlib import Path

import tomllib

from typing import Any, Iterator, Mapping

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .errors import ConfigurationError

CONFIG_FILE = Path.home() / ".config" / "chclient" / "config.toml"

RUNTIME = "runtime"
CLI = "cli"
PROFILE = "profile"
FILE = "file"
ENV = "env"

_LAYER_ORDER = (RUNTIME, CLI, PROFILE, FILE, ENV)

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off", ""}


class ConnectionProfileConfig(BaseModel):
    """Named connection stored under ``connections_credentials`` in config.toml."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    name: str
    hostname: str | None = None
    port: int | None = Field(default=None, ge=0, le=65535)
    secure: bool | None = None
    user: str | None = None
    password: str | None = None
    database: str | None = None
    history_file: str | None = None
    accept_invalid_certificate: bool | None = Field(default=None, alias="accept-invalid-certificate")
    prompt: str | None = None


class LayeredConfig:
    """Key-value store with dotted keys, resolved across prioritized layers.

    Lookups walk the layers from highest to lowest priority:
    ``runtime > cli > profile > file > env``. Writes through the ``set_*``
    helpers land in the ``runtime`` layer unless another layer is named.
    """

    def __init__(self, layers: Mapping[str, Mapping[str, object]] | None = None) -> None:
        self._layers: dict[str, dict[str, object]] = {name: {} for name in _LAYER_ORDER}
        for name, values in (layers or {}).items():
            self.update(name, values)

    def update(self, layer: str, values: Mapping[str, object]) -> None:
        """Merge ``values`` (nested mappings allowed) into ``layer``."""

        target = self._layer(layer)
        for key, value in _flatten(values):
            target[key] = value

    def has(self, key: str) -> bool:
        return any(key in self._layers[name] for name in _LAYER_ORDER)

    def layer_of(self, key: str) -> str | None:
        """Name of the highest-priority layer defining ``key``."""

        for name in _LAYER_ORDER:
            if key in self._layers[name]:
                return name
        return None

    def outranks(self, key: str, other: str) -> bool:
        """Whether ``key`` is defined in a higher-priority layer than ``other``."""

        mine, theirs = self.layer_of(key), self.layer_of(other)
        if mine is None:
            return False
        if theirs is None:
            return True
        return _LAYER_ORDER.index(mine) < _LAYER_ORDER.index(theirs)

    def get_raw(self, key: str, default: object = None) -> object:
        for name in _LAYER_ORDER:
            layer = self._layers[name]
            if key in layer:
                return layer[key]
        return default

    def get_string(self, key: str, default: str = "") -> str:
        value = self.get_raw(key)
        if value is None:
            return default
        if isinstance(value, bool):
            return "true" if value else "false"
        return str(value)

    def get_int(self, key: str, default: int = 0) -> int:
        value = self.get_raw(key)
        if value is None:
            return default
        if isinstance(value, bool):
            return int(value)
        try:
            return int(value)  # type: ignore[arg-type]
        except (TypeError, ValueError):
            raise ConfigurationError(f"Config value '{key}' is not an integer: {value!r}") from None

    def get_bool(self, key: str, default: bool = False) -> bool:
        value = self.get_raw(key)
        if value is None:
            return default
        if isinstance(value, bool):
            return value
        if isinstance(value, int):
            return value != 0
        text = str(value).strip().lower()
        if text in _TRUE:
            return True
        if text in _FALSE:
            return False
        raise ConfigurationError(f"Config value '{key}' is not a boolean: {value!r}")

    def set_string(self, key: str, value: str, *, layer: str = RUNTIME) -> None:
        self._layer(layer)[key] = value

    def set_int(self, key: str, value: int, *, layer: str = RUNTIME) -> None:
        self._layer(layer)[key] = int(value)

    def set_bool(self, key: str, value: bool, *, layer: str = RUNTIME) -> None:
        self._layer(layer)[key] = bool(value)

    def keys(self, prefix: str) -> list[str]:
        """Direct children of ``prefix`` across all layers, first-seen order."""

        head = f"{prefix}." if prefix else ""
        seen: dict[str, None] = {}
        for name in reversed(_LAYER_ORDER):
            for key in self._layers[name]:
                if key.startswith(head):
                    seen.setdefault(key[len(head) :].split(".", 1)[0], None)
        return list(seen)

    def section(self, prefix: str) -> dict[str, object]:
        """Effective values below ``prefix`` with the prefix stripped."""

        head = f"{prefix}."
        merged: dict[str, object] = {}
        for name in reversed(_LAYER_ORDER):
            for key, value in self._layers[name].items():
                if key.startswith(head):
                    merged[key[len(head) :]] = value
        return merged

    def _layer(self, name: str) -> dict[str, object]:
        try:
            return self._layers[name]
        except KeyError:
            raise ValueError(f"Unknown config layer '{name}'") from None


def load_config_file(path: Path | None = None) -> dict[str, object]:
    """Read the TOML config file; missing default file yields an empty mapping."""

    explicit = path is not None
    config_path = path or CONFIG_FILE
    try:
        with config_path.open("rb") as handle:
            raw = tomllib.load(handle)
    except FileNotFoundError:
        if explicit:
            raise ConfigurationError(f"Config file {config_path} does not exist") from None
        return {}
    except tomllib.TOMLDecodeError as exc:
        raise ConfigurationError(f"Cannot parse config file {config_path}: {exc}") from exc
    except OSError as exc:
        raise ConfigurationError(f"Cannot read config file {config_path}: {exc}") from exc
    return dict(raw)


def config_file_exists(path: Path | None = None) -> bool:
    return (path or CONFIG_FILE).is_file()


def parse_profiles(config: LayeredConfig) -> list[tuple[str, ConnectionProfileConfig]]:
    """Validate every ``connections_credentials`` entry, keyed by its section name."""

    profiles: list[tuple[str, ConnectionProfileConfig]] = []
    for key in config.keys("connections_credentials"):
        data = config.section(f"connections_credentials.{key}")
        try:
            profile = ConnectionProfileConfig.model_validate(data)
        except ValidationError as exc:
            raise ConfigurationError(f"Invalid connection profile '{key}': {exc}") from exc
        profiles.append((key, profile))
    return profiles


def _flatten(values: Mapping[str, Any], prefix: str = "") -> Iterator[tuple[str, object]]:
    for key, value in values.items():
        dotted = f"{prefix}{key}"
        if isinstance(value, Mapping):
            yield from _flatten(value, f"{dotted}.")
        else:
            yield dotted, value


__all__ = [
    "CLI",
    "CONFIG_FILE",
    "ENV",
    "FILE",
    "PROFILE",
    "RUNTIME",
    "ConnectionProfileConfig",
    "LayeredConfig",
    "config_file_exists",
    "load_config_file",
    "parse_profiles",
]

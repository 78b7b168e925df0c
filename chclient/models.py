"""Shared dataclasses used across the bootstrap modules."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

DEFAULT_HOST = "localhost"
DEFAULT_PORT = 9000
DEFAULT_SECURE_PORT = 9440
DEFAULT_USER = "default"

# Value substituted for a bare `--password`; asks for the password before connecting.
ASK_PASSWORD = "\n"


@dataclass(frozen=True, slots=True)
class Target:
    """Server address to attempt; a missing host means the default host."""

    host: str | None = None
    port: int | None = None

    def describe(self) -> str:
        host = self.host or DEFAULT_HOST
        return f"{host}:{self.port}" if self.port is not None else host


@dataclass(frozen=True, slots=True)
class Timeouts:
    """Per-connection timeouts, in seconds."""

    connect: int = 10
    send: int = 300
    receive: int = 300
    tcp_keep_alive: int = 290
    handshake: float = 300.0
    sync_request: int = 5


@dataclass(frozen=True, slots=True)
class ProtocolCapabilities:
    """Chunked framing requested for each direction."""

    send: str = "notchunked"
    recv: str = "notchunked"


@dataclass(frozen=True, slots=True)
class Password:
    value: str = field(repr=False)


@dataclass(frozen=True, slots=True)
class SshKey:
    path: str
    key: Any = field(repr=False)


@dataclass(frozen=True, slots=True)
class Jwt:
    token: str = field(repr=False)


Secret = Password | SshKey | Jwt


@dataclass(frozen=True, slots=True)
class EffectiveConfig:
    """Fully merged configuration for one connection attempt."""

    host: str
    port: int
    user: str = DEFAULT_USER
    secret: Secret | None = None
    database: str = ""
    secure: bool = False
    compression: bool = True
    timeouts: Timeouts = field(default_factory=Timeouts)
    protocol_capabilities: ProtocolCapabilities = field(default_factory=ProtocolCapabilities)
    bind_host: str = ""
    quota_key: str = ""
    verify_certificate: bool = True
    client_name: str = "chclient"

    @property
    def password(self) -> str:
        """Plain password, or an empty string for other secrets/anonymous."""

        if isinstance(self.secret, Password):
            return self.secret.value
        return ""

    def endpoint(self) -> str:
        return f"{self.host}:{self.port}"


@dataclass(frozen=True, slots=True, order=True)
class ServerVersion:
    major: int = 0
    minor: int = 0
    patch: int = 0

    def __str__(self) -> str:
        return f"{self.major}.{self.minor}.{self.patch}"


@dataclass(frozen=True, slots=True)
class ServerInfo:
    """Metadata reported by the server during the handshake."""

    name: str
    version: ServerVersion
    revision: int
    timezone: str | None = None
    display_name: str = ""


__all__ = [
    "ASK_PASSWORD",
    "DEFAULT_HOST",
    "DEFAULT_PORT",
    "DEFAULT_SECURE_PORT",
    "DEFAULT_USER",
    "EffectiveConfig",
    "Jwt",
    "Password",
    "ProtocolCapabilities",
    "Secret",
    "ServerInfo",
    "ServerVersion",
    "SshKey",
    "Target",
    "Timeouts",
]

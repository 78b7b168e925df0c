"""Host/port extraction and connection strings from the raw command line."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence
from urllib.parse import unquote

from .errors import ConfigurationError, MissingArgumentValue
from .models import ASK_PASSWORD, Target

_HOST_FLAGS = ("--host", "-h")
_PORT_FLAGS = ("--port",)

# Connection strings: clickhouse:[//[user[:password]@][host[:port][,host[:port]...]][/database][?params]]
CONNECTION_STRING_PREFIX = "clickhouse:"

# Options a connection string already sets; giving them as flags as well is an error.
_CONNECTION_STRING_FLAGS = (
    ("--host", "-h"),
    ("--port",),
    ("--user", "-u"),
    ("--password",),
    ("--database", "-d"),
)
_RESERVED_PARAMETERS = frozenset({"host", "port", "user", "password", "database"})


@dataclass(frozen=True, slots=True)
class PairedArguments:
    """Targets in failover order plus the tokens left for option parsing."""

    targets: tuple[Target, ...]
    arguments: tuple[str, ...]


def pair_hosts_and_ports(argv: Sequence[str]) -> PairedArguments:
    """Split host/port flags out of ``argv`` and pair them positionally.

    A host pairs with the most recent port that has no host yet, and vice
    versa. A second host (or port) arriving while one is still unpaired flushes
    the earlier one as a target of its own. Port-only targets carry
    ``host=None`` and are resolved to the default host by the caller.
    """

    targets: list[Target] = []
    arguments: list[str] = []
    pending_host: str | None = None
    pending_port: int | None = None

    index = 0
    while index < len(argv):
        token = argv[index]
        host = _match_flag(token, _HOST_FLAGS)
        port = _match_flag(token, _PORT_FLAGS)
        if host is not None:
            if host == "":
                index += 1
                host = _require_value(argv, index, "Host")
            if pending_port is not None:
                targets.append(Target(host, pending_port))
                pending_port = None
            else:
                if pending_host is not None:
                    targets.append(Target(pending_host))
                pending_host = host
        elif port is not None:
            if port == "":
                index += 1
                port = _require_value(argv, index, "Port")
            value = _parse_port(port)
            if pending_host is not None:
                targets.append(Target(pending_host, value))
                pending_host = None
            else:
                if pending_port is not None:
                    targets.append(Target(None, pending_port))
                pending_port = value
        elif token == "--password" and (index + 1 >= len(argv) or argv[index + 1].startswith("-")):
            arguments.extend((token, ASK_PASSWORD))
        else:
            arguments.append(token)
        index += 1

    if pending_host is not None:
        targets.append(Target(pending_host))
    if pending_port is not None:
        targets.append(Target(None, pending_port))
    return PairedArguments(tuple(targets), tuple(arguments))


@dataclass(frozen=True, slots=True)
class ConnectionString:
    """Targets and option tokens contributed by a ``clickhouse:`` URI."""

    targets: tuple[Target, ...]
    options: tuple[str, ...]


def parse_connection_string(uri: str) -> ConnectionString:
    """Parse a ``clickhouse:`` connection string.

    User, password and database are percent-decoded and returned as option
    tokens. A query parameter ``name=value`` becomes ``--name=value`` and a
    bare ``name`` becomes ``--name``.
    """

    if not uri.startswith(CONNECTION_STRING_PREFIX):
        raise ConfigurationError(f"Connection string must start with '{CONNECTION_STRING_PREFIX}'")
    rest = uri[len(CONNECTION_STRING_PREFIX) :]
    if not rest:
        return ConnectionString((), ())
    if not rest.startswith("//"):
        raise ConfigurationError(f"Invalid connection string: {uri!r}")
    rest = rest[2:]

    rest, _, query = rest.partition("?")
    authority, slash, database = rest.partition("/")
    userinfo, at, hosts = authority.rpartition("@")

    options: list[str] = []
    if at:
        user, colon, password = userinfo.partition(":")
        if user:
            options.append(f"--user={unquote(user)}")
        if colon:
            options.append(f"--password={unquote(password)}")
    if slash and database:
        options.append(f"--database={unquote(database)}")
    options.extend(_query_options(uri, query))

    targets = tuple(_parse_host(uri, item) for item in hosts.split(",")) if hosts else ()
    return ConnectionString(targets, tuple(options))


def split_command_line(argv: Sequence[str]) -> PairedArguments:
    """Expand a leading connection string, then pair hosts and ports."""

    if not argv or not argv[0].startswith(CONNECTION_STRING_PREFIX):
        return pair_hosts_and_ports(argv)

    connection_string = parse_connection_string(argv[0])
    remaining = list(argv[1:])
    for token in remaining:
        for flags in _CONNECTION_STRING_FLAGS:
            if _match_flag_name(token, flags):
                raise ConfigurationError(f"Mixing a connection string and {flags[0]} option is prohibited")
    paired = pair_hosts_and_ports([*connection_string.options, *remaining])
    return PairedArguments(connection_string.targets, paired.arguments)


def _parse_host(uri: str, item: str) -> Target:
    if not item:
        raise ConfigurationError(f"Empty host in connection string {uri!r}")
    if item.startswith("["):
        host, bracket, port = item[1:].partition("]")
        if not bracket or (port and not port.startswith(":")):
            raise ConfigurationError(f"Invalid host {item!r} in connection string {uri!r}")
        port = port[1:]
    else:
        host, _, port = item.partition(":")
    host = unquote(host) or None
    return Target(host, _parse_port(port) if port else None)


def _query_options(uri: str, query: str) -> list[str]:
    options: list[str] = []
    for item in query.split("&") if query else ():
        name, equals, value = item.partition("=")
        name = unquote(name)
        if not name:
            raise ConfigurationError(f"Empty parameter name in connection string {uri!r}")
        if name in _RESERVED_PARAMETERS:
            raise ConfigurationError(f"Parameter '{name}' must be given in the connection string itself")
        options.append(f"--{name}={unquote(value)}" if equals else f"--{name}")
    return options


def _match_flag_name(token: str, flags: tuple[str, ...]) -> bool:
    for flag in flags:
        if token == flag or token.startswith(flag + "="):
            return True
        if not flag.startswith("--") and token.startswith(flag):
            return True
    return False


def _match_flag(token: str, flags: tuple[str, ...]) -> str | None:
    """Return the attached value, ``""`` when the value is the next token, or None."""

    for flag in flags:
        if token == flag:
            return ""
        if flag.startswith("--"):
            if token.startswith(flag + "="):
                return token[len(flag) + 1 :] or _empty_value(flag)
        elif token.startswith(flag) and len(token) > len(flag):
            value = token[len(flag) :]
            return value[1:] if value.startswith("=") else value
    return None


def _empty_value(flag: str) -> str:
    raise MissingArgumentValue(f"{flag[2:].capitalize()} argument requires value")


def _require_value(argv: Sequence[str], index: int, name: str) -> str:
    if index >= len(argv):
        raise MissingArgumentValue(f"{name} argument requires value")
    return argv[index]


def _parse_port(value: str) -> int:
    try:
        port = int(value)
    except ValueError:
        raise ConfigurationError(f"Invalid port value: {value!r}") from None
    if not 0 <= port <= 65535:
        raise ConfigurationError(f"Port {port} is out of range")
    return port


__all__ = [
    "CONNECTION_STRING_PREFIX",
    "ConnectionString",
    "PairedArguments",
    "pair_hosts_and_ports",
    "parse_connection_string",
    "split_command_line",
]

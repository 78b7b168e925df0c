"""Transport backends that open native-protocol connections to the server."""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Any, Mapping, Protocol, runtime_checkable

from clickhouse_driver import Client as DriverClient
from clickhouse_driver import errors as driver_errors
from clickhouse_driver.connection import Connection as DriverConnection
from clickhouse_driver.protocol import ServerPacketTypes

from .errors import (
    AUTHENTICATION_CODES,
    AuthenticationError,
    CapabilityDisabled,
    ClientError,
    ErrorCodes,
    NetworkError,
    ServerError,
    UnknownServerPacket,
)
from .models import EffectiveConfig, Jwt, ServerInfo, ServerVersion, SshKey

LOG = logging.getLogger(__name__)


class PacketKind(enum.Enum):
    """Server packet kinds the client distinguishes."""

    DATA = "data"
    PROGRESS = "progress"
    PROFILE_INFO = "profile_info"
    TOTALS = "totals"
    EXTREMES = "extremes"
    LOG = "log"
    PROFILE_EVENTS = "profile_events"
    EXCEPTION = "exception"
    END_OF_STREAM = "end_of_stream"
    UNKNOWN = "unknown"


@dataclass(frozen=True, slots=True)
class Packet:
    """One packet received from the server."""

    kind: PacketKind
    rows: tuple[tuple[Any, ...], ...] = ()
    error: ClientError | None = None
    code: int | None = None


class FailureKind(enum.Enum):
    """How a failed connection attempt should be treated by failover."""

    AUTHENTICATION = "authentication"
    NETWORK = "network"
    OTHER = "other"


@dataclass(frozen=True, slots=True)
class TransportCapabilities:
    """Optional authentication methods the transport can carry."""

    jwt: bool = False
    ssh_keys: bool = False


@runtime_checkable
class ServerConnection(Protocol):
    """Live, authenticated connection returned by a transport."""

    def server_info(self) -> ServerInfo:
        """Version, revision, timezone and display name from the handshake."""

    def send_query(self, query: str) -> None:
        """Send a query whose result is read back with ``receive_packet``."""

    def receive_packet(self) -> Packet:
        """Block until the next packet arrives."""

    def set_throttler(self, bytes_per_second: int) -> None:
        """Limit network bandwidth used by the connection."""

    def settings_from_server(self) -> Mapping[str, str]:
        """Settings the server asked the client to apply."""

    def close(self) -> None:
        """Release the underlying socket."""


@dataclass(frozen=True, slots=True)
class ConnectResult:
    """Outcome of a single connection attempt."""

    connection: ServerConnection | None = None
    failure: FailureKind | None = None
    error: ClientError | None = None

    @classmethod
    def connected(cls, connection: ServerConnection) -> ConnectResult:
        return cls(connection=connection)

    @classmethod
    def failed(cls, kind: FailureKind, error: ClientError) -> ConnectResult:
        return cls(failure=kind, error=error)

    @property
    def ok(self) -> bool:
        return self.connection is not None


@runtime_checkable
class Transport(Protocol):
    """Protocol implemented by transports."""

    capabilities: TransportCapabilities

    def connect(self, config: EffectiveConfig) -> ConnectResult:
        """Connect and handshake; failures are reported, not raised."""


def classify_code(code: int | None) -> FailureKind:
    if code in AUTHENTICATION_CODES:
        return FailureKind.AUTHENTICATION
    if code == ErrorCodes.NETWORK_ERROR:
        return FailureKind.NETWORK
    return FailureKind.OTHER


_PACKET_KINDS: dict[int, PacketKind] = {
    ServerPacketTypes.DATA: PacketKind.DATA,
    ServerPacketTypes.PROGRESS: PacketKind.PROGRESS,
    ServerPacketTypes.PROFILE_INFO: PacketKind.PROFILE_INFO,
    ServerPacketTypes.TOTALS: PacketKind.TOTALS,
    ServerPacketTypes.EXTREMES: PacketKind.EXTREMES,
    ServerPacketTypes.LOG: PacketKind.LOG,
    ServerPacketTypes.PROFILE_EVENTS: PacketKind.PROFILE_EVENTS,
    ServerPacketTypes.EXCEPTION: PacketKind.EXCEPTION,
    ServerPacketTypes.END_OF_STREAM: PacketKind.END_OF_STREAM,
}


class DriverConnectionAdapter:
    """``ServerConnection`` backed by a ``clickhouse_driver`` connection."""

    def __init__(self, connection: DriverConnection) -> None:
        self._connection = connection
        self._throttle: int | None = None

    @property
    def throttle(self) -> int | None:
        return self._throttle

    def server_info(self) -> ServerInfo:
        info = self._connection.server_info
        return ServerInfo(
            name=str(info.name),
            version=ServerVersion(info.version_major, info.version_minor, info.version_patch),
            revision=int(info.revision),
            timezone=getattr(info, "timezone", None) or None,
            display_name=str(getattr(info, "display_name", "") or ""),
        )

    def send_query(self, query: str) -> None:
        try:
            self._connection.send_query(query)
            self._connection.send_external_tables([])
        except driver_errors.Error as exc:
            raise _translate(exc) from exc
        except (OSError, EOFError) as exc:
            raise NetworkError(str(exc)) from exc

    def receive_packet(self) -> Packet:
        try:
            packet = self._connection.receive_packet()
        except driver_errors.UnknownPacketFromServerError as exc:
            raise UnknownServerPacket(str(exc)) from exc
        except driver_errors.Error as exc:
            raise _translate(exc) from exc
        except (OSError, EOFError) as exc:
            raise NetworkError(str(exc)) from exc

        kind = _PACKET_KINDS.get(packet.type, PacketKind.UNKNOWN)
        if kind is PacketKind.DATA:
            block = getattr(packet, "block", None)
            rows = tuple(tuple(row) for row in block.get_rows()) if block else ()
            return Packet(kind, rows=rows)
        if kind is PacketKind.EXCEPTION:
            return Packet(kind, error=_translate(packet.exception))
        return Packet(kind, code=packet.type)

    def set_throttler(self, bytes_per_second: int) -> None:
        """Record the bandwidth limit.

        ``clickhouse_driver`` writes through its own buffered socket writer, so
        the limit is not enforced on the wire; it is kept for callers to read.
        """

        LOG.debug("Bandwidth limit of %d bytes/s recorded (not enforced by the driver)", bytes_per_second)
        self._throttle = bytes_per_second

    def settings_from_server(self) -> Mapping[str, str]:
        """Always empty: the driver does not surface server-sent setting overrides."""

        return {}

    def close(self) -> None:
        try:
            self._connection.disconnect()
        except (driver_errors.Error, OSError):  # pragma: no cover - best effort
            LOG.debug("Error while disconnecting", exc_info=True)


class DriverTransport:
    """Transport that speaks the native protocol through ``clickhouse_driver``.

    The connection is taken from a ``clickhouse_driver.Client`` so its context
    carries the query and client settings (quota key included) the driver
    reads during the handshake and when sending queries.
    """

    capabilities = TransportCapabilities(jwt=False, ssh_keys=False)

    def connect(self, config: EffectiveConfig) -> ConnectResult:
        if isinstance(config.secret, (Jwt, SshKey)):
            raise CapabilityDisabled("JWT and SSH key authentication are not supported by the native driver")
        timeouts = config.timeouts
        keepalive = int(timeouts.tcp_keep_alive)
        connection: DriverConnection | None = None
        try:
            client = DriverClient(
                config.host,
                port=config.port,
                database=config.database or "default",
                user=config.user,
                password=config.password,
                client_name=config.client_name,
                connect_timeout=timeouts.connect,
                send_receive_timeout=max(timeouts.send, timeouts.receive),
                sync_request_timeout=timeouts.sync_request,
                compression=config.compression,
                secure=config.secure,
                verify=config.verify_certificate,
                tcp_keepalive=(keepalive, 1, 3) if keepalive else False,
                settings={"quota_key": config.quota_key},
            )
            connection = client.connection
            connection.connect()
        except driver_errors.Error as exc:
            error = _translate(exc)
            return ConnectResult.failed(classify_code(error.code), error)
        except (OSError, EOFError) as exc:
            return ConnectResult.failed(FailureKind.NETWORK, NetworkError(str(exc)))
        except Exception as exc:
            LOG.debug("Unexpected error connecting to %s", config.endpoint(), exc_info=True)
            if connection is not None:
                connection.disconnect()
            return ConnectResult.failed(
                FailureKind.OTHER, ClientError(f"Cannot connect to {config.endpoint()}: {exc!r}")
            )
        LOG.debug("Connected to %s", config.endpoint())
        return ConnectResult.connected(DriverConnectionAdapter(connection))


def _translate(exc: Any) -> ClientError:
    code = getattr(exc, "code", None)
    message = getattr(exc, "message", None) or str(exc)
    if isinstance(exc, (driver_errors.NetworkError, driver_errors.SocketTimeoutError)):
        return NetworkError(message)
    if code in AUTHENTICATION_CODES:
        return AuthenticationError(message, code)
    if isinstance(exc, driver_errors.ServerException):
        return ServerError(message, code or 0)
    return ClientError(message, code or 0)


__all__ = [
    "ConnectResult",
    "DriverConnectionAdapter",
    "DriverTransport",
    "FailureKind",
    "Packet",
    "PacketKind",
    "ServerConnection",
    "Transport",
    "TransportCapabilities",
    "classify_code",
]

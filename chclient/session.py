"""Live server session handed from the bootstrap flow to the application."""

from __future__ import annotations

import logging
from typing import Any, Mapping

from .connections import Packet, ServerConnection
from .models import EffectiveConfig, ServerInfo

LOG = logging.getLogger(__name__)


class Session:
    """Owns exactly one server connection plus the metadata gathered around it."""

    def __init__(self, connection: ServerConnection, config: EffectiveConfig, server: ServerInfo) -> None:
        self._connection = connection
        self._config = config
        self._server = server
        self._display_name = server.display_name
        self._settings_from_server: Mapping[str, str] = {}
        self._throttle: int | None = None
        self._closed = False

    @property
    def config(self) -> EffectiveConfig:
        """Configuration of the target this session is bound to."""

        return self._config

    @property
    def server(self) -> ServerInfo:
        return self._server

    @property
    def display_name(self) -> str:
        return self._display_name

    @property
    def settings_from_server(self) -> Mapping[str, str]:
        return self._settings_from_server

    @property
    def throttle(self) -> int | None:
        """Bandwidth limit in bytes per second, if one was requested."""

        return self._throttle

    @property
    def closed(self) -> bool:
        return self._closed

    def set_display_name(self, name: str) -> None:
        self._display_name = name

    def capture_server_settings(self) -> None:
        self._settings_from_server = dict(self._connection.settings_from_server())

    def set_throttler(self, bytes_per_second: int) -> None:
        self._connection.set_throttler(bytes_per_second)
        self._throttle = bytes_per_second

    def send_query(self, query: str) -> None:
        self._connection.send_query(query)

    def receive_packet(self) -> Packet:
        return self._connection.receive_packet()

    def close(self) -> None:
        """Release the connection; safe to call more than once."""

        if self._closed:
            return
        self._closed = True
        self._connection.close()
        LOG.debug("Session to %s closed", self._config.endpoint())

    def __enter__(self) -> Session:
        return self

    def __exit__(self, *_exc: Any) -> None:
        self.close()


__all__ = ["Session"]

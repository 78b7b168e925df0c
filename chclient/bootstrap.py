"""Startup sequence: configuration, negotiation, handshake and warnings."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Sequence

from rich.console import Console

from .config import CLI, FILE, LayeredConfig, config_file_exists, load_config_file
from .connections import DriverTransport, Transport
from .credentials import CredentialResolver, apply_connection_profile, apply_environment
from .diagnostics import fetch_warnings
from .errors import ConfigurationError
from .handshake import HandshakePostProcessor, LocaleContext
from .models import Target
from .negotiator import ConnectionNegotiator
from .secrets import SecretSource, TerminalSecretSource
from .session import Session

LOG = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ReadySession:
    """Everything the interactive shell needs once startup finished."""

    session: Session
    prompt: str
    display_name: str
    server_version: str
    warnings: tuple[str, ...]
    locale: LocaleContext


def build_config(
    cli_values: Mapping[str, object],
    targets: Sequence[Target] = (),
    *,
    config_file: Path | None = None,
    connection_name: str | None = None,
    environ: Mapping[str, str] | None = None,
    home: Path | None = None,
) -> tuple[LayeredConfig, tuple[Target, ...]]:
    """Merge config file, connection profile, CLI flags and environment."""

    if config_file is None and connection_name and not config_file_exists():
        raise ConfigurationError("--connection was specified, but config does not exist")
    config = LayeredConfig({FILE: load_config_file(config_file), CLI: cli_values})
    _profile, resolved = apply_connection_profile(config, connection_name, targets, home=home)
    apply_environment(config, environ)
    return config, resolved


class ClientBootstrap:
    """Runs the startup sequence and hands over a ready session."""

    def __init__(
        self,
        config: LayeredConfig,
        *,
        transport: Transport | None = None,
        secrets: SecretSource | None = None,
        locale: LocaleContext | None = None,
        interactive: bool = False,
        console: Console | None = None,
        error_console: Console | None = None,
    ) -> None:
        self._config = config
        self._transport = transport or DriverTransport()
        self._secrets = secrets or TerminalSecretSource()
        self._locale = locale or LocaleContext()
        self._interactive = interactive
        self._console = console or Console()
        self._error_console = error_console or Console(stderr=True)

    def run(self, targets: Sequence[Target] = ()) -> ReadySession:
        resolver = CredentialResolver(self._config, self._secrets, capabilities=self._transport.capabilities)
        resolver.validate()
        negotiator = ConnectionNegotiator(
            self._transport,
            self._config,
            interactive=self._interactive,
            console=self._console,
            error_console=self._error_console,
        )
        session = negotiator.connect(targets, resolver)
        try:
            handshake = HandshakePostProcessor(
                self._config,
                self._locale,
                interactive=self._interactive,
                console=self._console,
                error_console=self._error_console,
            ).finalize(session)
            warnings: list[str] = []
            if self._interactive and not self._config.get_bool("no-warnings", False):
                warnings = fetch_warnings(session)
        except BaseException:
            session.close()
            raise
        return ReadySession(
            session=session,
            prompt=handshake.prompt,
            display_name=handshake.display_name,
            server_version=handshake.server_version,
            warnings=tuple(warnings),
            locale=self._locale,
        )


__all__ = ["ClientBootstrap", "ReadySession", "build_config"]

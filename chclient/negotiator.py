"""Sequential failover across candidate servers with one password escalation."""

from __future__ import annotations

import enum
import logging
from typing import Sequence

from rich.console import Console

from .config import LayeredConfig
from .connections import ConnectResult, FailureKind, ServerConnection, Transport, classify_code
from .credentials import CredentialResolver, port_from_config
from .errors import AuthenticationError, ClientError
from .models import DEFAULT_HOST, EffectiveConfig, Target
from .session import Session

LOG = logging.getLogger(__name__)


class NegotiationState(str, enum.Enum):
    """Progress of a ``ConnectionNegotiator.connect`` call."""

    IDLE = "idle"
    TRYING = "trying"
    ESCALATED = "escalated"
    CONNECTED = "connected"
    FAILED = "failed"


class ConnectionNegotiator:
    """Tries candidate targets in order until one yields an authenticated session.

    Network-class failures advance to the next candidate and only surface on
    the last one. Authentication failures stop the loop at once; in interactive
    mode, when no credential was configured, the whole candidate list is
    retried exactly once with a freshly prompted password.
    """

    def __init__(
        self,
        transport: Transport,
        config: LayeredConfig,
        *,
        interactive: bool,
        console: Console | None = None,
        error_console: Console | None = None,
    ) -> None:
        self._transport = transport
        self._config = config
        self._interactive = interactive
        self._console = console or Console()
        self._error_console = error_console or Console(stderr=True)
        self._state = NegotiationState.IDLE
        self._attempts: list[Target] = []

    @property
    def state(self) -> NegotiationState:
        return self._state

    @property
    def attempts(self) -> tuple[Target, ...]:
        """Targets tried so far, in order, including escalated retries."""

        return tuple(self._attempts)

    def connect(self, candidates: Sequence[Target], resolver: CredentialResolver) -> Session:
        targets = tuple(candidates) or (self.default_target(),)
        self._state = NegotiationState.TRYING
        while True:
            try:
                session = self._try_candidates(targets, resolver)
            except AuthenticationError:
                if not self._may_escalate(resolver):
                    self._state = NegotiationState.FAILED
                    raise
                LOG.info("Authentication failed; asking for a password and retrying")
                self._state = NegotiationState.ESCALATED
                self._config.set_bool("ask-password", True)
                resolver.require_password_prompt()
                continue
            except ClientError:
                self._state = NegotiationState.FAILED
                raise
            self._state = NegotiationState.CONNECTED
            return session

    def default_target(self) -> Target:
        host = self._config.get_string("host", DEFAULT_HOST)
        return Target(host, port_from_config(self._config, host))

    def _may_escalate(self, resolver: CredentialResolver) -> bool:
        return (
            self._interactive
            and self._state is NegotiationState.TRYING
            and resolver.can_escalate
        )

    def _try_candidates(self, targets: tuple[Target, ...], resolver: CredentialResolver) -> Session:
        last = len(targets) - 1
        for index, target in enumerate(targets):
            config = resolver.resolve(target)
            if self._interactive:
                self._console.print(_connecting_message(config), markup=False, highlight=False)
            self._attempts.append(target)
            result = self._transport.connect(config)
            if result.connection is not None:
                result = self._establish(result.connection, config)
                if isinstance(result, Session):
                    return result
            error = result.error or ClientError(f"Connection to {config.endpoint()} failed")
            if result.failure is FailureKind.AUTHENTICATION:
                raise error
            if index == last:
                raise error
            LOG.debug("Connection to %s failed: %s", config.endpoint(), error)
            if self._interactive:
                self._error_console.print(
                    f"Connection attempt to database at {config.endpoint()} resulted in failure\n"
                    f"{error}\n"
                    "Attempting connection to the next provided address",
                    markup=False,
                    highlight=False,
                )
        raise AssertionError("candidate list is never empty")

    def _establish(self, connection: ServerConnection, config: EffectiveConfig) -> Session | ConnectResult:
        try:
            server = connection.server_info()
        except ClientError as exc:
            connection.close()
            return ConnectResult.failed(classify_code(exc.code), exc)
        session = Session(connection, config, server)
        self._config.set_string("host", config.host)
        self._config.set_int("port", config.port)
        bandwidth = self._config.get_int("max_client_network_bandwidth", 0)
        if bandwidth > 0:
            session.set_throttler(bandwidth)
        session.capture_server_settings()
        LOG.info("Connected to %s (%s %s)", config.endpoint(), server.name, server.version)
        return session


def _connecting_message(config: EffectiveConfig) -> str:
    database = f"database {config.database} at " if config.database else ""
    user = f" as user {config.user}" if config.user else ""
    return f"Connecting to {database}{config.endpoint()}{user}."


__all__ = ["ConnectionNegotiator", "NegotiationState"]

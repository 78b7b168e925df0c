"""Post-handshake negotiation: version advisories, timezone and prompt."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime, tzinfo
from typing import Mapping
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from rich.console import Console

from . import __version__ as CLIENT_VERSION_STRING
from .config import LayeredConfig
from .models import DEFAULT_HOST, ServerVersion
from .session import Session

LOG = logging.getLogger(__name__)

CLOUD_DISPLAY_NAME = "clickhouse-cloud"
DEFAULT_PROMPT = "{display_name}"
PROMPT_SMILEY = ":) "

_ESCAPES = {
    "e": "\x1b",
    "n": "\n",
    "t": "\t",
    "r": "\r",
    "b": "\b",
    "f": "\f",
    "a": "\a",
    "v": "\v",
    "0": "\0",
}
_ESCAPE_RE = re.compile(r"\\(x[0-9A-Fa-f]{2}|.)", re.DOTALL)


def _parse_version(value: str) -> ServerVersion:
    """Parse a dotted string into a comparable version."""

    parts = value.split(".")
    ints: list[int] = []
    for chunk in parts[:3]:
        try:
            ints.append(int(chunk))
        except ValueError:
            ints.append(0)
    while len(ints) < 3:
        ints.append(0)
    return ServerVersion(ints[0], ints[1], ints[2])


CLIENT_VERSION = _parse_version(CLIENT_VERSION_STRING)


class LocaleContext:
    """Timezone used when the application formats timestamps.

    Starts on the local timezone; the handshake may switch it to the server's.
    """

    def __init__(self, timezone: tzinfo | None = None) -> None:
        self._timezone = timezone
        self._name = getattr(timezone, "key", None)

    @property
    def timezone(self) -> tzinfo | None:
        """Active timezone; ``None`` means the local timezone."""

        return self._timezone

    @property
    def name(self) -> str | None:
        return self._name

    def set_timezone(self, name: str) -> None:
        """Switch to the IANA timezone ``name``; raises if it is unknown."""

        zone = ZoneInfo(name)
        self._timezone = zone
        self._name = name

    def now(self) -> datetime:
        if self._timezone is None:
            return datetime.now().astimezone()
        return datetime.now(tz=self._timezone)


@dataclass(frozen=True, slots=True)
class HandshakeResult:
    """Display metadata ready for the interactive shell."""

    display_name: str
    prompt: str
    server_version: str
    advisories: tuple[str, ...] = ()


def compare_versions(client: ServerVersion, server: ServerVersion, display_name: str) -> str | None:
    """Advisory text for a client/server version skew, if any."""

    if client < server:
        return "Client version is older than the server. It may lack support for new features."
    if client > server and display_name != CLOUD_DISPLAY_NAME:
        return (
            "Server version is older than the client. "
            "It may indicate that the server is out of date and can be upgraded."
        )
    return None


def select_prompt_template(config: LayeredConfig, display_name: str) -> str:
    """Pick the prompt template for a server with ``display_name``."""

    if config.has("prompt"):
        return config.get_string("prompt")
    keys = config.keys("prompt_by_server_display_name")
    if not keys:
        return DEFAULT_PROMPT
    for key in keys:
        if key != "default" and key in display_name:
            return config.get_string(f"prompt_by_server_display_name.{key}")
    if "default" in keys:
        return config.get_string("prompt_by_server_display_name.default")
    return DEFAULT_PROMPT


def unescape_prompt(template: str) -> str:
    """Interpret backslash escapes such as ``\\e[31m`` or ``\\x1b[0m``."""

    def _replace(match: re.Match[str]) -> str:
        token = match.group(1)
        if len(token) == 3 and token[0] == "x":
            return chr(int(token[1:], 16))
        return _ESCAPES.get(token, token)

    return _ESCAPE_RE.sub(_replace, template)


def substitute_placeholders(template: str, values: Mapping[str, str]) -> str:
    """Replace ``{name}`` placeholders in one pass; inserted text is not rescanned."""

    parts: list[str] = []
    index = 0
    while index < len(template):
        if template[index] == "{":
            end = template.find("}", index + 1)
            if end != -1:
                name = template[index + 1 : end]
                if name in values:
                    parts.append(values[name])
                    index = end + 1
                    continue
        parts.append(template[index])
        index += 1
    return "".join(parts)


def render_prompt(template: str, *, host: str, port: int, user: str, display_name: str) -> str:
    return substitute_placeholders(
        unescape_prompt(template),
        {"host": host, "port": str(port), "user": user, "display_name": display_name},
    )


def append_smiley_if_needed(prompt: str) -> str:
    if not prompt or prompt[-1].isspace():
        return prompt
    return f"{prompt} {PROMPT_SMILEY}"


class HandshakePostProcessor:
    """Finishes session setup once the transport handshake succeeded."""

    def __init__(
        self,
        config: LayeredConfig,
        locale: LocaleContext,
        *,
        interactive: bool,
        client_version: ServerVersion = CLIENT_VERSION,
        console: Console | None = None,
        error_console: Console | None = None,
    ) -> None:
        self._config = config
        self._locale = locale
        self._interactive = interactive
        self._client_version = client_version
        self._console = console or Console()
        self._error_console = error_console or Console(stderr=True)

    def finalize(self, session: Session) -> HandshakeResult:
        server = session.server
        display_name = server.display_name or self._config.get_string("host", DEFAULT_HOST)
        session.set_display_name(display_name)

        advisories: list[str] = []
        if self._interactive:
            self._say(f"Connected to {server.name} server version {server.version}.\n")
            advisory = compare_versions(self._client_version, server.version, display_name)
            if advisory:
                advisories.append(advisory)
                self._say(f"{advisory}\n")

        if not self._config.get_bool("use_client_time_zone", False):
            self._adopt_timezone(server.timezone)

        config = session.config
        prompt = render_prompt(
            select_prompt_template(self._config, display_name),
            host=config.host,
            port=config.port,
            user=config.user,
            display_name=display_name,
        )
        if self._config.get_bool("prompt_smiley", True):
            prompt = append_smiley_if_needed(prompt)
        return HandshakeResult(
            display_name=display_name,
            prompt=prompt,
            server_version=str(server.version),
            advisories=tuple(advisories),
        )

    def _adopt_timezone(self, timezone: str | None) -> None:
        if not timezone:
            self._warn("Warning: could not determine server time zone. Proceeding with local time zone.")
            return
        try:
            self._locale.set_timezone(timezone)
        except (ZoneInfoNotFoundError, ValueError, OSError) as exc:
            self._warn(
                f"Warning: could not switch to server time zone: {timezone}, reason: {exc}\n"
                "Proceeding with local time zone."
            )
            return
        LOG.debug("Using server time zone %s", timezone)

    def _say(self, message: str) -> None:
        self._console.print(message, markup=False, highlight=False)

    def _warn(self, message: str) -> None:
        LOG.debug(message.splitlines()[0])
        self._error_console.print(message + "\n", markup=False, highlight=False)


__all__ = [
    "CLIENT_VERSION",
    "HandshakePostProcessor",
    "HandshakeResult",
    "LocaleContext",
    "append_smiley_if_needed",
    "compare_versions",
    "render_prompt",
    "select_prompt_template",
    "substitute_placeholders",
    "unescape_prompt",
]

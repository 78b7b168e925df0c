"""Interactive and scripted sources for passwords and key passphrases."""

from __future__ import annotations

import getpass
import logging
import sys
from typing import Protocol, TextIO, runtime_checkable

from .errors import CredentialError

LOG = logging.getLogger(__name__)

MAX_SECRET_LENGTH = 999


@runtime_checkable
class SecretSource(Protocol):
    """Capability used whenever a secret must be asked for."""

    def read_secret(self, prompt: str) -> str:
        """Return the secret entered for ``prompt`` (may be empty)."""


class TerminalSecretSource:
    """Reads secrets from the controlling terminal with echo disabled."""

    def __init__(
        self,
        *,
        max_length: int = MAX_SECRET_LENGTH,
        required: bool = False,
        stdin: TextIO | None = None,
    ) -> None:
        self._max_length = max_length
        self._required = required
        self._stdin = stdin

    def read_secret(self, prompt: str) -> str:
        stdin = self._stdin or sys.stdin
        if stdin is None or not stdin.isatty():
            LOG.debug("No terminal attached; skipping secret prompt")
            if self._required:
                raise CredentialError("A secret is required but no terminal is available to ask for it")
            return ""
        buffer = ""
        try:
            buffer = getpass.getpass(prompt)
            return buffer[: self._max_length]
        except EOFError:
            print(file=sys.stderr)
            return ""
        finally:
            del buffer


class StaticSecretSource:
    """Non-interactive source replaying fixed answers; remembers the prompts shown."""

    def __init__(self, *answers: str) -> None:
        self._answers = list(answers)
        self.prompts: list[str] = []

    def read_secret(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if not self._answers:
            return ""
        return self._answers.pop(0)


__all__ = ["MAX_SECRET_LENGTH", "SecretSource", "StaticSecretSource", "TerminalSecretSource"]

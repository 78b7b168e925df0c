"""Error taxonomy shared by the bootstrap components."""

from __future__ import annotations


class ErrorCodes:
    """Numeric codes reported by the server and reused as process exit codes."""

    BAD_ARGUMENTS = 36
    UNKNOWN_PACKET_FROM_SERVER = 100
    NO_ELEMENTS_IN_CONFIG = 139
    REQUIRED_PASSWORD = 194
    NETWORK_ERROR = 210
    SUPPORT_IS_DISABLED = 344
    AUTHENTICATION_FAILED = 516


class ClientError(RuntimeError):
    """Base error carrying a numeric code."""

    default_code = 0

    def __init__(self, message: str, code: int | None = None) -> None:
        super().__init__(message)
        self.code = self.default_code if code is None else code

    @property
    def message(self) -> str:
        return str(self)


class ConfigurationError(ClientError):
    """Conflicting, missing or malformed options; raised before any network activity."""

    default_code = ErrorCodes.BAD_ARGUMENTS


class MissingArgumentValue(ConfigurationError):
    """A value-taking flag was the last token."""


class ConflictingPasswordOptions(ConfigurationError):
    """Both an explicit password and ask-password were given."""


class ConflictingCredentials(ConfigurationError):
    """More than one of password, SSH key and JWT was configured."""


class UnknownConnectionProfile(ConfigurationError):
    """An explicitly requested connection profile does not exist."""

    default_code = ErrorCodes.NO_ELEMENTS_IN_CONFIG


class CapabilityDisabled(ClientError):
    """The requested feature is not available in this build or transport."""

    default_code = ErrorCodes.SUPPORT_IS_DISABLED


class CredentialError(ClientError):
    """Secret material could not be loaded."""

    default_code = ErrorCodes.BAD_ARGUMENTS


class NotAPrivateKey(CredentialError):
    """The SSH key file does not contain a private key."""


class AuthenticationError(ClientError):
    """The server rejected the credentials or demanded a password."""

    default_code = ErrorCodes.AUTHENTICATION_FAILED


class NetworkError(ClientError):
    """The endpoint could not be reached or negotiated."""

    default_code = ErrorCodes.NETWORK_ERROR


class ServerError(ClientError):
    """Exception reported by the server while processing a request."""


class ProtocolError(ClientError):
    """The server sent something the client does not understand."""

    default_code = ErrorCodes.UNKNOWN_PACKET_FROM_SERVER


class UnknownServerPacket(ProtocolError):
    """A packet kind outside of the expected set arrived."""


AUTHENTICATION_CODES = frozenset({ErrorCodes.AUTHENTICATION_FAILED, ErrorCodes.REQUIRED_PASSWORD})


def exit_code_for(exc: BaseException) -> int:
    """Process exit code for a fatal error: its own code when usable, else 1."""

    code = getattr(exc, "code", 0)
    if not isinstance(code, int) or code % 256 == 0:
        return 1
    return code


__all__ = [
    "AUTHENTICATION_CODES",
    "AuthenticationError",
    "CapabilityDisabled",
    "ClientError",
    "ConfigurationError",
    "ConflictingCredentials",
    "ConflictingPasswordOptions",
    "CredentialError",
    "ErrorCodes",
    "MissingArgumentValue",
    "NetworkError",
    "NotAPrivateKey",
    "ProtocolError",
    "ServerError",
    "UnknownConnectionProfile",
    "UnknownServerPacket",
    "exit_code_for",
]

"""Server warning messages shown when an interactive session starts."""

from __future__ import annotations

import logging
from typing import Iterable

from .connections import PacketKind
from .errors import ClientError, UnknownServerPacket
from .session import Session

LOG = logging.getLogger(__name__)

# Older servers cannot run the query below.
MIN_REVISION_WITH_WARNINGS = 54457

WARNINGS_QUERY = (
    "SELECT * FROM viewIfPermitted(SELECT message FROM system.warnings ELSE null('message String'))"
)

_IGNORED = frozenset(
    {
        PacketKind.PROGRESS,
        PacketKind.PROFILE_INFO,
        PacketKind.TOTALS,
        PacketKind.EXTREMES,
        PacketKind.LOG,
        PacketKind.PROFILE_EVENTS,
    }
)


def load_warning_messages(session: Session) -> list[str]:
    """Query ``system.warnings`` and collect the messages.

    Server exceptions and unexpected packets are raised to the caller.
    """

    if session.server.revision < MIN_REVISION_WITH_WARNINGS:
        return []

    messages: list[str] = []
    session.send_query(WARNINGS_QUERY)
    while True:
        packet = session.receive_packet()
        if packet.kind is PacketKind.DATA:
            messages.extend(str(row[0]) for row in packet.rows if row)
        elif packet.kind in _IGNORED:
            continue
        elif packet.kind is PacketKind.EXCEPTION:
            raise packet.error or ClientError("Server reported an exception without details")
        elif packet.kind is PacketKind.END_OF_STREAM:
            return messages
        else:
            raise UnknownServerPacket(
                f"Unknown packet {packet.code} from server {session.config.endpoint()}"
            )


def fetch_warnings(session: Session) -> list[str]:
    """Best-effort wrapper around ``load_warning_messages``; never raises."""

    try:
        return load_warning_messages(session)
    except ClientError as exc:
        LOG.debug("Could not load server warnings: %s", exc)
    except Exception:  # pragma: no cover - best effort
        LOG.debug("Unexpected error while loading server warnings", exc_info=True)
    return []


def format_warnings(messages: Iterable[str]) -> str:
    lines = [f" * {message}" for message in messages]
    if not lines:
        return ""
    return "\n".join(["Warnings:", *lines, ""])


__all__ = [
    "MIN_REVISION_WITH_WARNINGS",
    "WARNINGS_QUERY",
    "fetch_warnings",
    "format_warnings",
    "load_warning_messages",
]

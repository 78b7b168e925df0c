"""Session bootstrap for the chclient command-line database client."""

from __future__ import annotations

__version__ = "24.8.0"

from .args import PairedArguments, pair_hosts_and_ports
from .bootstrap import ClientBootstrap, ReadySession, build_config
from .config import LayeredConfig
from .errors import ClientError
from .models import EffectiveConfig, Target
from .session import Session

__all__ = [
    "ClientBootstrap",
    "ClientError",
    "EffectiveConfig",
    "LayeredConfig",
    "PairedArguments",
    "ReadySession",
    "Session",
    "Target",
    "__version__",
    "build_config",
    "pair_hosts_and_ports",
]

"""Destination store package."""

from .base import (
    DestinationStore,
    DestinationEntry,
    DestinationError,
    DestinationNotFound,
    join_remote,
    breaks_session
)
from .ftp_store import FTPDestination

__all__ = [
    "DestinationStore",
    "DestinationEntry",
    "DestinationError",
    "DestinationNotFound",
    "join_remote",
    "breaks_session",
    "FTPDestination"
]

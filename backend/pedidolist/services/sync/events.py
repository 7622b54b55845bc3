"""Messages published by the sync engine and the connectivity monitor."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime
from typing import Union

from pedidolist.services.sync.types import SyncReport


class SyncTrigger(str, enum.Enum):
    """What started a drain cycle."""
    RECONNECT = "reconnect"
    MANUAL = "manual"
    PERIODIC = "periodic"
    MUTATION = "mutation"


class ConnectivityEvent(str, enum.Enum):
    WENT_ONLINE = "went-online"
    WENT_OFFLINE = "went-offline"


@dataclass(frozen=True)
class SyncStarted:
    trigger: SyncTrigger
    at: datetime
    pending: int


@dataclass(frozen=True)
class SyncCompleted:
    report: SyncReport
    at: datetime


@dataclass(frozen=True)
class SyncFailed:
    """A cycle aborted on an unexpected exception."""

    trigger: SyncTrigger
    error: str
    at: datetime
    duration_seconds: float


SyncEvent = Union[SyncStarted, SyncCompleted, SyncFailed]

"""Sync-specific exceptions."""

import json
from typing import Any, Dict, Optional


class SyncError(Exception):
    """Base exception for sync errors."""

    pass


# ---------------------------------------------------------------------------
# Local store
# ---------------------------------------------------------------------------

class LocalStoreError(SyncError):
    """Raised when the local store cannot complete an operation."""

    pass


class StorageQuotaExceededError(LocalStoreError):
    """Raised when the local database runs out of space."""

    pass


class LocalEntityMissingError(LocalStoreError):
    """Raised when a queued mutation points at an entity that no longer exists."""

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"Local {entity_type} '{entity_id}' not found")


# ---------------------------------------------------------------------------
# Remote API
# ---------------------------------------------------------------------------

class RemoteApiError(SyncError):
    """Raised when a call to the remote API fails."""

    retryable = True

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class RemoteUnavailableError(RemoteApiError):
    """Timeout, connection failure, 5xx or throttling. Retried next cycle."""

    pass


class RemoteConflictError(RemoteApiError):
    """Server rejected the write as stale (HTTP 409)."""

    def __init__(self, message: str, current: Optional[dict] = None):
        super().__init__(message, status_code=409)
        self.current = current


class RemoteClientError(RemoteApiError):
    """Request rejected by the server. Retrying without intervention will not help."""

    retryable = False


class RemoteAuthError(RemoteClientError):
    """Credential missing, expired or not allowed (HTTP 401/403)."""

    pass


class RemoteNotFoundError(RemoteClientError):
    """Record does not exist on the server (HTTP 404)."""

    pass


# ---------------------------------------------------------------------------
# Conflicts
# ---------------------------------------------------------------------------

class ConflictNeedsReviewError(SyncError):
    """A conflict the configured strategy leaves to a human.

    ``local`` and ``server`` are the competing copies; the message carries
    both as JSON so they survive in the blocked queue item's ``last_error``.
    """

    def __init__(self, entity_type: str, local_id: str, local: Dict[str, Any], server: Dict[str, Any]):
        self.entity_type = entity_type
        self.local_id = local_id
        self.local = local
        self.server = server
        copies = json.dumps({"local": local, "server": server}, default=str, sort_keys=True)
        super().__init__(f"Conflict on {entity_type} '{local_id}' needs manual review: {copies}")

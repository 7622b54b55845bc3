"""Enumerations shared by the local store models and the sync engine."""

import enum


class EntityType(str, enum.Enum):
    """Kinds of synchronizable records."""
    ORDER = "order"
    PRODUCT = "product"


class SyncAction(str, enum.Enum):
    """Mutation recorded in the sync queue."""
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class SyncStatus(str, enum.Enum):
    """Per-entity sync flag."""
    PENDING = "pending"
    SYNCED = "synced"
    ERROR = "error"


class QueueItemStatus(str, enum.Enum):
    """Queue item state. Blocked items wait for a human (e.g. re-authentication)."""
    PENDING = "pending"
    BLOCKED = "blocked"


class OrderStatus(str, enum.Enum):
    PENDING = "pending"
    PREPARING = "preparing"
    READY = "ready"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"

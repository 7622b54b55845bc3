"""
Local Store

Durable storage for orders, products and the sync queue.

- Every operation is a coroutine guarded by one asyncio lock, so writes are
  serialized (single logical writer) even though callers are concurrent.
- Each call runs in its own transaction and commits before returning; a
  failure rolls back and surfaces as LocalStoreError.
- Session work happens on a worker thread (asyncio.to_thread) so disk I/O
  never stalls the event loop. The engine must allow cross-thread use.
- The queue is owned here. The sync engine reads, drains and updates it only
  through this interface.
"""

import asyncio
import enum
import logging
import math
from contextlib import contextmanager
from datetime import datetime, timedelta
from typing import Callable, Dict, Iterator, List, Optional, Type, TypeVar
from uuid import uuid4

from sqlalchemy import func
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from pedidolist.core.enums import EntityType, QueueItemStatus, SyncAction, SyncStatus
from pedidolist.db.base import ensure_utc, utcnow
from pedidolist.models.order import Order
from pedidolist.models.product import Product
from pedidolist.models.sync_queue import SyncQueueItem
from pedidolist.schemas import PAYLOAD_SCHEMAS, normalize_payload
from pedidolist.services.sync.exceptions import (
    LocalEntityMissingError,
    LocalStoreError,
    StorageQuotaExceededError,
)
from pedidolist.services.sync.types import EntityRecord

logger = logging.getLogger(__name__)

ENTITY_MODELS: Dict[EntityType, Type] = {
    EntityType.ORDER: Order,
    EntityType.PRODUCT: Product,
}

DEFAULT_RETENTION_DAYS = 30

T = TypeVar("T")

# SQLite messages that mean the device ran out of room
_QUOTA_MARKERS = ("database or disk is full", "disk i/o error", "no space left")


def _translate_error(exc: SQLAlchemyError) -> LocalStoreError:
    message = str(getattr(exc, "orig", exc) or exc)
    if isinstance(exc, OperationalError) and any(m in message.lower() for m in _QUOTA_MARKERS):
        return StorageQuotaExceededError(f"Local storage full: {message}")
    return LocalStoreError(f"Local store failure: {message}")


class LocalStore:
    """Entity and sync queue persistence on top of a SQLAlchemy session factory."""

    def __init__(
        self,
        session_factory: sessionmaker,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._session_factory = session_factory
        self._clock = clock
        self._lock = asyncio.Lock()

    # ------------------------------------------------------------------ helpers

    @contextmanager
    def _transaction(self) -> Iterator[Session]:
        db = self._session_factory()
        try:
            yield db
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            raise _translate_error(exc) from exc
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    @staticmethod
    def _model(entity_type: EntityType) -> Type:
        return ENTITY_MODELS[EntityType(entity_type)]

    def _find(self, db: Session, entity_type: EntityType, local_id: str):
        model = self._model(entity_type)
        return db.query(model).filter(model.local_id == local_id).first()

    def _to_record(self, entity_type: EntityType, row) -> EntityRecord:
        entity_type = EntityType(entity_type)
        model = self._model(entity_type)
        payload = normalize_payload(
            entity_type, {name: getattr(row, name) for name in model.PAYLOAD_FIELDS}
        )
        return EntityRecord(
            entity_type=entity_type,
            payload=payload,
            local_id=row.local_id,
            server_id=row.server_id,
            version=row.version or 0,
            last_modified_at=ensure_utc(row.last_modified_at),
            sync_status=SyncStatus(row.sync_status),
            is_deleted=bool(row.is_deleted),
        )

    def _apply_payload(self, row, entity_type: EntityType, payload: dict) -> None:
        schema = PAYLOAD_SCHEMAS[EntityType(entity_type)]
        validated = schema.model_validate(payload)
        python_values = validated.model_dump()
        json_values = validated.model_dump(mode="json")
        for name in self._model(entity_type).PAYLOAD_FIELDS:
            value = python_values[name]
            if isinstance(value, (list, dict)):
                # JSON columns need plain JSON types
                value = json_values[name]
            elif isinstance(value, enum.Enum):
                value = value.value
            setattr(row, name, value)

    def _write(self, row, record: EntityRecord) -> None:
        self._apply_payload(row, record.entity_type, record.payload)
        row.server_id = record.server_id
        row.version = record.version
        row.last_modified_at = ensure_utc(record.last_modified_at)
        row.sync_status = SyncStatus(record.sync_status).value
        row.is_deleted = record.is_deleted

    @staticmethod
    def _queue_for(db: Session, entity_type: EntityType, local_id: str):
        return db.query(SyncQueueItem).filter(
            SyncQueueItem.entity_type == EntityType(entity_type).value,
            SyncQueueItem.entity_id == local_id,
        )

    def _drop_queue_items(
        self,
        db: Session,
        entity_type: EntityType,
        local_id: str,
        through_queue_id: Optional[int],
    ) -> int:
        query = self._queue_for(db, entity_type, local_id)
        if through_queue_id is not None:
            query = query.filter(SyncQueueItem.id <= through_queue_id)
        return query.delete(synchronize_session=False)

    def _run_sync(self, work: Callable[[Session], T]) -> T:
        with self._transaction() as db:
            return work(db)

    async def _run(self, work: Callable[[Session], T]) -> T:
        """Run *work* in one transaction on a worker thread, under the writer lock."""
        async with self._lock:
            return await asyncio.to_thread(self._run_sync, work)

    # --------------------------------------------------------------- entities

    async def get(
        self,
        entity_type: EntityType,
        local_id: str,
        include_deleted: bool = True,
    ) -> Optional[EntityRecord]:
        """Return the entity, or None when it does not exist."""
        def work(db: Session) -> Optional[EntityRecord]:
            row = self._find(db, entity_type, local_id)
            if row is None or (row.is_deleted and not include_deleted):
                return None
            return self._to_record(entity_type, row)

        return await self._run(work)

    async def list_entities(
        self,
        entity_type: EntityType,
        business_id: Optional[str] = None,
        include_deleted: bool = False,
    ) -> List[EntityRecord]:
        def work(db: Session) -> List[EntityRecord]:
            model = self._model(entity_type)
            query = db.query(model)
            if not include_deleted:
                query = query.filter(model.not_deleted())
            if business_id:
                query = query.filter(model.business_id == business_id)
            return [self._to_record(entity_type, row) for row in query.order_by(model.id).all()]

        return await self._run(work)

    async def put(self, entity_type: EntityType, entity: EntityRecord) -> str:
        """Insert or overwrite an entity. Returns its local id (fresh on insert)."""
        def work(db: Session) -> str:
            row = self._find(db, entity_type, entity.local_id) if entity.local_id else None
            if row is None:
                model = self._model(entity_type)
                row = model(local_id=entity.local_id or str(uuid4()))
                db.add(row)
            self._write(row, entity.with_changes(entity_type=EntityType(entity_type)))
            db.flush()
            return row.local_id

        return await self._run(work)

    async def record_mutation(
        self,
        entity_type: EntityType,
        action: SyncAction,
        entity: EntityRecord,
    ) -> EntityRecord:
        """Apply a local create/update/delete and enqueue it atomically.

        The entity becomes ``pending`` with a fresh local ``last_modified_at``.
        Deletes are soft until the server confirms them.
        """
        entity_type = EntityType(entity_type)
        action = SyncAction(action)
        now = self._clock()

        def work(db: Session) -> EntityRecord:
            if action is SyncAction.CREATE:
                row = self._model(entity_type)(local_id=str(uuid4()), version=0)
                db.add(row)
            else:
                row = self._find(db, entity_type, entity.local_id) if entity.local_id else None
                if row is None or row.is_deleted:
                    raise LocalEntityMissingError(entity_type.value, entity.local_id or "")

            if action is SyncAction.DELETE:
                row.is_deleted = True
            else:
                self._apply_payload(row, entity_type, entity.payload)
            row.last_modified_at = now
            row.sync_status = SyncStatus.PENDING.value

            db.add(SyncQueueItem(
                entity_type=entity_type.value,
                entity_id=row.local_id,
                action=action.value,
                timestamp=now,
                retries=0,
                status=QueueItemStatus.PENDING.value,
            ))
            db.flush()
            logger.debug(f"Recorded {action.value} for {entity_type.value} {row.local_id}")
            return self._to_record(entity_type, row)

        return await self._run(work)

    async def apply_server_record(
        self,
        entity_type: EntityType,
        local_id: str,
        record: EntityRecord,
        through_queue_id: Optional[int] = None,
        overwrite_payload: bool = False,
    ) -> EntityRecord:
        """Adopt the server's identity and metadata for a local entity.

        Drops the queue items up to *through_queue_id*.  ``overwrite_payload``
        replaces the business fields as well (server won a conflict).  When
        newer local mutations are still queued the entity stays ``pending``
        and keeps its local content and timestamp.
        """
        def work(db: Session) -> EntityRecord:
            row = self._find(db, entity_type, local_id)
            if row is None:
                raise LocalEntityMissingError(EntityType(entity_type).value, local_id)

            self._drop_queue_items(db, entity_type, local_id, through_queue_id)
            remaining = self._queue_for(db, entity_type, local_id).count()

            row.server_id = record.server_id or row.server_id
            row.version = record.version
            if remaining:
                row.sync_status = SyncStatus.PENDING.value
            else:
                if overwrite_payload:
                    self._apply_payload(row, entity_type, record.payload)
                    row.is_deleted = False
                row.last_modified_at = ensure_utc(record.last_modified_at)
                row.sync_status = SyncStatus.SYNCED.value
            db.flush()
            return self._to_record(entity_type, row)

        return await self._run(work)

    async def purge(
        self,
        entity_type: EntityType,
        local_id: str,
        through_queue_id: Optional[int] = None,
    ) -> bool:
        """Remove a deleted entity once the server confirmed the delete."""
        def work(db: Session) -> bool:
            self._drop_queue_items(db, entity_type, local_id, through_queue_id)
            if self._queue_for(db, entity_type, local_id).count():
                return False
            row = self._find(db, entity_type, local_id)
            if row is not None:
                db.delete(row)
            return True

        return await self._run(work)

    # ------------------------------------------------------------------ queue

    async def enqueue(self, item: SyncQueueItem) -> int:
        """Append a mutation to the queue. Never touches the network."""
        def work(db: Session) -> int:
            if item.timestamp is None:
                item.timestamp = self._clock()
            item.retries = item.retries or 0
            item.status = item.status or QueueItemStatus.PENDING.value
            db.add(item)
            db.flush()
            return item.id

        return await self._run(work)

    async def list_pending(self, include_blocked: bool = True) -> List[SyncQueueItem]:
        """Queue items in FIFO order (enqueue time, then insertion order)."""
        def work(db: Session) -> List[SyncQueueItem]:
            query = db.query(SyncQueueItem)
            if not include_blocked:
                query = query.filter(SyncQueueItem.status == QueueItemStatus.PENDING.value)
            items = query.order_by(SyncQueueItem.timestamp, SyncQueueItem.id).all()
            for item in items:
                item.timestamp = ensure_utc(item.timestamp)
                item.last_attempt_at = ensure_utc(item.last_attempt_at)
            db.expunge_all()
            return items

        return await self._run(work)

    async def latest_queue_id(self, entity_type: EntityType, local_id: str) -> Optional[int]:
        def work(db: Session) -> Optional[int]:
            return db.query(func.max(SyncQueueItem.id)).filter(
                SyncQueueItem.entity_type == EntityType(entity_type).value,
                SyncQueueItem.entity_id == local_id,
            ).scalar()

        return await self._run(work)

    async def mark_synced(
        self,
        entity_type: EntityType,
        local_id: str,
        through_queue_id: Optional[int] = None,
    ) -> int:
        """Remove the entity's queue items once the server confirmed them."""
        def work(db: Session) -> int:
            removed = self._drop_queue_items(db, entity_type, local_id, through_queue_id)
            if not self._queue_for(db, entity_type, local_id).count():
                row = self._find(db, entity_type, local_id)
                if row is not None:
                    row.sync_status = SyncStatus.SYNCED.value
            return removed

        return await self._run(work)

    async def increment_retry(self, queue_id: int, error: str) -> int:
        """Bump ``retries`` and record the error. The item stays queued."""
        def work(db: Session) -> int:
            item = db.get(SyncQueueItem, queue_id)
            if item is None:
                logger.warning(f"Queue item {queue_id} vanished before retry bookkeeping")
                return 0
            item.retries = (item.retries or 0) + 1
            item.last_error = error
            item.last_attempt_at = self._clock()
            return item.retries

        return await self._run(work)

    async def mark_blocked(self, queue_id: int, error: str) -> None:
        """Park an item that cannot succeed without intervention; flag its entity."""
        def work(db: Session) -> None:
            item = db.get(SyncQueueItem, queue_id)
            if item is None:
                return
            item.status = QueueItemStatus.BLOCKED.value
            item.last_error = error
            item.last_attempt_at = self._clock()
            row = self._find(db, EntityType(item.entity_type), item.entity_id)
            if row is not None:
                row.sync_status = SyncStatus.ERROR.value

        await self._run(work)

    async def get_queue_item(self, queue_id: int) -> Optional[SyncQueueItem]:
        def work(db: Session) -> Optional[SyncQueueItem]:
            item = db.get(SyncQueueItem, queue_id)
            if item is None:
                return None
            db.expunge(item)
            item.timestamp = ensure_utc(item.timestamp)
            item.last_attempt_at = ensure_utc(item.last_attempt_at)
            return item

        return await self._run(work)

    async def requeue(self, queue_id: int) -> bool:
        """Give a blocked item a fresh start (e.g. after re-authentication)."""
        def work(db: Session) -> bool:
            item = db.get(SyncQueueItem, queue_id)
            if item is None:
                return False
            item.status = QueueItemStatus.PENDING.value
            item.retries = 0
            item.last_error = None
            item.last_attempt_at = None
            row = self._find(db, EntityType(item.entity_type), item.entity_id)
            if row is not None:
                row.sync_status = SyncStatus.PENDING.value
            return True

        return await self._run(work)

    async def pending_count(self) -> int:
        return await self._run(lambda db: db.query(SyncQueueItem).count())

    async def blocked_count(self) -> int:
        return await self._run(
            lambda db: db.query(SyncQueueItem).filter(
                SyncQueueItem.status == QueueItemStatus.BLOCKED.value
            ).count()
        )

    # -------------------------------------------------------------- retention

    def _days_until_expiry(self, db: Session, max_age_days: int) -> int:
        now = self._clock()
        oldest: Optional[datetime] = None
        for model in ENTITY_MODELS.values():
            candidate = db.query(func.min(model.last_modified_at)).filter(
                model.sync_status == SyncStatus.SYNCED.value
            ).scalar()
            candidate = ensure_utc(candidate)
            if candidate is not None and (oldest is None or candidate < oldest):
                oldest = candidate
        if oldest is None:
            return max_age_days
        age_days = math.floor((now - oldest).total_seconds() / 86400)
        return max(0, max_age_days - age_days)

    async def days_until_expiry(self, max_age_days: int = DEFAULT_RETENTION_DAYS) -> int:
        """Days before the oldest synced record falls out of retention."""
        return await self._run(lambda db: self._days_until_expiry(db, max_age_days))

    async def expire_stale_records(self, max_age_days: int = DEFAULT_RETENTION_DAYS) -> int:
        """Purge synced entities older than *max_age_days*.

        Entities with unsynced changes are never purged.  Returns the days
        remaining until the next record expires.
        """
        cutoff = self._clock() - timedelta(days=max_age_days)

        def work(db: Session) -> int:
            purged = 0
            for model in ENTITY_MODELS.values():
                purged += db.query(model).filter(
                    model.sync_status == SyncStatus.SYNCED.value,
                    model.last_modified_at.is_not(None),
                    model.last_modified_at < cutoff,
                ).delete(synchronize_session=False)
            if purged:
                logger.info(f"Storage retention: purged {purged} records older than {max_age_days} days")
            return self._days_until_expiry(db, max_age_days)

        return await self._run(work)

"""Audit service: append-only consent event logging.

All writes are append-only. No update or delete methods are exposed.
A failed append raises StorageError; callers never continue silently.
"""

import logging
import uuid
from abc import ABC, abstractmethod

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clock import get_clock
from app.core.errors import StorageError
from app.models.audit import ActorType, AuditAction, ConsentAuditLog

logger = logging.getLogger("medilocker.audit")


class AuditLogStore(ABC):
    """Abstract append-only audit table."""

    @abstractmethod
    async def append(self, entry: ConsentAuditLog) -> ConsentAuditLog:
        ...

    @abstractmethod
    async def list_by_consent(self, consent_id: uuid.UUID) -> list[ConsentAuditLog]:
        """Entries for one consent, newest first."""
        ...


class SqlAuditLogStore(AuditLogStore):
    def __init__(self, db: AsyncSession):
        self._db = db

    async def append(self, entry: ConsentAuditLog) -> ConsentAuditLog:
        try:
            self._db.add(entry)
            await self._db.flush()
        except SQLAlchemyError as exc:
            raise StorageError("audit append failed") from exc
        return entry

    async def list_by_consent(self, consent_id: uuid.UUID) -> list[ConsentAuditLog]:
        try:
            result = await self._db.execute(
                select(ConsentAuditLog)
                .where(ConsentAuditLog.consent_id == consent_id)
                .order_by(ConsentAuditLog.timestamp.desc(), ConsentAuditLog.id.desc())
            )
        except SQLAlchemyError as exc:
            raise StorageError("audit lookup failed") from exc
        return list(result.scalars().all())


class InMemoryAuditLogStore(AuditLogStore):
    """List-backed store for tests."""

    def __init__(self):
        self._entries: list[ConsentAuditLog] = []

    async def append(self, entry: ConsentAuditLog) -> ConsentAuditLog:
        self._entries.append(entry)
        return entry

    async def list_by_consent(self, consent_id: uuid.UUID) -> list[ConsentAuditLog]:
        entries = [e for e in self._entries if e.consent_id == consent_id]
        return sorted(entries, key=lambda e: (e.timestamp, e.id), reverse=True)


async def log_event(
    store: AuditLogStore,
    *,
    consent_id: uuid.UUID,
    action: AuditAction,
    actor_type: ActorType,
    actor_id: str | None = None,
    user_id: uuid.UUID | None = None,
    details: dict | None = None,
) -> ConsentAuditLog:
    """Create an append-only audit log entry for a consent."""
    clock = get_clock()
    entry = ConsentAuditLog(
        id=clock.new_id(),
        consent_id=consent_id,
        user_id=user_id,
        action=action.value,
        actor_id=actor_id,
        actor_type=actor_type.value,
        details=details,
        timestamp=clock.now(),
    )
    await store.append(entry)
    logger.info(
        "consent=%s action=%s actor_type=%s", consent_id, entry.action, entry.actor_type
    )
    return entry


async def get_trail(store: AuditLogStore, consent_id: uuid.UUID) -> list[ConsentAuditLog]:
    """Return the audit trail for a consent, newest first."""
    return await store.list_by_consent(consent_id)

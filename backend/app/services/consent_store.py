"""Consent persistence: one interface, a SQL backend and an in-memory backend.

The lifecycle engine and the share gateway depend only on ConsentStore, so
authorization behaves the same regardless of where consents live.

Status changes go through transition(), a compare-and-set on the current
status. Two racing writers can never move a consent out of a terminal
state: the loser's WHERE clause simply matches nothing.
"""

import uuid
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import StorageError
from app.models.consent import Consent, ConsentStatus


class ConsentStore(ABC):
    """Abstract consent table."""

    @abstractmethod
    async def add(self, consent: Consent) -> Consent:
        """Persist a new consent. Raises StorageError on id/token collision."""
        ...

    @abstractmethod
    async def get(self, consent_id: uuid.UUID) -> Consent | None:
        ...

    @abstractmethod
    async def reload(self, consent_id: uuid.UUID) -> Consent | None:
        """Re-read a consent, bypassing any cached copy."""
        ...

    @abstractmethod
    async def get_by_token(self, token: str) -> Consent | None:
        ...

    @abstractmethod
    async def token_exists(self, token: str) -> bool:
        ...

    @abstractmethod
    async def list_by_owner(self, owner_id: uuid.UUID) -> list[Consent]:
        """All consents for an owner, newest created first."""
        ...

    @abstractmethod
    async def transition(
        self,
        consent_id: uuid.UUID,
        *,
        from_status: ConsentStatus,
        to_status: ConsentStatus,
        revoked_at: datetime | None = None,
    ) -> bool:
        """Set status only if it currently equals from_status.

        Returns True if this call performed the change.
        """
        ...


@contextmanager
def _storage_errors(operation: str):
    try:
        yield
    except IntegrityError as exc:
        raise StorageError(f"consent {operation} collided with an existing record") from exc
    except SQLAlchemyError as exc:
        raise StorageError(f"consent {operation} failed") from exc


class SqlConsentStore(ConsentStore):
    """Consents in the application database, scoped to one AsyncSession."""

    def __init__(self, db: AsyncSession):
        self._db = db

    async def add(self, consent: Consent) -> Consent:
        with _storage_errors("insert"):
            self._db.add(consent)
            await self._db.flush()
        return consent

    async def get(self, consent_id: uuid.UUID) -> Consent | None:
        with _storage_errors("lookup"):
            return await self._db.get(Consent, consent_id)

    async def reload(self, consent_id: uuid.UUID) -> Consent | None:
        with _storage_errors("lookup"):
            return await self._db.get(Consent, consent_id, populate_existing=True)

    async def get_by_token(self, token: str) -> Consent | None:
        with _storage_errors("lookup"):
            result = await self._db.execute(
                select(Consent).where(Consent.shareable_token == token)
            )
            return result.scalar_one_or_none()

    async def token_exists(self, token: str) -> bool:
        return await self.get_by_token(token) is not None

    async def list_by_owner(self, owner_id: uuid.UUID) -> list[Consent]:
        with _storage_errors("list"):
            result = await self._db.execute(
                select(Consent)
                .where(Consent.user_id == owner_id)
                .order_by(Consent.created_at.desc(), Consent.id.desc())
            )
            return list(result.scalars().all())

    async def transition(
        self,
        consent_id: uuid.UUID,
        *,
        from_status: ConsentStatus,
        to_status: ConsentStatus,
        revoked_at: datetime | None = None,
    ) -> bool:
        values: dict = {"status": to_status}
        if revoked_at is not None:
            values["revoked_at"] = revoked_at
        # A failed UPDATE rolls back to the savepoint only, so the caller can
        # keep using the session (lazy expiry treats the write as best effort).
        with _storage_errors("status update"):
            async with self._db.begin_nested():
                result = await self._db.execute(
                    update(Consent)
                    .where(Consent.id == consent_id, Consent.status == from_status)
                    .values(**values)
                )
        return result.rowcount == 1


class InMemoryConsentStore(ConsentStore):
    """Dict-backed store for tests. No database required."""

    def __init__(self):
        self._by_id: dict[uuid.UUID, Consent] = {}
        self._id_by_token: dict[str, uuid.UUID] = {}

    async def add(self, consent: Consent) -> Consent:
        if consent.id in self._by_id or consent.shareable_token in self._id_by_token:
            raise StorageError("consent insert collided with an existing record")
        self._by_id[consent.id] = consent
        self._id_by_token[consent.shareable_token] = consent.id
        return consent

    async def get(self, consent_id: uuid.UUID) -> Consent | None:
        return self._by_id.get(consent_id)

    async def reload(self, consent_id: uuid.UUID) -> Consent | None:
        return self._by_id.get(consent_id)

    async def get_by_token(self, token: str) -> Consent | None:
        consent_id = self._id_by_token.get(token)
        return self._by_id.get(consent_id) if consent_id is not None else None

    async def token_exists(self, token: str) -> bool:
        return token in self._id_by_token

    async def list_by_owner(self, owner_id: uuid.UUID) -> list[Consent]:
        owned = [c for c in self._by_id.values() if c.user_id == owner_id]
        # Same tie order as the SQL store: id descending
        return sorted(owned, key=lambda c: (c.created_at, c.id), reverse=True)

    async def transition(
        self,
        consent_id: uuid.UUID,
        *,
        from_status: ConsentStatus,
        to_status: ConsentStatus,
        revoked_at: datetime | None = None,
    ) -> bool:
        consent = self._by_id.get(consent_id)
        if consent is None or consent.status != from_status:
            return False
        consent.status = to_status
        if revoked_at is not None:
            consent.revoked_at = revoked_at
        return True

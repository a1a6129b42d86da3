"""Request-scoped dependencies: database session and store wiring."""

from collections.abc import AsyncIterator

from fastapi import Depends
from sqlalchemy.ext.asyncio import (
    AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine,
)

from app.config import settings
from app.services.audit_service import AuditLogStore, SqlAuditLogStore
from app.services.consent_store import ConsentStore, SqlConsentStore
from app.services.document_service import DocumentStore, SqlDocumentStore

# Created on first use so importing the app never opens a driver
_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def get_engine() -> AsyncEngine:
    global _engine
    if _engine is None:
        _engine = create_async_engine(settings.database_url, pool_pre_ping=True)
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    global _session_factory
    if _session_factory is None:
        _session_factory = async_sessionmaker(
            get_engine(), class_=AsyncSession, expire_on_commit=False
        )
    return _session_factory


async def get_db() -> AsyncIterator[AsyncSession]:
    """Yield one session per request. Commit on success, roll back on error."""
    async with get_session_factory()() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


def get_consent_store(db: AsyncSession = Depends(get_db)) -> ConsentStore:
    return SqlConsentStore(db)


def get_audit_store(db: AsyncSession = Depends(get_db)) -> AuditLogStore:
    return SqlAuditLogStore(db)


def get_document_store(db: AsyncSession = Depends(get_db)) -> DocumentStore:
    return SqlDocumentStore(db)

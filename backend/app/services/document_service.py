"""Document lookups for the share gateway.

Upload, OCR and AI insights are handled elsewhere. The gateway needs only
an owner's documents and single-document lookups.
"""

import uuid
from abc import ABC, abstractmethod

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.document import Document


class DocumentStore(ABC):
    @abstractmethod
    async def list_by_owner(self, owner_id: uuid.UUID) -> list[Document]:
        """Owner's documents, newest first."""
        ...

    @abstractmethod
    async def get(self, document_id: uuid.UUID) -> Document | None:
        ...


class SqlDocumentStore(DocumentStore):
    def __init__(self, db: AsyncSession):
        self._db = db

    async def list_by_owner(self, owner_id: uuid.UUID) -> list[Document]:
        result = await self._db.execute(
            select(Document)
            .where(Document.user_id == owner_id)
            .order_by(Document.created_at.desc(), Document.id.desc())
        )
        return list(result.scalars().all())

    async def get(self, document_id: uuid.UUID) -> Document | None:
        return await self._db.get(Document, document_id)


class InMemoryDocumentStore(DocumentStore):
    def __init__(self, documents: list[Document] | None = None):
        self._documents: dict[uuid.UUID, Document] = {d.id: d for d in documents or []}

    def add(self, document: Document) -> Document:
        self._documents[document.id] = document
        return document

    async def list_by_owner(self, owner_id: uuid.UUID) -> list[Document]:
        owned = [d for d in self._documents.values() if d.user_id == owner_id]
        return sorted(owned, key=lambda d: (d.created_at, d.id), reverse=True)

    async def get(self, document_id: uuid.UUID) -> Document | None:
        return self._documents.get(document_id)


def summarize(document: Document) -> dict:
    """Projection safe to show a recipient: no text, embeddings or storage paths."""
    return {
        "id": document.id,
        "title": document.title,
        "category": document.type,
        "provider": document.provider,
        "date": document.date,
        "file_type": document.file_type,
        "created_at": document.created_at,
    }

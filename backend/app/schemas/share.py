"""Recipient-facing views. No owner identity, token or storage path."""

import uuid

from app.models.consent import RecipientRole
from app.schemas.consent import CamelModel, UtcDatetime


class SharedConsentRead(CamelModel):
    id: uuid.UUID
    recipient_name: str
    recipient_role: RecipientRole
    scopes: list[str]
    purpose: str
    expires_at: UtcDatetime
    created_at: UtcDatetime


class SharedConsentEnvelope(CamelModel):
    consent: SharedConsentRead


class SharedDocumentRead(CamelModel):
    id: uuid.UUID
    title: str
    category: str
    provider: str | None = None
    date: UtcDatetime | None = None
    file_type: str | None = None
    created_at: UtcDatetime


class SharedDocumentList(CamelModel):
    documents: list[SharedDocumentRead]


class SharedFileRead(CamelModel):
    url: str
    expires_in: int

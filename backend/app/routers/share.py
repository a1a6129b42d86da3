"""Public share routes. Authenticated by the shareable token in the path.

Expired and revoked consents answer 410 with the terminal state. The
response is returned rather than raised so that an expiry observed during
the request is still committed.
"""

import uuid

from fastapi import APIRouter, Depends, Request

from app.core.errors import ConsentGone, ConsentNotFound, gone_response
from app.dependencies import get_audit_store, get_consent_store, get_document_store
from app.schemas.share import (
    SharedConsentEnvelope,
    SharedConsentRead,
    SharedDocumentList,
    SharedDocumentRead,
    SharedFileRead,
)
from app.services import share_service
from app.services.audit_service import AuditLogStore
from app.services.consent_store import ConsentStore
from app.services.document_service import DocumentStore

router = APIRouter(prefix="/consents/share", tags=["share"])


def _recipient(request: Request) -> dict:
    return {
        "client_ip": request.client.host if request.client else None,
        "user_agent": request.headers.get("User-Agent"),
    }


# Longest paths first so /{token} never shadows the document routes.
@router.get("/{token}/documents/{document_id}/file", response_model=SharedFileRead)
async def shared_document_file(
    token: str,
    document_id: str,
    request: Request,
    consents: ConsentStore = Depends(get_consent_store),
    audit: AuditLogStore = Depends(get_audit_store),
    documents: DocumentStore = Depends(get_document_store),
):
    try:
        doc_id = uuid.UUID(document_id)
    except ValueError:
        raise ConsentNotFound("Document not found")
    try:
        locator = await share_service.access_document_file(
            consents, audit, documents, token, doc_id, **_recipient(request)
        )
    except ConsentGone as exc:
        return gone_response(request, exc)
    return SharedFileRead.model_validate(locator)


@router.get("/{token}/documents", response_model=SharedDocumentList)
async def shared_documents(
    token: str,
    request: Request,
    consents: ConsentStore = Depends(get_consent_store),
    audit: AuditLogStore = Depends(get_audit_store),
    documents: DocumentStore = Depends(get_document_store),
):
    try:
        visible = await share_service.access_documents(
            consents, audit, documents, token, **_recipient(request)
        )
    except ConsentGone as exc:
        return gone_response(request, exc)
    return SharedDocumentList(documents=[SharedDocumentRead.model_validate(d) for d in visible])


@router.get("/{token}", response_model=SharedConsentEnvelope)
async def shared_consent(
    token: str,
    request: Request,
    consents: ConsentStore = Depends(get_consent_store),
    audit: AuditLogStore = Depends(get_audit_store),
):
    try:
        summary = await share_service.access_consent(
            consents, audit, token, **_recipient(request)
        )
    except ConsentGone as exc:
        return gone_response(request, exc)
    return SharedConsentEnvelope(consent=SharedConsentRead.model_validate(summary))

"""Share gateway: token-authenticated, read-only access for recipients.

Possession of a shareable token is the only credential. Each call resolves
the token, refuses terminal consents with ConsentGone, applies the scope
policy and writes one `access` audit entry per disclosure.

The audit entry is written before anything is returned. If it cannot be
written the call fails with StorageError and nothing is disclosed.

Recipients never see the owner's identity, the token itself, document
text, embeddings or storage paths.
"""

import uuid

from app.config import settings
from app.core.errors import AccessDenied, ConsentGone, ConsentNotFound
from app.models.audit import ActorType, AuditAction
from app.models.consent import Consent, ConsentStatus
from app.services import audit_service, consent_service
from app.services.audit_service import AuditLogStore
from app.services.consent_store import ConsentStore
from app.services.document_service import DocumentStore, summarize
from app.services.scope_policy import DataCategory, is_permitted
from app.services.storage import get_file_access


async def _resolve_live(consents: ConsentStore, token: str) -> Consent:
    consent = await consent_service.get_consent_by_token(consents, token)
    status = ConsentStatus(consent.status)
    if status is ConsentStatus.revoked:
        raise ConsentGone(consent.id, status.value, consent.revoked_at)
    if status is ConsentStatus.expired:
        raise ConsentGone(consent.id, status.value, consent.expires_at)
    return consent


async def _log_access(
    audit: AuditLogStore,
    consent: Consent,
    *,
    resource: str,
    client_ip: str | None,
    user_agent: str | None,
    **extra,
) -> None:
    await audit_service.log_event(
        audit,
        consent_id=consent.id,
        action=AuditAction.access,
        actor_type=ActorType.recipient,
        actor_id=client_ip or "unknown",
        details={"resource": resource, "ip": client_ip, "user_agent": user_agent, **extra},
    )


def consent_summary(consent: Consent) -> dict:
    return {
        "id": consent.id,
        "recipient_name": consent.recipient_name,
        "recipient_role": consent.recipient_role,
        "scopes": list(consent.scopes),
        "purpose": consent.purpose,
        "expires_at": consent.expires_at,
        "created_at": consent.created_at,
    }


async def access_consent(
    consents: ConsentStore,
    audit: AuditLogStore,
    token: str,
    *,
    client_ip: str | None = None,
    user_agent: str | None = None,
) -> dict:
    """Consent metadata for the recipient holding `token`."""
    consent = await _resolve_live(consents, token)
    await _log_access(
        audit, consent, resource="consent", client_ip=client_ip, user_agent=user_agent
    )
    return consent_summary(consent)


async def access_documents(
    consents: ConsentStore,
    audit: AuditLogStore,
    documents: DocumentStore,
    token: str,
    *,
    client_ip: str | None = None,
    user_agent: str | None = None,
) -> list[dict]:
    """Sanitized document list. Empty when the scopes do not cover documents."""
    consent = await _resolve_live(consents, token)
    visible: list[dict] = []
    if is_permitted(consent.scopes, DataCategory.documents):
        visible = [summarize(d) for d in await documents.list_by_owner(consent.user_id)]
    await _log_access(
        audit,
        consent,
        resource="documents",
        client_ip=client_ip,
        user_agent=user_agent,
        count=len(visible),
    )
    return visible


async def access_document_file(
    consents: ConsentStore,
    audit: AuditLogStore,
    documents: DocumentStore,
    token: str,
    document_id: uuid.UUID,
    *,
    client_ip: str | None = None,
    user_agent: str | None = None,
) -> dict:
    """Short-lived signed URL for one of the owner's documents."""
    consent = await _resolve_live(consents, token)
    if not is_permitted(consent.scopes, DataCategory.documents):
        raise AccessDenied("Documents are not accessible with this consent")

    document = await documents.get(document_id)
    if document is None:
        raise ConsentNotFound("Document not found")
    if document.user_id != consent.user_id:
        raise AccessDenied()

    file_access = get_file_access()
    if not file_access.has_file(document.file_url):
        raise ConsentNotFound("File not found")

    ttl = settings.signed_url_ttl_seconds
    url = await file_access.create_signed_url(document.file_url, ttl)
    await _log_access(
        audit,
        consent,
        resource="document_file",
        client_ip=client_ip,
        user_agent=user_agent,
        document_id=str(document.id),
    )
    return {"url": url, "expires_in": ttl}

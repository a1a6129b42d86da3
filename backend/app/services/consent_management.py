"""Owner-facing consent management: create, list, inspect, revoke, audit, share.

Every call is made on behalf of an authenticated owner. A consent that
exists but belongs to another owner raises ConsentForbidden, never
ConsentNotFound, and is neither returned nor modified.
"""

import logging
import uuid
from datetime import datetime

from starlette.requests import Request

from app.core.errors import ConsentForbidden, ConsentNotFound
from app.models.audit import ActorType, AuditAction, ConsentAuditLog
from app.models.consent import Consent, ConsentStatus
from app.services import audit_service, consent_service, qr_service
from app.services.audit_service import AuditLogStore
from app.services.consent_store import ConsentStore

logger = logging.getLogger("medilocker.consent")


async def _owned_consent(
    consents: ConsentStore, owner_id: uuid.UUID, consent_id: uuid.UUID
) -> Consent:
    # Ownership is checked on the raw row, before lazy expiry may write to it.
    consent = await consents.get(consent_id)
    if consent is None:
        raise ConsentNotFound()
    if consent.user_id != owner_id:
        logger.warning("ownership mismatch consent=%s requested_by=%s", consent_id, owner_id)
        raise ConsentForbidden()
    return await consent_service.refresh_status(consents, consent)


async def create(
    consents: ConsentStore,
    audit: AuditLogStore,
    *,
    owner_id: uuid.UUID,
    recipient_name: str,
    recipient_role: str,
    scopes: list[str],
    duration_type: str,
    purpose: str,
    custom_expiry_date: datetime | str | None = None,
    ip_address: str | None = None,
) -> Consent:
    """Create a consent and its `grant` audit entry."""
    consent = await consent_service.create_consent(
        consents,
        owner_id=owner_id,
        recipient_name=recipient_name,
        recipient_role=recipient_role,
        scopes=scopes,
        duration_type=duration_type,
        purpose=purpose,
        custom_expiry_date=custom_expiry_date,
    )
    await audit_service.log_event(
        audit,
        consent_id=consent.id,
        action=AuditAction.grant,
        actor_type=ActorType.user,
        actor_id=str(owner_id),
        user_id=owner_id,
        details={
            "recipient_name": consent.recipient_name,
            "recipient_role": consent.recipient_role.value,
            "scopes": list(consent.scopes),
            "duration_type": consent.duration_type.value,
            "ip": ip_address,
        },
    )
    return consent


async def list_for_owner(
    consents: ConsentStore, owner_id: uuid.UUID, *, status: str | None = None
) -> list[Consent]:
    return await consent_service.list_consents(consents, owner_id, status=status)


async def get(consents: ConsentStore, owner_id: uuid.UUID, consent_id: uuid.UUID) -> Consent:
    return await _owned_consent(consents, owner_id, consent_id)


async def revoke(
    consents: ConsentStore,
    audit: AuditLogStore,
    owner_id: uuid.UUID,
    consent_id: uuid.UUID,
    *,
    ip_address: str | None = None,
) -> Consent:
    """Revoke a consent and record a `revoke` audit entry.

    Revoking an expired or already revoked consent leaves it unchanged but
    is still recorded.
    """
    consent = await _owned_consent(consents, owner_id, consent_id)
    previous = ConsentStatus(consent.status)
    consent, changed = await consent_service.revoke_consent(consents, consent.id)
    await audit_service.log_event(
        audit,
        consent_id=consent.id,
        action=AuditAction.revoke,
        actor_type=ActorType.user,
        actor_id=str(owner_id),
        user_id=owner_id,
        details={
            "reason": "User revoked consent",
            "previous_status": previous.value,
            "changed": changed,
            "ip": ip_address,
        },
    )
    return consent


async def audit_trail(
    consents: ConsentStore,
    audit: AuditLogStore,
    owner_id: uuid.UUID,
    consent_id: uuid.UUID,
) -> list[ConsentAuditLog]:
    consent = await _owned_consent(consents, owner_id, consent_id)
    return await audit_service.get_trail(audit, consent.id)


async def shareable_link(
    consents: ConsentStore,
    owner_id: uuid.UUID,
    consent_id: uuid.UUID,
    request: Request | None = None,
) -> dict:
    """Shareable URL for a consent and its QR code as a PNG data URL."""
    consent = await _owned_consent(consents, owner_id, consent_id)
    url = qr_service.build_shareable_url(consent.shareable_token, request)
    return {"shareable_url": url, "qr_code": qr_service.encode_qr_data_url(url)}

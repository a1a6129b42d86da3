"""Owner consent routes: create, list, inspect, revoke, audit trail, QR link."""

import uuid

from fastapi import APIRouter, Depends, Request

from app.core.auth import get_current_user
from app.core.errors import ConsentNotFound
from app.dependencies import get_audit_store, get_consent_store
from app.models.user import User
from app.schemas.audit import AuditLogRead, AuditTrail
from app.schemas.consent import (
    ConsentCreate, ConsentEnvelope, ConsentList, ConsentRead, ShareLinkRead,
)
from app.services import consent_management
from app.services.audit_service import AuditLogStore
from app.services.consent_store import ConsentStore

router = APIRouter(prefix="/consents", tags=["consents"])


def _parse_consent_id(value: str) -> uuid.UUID:
    try:
        return uuid.UUID(value)
    except ValueError:
        raise ConsentNotFound()


def _client_ip(request: Request) -> str | None:
    return request.client.host if request.client else None


@router.post("", response_model=ConsentEnvelope, status_code=201)
async def create_consent(
    body: ConsentCreate,
    request: Request,
    consents: ConsentStore = Depends(get_consent_store),
    audit: AuditLogStore = Depends(get_audit_store),
    current_user: User = Depends(get_current_user),
):
    consent = await consent_management.create(
        consents,
        audit,
        owner_id=current_user.id,
        recipient_name=body.recipient_name,
        recipient_role=body.recipient_role,
        scopes=body.scopes,
        duration_type=body.duration_type,
        purpose=body.purpose,
        custom_expiry_date=body.custom_expiry_date,
        ip_address=_client_ip(request),
    )
    return ConsentEnvelope(consent=ConsentRead.model_validate(consent))


@router.get("", response_model=ConsentList)
async def list_consents(
    status: str | None = None,
    consents: ConsentStore = Depends(get_consent_store),
    current_user: User = Depends(get_current_user),
):
    items = await consent_management.list_for_owner(consents, current_user.id, status=status)
    return ConsentList(consents=[ConsentRead.model_validate(c) for c in items])


@router.get("/{consent_id}", response_model=ConsentEnvelope)
async def get_consent(
    consent_id: str,
    consents: ConsentStore = Depends(get_consent_store),
    current_user: User = Depends(get_current_user),
):
    consent = await consent_management.get(
        consents, current_user.id, _parse_consent_id(consent_id)
    )
    return ConsentEnvelope(consent=ConsentRead.model_validate(consent))


@router.delete("/{consent_id}", response_model=ConsentEnvelope)
async def revoke_consent(
    consent_id: str,
    request: Request,
    consents: ConsentStore = Depends(get_consent_store),
    audit: AuditLogStore = Depends(get_audit_store),
    current_user: User = Depends(get_current_user),
):
    consent = await consent_management.revoke(
        consents,
        audit,
        current_user.id,
        _parse_consent_id(consent_id),
        ip_address=_client_ip(request),
    )
    return ConsentEnvelope(consent=ConsentRead.model_validate(consent))


@router.get("/{consent_id}/audit", response_model=AuditTrail)
async def get_audit_trail(
    consent_id: str,
    consents: ConsentStore = Depends(get_consent_store),
    audit: AuditLogStore = Depends(get_audit_store),
    current_user: User = Depends(get_current_user),
):
    logs = await consent_management.audit_trail(
        consents, audit, current_user.id, _parse_consent_id(consent_id)
    )
    return AuditTrail(logs=[AuditLogRead.model_validate(e) for e in logs])


@router.get("/{consent_id}/qr", response_model=ShareLinkRead)
async def get_share_qr(
    consent_id: str,
    request: Request,
    consents: ConsentStore = Depends(get_consent_store),
    current_user: User = Depends(get_current_user),
):
    link = await consent_management.shareable_link(
        consents, current_user.id, _parse_consent_id(consent_id), request
    )
    return ShareLinkRead.model_validate(link)

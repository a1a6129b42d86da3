"""Consent service: the consent lifecycle.

Every read recomputes status from (stored status, now, expires_at), so a
consent is never observed active past its deadline. Persisting the
active -> expired transition is a side effect of the read, done with a
compare-and-set so it is idempotent and can never overwrite a revoke.

Audit entries are written by the callers (consent_management and
share_service), not here.
"""

import logging
import uuid
from datetime import datetime, timedelta

from sqlalchemy.orm.attributes import set_committed_value

from app.config import settings
from app.core.clock import Clock, as_utc, get_clock
from app.core.errors import ConsentNotFound, ConsentValidationError, StorageError
from app.models.consent import (
    TERMINAL_STATUSES,
    Consent,
    ConsentScope,
    ConsentStatus,
    DurationType,
    RecipientRole,
)
from app.services.consent_store import ConsentStore

logger = logging.getLogger("medilocker.consent")

DURATIONS: dict[DurationType, timedelta] = {
    DurationType.hours_24: timedelta(hours=24),
    DurationType.days_7: timedelta(days=7),
}


def effective_status(
    stored: ConsentStatus | str, now: datetime, expires_at: datetime
) -> ConsentStatus:
    """Status as of `now`. Revoked wins over time; active past the deadline is expired."""
    stored = ConsentStatus(stored)
    if stored is ConsentStatus.active and as_utc(now) > as_utc(expires_at):
        return ConsentStatus.expired
    return stored


def _parse_choice(enum_cls, value, field: str, errors: list[dict[str, str]]):
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(e.value for e in enum_cls)
        errors.append({"field": field, "message": f"Invalid {field}: {value}. Must be one of: {allowed}"})
        return None


def _parse_datetime(value: datetime | str) -> datetime | None:
    if isinstance(value, datetime):
        return as_utc(value)
    try:
        return as_utc(datetime.fromisoformat(str(value).strip()))
    except ValueError:
        return None


async def _unique_token(store: ConsentStore, clock: Clock) -> str:
    for attempt in range(1, settings.share_token_max_attempts + 1):
        token = clock.new_token()
        if not await store.token_exists(token):
            return token
        logger.warning("shareable token collision (attempt %d)", attempt)
    raise StorageError("could not generate a unique shareable token")


async def create_consent(
    store: ConsentStore,
    *,
    owner_id: uuid.UUID,
    recipient_name: str,
    recipient_role: str,
    scopes: list[str],
    duration_type: str,
    purpose: str,
    custom_expiry_date: datetime | str | None = None,
) -> Consent:
    """Validate and persist a new active consent.

    All input problems are collected and raised together as a
    ConsentValidationError; nothing is written in that case.
    """
    clock = get_clock()
    now = clock.now()
    errors: list[dict[str, str]] = []

    name = (recipient_name or "").strip()
    if not name:
        errors.append({"field": "recipientName", "message": "Recipient name is required"})
    role = _parse_choice(RecipientRole, recipient_role, "recipientRole", errors)

    granted: set[ConsentScope] = set()
    if not scopes:
        errors.append({"field": "scopes", "message": "At least one scope is required"})
    for raw in scopes or []:
        scope = _parse_choice(ConsentScope, raw, "scopes", errors)
        if scope is not None:
            granted.add(scope)

    duration = _parse_choice(DurationType, duration_type, "durationType", errors)
    expiry: datetime | None = None
    if duration is DurationType.custom:
        if custom_expiry_date is None or custom_expiry_date == "":
            errors.append({
                "field": "customExpiryDate",
                "message": "Custom expiry date is required for a custom duration",
            })
        else:
            expiry = _parse_datetime(custom_expiry_date)
            if expiry is None:
                errors.append({"field": "customExpiryDate", "message": "Invalid custom expiry date"})
            elif expiry <= now:
                errors.append({
                    "field": "customExpiryDate",
                    "message": "Custom expiry date must be in the future",
                })

    reason = (purpose or "").strip()
    if not reason:
        errors.append({"field": "purpose", "message": "Purpose is required"})

    if errors:
        raise ConsentValidationError(errors)

    expires_at = now + DURATIONS[duration] if duration in DURATIONS else expiry
    consent = Consent(
        id=clock.new_id(),
        user_id=owner_id,
        recipient_name=name,
        recipient_role=role,
        scopes=[s.value for s in ConsentScope if s in granted],
        duration_type=duration,
        custom_expiry_date=expiry,
        purpose=reason,
        status=ConsentStatus.active,
        shareable_token=await _unique_token(store, clock),
        created_at=now,
        expires_at=expires_at,
        revoked_at=None,
    )
    await store.add(consent)
    logger.info(
        "consent created id=%s role=%s scopes=%s expires_at=%s",
        consent.id, role.value, ",".join(consent.scopes), expires_at.isoformat(),
    )
    return consent


async def refresh_status(store: ConsentStore, consent: Consent) -> Consent:
    """Apply lazy expiry to a loaded consent and persist it when it changes."""
    now = get_clock().now()
    status = effective_status(consent.status, now, consent.expires_at)
    if status is ConsentStatus(consent.status):
        return consent

    try:
        changed = await store.transition(
            consent.id,
            from_status=ConsentStatus.active,
            to_status=ConsentStatus.expired,
        )
    except StorageError:
        changed = False
        logger.warning("could not persist expiry for consent=%s", consent.id, exc_info=True)
    if changed:
        logger.info("consent expired id=%s", consent.id)
    if ConsentStatus(consent.status) is ConsentStatus.active:
        # Reflect the computed status without scheduling a blind write.
        set_committed_value(consent, "status", ConsentStatus.expired)
    return consent


async def get_consent(store: ConsentStore, consent_id: uuid.UUID) -> Consent:
    consent = await store.get(consent_id)
    if consent is None:
        raise ConsentNotFound()
    return await refresh_status(store, consent)


async def get_consent_by_token(store: ConsentStore, token: str) -> Consent:
    consent = await store.get_by_token(token)
    if consent is None:
        raise ConsentNotFound("Consent not found or invalid token")
    return await refresh_status(store, consent)


async def list_consents(
    store: ConsentStore,
    owner_id: uuid.UUID,
    *,
    status: str | None = None,
) -> list[Consent]:
    """All of an owner's consents, newest first, optionally filtered by effective status."""
    wanted = None
    if status:
        errors: list[dict[str, str]] = []
        wanted = _parse_choice(ConsentStatus, status, "status", errors)
        if errors:
            raise ConsentValidationError(errors)

    consents = [await refresh_status(store, c) for c in await store.list_by_owner(owner_id)]
    if wanted is not None:
        consents = [c for c in consents if ConsentStatus(c.status) is wanted]
    return consents


async def revoke_consent(store: ConsentStore, consent_id: uuid.UUID) -> tuple[Consent, bool]:
    """Revoke an active consent.

    Already expired or revoked consents are returned unchanged. Returns
    (consent, changed).
    """
    consent = await get_consent(store, consent_id)
    if ConsentStatus(consent.status) in TERMINAL_STATUSES:
        return consent, False

    changed = await store.transition(
        consent.id,
        from_status=ConsentStatus.active,
        to_status=ConsentStatus.revoked,
        revoked_at=get_clock().now(),
    )
    if not changed:
        # Another writer reached a terminal state first.
        consent = await store.reload(consent.id)
        return await refresh_status(store, consent), False

    logger.info("consent revoked id=%s", consent.id)
    return consent, True

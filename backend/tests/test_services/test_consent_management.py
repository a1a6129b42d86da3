"""Owner management: ownership checks and audit pairing."""

import uuid
from datetime import timedelta

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.errors import ConsentForbidden, ConsentNotFound, ConsentValidationError
from app.models.audit import ConsentAuditLog
from app.models.consent import Consent, ConsentStatus
from app.models.user import User
from app.services import consent_management
from app.services.audit_service import InMemoryAuditLogStore, SqlAuditLogStore
from app.services.consent_store import InMemoryConsentStore, SqlConsentStore

OWNER = uuid.uuid4()
STRANGER = uuid.uuid4()


async def _grant(consents, audit, owner_id=OWNER, **overrides):
    fields = dict(
        owner_id=owner_id,
        recipient_name="Sunrise Insurance",
        recipient_role="insurance",
        scopes=["documents", "insights"],
        duration_type="7d",
        purpose="Claim review",
        ip_address="192.0.2.10",
    )
    fields.update(overrides)
    return await consent_management.create(consents, audit, **fields)


@pytest.mark.asyncio
async def test_create_writes_grant_entry():
    consents, audit = InMemoryConsentStore(), InMemoryAuditLogStore()
    consent = await _grant(consents, audit)

    (entry,) = await audit.list_by_consent(consent.id)
    assert entry.action == "grant"
    assert entry.actor_type == "user"
    assert entry.actor_id == str(OWNER)
    assert entry.user_id == OWNER
    assert entry.details == {
        "recipient_name": "Sunrise Insurance",
        "recipient_role": "insurance",
        "scopes": ["documents", "insights"],
        "duration_type": "7d",
        "ip": "192.0.2.10",
    }


@pytest.mark.asyncio
async def test_invalid_create_writes_nothing():
    consents, audit = InMemoryConsentStore(), InMemoryAuditLogStore()
    with pytest.raises(ConsentValidationError):
        await _grant(consents, audit, scopes=[])
    assert await consents.list_by_owner(OWNER) == []
    assert audit._entries == []


@pytest.mark.asyncio
async def test_other_owner_is_forbidden_and_nothing_changes(clock):
    """A stranger can neither read, revoke, audit nor share someone else's consent."""
    consents, audit = InMemoryConsentStore(), InMemoryAuditLogStore()
    consent = await _grant(consents, audit)
    clock.advance(timedelta(days=8))  # past expiry, still stored active

    with pytest.raises(ConsentForbidden):
        await consent_management.get(consents, STRANGER, consent.id)
    with pytest.raises(ConsentForbidden):
        await consent_management.revoke(consents, audit, STRANGER, consent.id)
    with pytest.raises(ConsentForbidden):
        await consent_management.audit_trail(consents, audit, STRANGER, consent.id)
    with pytest.raises(ConsentForbidden):
        await consent_management.shareable_link(consents, STRANGER, consent.id)

    assert consent.status == ConsentStatus.active
    assert consent.revoked_at is None
    assert len(audit._entries) == 1


@pytest.mark.asyncio
async def test_unknown_consent_not_found():
    consents, audit = InMemoryConsentStore(), InMemoryAuditLogStore()
    with pytest.raises(ConsentNotFound):
        await consent_management.get(consents, OWNER, uuid.uuid4())
    with pytest.raises(ConsentNotFound):
        await consent_management.revoke(consents, audit, OWNER, uuid.uuid4())


@pytest.mark.asyncio
async def test_get_applies_lazy_expiry(clock):
    consents, audit = InMemoryConsentStore(), InMemoryAuditLogStore()
    consent = await _grant(consents, audit, duration_type="24h")
    clock.advance(timedelta(hours=24, minutes=1))
    assert (await consent_management.get(consents, OWNER, consent.id)).status == "expired"


@pytest.mark.asyncio
async def test_revoke_records_every_request(clock):
    consents, audit = InMemoryConsentStore(), InMemoryAuditLogStore()
    consent = await _grant(consents, audit)

    clock.advance(timedelta(minutes=1))
    first = await consent_management.revoke(consents, audit, OWNER, consent.id, ip_address="1.2.3.4")
    clock.advance(timedelta(minutes=1))
    second = await consent_management.revoke(consents, audit, OWNER, consent.id)

    assert first.status == second.status == ConsentStatus.revoked
    trail = await consent_management.audit_trail(consents, audit, OWNER, consent.id)
    assert [e.action for e in trail] == ["revoke", "revoke", "grant"]
    assert trail[1].details == {
        "reason": "User revoked consent",
        "previous_status": "active",
        "changed": True,
        "ip": "1.2.3.4",
    }
    assert trail[0].details["previous_status"] == "revoked"
    assert trail[0].details["changed"] is False


@pytest.mark.asyncio
async def test_audit_trail_only_grows(clock):
    consents, audit = InMemoryConsentStore(), InMemoryAuditLogStore()
    consent = await _grant(consents, audit)
    seen: list = []

    for step in range(3):
        clock.advance(timedelta(seconds=10))
        if step == 2:
            await consent_management.revoke(consents, audit, OWNER, consent.id)
        trail = await consent_management.audit_trail(consents, audit, OWNER, consent.id)
        ids = [e.id for e in reversed(trail)]
        assert ids[: len(seen)] == seen
        seen = ids
    assert len(seen) == 2


@pytest.mark.asyncio
async def test_list_for_owner():
    consents, audit = InMemoryConsentStore(), InMemoryAuditLogStore()
    mine = await _grant(consents, audit)
    await _grant(consents, audit, owner_id=STRANGER)

    assert [c.id for c in await consent_management.list_for_owner(consents, OWNER)] == [mine.id]
    assert await consent_management.list_for_owner(consents, OWNER, status="revoked") == []


@pytest.mark.asyncio
async def test_shareable_link(monkeypatch):
    monkeypatch.setattr(settings, "frontend_url", "https://app.example.org")
    consents, audit = InMemoryConsentStore(), InMemoryAuditLogStore()
    consent = await _grant(consents, audit)

    link = await consent_management.shareable_link(consents, OWNER, consent.id)
    assert link["shareable_url"] == f"https://app.example.org/share/{consent.shareable_token}"
    assert link["qr_code"].startswith("data:image/png;base64,")


# --- SQL backend ---


async def _create_user(db_session: AsyncSession, email: str) -> User:
    user = User(email=email, password_hash="fakehash")
    db_session.add(user)
    await db_session.commit()
    await db_session.refresh(user)
    return user


@pytest.mark.asyncio
async def test_sql_create_and_revoke_persist_entries(db_session: AsyncSession, clock):
    user = await _create_user(db_session, "mgmt@example.com")
    consents, audit = SqlConsentStore(db_session), SqlAuditLogStore(db_session)

    consent = await _grant(consents, audit, owner_id=user.id)
    await db_session.commit()
    clock.advance(timedelta(minutes=5))
    revoked = await consent_management.revoke(consents, audit, user.id, consent.id)
    await db_session.commit()

    assert revoked.status == ConsentStatus.revoked
    count = await db_session.execute(
        select(func.count()).select_from(ConsentAuditLog)
        .where(ConsentAuditLog.consent_id == consent.id)
    )
    assert count.scalar_one() == 2


@pytest.mark.asyncio
async def test_sql_forbidden_leaves_row_untouched(db_session: AsyncSession, clock):
    owner = await _create_user(db_session, "owner@example.com")
    stranger = await _create_user(db_session, "stranger@example.com")
    consents, audit = SqlConsentStore(db_session), SqlAuditLogStore(db_session)
    consent = await _grant(consents, audit, owner_id=owner.id, duration_type="24h")
    await db_session.commit()

    clock.advance(timedelta(days=2))
    with pytest.raises(ConsentForbidden):
        await consent_management.revoke(consents, audit, stranger.id, consent.id)

    stored = await db_session.execute(select(Consent.status).where(Consent.id == consent.id))
    assert stored.scalar_one() == ConsentStatus.active

import uuid
from datetime import datetime, timedelta

import pytest
from httpx import AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.consent import Consent, ConsentStatus
from app.models.document import Document


async def _register_and_login(client: AsyncClient, email: str) -> tuple[str, uuid.UUID]:
    """Helper: register + login, return (token, user_id)."""
    await client.post(
        "/auth/register",
        json={"email": email, "password": "Pass123!"},
    )
    resp = await client.post(
        "/auth/login",
        json={"email": email, "password": "Pass123!"},
    )
    data = resp.json()
    return data["token"], uuid.UUID(data["user_id"])


async def _grant(client: AsyncClient, token: str, **overrides) -> dict:
    body = {
        "recipientName": "Apollo Diagnostics",
        "recipientRole": "lab",
        "scopes": ["documents"],
        "durationType": "24h",
        "purpose": "Repeat bloodwork",
    }
    body.update(overrides)
    resp = await client.post("/consents", json=body, headers={"X-Session-Token": token})
    assert resp.status_code == 201
    return resp.json()["consent"]


async def _add_document(
    db_session: AsyncSession, owner_id: uuid.UUID, *, file_url: str = "documents/x/lipids.pdf"
) -> Document:
    document = Document(
        user_id=owner_id,
        title="Lipid profile",
        type="lab",
        provider="Apollo Diagnostics",
        file_url=file_url,
        file_type="pdf",
        extracted_text="LDL 96 mg/dL",
    )
    db_session.add(document)
    await db_session.commit()
    return document


@pytest.mark.asyncio
async def test_shared_consent_summary(client: AsyncClient):
    """GET /consents/share/{token} needs no session and hides owner details."""
    token, _ = await _register_and_login(client, "share-owner@example.com")
    created = await _grant(client, token)

    resp = await client.get(f"/consents/share/{created['shareableToken']}")
    assert resp.status_code == 200
    consent = resp.json()["consent"]
    assert consent["id"] == created["id"]
    assert consent["recipientName"] == "Apollo Diagnostics"
    assert consent["scopes"] == ["documents"]
    assert "userId" not in consent
    assert "shareableToken" not in consent
    assert "status" not in consent


@pytest.mark.asyncio
async def test_unknown_token_404(client: AsyncClient):
    resp = await client.get("/consents/share/definitely-not-a-token")
    assert resp.status_code == 404
    assert resp.json()["detail"] == "Consent not found or invalid token"


@pytest.mark.asyncio
async def test_documents_then_gone_after_expiry(
    client: AsyncClient, db_session: AsyncSession, clock
):
    """Documents are listed while live; one second past 24h the link is gone."""
    token, owner_id = await _register_and_login(client, "expiry-owner@example.com")
    await _add_document(db_session, owner_id)
    created = await _grant(client, token)
    path = f"/consents/share/{created['shareableToken']}/documents"

    resp = await client.get(path)
    assert resp.status_code == 200
    documents = resp.json()["documents"]
    assert len(documents) == 1
    assert documents[0]["title"] == "Lipid profile"
    assert documents[0]["category"] == "lab"
    assert "fileUrl" not in documents[0]
    assert "extractedText" not in documents[0]

    clock.advance(timedelta(hours=24, seconds=1))
    resp = await client.get(path)
    assert resp.status_code == 410
    body = resp.json()
    assert body["detail"] == "This consent has expired"
    assert body["consent"]["id"] == created["id"]
    assert body["consent"]["status"] == "expired"
    assert datetime.fromisoformat(body["consent"]["expiresAt"]) == datetime.fromisoformat(
        created["expiresAt"]
    )

    result = await db_session.execute(select(Consent.status).where(Consent.id == uuid.UUID(created["id"])))
    assert result.scalar_one() == ConsentStatus.expired


@pytest.mark.asyncio
async def test_emergency_scope_sees_empty_list(client: AsyncClient, db_session: AsyncSession):
    token, owner_id = await _register_and_login(client, "emergency-owner@example.com")
    await _add_document(db_session, owner_id)
    created = await _grant(client, token, scopes=["emergency"])

    resp = await client.get(f"/consents/share/{created['shareableToken']}/documents")
    assert resp.status_code == 200
    assert resp.json() == {"documents": []}


@pytest.mark.asyncio
async def test_revoked_consent_gone(client: AsyncClient, clock):
    token, _ = await _register_and_login(client, "revoked-owner@example.com")
    created = await _grant(client, token, durationType="7d")
    clock.advance(timedelta(minutes=10))
    revoke = await client.delete(
        f"/consents/{created['id']}", headers={"X-Session-Token": token}
    )
    assert revoke.status_code == 200

    resp = await client.get(f"/consents/share/{created['shareableToken']}")
    assert resp.status_code == 410
    body = resp.json()
    assert body["detail"] == "This consent has been revoked"
    assert body["consent"]["status"] == "revoked"
    assert body["consent"]["revokedAt"] is not None
    assert datetime.fromisoformat(body["consent"]["revokedAt"]) == clock.now()
    assert "request_id" in body


@pytest.mark.asyncio
async def test_document_file_url(client: AsyncClient, db_session: AsyncSession, file_access):
    token, owner_id = await _register_and_login(client, "file-owner@example.com")
    document = await _add_document(db_session, owner_id)
    created = await _grant(client, token)

    resp = await client.get(
        f"/consents/share/{created['shareableToken']}/documents/{document.id}/file"
    )
    assert resp.status_code == 200
    assert resp.json() == {
        "url": "memory://documents/x/lipids.pdf?expires_in=3600",
        "expiresIn": 3600,
    }
    assert file_access.issued == [("documents/x/lipids.pdf", 3600)]


@pytest.mark.asyncio
async def test_document_file_denied_and_missing(
    client: AsyncClient, db_session: AsyncSession, file_access
):
    token, owner_id = await _register_and_login(client, "denied-owner@example.com")
    other_token, other_id = await _register_and_login(client, "other-owner@example.com")
    own_doc = await _add_document(db_session, owner_id)
    foreign_doc = await _add_document(db_session, other_id)
    pending_doc = await _add_document(db_session, owner_id, file_url="placeholder://upload")

    documents_consent = await _grant(client, token)
    insights_consent = await _grant(client, token, scopes=["insights"])
    base = f"/consents/share/{documents_consent['shareableToken']}/documents"

    resp = await client.get(
        f"/consents/share/{insights_consent['shareableToken']}/documents/{own_doc.id}/file"
    )
    assert resp.status_code == 403

    assert (await client.get(f"{base}/{foreign_doc.id}/file")).status_code == 403
    assert (await client.get(f"{base}/{uuid.uuid4()}/file")).status_code == 404
    assert (await client.get(f"{base}/not-a-uuid/file")).status_code == 404

    resp = await client.get(f"{base}/{pending_doc.id}/file")
    assert resp.status_code == 404
    assert resp.json()["detail"] == "File not found"
    assert file_access.issued == []


@pytest.mark.asyncio
async def test_each_share_call_audited(client: AsyncClient):
    token, _ = await _register_and_login(client, "count-owner@example.com")
    created = await _grant(client, token)
    share = f"/consents/share/{created['shareableToken']}"

    await client.get(share)
    await client.get(f"{share}/documents")
    await client.get(share, headers={"User-Agent": "clinic-portal/2.1"})

    resp = await client.get(
        f"/consents/{created['id']}/audit", headers={"X-Session-Token": token}
    )
    logs = resp.json()["logs"]
    accesses = [log for log in logs if log["action"] == "access"]
    assert len(accesses) == 3
    assert {log["details"]["resource"] for log in accesses} == {"consent", "documents"}
    assert any(log["details"]["user_agent"] == "clinic-portal/2.1" for log in accesses)

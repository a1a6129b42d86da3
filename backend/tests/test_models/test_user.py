import uuid
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.session import Session
from app.models.user import User, UserStatus


@pytest.mark.asyncio
async def test_create_owner_with_defaults(db_session: AsyncSession):
    """New owners are active, with generated id and timestamps."""
    user = User(email="owner@example.com", password_hash="fakehash123", name="Meera Shah")
    db_session.add(user)
    await db_session.commit()

    result = await db_session.execute(select(User).where(User.email == "owner@example.com"))
    fetched = result.scalar_one()

    assert isinstance(fetched.id, uuid.UUID)
    assert fetched.name == "Meera Shah"
    assert fetched.status == UserStatus.active
    assert fetched.created_at is not None
    assert fetched.deleted_at is None


@pytest.mark.asyncio
async def test_owner_unique_email(db_session: AsyncSession):
    db_session.add(User(email="dup@example.com", password_hash="hash1"))
    await db_session.commit()

    db_session.add(User(email="dup@example.com", password_hash="hash2"))
    with pytest.raises(IntegrityError):
        await db_session.commit()


@pytest.mark.asyncio
async def test_session_belongs_to_owner(db_session: AsyncSession):
    user = User(email="session@example.com", password_hash="hash")
    db_session.add(user)
    await db_session.flush()
    now = datetime.now(timezone.utc)
    session = Session(
        user_id=user.id, token="a" * 64, last_activity_at=now, expires_at=now + timedelta(hours=24)
    )
    db_session.add(session)
    await db_session.commit()

    assert session.revoked is False
    assert session.created_at is not None

"""Owner authentication.

Record owners log in with email + password and carry a server-side
session token in the X-Session-Token header. Consent recipients never
authenticate here; a shareable token is their only credential.
"""

import logging
import secrets
from datetime import datetime, timedelta, timezone

import bcrypt
from fastapi import Depends, HTTPException, Request, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clock import as_utc
from app.dependencies import get_db
from app.models.session import Session
from app.models.user import User, UserStatus

logger = logging.getLogger("medilocker.auth")

SESSION_DURATION_HOURS = 24
SESSION_TOKEN_HEADER = "X-Session-Token"


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))


def _normalize_email(email: str) -> str:
    return email.strip().lower()


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail)


async def _find_owner(db: AsyncSession, email: str) -> User | None:
    result = await db.execute(select(User).where(User.email == _normalize_email(email)))
    return result.scalar_one_or_none()


async def register_user(
    db: AsyncSession,
    *,
    email: str,
    password: str,
    name: str | None = None,
) -> User:
    """Create an owner account. 409 if the email is taken."""
    if await _find_owner(db, email) is not None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Email already registered",
        )

    user = User(
        email=_normalize_email(email),
        password_hash=hash_password(password),
        name=name.strip() if name else None,
        status=UserStatus.active,
    )
    db.add(user)
    await db.flush()
    logger.info("owner registered id=%s", user.id)
    return user


async def login_user(
    db: AsyncSession,
    *,
    email: str,
    password: str,
) -> tuple[User, str]:
    """Check credentials and open a 24h session. Returns (user, token)."""
    user = await _find_owner(db, email)
    if user is None or not verify_password(password, user.password_hash):
        logger.warning("login rejected: bad credentials")
        raise _unauthorized("Invalid email or password")

    if user.status != UserStatus.active:
        logger.warning("login rejected: owner=%s status=%s", user.id, user.status.value)
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Account is not active",
        )

    now = datetime.now(timezone.utc)
    token = secrets.token_hex(32)
    db.add(Session(
        user_id=user.id,
        token=token,
        last_activity_at=now,
        expires_at=now + timedelta(hours=SESSION_DURATION_HOURS),
    ))
    await db.flush()
    return user, token


async def _resolve_session(db: AsyncSession, token: str | None) -> Session:
    if not token:
        raise _unauthorized("Authentication required")

    result = await db.execute(select(Session).where(Session.token == token))
    session = result.scalar_one_or_none()
    if session is None or session.revoked:
        raise _unauthorized("Invalid or revoked session")
    if as_utc(session.expires_at) < datetime.now(timezone.utc):
        raise _unauthorized("Session expired")
    return session


async def logout_user(db: AsyncSession, *, token: str | None) -> None:
    """Revoke a session token. Unknown tokens are ignored."""
    if not token:
        return
    result = await db.execute(select(Session).where(Session.token == token))
    session = result.scalar_one_or_none()
    if session is not None:
        session.revoked = True
        await db.flush()


async def get_current_user(
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> User:
    """FastAPI dependency: the owner behind X-Session-Token, or 401."""
    session = await _resolve_session(db, request.headers.get(SESSION_TOKEN_HEADER))

    user = await db.get(User, session.user_id)
    if user is None or user.status != UserStatus.active:
        raise _unauthorized("User not found or inactive")

    session.last_activity_at = datetime.now(timezone.utc)
    request.state.user_id = str(user.id)
    return user

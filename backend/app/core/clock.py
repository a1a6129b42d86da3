"""Clock and identifier source.

Everything that needs "now" or a fresh random identifier goes through the
module-level clock so tests can freeze and advance time.
"""

import secrets
import uuid
from datetime import datetime, timedelta, timezone

from app.config import settings


class Clock:
    """Wall clock in UTC plus random identifier generation."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def new_id(self) -> uuid.UUID:
        return uuid.uuid4()

    def new_token(self) -> str:
        """URL-safe bearer token with share_token_bytes of entropy."""
        return secrets.token_urlsafe(settings.share_token_bytes)


class FrozenClock(Clock):
    """Clock pinned to a fixed instant. Used in tests."""

    def __init__(self, at: datetime | None = None):
        self._now = as_utc(at) if at is not None else datetime.now(timezone.utc)

    def now(self) -> datetime:
        return self._now

    def advance(self, delta: timedelta) -> datetime:
        self._now = self._now + delta
        return self._now


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes (SQLite round-trips) as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# Module-level singleton, replaced in tests
_clock: Clock | None = None


def get_clock() -> Clock:
    global _clock
    if _clock is None:
        _clock = Clock()
    return _clock


def set_clock(clock: Clock | None) -> None:
    """Set the clock (used for testing). None restores the wall clock."""
    global _clock
    _clock = clock

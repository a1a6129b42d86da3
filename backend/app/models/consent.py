"""Consent: a time-bound, scope-limited grant of read access to a recipient.

Rows are never deleted. Status moves only forward:
active -> expired (time, observed lazily on read) or active -> revoked (owner).
"""

import enum
import uuid
from datetime import datetime

from sqlalchemy import JSON, DateTime, Enum, ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base, generate_uuid


class ConsentScope(str, enum.Enum):
    documents = "documents"
    emergency = "emergency"
    insights = "insights"
    timeline = "timeline"


class RecipientRole(str, enum.Enum):
    doctor = "doctor"
    lab = "lab"
    insurance = "insurance"
    family = "family"
    other = "other"


class DurationType(str, enum.Enum):
    hours_24 = "24h"
    days_7 = "7d"
    custom = "custom"


class ConsentStatus(str, enum.Enum):
    active = "active"
    expired = "expired"
    revoked = "revoked"


TERMINAL_STATUSES = frozenset({ConsentStatus.expired, ConsentStatus.revoked})


class Consent(Base):
    __tablename__ = "consents"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=generate_uuid)
    user_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    recipient_name: Mapped[str] = mapped_column(String(255), nullable=False)
    recipient_role: Mapped[RecipientRole] = mapped_column(
        Enum(RecipientRole, native_enum=False), nullable=False
    )
    scopes: Mapped[list[str]] = mapped_column(JSON, nullable=False)
    duration_type: Mapped[DurationType] = mapped_column(
        Enum(DurationType, native_enum=False, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
    )
    custom_expiry_date: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    purpose: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[ConsentStatus] = mapped_column(
        Enum(ConsentStatus, native_enum=False),
        default=ConsentStatus.active,
        nullable=False,
        index=True,
    )
    shareable_token: Mapped[str] = mapped_column(
        String(128), unique=True, nullable=False, index=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    revoked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

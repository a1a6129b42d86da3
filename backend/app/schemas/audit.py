import uuid

from app.schemas.consent import CamelModel, UtcDatetime


class AuditLogRead(CamelModel):
    id: uuid.UUID
    consent_id: uuid.UUID
    user_id: uuid.UUID | None = None
    action: str
    actor_id: str | None = None
    actor_type: str | None = None
    details: dict | None = None
    timestamp: UtcDatetime


class AuditTrail(CamelModel):
    logs: list[AuditLogRead]

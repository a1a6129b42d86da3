import uuid
from datetime import datetime
from typing import Annotated

from pydantic import AfterValidator, BaseModel
from pydantic.alias_generators import to_camel

from app.core.clock import as_utc
from app.models.consent import ConsentStatus, DurationType, RecipientRole

UtcDatetime = Annotated[datetime, AfterValidator(as_utc)]


class CamelModel(BaseModel):
    """camelCase on the wire; snake_case accepted on input too."""

    model_config = {
        "alias_generator": to_camel,
        "populate_by_name": True,
        "from_attributes": True,
    }


class ConsentCreate(CamelModel):
    # Defaults let the lifecycle validation report every missing field at once.
    recipient_name: str = ""
    recipient_role: str = ""
    scopes: list[str] = []
    duration_type: str = ""
    custom_expiry_date: str | None = None
    purpose: str = ""


class ConsentRead(CamelModel):
    id: uuid.UUID
    user_id: uuid.UUID
    recipient_name: str
    recipient_role: RecipientRole
    scopes: list[str]
    duration_type: DurationType
    custom_expiry_date: UtcDatetime | None = None
    purpose: str
    status: ConsentStatus
    shareable_token: str
    created_at: UtcDatetime
    expires_at: UtcDatetime
    revoked_at: UtcDatetime | None = None


class ConsentEnvelope(CamelModel):
    consent: ConsentRead


class ConsentList(CamelModel):
    consents: list[ConsentRead]


class ShareLinkRead(CamelModel):
    qr_code: str
    shareable_url: str

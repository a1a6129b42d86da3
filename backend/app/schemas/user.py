import uuid
from datetime import datetime

from pydantic import BaseModel, Field

from app.models.user import UserStatus


class UserCreate(BaseModel):
    email: str = Field(..., max_length=255)
    password: str = Field(..., min_length=8, max_length=128)
    name: str | None = Field(None, max_length=255)


class UserLogin(BaseModel):
    email: str = Field(..., max_length=255)
    password: str = Field(..., max_length=128)


class UserRead(BaseModel):
    id: uuid.UUID
    email: str
    name: str | None = None
    status: UserStatus
    created_at: datetime

    model_config = {"from_attributes": True}

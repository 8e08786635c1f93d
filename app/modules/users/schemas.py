from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from typing import ClassVar, Optional
from datetime import datetime, timezone
import uuid

from app.modules.users.models import USERS_TABLE


def _now() -> datetime:
    return datetime.now(timezone.utc)


class User(BaseModel):
    table: ClassVar[str] = USERS_TABLE

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    email: str
    password_hash: str = Field(default="", repr=False)
    name: Optional[str] = None
    role: str = "member"
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)
    deleted_at: Optional[datetime] = None

    @field_validator("email")
    @classmethod
    def normalize_email(cls, value: str) -> str:
        return value.strip().lower()

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None


class UserCreate(BaseModel):
    email: EmailStr
    password_hash: str = Field(min_length=1)
    name: Optional[str] = None
    role: str = "member"


class UserUpdate(BaseModel):
    name: Optional[str] = None


class UserResponse(BaseModel):
    id: str
    email: str
    name: Optional[str] = None
    role: str
    created_at: datetime
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

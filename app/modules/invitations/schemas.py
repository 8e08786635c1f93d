from enum import Enum
from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from typing import ClassVar
from datetime import datetime, timezone
import uuid

from app.modules.invitations.models import INVITATIONS_TABLE


class InvitationStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REVOKED = "revoked"

    @property
    def is_terminal(self) -> bool:
        return self is not InvitationStatus.PENDING

    def can_transition_to(self, target: "InvitationStatus") -> bool:
        return self is InvitationStatus.PENDING and target.is_terminal


class Invitation(BaseModel):
    table: ClassVar[str] = INVITATIONS_TABLE

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    team_id: str
    email: str
    role: str = Field(default="member", min_length=1)
    invited_by: str
    status: InvitationStatus = InvitationStatus.PENDING
    invited_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @field_validator("email")
    @classmethod
    def normalize_email(cls, value: str) -> str:
        return value.strip().lower()

    @field_validator("role")
    @classmethod
    def strip_role(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value


class InvitationCreate(BaseModel):
    email: EmailStr
    role: str = Field(default="member", min_length=1)


class InvitationResponse(BaseModel):
    id: str
    team_id: str
    email: str
    role: str
    invited_by: str
    status: InvitationStatus
    invited_at: datetime

    model_config = ConfigDict(from_attributes=True)

from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import ClassVar, Optional
from datetime import datetime, timezone
import uuid

from app.modules.teams.models import TEAMS_TABLE, TEAM_MEMBERS_TABLE


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _not_blank(value: Optional[str]) -> Optional[str]:
    if value is None:
        return value
    value = value.strip()
    if not value:
        raise ValueError("must not be blank")
    return value


class Team(BaseModel):
    table: ClassVar[str] = TEAMS_TABLE

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    name: str = Field(min_length=1, max_length=100)
    stripe_customer_id: Optional[str] = None
    stripe_subscription_id: Optional[str] = None
    stripe_product_id: Optional[str] = None
    plan_name: Optional[str] = None
    subscription_status: Optional[str] = None
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)

    @field_validator("name")
    @classmethod
    def strip_name(cls, value: Optional[str]) -> Optional[str]:
        return _not_blank(value)


class TeamMembership(BaseModel):
    table: ClassVar[str] = TEAM_MEMBERS_TABLE

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    team_id: str
    user_id: str
    role: str = Field(default="member", min_length=1)
    joined_at: datetime = Field(default_factory=_now)

    @field_validator("role")
    @classmethod
    def strip_role(cls, value: str) -> str:
        return _not_blank(value)


class TeamCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)

    @field_validator("name")
    @classmethod
    def strip_name(cls, value: Optional[str]) -> Optional[str]:
        return _not_blank(value)


class TeamUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)

    @field_validator("name")
    @classmethod
    def strip_name(cls, value: Optional[str]) -> Optional[str]:
        return _not_blank(value)


class TeamResponse(BaseModel):
    id: str
    name: str
    stripe_customer_id: Optional[str] = None
    stripe_subscription_id: Optional[str] = None
    stripe_product_id: Optional[str] = None
    plan_name: Optional[str] = None
    subscription_status: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class TeamMemberAdd(BaseModel):
    user_id: str
    role: str = Field(default="member", min_length=1)

    @field_validator("role")
    @classmethod
    def strip_role(cls, value: str) -> str:
        return _not_blank(value)


class TeamMemberRoleUpdate(BaseModel):
    role: str = Field(min_length=1)

    @field_validator("role")
    @classmethod
    def strip_role(cls, value: str) -> str:
        return _not_blank(value)


class TeamMemberResponse(BaseModel):
    id: str
    team_id: str
    user_id: str
    role: str
    joined_at: datetime

    model_config = ConfigDict(from_attributes=True)

from enum import Enum
from pydantic import BaseModel, ConfigDict, Field
from typing import ClassVar, Optional
from datetime import datetime, timezone
import uuid

from app.modules.activity.models import ACTIVITY_LOGS_TABLE


class ActivityType(str, Enum):
    CREATE_TEAM = "CREATE_TEAM"
    UPDATE_TEAM = "UPDATE_TEAM"
    ADD_TEAM_MEMBER = "ADD_TEAM_MEMBER"
    UPDATE_TEAM_MEMBER = "UPDATE_TEAM_MEMBER"
    REMOVE_TEAM_MEMBER = "REMOVE_TEAM_MEMBER"
    INVITE_TEAM_MEMBER = "INVITE_TEAM_MEMBER"
    REVOKE_INVITATION = "REVOKE_INVITATION"
    ACCEPT_INVITATION = "ACCEPT_INVITATION"
    UPDATE_ACCOUNT = "UPDATE_ACCOUNT"
    DELETE_ACCOUNT = "DELETE_ACCOUNT"


class ActivityLog(BaseModel):
    table: ClassVar[str] = ACTIVITY_LOGS_TABLE

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    team_id: str
    user_id: Optional[str] = None
    action: str
    ip_address: Optional[str] = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class ActivityLogResponse(BaseModel):
    id: str
    team_id: str
    user_id: Optional[str] = None
    action: str
    ip_address: Optional[str] = None
    timestamp: datetime

    model_config = ConfigDict(from_attributes=True)

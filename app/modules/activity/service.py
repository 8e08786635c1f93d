from app.core.repository import AccessControlledRepository
from app.modules.activity.models import ACTIVITY_LOGS_TABLE
from app.modules.activity.schemas import ActivityLogResponse
from app.modules.users.schemas import User
from typing import List


class ActivityService:
    def __init__(self, repository: AccessControlledRepository):
        self.repository = repository

    def list_activity(self, principal: User, team_id: str, limit: int = 50, offset: int = 0) -> List[ActivityLogResponse]:
        """Most recent first"""
        logs = self.repository.list(
            principal, ACTIVITY_LOGS_TABLE, {"team_id": team_id}, order_by="timestamp", desc=True
        )
        return [ActivityLogResponse.model_validate(log) for log in logs[offset:offset + limit]]

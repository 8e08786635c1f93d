import logging
from enum import Enum
from typing import Optional, Union

from app.core.errors import UnavailableError, ValidationError
from app.database.storage import Storage
from app.modules.activity.models import ACTIVITY_LOGS_TABLE
from app.modules.activity.schemas import ActivityLog

logger = logging.getLogger(__name__)


class ActivityRecorder:
    """Appends audit rows. Must be called inside the mutation's transaction."""

    def __init__(self, storage: Storage):
        self.storage = storage

    def record(
        self,
        team_id: str,
        user_id: Optional[str],
        action: Union[str, Enum],
        ip_address: Optional[str] = None,
    ) -> ActivityLog:
        action = action.value if isinstance(action, Enum) else action
        if not action or not action.strip():
            raise ValidationError("Activity action is required")
        entry = ActivityLog(team_id=team_id, user_id=user_id, action=action, ip_address=ip_address)
        try:
            self.storage.insert(ACTIVITY_LOGS_TABLE, entry.model_dump(mode="json"))
        except Exception as e:
            logger.error(f"Failed to record activity {action} for team {team_id}: {e}")
            raise UnavailableError("Activity recording failed", {"team_id": team_id}) from e
        return entry

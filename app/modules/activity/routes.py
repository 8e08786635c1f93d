from fastapi import APIRouter, Depends, Query
from app.core.dependencies import get_current_principal, get_repository
from app.core.repository import AccessControlledRepository
from app.modules.activity.schemas import ActivityLogResponse
from app.modules.activity.service import ActivityService
from app.modules.users.schemas import User
from typing import List

router = APIRouter(prefix="/teams", tags=["activity"])


def get_activity_service(repository: AccessControlledRepository = Depends(get_repository)) -> ActivityService:
    return ActivityService(repository)


@router.get("/{team_id}/activity", response_model=List[ActivityLogResponse])
async def list_activity(
    team_id: str,
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    principal: User = Depends(get_current_principal),
    service: ActivityService = Depends(get_activity_service)
):
    """Team audit trail, most recent first"""
    return service.list_activity(principal, team_id, limit=limit, offset=offset)

from fastapi import APIRouter, Depends
from app.core.dependencies import get_client_ip, get_current_principal, get_repository
from app.core.repository import AccessControlledRepository
from app.modules.invitations.schemas import InvitationCreate, InvitationResponse, InvitationStatus
from app.modules.invitations.service import InvitationService
from app.modules.teams.schemas import TeamMemberResponse
from app.modules.users.schemas import User
from typing import List, Optional

router = APIRouter(tags=["invitations"])


def get_invitation_service(repository: AccessControlledRepository = Depends(get_repository)) -> InvitationService:
    return InvitationService(repository)


@router.post("/teams/{team_id}/invitations", response_model=InvitationResponse, status_code=201)
async def create_invitation(
    team_id: str,
    invitation_data: InvitationCreate,
    principal: User = Depends(get_current_principal),
    service: InvitationService = Depends(get_invitation_service),
    ip_address: Optional[str] = Depends(get_client_ip)
):
    return service.create_invitation(principal, team_id, invitation_data, ip_address)


@router.get("/teams/{team_id}/invitations", response_model=List[InvitationResponse])
async def list_invitations(
    team_id: str,
    status: Optional[InvitationStatus] = None,
    principal: User = Depends(get_current_principal),
    service: InvitationService = Depends(get_invitation_service)
):
    return service.list_invitations(principal, team_id, status)


@router.get("/teams/{team_id}/invitations/{invitation_id}", response_model=InvitationResponse)
async def get_invitation(
    team_id: str,
    invitation_id: str,
    principal: User = Depends(get_current_principal),
    service: InvitationService = Depends(get_invitation_service)
):
    return service.get_invitation(principal, team_id, invitation_id)


@router.post("/teams/{team_id}/invitations/{invitation_id}/revoke", response_model=InvitationResponse)
async def revoke_invitation(
    team_id: str,
    invitation_id: str,
    principal: User = Depends(get_current_principal),
    service: InvitationService = Depends(get_invitation_service),
    ip_address: Optional[str] = Depends(get_client_ip)
):
    return service.revoke_invitation(principal, team_id, invitation_id, ip_address)


@router.post("/invitations/{invitation_id}/redeem", response_model=TeamMemberResponse, status_code=201)
async def redeem_invitation(
    invitation_id: str,
    principal: User = Depends(get_current_principal),
    service: InvitationService = Depends(get_invitation_service),
    ip_address: Optional[str] = Depends(get_client_ip)
):
    """Accept an invitation sent to the caller's email"""
    return service.redeem_invitation(principal, invitation_id, ip_address)

from fastapi import APIRouter, Depends
from app.core.dependencies import get_client_ip, get_current_principal, get_repository
from app.core.repository import AccessControlledRepository
from app.modules.teams.schemas import (
    TeamCreate, TeamUpdate, TeamResponse,
    TeamMemberAdd, TeamMemberRoleUpdate, TeamMemberResponse
)
from app.modules.teams.service import TeamService
from app.modules.users.schemas import User
from typing import List, Optional

router = APIRouter(prefix="/teams", tags=["teams"])


def get_team_service(repository: AccessControlledRepository = Depends(get_repository)) -> TeamService:
    return TeamService(repository)


@router.post("", response_model=TeamResponse, status_code=201)
async def create_team(
    team_data: TeamCreate,
    principal: User = Depends(get_current_principal),
    service: TeamService = Depends(get_team_service),
    ip_address: Optional[str] = Depends(get_client_ip)
):
    """Create a new team; the caller becomes its owner"""
    return service.create_team(principal, team_data, ip_address)


@router.get("", response_model=List[TeamResponse])
async def list_teams(
    principal: User = Depends(get_current_principal),
    service: TeamService = Depends(get_team_service)
):
    """List teams the caller is a member of"""
    return service.list_teams(principal)


@router.get("/{team_id}", response_model=TeamResponse)
async def get_team(
    team_id: str,
    principal: User = Depends(get_current_principal),
    service: TeamService = Depends(get_team_service)
):
    return service.get_team(principal, team_id)


@router.put("/{team_id}", response_model=TeamResponse)
async def update_team(
    team_id: str,
    team_data: TeamUpdate,
    principal: User = Depends(get_current_principal),
    service: TeamService = Depends(get_team_service),
    ip_address: Optional[str] = Depends(get_client_ip)
):
    return service.update_team(principal, team_id, team_data, ip_address)


@router.delete("/{team_id}", status_code=204)
async def delete_team(
    team_id: str,
    cascade: bool = False,
    principal: User = Depends(get_current_principal),
    service: TeamService = Depends(get_team_service)
):
    """Delete team; pass cascade=true to remove members, invitations and activity with it"""
    service.delete_team(principal, team_id, cascade=cascade)
    return None


@router.get("/{team_id}/members", response_model=List[TeamMemberResponse])
async def list_members(
    team_id: str,
    principal: User = Depends(get_current_principal),
    service: TeamService = Depends(get_team_service)
):
    return service.list_members(principal, team_id)


@router.post("/{team_id}/members", response_model=TeamMemberResponse, status_code=201)
async def add_member(
    team_id: str,
    member_data: TeamMemberAdd,
    principal: User = Depends(get_current_principal),
    service: TeamService = Depends(get_team_service),
    ip_address: Optional[str] = Depends(get_client_ip)
):
    return service.add_member(principal, team_id, member_data, ip_address)


@router.put("/{team_id}/members/{user_id}", response_model=TeamMemberResponse)
async def change_member_role(
    team_id: str,
    user_id: str,
    role_data: TeamMemberRoleUpdate,
    principal: User = Depends(get_current_principal),
    service: TeamService = Depends(get_team_service),
    ip_address: Optional[str] = Depends(get_client_ip)
):
    return service.change_member_role(principal, team_id, user_id, role_data, ip_address)


@router.delete("/{team_id}/members/{user_id}", status_code=204)
async def remove_member(
    team_id: str,
    user_id: str,
    principal: User = Depends(get_current_principal),
    service: TeamService = Depends(get_team_service),
    ip_address: Optional[str] = Depends(get_client_ip)
):
    """Remove a member (owners), or leave the team (own membership)"""
    service.remove_member(principal, team_id, user_id, ip_address)
    return None

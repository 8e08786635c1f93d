from app.core.repository import AccessControlledRepository
from app.modules.activity.schemas import ActivityType
from app.modules.teams.models import TEAMS_TABLE, TEAM_MEMBERS_TABLE
from app.modules.teams.schemas import (
    Team, TeamMembership, TeamCreate, TeamUpdate, TeamResponse,
    TeamMemberAdd, TeamMemberRoleUpdate, TeamMemberResponse
)
from app.modules.users.schemas import User
from typing import List, Optional


class TeamService:
    def __init__(self, repository: AccessControlledRepository):
        self.repository = repository

    def create_team(self, principal: User, team_data: TeamCreate, ip_address: Optional[str] = None) -> TeamResponse:
        """Create a new team with the principal as owner"""
        team = self.repository.create_team(
            principal, Team(name=team_data.name),
            action=ActivityType.CREATE_TEAM, ip_address=ip_address
        )
        return TeamResponse.model_validate(team)

    def get_team(self, principal: User, team_id: str) -> TeamResponse:
        return TeamResponse.model_validate(self.repository.get(principal, TEAMS_TABLE, team_id))

    def list_teams(self, principal: User) -> List[TeamResponse]:
        """Teams the principal is a member of"""
        teams = self.repository.list(principal, TEAMS_TABLE, order_by="created_at", desc=True)
        return [TeamResponse.model_validate(t) for t in teams]

    def update_team(
        self,
        principal: User,
        team_id: str,
        team_data: TeamUpdate,
        ip_address: Optional[str] = None,
    ) -> TeamResponse:
        team = self.repository.update(
            principal, TEAMS_TABLE, team_id, team_data.model_dump(exclude_unset=True),
            action=ActivityType.UPDATE_TEAM, ip_address=ip_address
        )
        return TeamResponse.model_validate(team)

    def delete_team(self, principal: User, team_id: str, cascade: bool = False) -> None:
        self.repository.delete_team(principal, team_id, cascade=cascade)

    def list_members(self, principal: User, team_id: str) -> List[TeamMemberResponse]:
        """Full roster; visible to any member of the team"""
        members = self.repository.list(
            principal, TEAM_MEMBERS_TABLE, {"team_id": team_id}, order_by="joined_at"
        )
        return [TeamMemberResponse.model_validate(m) for m in members]

    def add_member(
        self,
        principal: User,
        team_id: str,
        member_data: TeamMemberAdd,
        ip_address: Optional[str] = None,
    ) -> TeamMemberResponse:
        membership = TeamMembership(team_id=team_id, user_id=member_data.user_id, role=member_data.role)
        created = self.repository.create(
            principal, membership, action=ActivityType.ADD_TEAM_MEMBER, ip_address=ip_address
        )
        return TeamMemberResponse.model_validate(created)

    def change_member_role(
        self,
        principal: User,
        team_id: str,
        user_id: str,
        role_data: TeamMemberRoleUpdate,
        ip_address: Optional[str] = None,
    ) -> TeamMemberResponse:
        membership = self.repository.get_membership(principal, team_id, user_id)
        updated = self.repository.update(
            principal, TEAM_MEMBERS_TABLE, membership.id, {"role": role_data.role},
            action=ActivityType.UPDATE_TEAM_MEMBER, ip_address=ip_address
        )
        return TeamMemberResponse.model_validate(updated)

    def remove_member(
        self,
        principal: User,
        team_id: str,
        user_id: str,
        ip_address: Optional[str] = None,
    ) -> None:
        membership = self.repository.get_membership(principal, team_id, user_id)
        self.repository.delete(
            principal, TEAM_MEMBERS_TABLE, membership.id,
            action=ActivityType.REMOVE_TEAM_MEMBER, ip_address=ip_address
        )

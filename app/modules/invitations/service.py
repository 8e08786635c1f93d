from app.core.errors import ConflictError
from app.core.repository import AccessControlledRepository
from app.modules.activity.schemas import ActivityType
from app.modules.invitations.models import INVITATIONS_TABLE
from app.modules.invitations.schemas import (
    Invitation, InvitationCreate, InvitationResponse, InvitationStatus
)
from app.modules.teams.schemas import TeamMemberResponse
from app.modules.users.schemas import User
from typing import List, Optional


class InvitationService:
    def __init__(self, repository: AccessControlledRepository):
        self.repository = repository

    def create_invitation(
        self,
        principal: User,
        team_id: str,
        invitation_data: InvitationCreate,
        ip_address: Optional[str] = None,
    ) -> InvitationResponse:
        """Invite an email address to the team; one pending invitation per address"""
        email = invitation_data.email.lower()
        pending = self.repository.list(principal, INVITATIONS_TABLE, {
            "team_id": team_id,
            "email": email,
            "status": InvitationStatus.PENDING.value,
        })
        if pending:
            raise ConflictError("An invitation is already pending for this email", {"team_id": team_id})
        invitation = Invitation(
            team_id=team_id,
            email=email,
            role=invitation_data.role,
            invited_by=principal.id,
        )
        created = self.repository.create(
            principal, invitation, action=ActivityType.INVITE_TEAM_MEMBER, ip_address=ip_address
        )
        return InvitationResponse.model_validate(created)

    def list_invitations(
        self,
        principal: User,
        team_id: str,
        status: Optional[InvitationStatus] = None,
    ) -> List[InvitationResponse]:
        filters = {"team_id": team_id}
        if status is not None:
            filters["status"] = status.value
        invitations = self.repository.list(
            principal, INVITATIONS_TABLE, filters, order_by="invited_at", desc=True
        )
        return [InvitationResponse.model_validate(i) for i in invitations]

    def get_invitation(self, principal: User, team_id: str, invitation_id: str) -> InvitationResponse:
        invitation = self.repository.get(principal, INVITATIONS_TABLE, invitation_id, team_id=team_id)
        return InvitationResponse.model_validate(invitation)

    def revoke_invitation(
        self,
        principal: User,
        team_id: str,
        invitation_id: str,
        ip_address: Optional[str] = None,
    ) -> InvitationResponse:
        # scoped read first so a wrong team_id cannot reach another team's row
        self.repository.get(principal, INVITATIONS_TABLE, invitation_id, team_id=team_id)
        revoked = self.repository.update(
            principal, INVITATIONS_TABLE, invitation_id, {"status": InvitationStatus.REVOKED.value},
            action=ActivityType.REVOKE_INVITATION, ip_address=ip_address
        )
        return InvitationResponse.model_validate(revoked)

    def redeem_invitation(
        self,
        principal: User,
        invitation_id: str,
        ip_address: Optional[str] = None,
    ) -> TeamMemberResponse:
        """Accept an invitation addressed to the principal's email"""
        membership = self.repository.redeem_invitation(
            principal, invitation_id, principal.id, ip_address=ip_address
        )
        return TeamMemberResponse.model_validate(membership)

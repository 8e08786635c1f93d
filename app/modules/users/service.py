from app.core.repository import AccessControlledRepository
from app.modules.activity.schemas import ActivityType
from app.modules.teams.models import TEAM_MEMBERS_TABLE
from app.modules.users.models import USERS_TABLE
from app.modules.users.schemas import User, UserCreate, UserUpdate, UserResponse
from typing import List, Optional


class UserService:
    def __init__(self, repository: AccessControlledRepository):
        self.repository = repository

    def provision_user(self, user_data: UserCreate) -> User:
        """Create the user row for a newly registered identity"""
        user = User(
            email=user_data.email,
            password_hash=user_data.password_hash,
            name=user_data.name,
            role=user_data.role,
        )
        return self.repository.provision_user(user)

    def default_audit_team(self, principal: User) -> Optional[str]:
        """Team that account-level changes are recorded against: the earliest one joined"""
        memberships = self.repository.list(
            principal, TEAM_MEMBERS_TABLE, {"user_id": principal.id}, order_by="joined_at"
        )
        return memberships[0].team_id if memberships else None

    def get_user(self, principal: User, user_id: str) -> UserResponse:
        user = self.repository.get(principal, USERS_TABLE, user_id)
        return UserResponse.model_validate(user)

    def list_users(self, principal: User) -> List[UserResponse]:
        """Users visible to the principal: itself, or everyone under the owner extension"""
        users = self.repository.list(principal, USERS_TABLE, order_by="created_at")
        return [UserResponse.model_validate(u) for u in users]

    def update_user(
        self,
        principal: User,
        user_id: str,
        user_data: UserUpdate,
        ip_address: Optional[str] = None,
    ) -> UserResponse:
        changes = user_data.model_dump(exclude_unset=True)
        user = self.repository.update(
            principal, USERS_TABLE, user_id, changes,
            action=ActivityType.UPDATE_ACCOUNT,
            ip_address=ip_address,
            audit_team_id=self.default_audit_team(principal),
        )
        return UserResponse.model_validate(user)

    def delete_user(self, principal: User, user_id: str, ip_address: Optional[str] = None) -> None:
        """Soft-delete; the row stays for audit history"""
        self.repository.delete(
            principal, USERS_TABLE, user_id,
            action=ActivityType.DELETE_ACCOUNT,
            ip_address=ip_address,
            audit_team_id=self.default_audit_team(principal),
        )

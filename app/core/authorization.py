"""
Policy decision point for row-level access.

Read rules:
- users: a principal reads only its own row; ``owner_reads_all_users`` is an
  opt-in extension letting global owners read every live user.
- teams: readable by members of the team.
- team_members, activity_logs, invitations: readable by members of the
  row's team. Memberships of deleted users are hidden.

Writes are denied unless a WritePolicy is supplied. Activity logs are never
writable through the engine.

Decisions depend only on (principal, entity, membership index state).
"""

import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Dict, List, Optional, Union

from app.config.permissions_config import ANY_PRINCIPAL, SELF, WRITE_RULES
from app.core.membership_index import MembershipIndex
from app.modules.activity.schemas import ActivityLog
from app.modules.invitations.schemas import Invitation
from app.modules.teams.schemas import Team, TeamMembership
from app.modules.users.schemas import User

logger = logging.getLogger(__name__)

Entity = Union[User, Team, TeamMembership, ActivityLog, Invitation]

GLOBAL_OWNER_ROLE = "owner"


class Operation(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


def team_scope(entity: Entity) -> Optional[str]:
    """Team that owns the row, or None for unscoped rows (users)."""
    if isinstance(entity, Team):
        return entity.id
    return getattr(entity, "team_id", None)


def row_owner(entity: Entity) -> Optional[str]:
    if isinstance(entity, User):
        return entity.id
    if isinstance(entity, TeamMembership):
        return entity.user_id
    return None


class WritePolicy(ABC):
    @abstractmethod
    def allows(self, principal: User, entity: Entity, operation: Operation, index: MembershipIndex) -> bool:
        ...


class RoleWritePolicy(WritePolicy):
    """Grants writes from a table -> operation -> grantees matrix."""

    def __init__(self, rules: Optional[Dict[str, Dict[str, List[str]]]] = None):
        self.rules = WRITE_RULES if rules is None else rules

    def allows(self, principal, entity, operation, index) -> bool:
        grantees = self.rules.get(entity.table, {}).get(operation.value, [])
        if ANY_PRINCIPAL in grantees:
            return True
        if SELF in grantees and row_owner(entity) == principal.id:
            return True
        team_id = team_scope(entity)
        if team_id is None:
            return False
        role = index.role_of(team_id, principal.id)
        return role is not None and role in grantees


class AuthorizationEngine:
    def __init__(
        self,
        index: MembershipIndex,
        write_policy: Optional[WritePolicy] = None,
        owner_reads_all_users: bool = False,
    ):
        self.index = index
        self.write_policy = write_policy
        self.owner_reads_all_users = owner_reads_all_users

    def is_valid_principal(self, principal: Optional[User]) -> bool:
        return (
            principal is not None
            and not principal.is_deleted
            and not self.index.is_user_deleted(principal.id)
        )

    def can_read_team(self, principal: Optional[User], team_id: str) -> bool:
        return self.is_valid_principal(principal) and self.index.is_member(team_id, principal.id)

    def can_read(self, principal: Optional[User], entity: Entity) -> bool:
        if not self.is_valid_principal(principal):
            return False
        if isinstance(entity, User):
            if entity.is_deleted or self.index.is_user_deleted(entity.id):
                return False
            if entity.id == principal.id:
                return True
            return self.owner_reads_all_users and principal.role == GLOBAL_OWNER_ROLE
        team_id = team_scope(entity)
        if team_id is None:
            return False
        # memberships of deleted users drop out of rosters
        if isinstance(entity, TeamMembership) and self.index.is_user_deleted(entity.user_id):
            return False
        return self.index.is_member(team_id, principal.id)

    def can_write(self, principal: Optional[User], entity: Entity, operation: Union[Operation, str]) -> bool:
        operation = Operation(operation)
        if not self.is_valid_principal(principal):
            return False
        if isinstance(entity, ActivityLog):
            return False
        if self.write_policy is None:
            logger.debug(f"No write policy configured; denying {operation.value} on {entity.table}")
            return False
        return self.write_policy.allows(principal, entity, operation, self.index)

    def can_redeem(self, principal: Optional[User], invitation: Invitation, user_id: str) -> bool:
        """The invitee redeems for themselves, matched by email."""
        return (
            self.is_valid_principal(principal)
            and principal.id == user_id
            and principal.email == invitation.email
        )

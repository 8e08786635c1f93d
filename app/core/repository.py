"""
Access-controlled repository: the only path from callers to storage.

Reads are filtered through the authorization engine; a row the principal may
not see is reported as Forbidden whether or not it exists. Writes follow
fetch -> authorize -> mutate + record activity, all inside one storage
transaction, executed under the team's membership lock and only if the
team roster has not changed since the decision was made. A stale decision is
retried ``conflict_retries`` times before surfacing as ConflictError.
"""

import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Type, TypeVar, Union

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from app.config.permissions_config import TEAM_OWNER
from app.core.authorization import AuthorizationEngine, Entity, Operation, team_scope
from app.core.errors import ConflictError, ForbiddenError, NotFoundError, StaleStateError, ValidationError
from app.core.membership_index import MembershipIndex
from app.database.storage import Storage
from app.modules.activity.models import ACTIVITY_LOGS_TABLE
from app.modules.activity.recorder import ActivityRecorder
from app.modules.activity.schemas import ActivityLog, ActivityType
from app.modules.invitations.models import INVITATIONS_TABLE
from app.modules.invitations.schemas import Invitation, InvitationStatus
from app.modules.teams.models import TEAMS_TABLE, TEAM_MEMBERS_TABLE
from app.modules.teams.schemas import Team, TeamMembership
from app.modules.users.models import USERS_TABLE
from app.modules.users.schemas import User

logger = logging.getLogger(__name__)

T = TypeVar("T")
Action = Union[str, Enum]

MODELS: Dict[str, Type[BaseModel]] = {
    model.table: model for model in (User, Team, TeamMembership, ActivityLog, Invitation)
}

IMMUTABLE_FIELDS = {
    USERS_TABLE: {"id", "email", "password_hash", "role", "created_at", "deleted_at"},
    TEAMS_TABLE: {
        "id", "created_at", "stripe_customer_id", "stripe_subscription_id",
        "stripe_product_id", "plan_name", "subscription_status",
    },
    TEAM_MEMBERS_TABLE: {"id", "team_id", "user_id", "joined_at"},
    INVITATIONS_TABLE: {"id", "team_id", "email", "invited_by", "invited_at"},
    ACTIVITY_LOGS_TABLE: {"id", "team_id", "user_id", "action", "ip_address", "timestamp"},
}

# children first
TEAM_DEPENDENTS = [INVITATIONS_TABLE, ACTIVITY_LOGS_TABLE, TEAM_MEMBERS_TABLE]


def _now() -> datetime:
    return datetime.now(timezone.utc)


class AccessControlledRepository:
    def __init__(
        self,
        storage: Storage,
        index: MembershipIndex,
        engine: AuthorizationEngine,
        recorder: ActivityRecorder,
        conflict_retries: int = 1,
    ):
        self.storage = storage
        self.index = index
        self.engine = engine
        self.recorder = recorder
        self.conflict_retries = max(0, conflict_retries)

    # Helpers

    def _model(self, table: str) -> Type[BaseModel]:
        model = MODELS.get(table)
        if model is None:
            raise ValidationError("Unknown table", {"table": table})
        return model

    def _load(self, table: str, row_id: str) -> Optional[Entity]:
        row = self.storage.get(table, row_id)
        return self._model(table)(**row) if row is not None else None

    def _build(self, model: Type[BaseModel], data: Dict[str, Any]) -> Entity:
        try:
            return model(**data)
        except PydanticValidationError as e:
            raise ValidationError("Invalid input", {"errors": [err["msg"] for err in e.errors()]})

    def _deny(self, principal: Optional[User], operation: str, table: str) -> ForbiddenError:
        logger.info(f"Denied {operation} on {table} for principal {principal.id if principal else None}")
        return ForbiddenError()

    def _lock_key(self, entity: Entity) -> str:
        return team_scope(entity) or f"user:{entity.id}"

    def _audit_team(self, principal: User, entity: Entity, audit_team_id: Optional[str]) -> str:
        team_id = team_scope(entity)
        if team_id is not None:
            return team_id
        if audit_team_id is None or not self.index.is_member(audit_team_id, principal.id):
            raise ValidationError("Account changes must be recorded against one of your teams")
        return audit_team_id

    def _ensure_unchanged(self, current: Entity) -> None:
        if self._load(current.table, current.id) != current:
            raise StaleStateError("Row changed during the request", {"table": current.table})

    def _sync_index(self, before: Optional[Entity], after: Optional[Entity]) -> None:
        entity = after if after is not None else before
        if isinstance(entity, TeamMembership):
            if before is None:
                self.index.add(after.team_id, after.user_id, after.role)
            elif after is None:
                self.index.remove(before.team_id, before.user_id)
            elif before.role != after.role:
                self.index.change_role(after.team_id, after.user_id, after.role)
        elif isinstance(entity, User) and after is not None and after.is_deleted:
            self.index.mark_user_deleted(after.id)

    def _guarded(self, key: str, attempt: Callable[[int], T]) -> T:
        for attempt_no in range(self.conflict_retries + 1):
            generation = self.index.generation(key)
            try:
                return attempt(generation)
            except StaleStateError:
                if attempt_no >= self.conflict_retries:
                    logger.warning(f"Write on {key} still stale after {attempt_no + 1} attempt(s)")
                    raise ConflictError("Concurrent modification, retry the request")
                logger.info(f"Retrying write on {key} after a concurrent change")

    def _validate_references(self, entity: Entity) -> None:
        if isinstance(entity, TeamMembership):
            user = self._load(USERS_TABLE, entity.user_id)
            if user is None or user.is_deleted:
                raise ValidationError("User does not exist", {"user_id": entity.user_id})
        elif isinstance(entity, Invitation):
            inviter = self._load(USERS_TABLE, entity.invited_by)
            if inviter is None or inviter.is_deleted:
                raise ValidationError("Inviter does not exist", {"invited_by": entity.invited_by})
            if entity.status is not InvitationStatus.PENDING:
                raise ValidationError("New invitations must be pending")
        if team_scope(entity) is not None and self.storage.get(TEAMS_TABLE, team_scope(entity)) is None:
            raise ValidationError("Team does not exist")

    def _check_transition(self, current: Entity, proposed: Entity) -> None:
        if isinstance(current, Invitation) and current.status != proposed.status:
            # acceptance creates the membership, so it only happens in redeem_invitation
            if proposed.status is InvitationStatus.ACCEPTED:
                raise ValidationError("Invitations are accepted by redeeming them")
            if not current.status.can_transition_to(proposed.status):
                raise ConflictError(
                    f"Invitation is already {current.status.value}",
                    {"status": current.status.value},
                )

    # System entry points for the credential collaborator

    def provision_user(self, user: User) -> User:
        """Sign-up path: there is no principal yet, so nothing to authorize or audit."""
        self.storage.insert(USERS_TABLE, user.model_dump(mode="json"))
        logger.info(f"Provisioned user {user.id}")
        return user

    def resolve_principal(self, user_id: str) -> Optional[User]:
        user = self._load(USERS_TABLE, user_id)
        if user is None or not self.engine.is_valid_principal(user):
            return None
        return user

    # Reads

    def get(self, principal: User, table: str, row_id: str, team_id: Optional[str] = None) -> Entity:
        """Fetch one row. With ``team_id``, a member of that team learns about absence (NotFound)."""
        entity = self._load(table, row_id)
        in_scope = entity is not None and (team_id is None or team_scope(entity) == team_id)
        if in_scope and self.engine.can_read(principal, entity):
            return entity
        if team_id is not None and not in_scope and self.engine.can_read_team(principal, team_id):
            raise NotFoundError("Not found", {"team_id": team_id})
        raise self._deny(principal, "read", table)

    def list(
        self,
        principal: User,
        table: str,
        filters: Optional[Dict[str, Any]] = None,
        order_by: Optional[str] = None,
        desc: bool = False,
    ) -> List[Entity]:
        """Rows the principal may read, in storage order unless ``order_by`` is given."""
        model = self._model(table)
        if not self.engine.is_valid_principal(principal):
            return []
        team_id = (filters or {}).get("team_id")
        if team_id is not None and not self.engine.can_read_team(principal, team_id):
            return []
        rows = self.storage.select(table, filters, order_by=order_by, desc=desc)
        entities = [model(**row) for row in rows]
        return [e for e in entities if self.engine.can_read(principal, e)]

    def get_membership(self, principal: User, team_id: str, user_id: str) -> TeamMembership:
        rows = self.list(principal, TEAM_MEMBERS_TABLE, {"team_id": team_id, "user_id": user_id})
        if rows:
            return rows[0]
        if self.engine.can_read_team(principal, team_id):
            raise NotFoundError("Membership not found", {"team_id": team_id})
        raise self._deny(principal, "read", TEAM_MEMBERS_TABLE)

    # Writes

    def create(self, principal: User, entity: Entity, action: Action, ip_address: Optional[str] = None) -> Entity:
        if isinstance(entity, Team):
            return self.create_team(principal, entity, action, ip_address)
        entity = self._build(type(entity), entity.model_dump())
        key = self._lock_key(entity)

        def attempt(generation: int) -> Entity:
            if not self.engine.can_write(principal, entity, Operation.CREATE):
                raise self._deny(principal, "create", entity.table)
            self._validate_references(entity)
            audit_team = self._audit_team(principal, entity, None)
            with self.index.guard(key, generation):
                with self.storage.transaction():
                    self.storage.insert(entity.table, entity.model_dump(mode="json"))
                    self.recorder.record(audit_team, principal.id, action, ip_address)
                self._sync_index(None, entity)
            return entity

        return self._guarded(key, attempt)

    def update(
        self,
        principal: User,
        table: str,
        row_id: str,
        changes: Dict[str, Any],
        action: Action,
        ip_address: Optional[str] = None,
        audit_team_id: Optional[str] = None,
    ) -> Entity:
        model = self._model(table)
        blocked = set(changes) & IMMUTABLE_FIELDS.get(table, {"id"})
        if blocked:
            raise ValidationError("Fields cannot be changed", {"fields": sorted(blocked)})
        probe = self._load(table, row_id)
        if probe is None:
            raise self._deny(principal, "update", table)
        key = self._lock_key(probe)

        def attempt(generation: int) -> Entity:
            current = self._load(table, row_id)
            if current is None or not self.engine.can_write(principal, current, Operation.UPDATE):
                raise self._deny(principal, "update", table)
            data = {**current.model_dump(), **changes}
            if "updated_at" in model.model_fields:
                data["updated_at"] = _now()
            proposed = self._build(model, data)
            self._check_transition(current, proposed)
            audit_team = self._audit_team(principal, current, audit_team_id)
            with self.index.guard(key, generation):
                with self.storage.transaction():
                    self._ensure_unchanged(current)
                    row = proposed.model_dump(mode="json")
                    row.pop("id")
                    self.storage.update(table, row_id, row)
                    self.recorder.record(audit_team, principal.id, action, ip_address)
                self._sync_index(current, proposed)
            return proposed

        return self._guarded(key, attempt)

    def delete(
        self,
        principal: User,
        table: str,
        row_id: str,
        action: Action,
        ip_address: Optional[str] = None,
        audit_team_id: Optional[str] = None,
    ) -> Entity:
        """Delete a row. Users are soft-deleted; teams go through ``delete_team``."""
        if table == TEAMS_TABLE:
            return self.delete_team(principal, row_id, cascade=False)
        if table == USERS_TABLE:
            return self._soft_delete_user(principal, row_id, action, ip_address, audit_team_id)
        probe = self._load(table, row_id)
        if probe is None:
            raise self._deny(principal, "delete", table)
        key = self._lock_key(probe)

        def attempt(generation: int) -> Entity:
            current = self._load(table, row_id)
            if current is None or not self.engine.can_write(principal, current, Operation.DELETE):
                raise self._deny(principal, "delete", table)
            audit_team = self._audit_team(principal, current, audit_team_id)
            with self.index.guard(key, generation):
                with self.storage.transaction():
                    self._ensure_unchanged(current)
                    self.storage.delete(table, row_id)
                    self.recorder.record(audit_team, principal.id, action, ip_address)
                self._sync_index(current, None)
            return current

        return self._guarded(key, attempt)

    def _soft_delete_user(self, principal, user_id, action, ip_address, audit_team_id) -> User:
        key = f"user:{user_id}"

        def attempt(generation: int) -> User:
            current = self._load(USERS_TABLE, user_id)
            if current is None or not self.engine.can_write(principal, current, Operation.DELETE):
                raise self._deny(principal, "delete", USERS_TABLE)
            audit_team = self._audit_team(principal, current, audit_team_id)
            now = _now()
            deleted = current.model_copy(update={"deleted_at": now, "updated_at": now})
            with self.index.guard(key, generation):
                with self.storage.transaction():
                    self._ensure_unchanged(current)
                    self.storage.update(USERS_TABLE, user_id, {
                        "deleted_at": now.isoformat(),
                        "updated_at": now.isoformat(),
                    })
                    self.recorder.record(audit_team, principal.id, action, ip_address)
                self._sync_index(current, deleted)
            return deleted

        return self._guarded(key, attempt)

    def create_team(
        self,
        principal: User,
        team: Team,
        action: Action = ActivityType.CREATE_TEAM,
        ip_address: Optional[str] = None,
    ) -> Team:
        """Create a team and make the principal its owner, atomically."""
        team = self._build(Team, team.model_dump())
        if not self.engine.can_write(principal, team, Operation.CREATE):
            raise self._deny(principal, "create", TEAMS_TABLE)
        owner = TeamMembership(team_id=team.id, user_id=principal.id, role=TEAM_OWNER)
        with self.index.guard(team.id):
            with self.storage.transaction():
                self.storage.insert(TEAMS_TABLE, team.model_dump(mode="json"))
                self.storage.insert(TEAM_MEMBERS_TABLE, owner.model_dump(mode="json"))
                self.recorder.record(team.id, principal.id, action, ip_address)
            self._sync_index(None, owner)
        return team

    def delete_team(self, principal: User, team_id: str, cascade: bool = False) -> Team:
        """Delete a team. Dependent rows block the delete unless ``cascade`` is set.

        A team always holds its owner membership and creation entry, so in
        practice only a cascade delete succeeds. The team's activity log goes
        with it, which makes this the one write that leaves no ActivityLog
        row: the deletion is recorded in the application log instead.
        """
        def attempt(generation: int) -> Team:
            current = self._load(TEAMS_TABLE, team_id)
            if current is None or not self.engine.can_write(principal, current, Operation.DELETE):
                raise self._deny(principal, "delete", TEAMS_TABLE)
            dependents = {
                table: len(self.storage.select(table, {"team_id": team_id}))
                for table in TEAM_DEPENDENTS
            }
            if not cascade and any(dependents.values()):
                raise ConflictError("Team has dependent rows; delete with cascade", {"dependents": dependents})
            with self.index.guard(team_id, generation):
                with self.storage.transaction():
                    self._ensure_unchanged(current)
                    for table in TEAM_DEPENDENTS:
                        self.storage.delete_where(table, {"team_id": team_id})
                    self.storage.delete(TEAMS_TABLE, team_id)
                self.index.drop_team(team_id)
            logger.info(f"Team {team_id} deleted by {principal.id} (cascade={cascade}, dependents={dependents})")
            return current

        return self._guarded(team_id, attempt)

    def redeem_invitation(
        self,
        principal: User,
        invitation_id: str,
        user_id: str,
        ip_address: Optional[str] = None,
    ) -> TeamMembership:
        """Accept an invitation and create the membership in one transaction."""
        probe = self._load(INVITATIONS_TABLE, invitation_id)
        if probe is None or not self.engine.can_redeem(principal, probe, user_id):
            raise self._deny(principal, "redeem", INVITATIONS_TABLE)
        team_id = probe.team_id

        def attempt(generation: int) -> TeamMembership:
            invitation = self._load(INVITATIONS_TABLE, invitation_id)
            if invitation is None or not self.engine.can_redeem(principal, invitation, user_id):
                raise self._deny(principal, "redeem", INVITATIONS_TABLE)
            if invitation.status is not InvitationStatus.PENDING:
                raise ConflictError(
                    f"Invitation is already {invitation.status.value}",
                    {"status": invitation.status.value},
                )
            if self.index.is_member(team_id, user_id):
                raise ConflictError("User is already a member of this team", {"team_id": team_id})
            membership = TeamMembership(team_id=team_id, user_id=user_id, role=invitation.role)
            with self.index.guard(team_id, generation):
                with self.storage.transaction():
                    self._ensure_unchanged(invitation)
                    self.storage.update(INVITATIONS_TABLE, invitation_id, {"status": InvitationStatus.ACCEPTED.value})
                    self.storage.insert(TEAM_MEMBERS_TABLE, membership.model_dump(mode="json"))
                    self.recorder.record(team_id, user_id, ActivityType.ACCEPT_INVITATION, ip_address)
                self._sync_index(None, membership)
            return membership

        return self._guarded(team_id, attempt)

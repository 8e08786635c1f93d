"""
In-process index of team rosters: (team_id, user_id) -> role.

Every roster is an immutable snapshot that mutations replace wholesale, so a
concurrent reader sees either the old or the new roster, never a partial one.
Mutations for one team are serialized by that team's lock and bump the
team's generation, which writers use to detect roster changes that happened
after they authorized.
"""

import logging
import threading
from contextlib import contextmanager
from typing import Dict, FrozenSet, Iterable, Iterator, List, Optional

from app.core.errors import ConflictError, NotFoundError, StaleStateError
from app.database.storage import Storage
from app.modules.teams.models import TEAM_MEMBERS_TABLE
from app.modules.users.models import USERS_TABLE

logger = logging.getLogger(__name__)


class MembershipIndex:
    def __init__(self):
        self._rosters: Dict[str, Dict[str, str]] = {}
        self._generations: Dict[str, int] = {}
        self._deleted_users: FrozenSet[str] = frozenset()
        self._locks: Dict[str, threading.RLock] = {}
        self._locks_guard = threading.Lock()

    @classmethod
    def from_storage(cls, storage: Storage) -> "MembershipIndex":
        index = cls()
        deleted = [u["id"] for u in storage.select(USERS_TABLE) if u.get("deleted_at")]
        index.load(storage.select(TEAM_MEMBERS_TABLE), deleted)
        return index

    def load(self, memberships: Iterable[dict], deleted_user_ids: Iterable[str] = ()) -> None:
        rosters: Dict[str, Dict[str, str]] = {}
        for row in memberships:
            rosters.setdefault(row["team_id"], {})[row["user_id"]] = row["role"]
        with self._locks_guard:
            for team_id, roster in rosters.items():
                self._rosters[team_id] = roster
                self._generations[team_id] = self._generations.get(team_id, 0) + 1
            self._deleted_users = frozenset(deleted_user_ids)
        logger.info(f"Membership index loaded {len(rosters)} team roster(s)")

    def _team_lock(self, team_id: str) -> threading.RLock:
        with self._locks_guard:
            lock = self._locks.get(team_id)
            if lock is None:
                lock = self._locks[team_id] = threading.RLock()
            return lock

    def _publish(self, team_id: str, roster: Optional[Dict[str, str]]) -> None:
        if roster is None:
            self._rosters.pop(team_id, None)
        else:
            self._rosters[team_id] = roster
        self._generations[team_id] = self._generations.get(team_id, 0) + 1

    # Reads

    def role_of(self, team_id: str, user_id: str) -> Optional[str]:
        if user_id in self._deleted_users:
            return None
        return self._rosters.get(team_id, {}).get(user_id)

    def is_member(self, team_id: str, user_id: str) -> bool:
        return self.role_of(team_id, user_id) is not None

    def is_user_deleted(self, user_id: str) -> bool:
        return user_id in self._deleted_users

    def generation(self, team_id: str) -> int:
        return self._generations.get(team_id, 0)

    def roster(self, team_id: str) -> Dict[str, str]:
        """Active members of a team (deleted users excluded)."""
        deleted = self._deleted_users
        return {u: r for u, r in self._rosters.get(team_id, {}).items() if u not in deleted}

    def teams_of(self, user_id: str) -> List[str]:
        if user_id in self._deleted_users:
            return []
        return self._teams_containing(user_id)

    def _teams_containing(self, user_id: str) -> List[str]:
        return [t for t, roster in list(self._rosters.items()) if user_id in roster]

    # Mutations

    @contextmanager
    def guard(self, team_id: str, expected_generation: Optional[int] = None) -> Iterator[None]:
        """Hold the team lock; fail if the roster moved past ``expected_generation``."""
        with self._team_lock(team_id):
            if expected_generation is not None and self.generation(team_id) != expected_generation:
                raise StaleStateError("Team membership changed", {"team_id": team_id})
            yield

    def add(self, team_id: str, user_id: str, role: str) -> None:
        with self._team_lock(team_id):
            roster = self._rosters.get(team_id, {})
            if user_id in roster:
                raise ConflictError("User is already a member of this team", {"team_id": team_id})
            self._publish(team_id, {**roster, user_id: role})

    def remove(self, team_id: str, user_id: str) -> None:
        with self._team_lock(team_id):
            roster = self._rosters.get(team_id, {})
            if user_id not in roster:
                raise NotFoundError("Membership not found", {"team_id": team_id})
            self._publish(team_id, {u: r for u, r in roster.items() if u != user_id})

    def change_role(self, team_id: str, user_id: str, role: str) -> None:
        with self._team_lock(team_id):
            roster = self._rosters.get(team_id, {})
            if user_id not in roster:
                raise NotFoundError("Membership not found", {"team_id": team_id})
            self._publish(team_id, {**roster, user_id: role})

    def drop_team(self, team_id: str) -> None:
        with self._team_lock(team_id):
            self._publish(team_id, None)
        # the generation stays so writers that authorized before the drop still go stale
        with self._locks_guard:
            self._locks.pop(team_id, None)

    def mark_user_deleted(self, user_id: str) -> None:
        with self._locks_guard:
            self._deleted_users = self._deleted_users | {user_id}
        for team_id in self._teams_containing(user_id):
            with self._team_lock(team_id):
                self._generations[team_id] = self._generations.get(team_id, 0) + 1

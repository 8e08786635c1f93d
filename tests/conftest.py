"""Shared fixtures: an in-memory access layer with the role write policy."""

import pytest

from app.core.authorization import AuthorizationEngine, RoleWritePolicy
from app.core.membership_index import MembershipIndex
from app.core.repository import AccessControlledRepository
from app.database.storage import InMemoryStorage
from app.modules.activity.recorder import ActivityRecorder
from app.modules.activity.schemas import ActivityType
from app.modules.teams.schemas import Team, TeamMembership
from app.modules.users.schemas import User


@pytest.fixture
def storage():
    return InMemoryStorage()


@pytest.fixture
def index():
    return MembershipIndex()


@pytest.fixture
def engine(index):
    return AuthorizationEngine(index, write_policy=RoleWritePolicy())


@pytest.fixture
def repository(storage, index, engine):
    return AccessControlledRepository(storage, index, engine, ActivityRecorder(storage))


@pytest.fixture
def make_user(repository):
    def _make(email, name=None, role="member"):
        return repository.provision_user(User(email=email, password_hash="opaque-hash", name=name, role=role))
    return _make


@pytest.fixture
def owner(make_user):
    return make_user("owner@example.com", "Olive Owner")


@pytest.fixture
def team(repository, owner):
    return repository.create_team(owner, Team(name="Team X"))


@pytest.fixture
def add_member(repository, owner):
    def _add(team, user, role="member"):
        return repository.create(
            owner,
            TeamMembership(team_id=team.id, user_id=user.id, role=role),
            action=ActivityType.ADD_TEAM_MEMBER,
        )
    return _add

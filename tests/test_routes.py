"""HTTP adapter: status codes, error payloads and the end-to-end team scenario."""

from unittest.mock import MagicMock

import pytest
from fastapi import HTTPException
from fastapi.security import HTTPAuthorizationCredentials
from fastapi.testclient import TestClient

from app.core.dependencies import get_current_principal, get_repository
from app.main import app
from app.modules.auth.service import AuthService, clear_auth_cache
from app.modules.teams.schemas import Team, TeamResponse
from app.modules.users.schemas import User, UserResponse


@pytest.fixture
def api(repository):
    """TestClient plus a setter for the authenticated user."""
    session = {"user": None}
    app.dependency_overrides[get_repository] = lambda: repository
    app.dependency_overrides[get_current_principal] = lambda: session["user"]

    def act_as(user):
        session["user"] = user

    yield TestClient(app), act_as
    app.dependency_overrides.clear()


class TestTeamsApi:
    def test_team_scenario(self, api, make_user):
        client, act_as = api
        owner = make_user("owner@example.com")
        user_a = make_user("a@example.com")
        user_b = make_user("b@example.com")

        act_as(owner)
        resp = client.post("/api/v1/teams", json={"name": "Team X"})
        assert resp.status_code == 201
        team_id = resp.json()["id"]

        act_as(user_a)
        resp = client.get(f"/api/v1/teams/{team_id}")
        assert resp.status_code == 403
        assert resp.json() == {"error": "forbidden", "detail": "Forbidden"}

        act_as(owner)
        resp = client.post(f"/api/v1/teams/{team_id}/members", json={"user_id": user_b.id})
        assert resp.status_code == 201
        assert resp.json()["role"] == "member"

        act_as(user_b)
        resp = client.get(f"/api/v1/teams/{team_id}")
        assert resp.status_code == 200
        assert resp.json()["name"] == "Team X"

        resp = client.get(f"/api/v1/teams/{team_id}/members")
        assert sorted(m["user_id"] for m in resp.json()) == sorted([owner.id, user_b.id])

        resp = client.get(f"/api/v1/teams/{team_id}/activity")
        assert sorted(e["action"] for e in resp.json()) == ["ADD_TEAM_MEMBER", "CREATE_TEAM"]

    def test_validation_and_conflict_codes(self, api, make_user):
        client, act_as = api
        owner = make_user("owner@example.com")
        act_as(owner)
        assert client.post("/api/v1/teams", json={"name": "   "}).status_code == 422
        team_id = client.post("/api/v1/teams", json={"name": "Team X"}).json()["id"]

        resp = client.delete(f"/api/v1/teams/{team_id}")
        assert resp.status_code == 409
        assert resp.json()["error"] == "conflict"

        assert client.delete(f"/api/v1/teams/{team_id}?cascade=true").status_code == 204
        assert client.get(f"/api/v1/teams/{team_id}").status_code == 403

    def test_client_ip_is_recorded(self, api, make_user, storage):
        client, act_as = api
        act_as(make_user("owner@example.com"))
        resp = client.post("/api/v1/teams", json={"name": "Team X"}, headers={"X-Forwarded-For": "203.0.113.7, 10.0.0.1"})
        log = storage.select("activity_logs", {"team_id": resp.json()["id"]})[0]
        assert log["ip_address"] == "203.0.113.7"


class TestInvitationsApi:
    def test_invite_and_redeem(self, api, make_user):
        client, act_as = api
        owner = make_user("owner@example.com")
        invitee = make_user("x@y.com")

        act_as(owner)
        team_id = client.post("/api/v1/teams", json={"name": "Team X"}).json()["id"]
        resp = client.post(f"/api/v1/teams/{team_id}/invitations", json={"email": "x@y.com"})
        assert resp.status_code == 201
        invitation = resp.json()
        assert invitation["status"] == "pending"

        act_as(invitee)
        resp = client.post(f"/api/v1/invitations/{invitation['id']}/redeem")
        assert resp.status_code == 201
        assert resp.json()["user_id"] == invitee.id

        resp = client.post(f"/api/v1/invitations/{invitation['id']}/redeem")
        assert resp.status_code == 409

        resp = client.get(f"/api/v1/teams/{team_id}/invitations", params={"status": "accepted"})
        assert [i["id"] for i in resp.json()] == [invitation["id"]]


class TestUsersApi:
    def test_users_never_expose_credentials(self, api, make_user):
        client, act_as = api
        me = make_user("me@example.com", "Me")
        act_as(me)
        resp = client.get("/api/v1/users/me")
        assert resp.status_code == 200
        assert resp.json()["email"] == "me@example.com"
        assert "password_hash" not in resp.json()

    def test_other_users_are_forbidden(self, api, make_user):
        client, act_as = api
        other = make_user("other@example.com")
        act_as(make_user("me@example.com"))
        assert client.get(f"/api/v1/users/{other.id}").status_code == 403
        assert client.put(f"/api/v1/users/{other.id}", json={"name": "Hacked"}).status_code == 403

    def test_delete_account(self, api, make_user, repository):
        client, act_as = api
        me = make_user("me@example.com")
        act_as(me)
        client.post("/api/v1/teams", json={"name": "Mine"})
        assert client.delete(f"/api/v1/users/{me.id}").status_code == 204
        assert repository.resolve_principal(me.id) is None


class TestPrincipalResolution:
    def setup_method(self):
        clear_auth_cache()

    def _auth_service(self, user_id):
        supabase = MagicMock()
        supabase.auth.get_user.return_value.user.id = user_id
        supabase.auth.get_user.return_value.user.email = "someone@example.com"
        return AuthService(supabase)

    def test_live_user_resolves(self, repository, make_user):
        me = make_user("me@example.com")
        creds = HTTPAuthorizationCredentials(scheme="Bearer", credentials="token-1")
        principal = get_current_principal(creds, self._auth_service(me.id), repository)
        assert principal.id == me.id

    def test_deleted_or_unknown_user_is_rejected(self, repository, make_user, index):
        gone = make_user("gone@example.com")
        index.mark_user_deleted(gone.id)
        creds = HTTPAuthorizationCredentials(scheme="Bearer", credentials="token-2")
        with pytest.raises(HTTPException) as exc:
            get_current_principal(creds, self._auth_service(gone.id), repository)
        assert exc.value.status_code == 401
        creds = HTTPAuthorizationCredentials(scheme="Bearer", credentials="token-3")
        with pytest.raises(HTTPException):
            get_current_principal(creds, self._auth_service("nobody"), repository)

    def test_invalid_token(self):
        supabase = MagicMock()
        supabase.auth.get_user.side_effect = Exception("JWT expired")
        with pytest.raises(HTTPException) as exc:
            AuthService(supabase).get_current_user("bad-token")
        assert exc.value.status_code == 401


def test_health():
    assert TestClient(app).get("/health").json() == {"status": "healthy"}


def test_response_models_read_entity_attributes():
    team = Team(name="Team X", plan_name="pro")
    assert TeamResponse.model_validate(team).plan_name == "pro"
    user = User(email="Me@Example.com", password_hash="secret")
    assert UserResponse.model_validate(user).email == "me@example.com"
    assert "password_hash" not in UserResponse.model_validate(user).model_dump()

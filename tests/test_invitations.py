"""Invitation lifecycle: creation rules, monotonic status, atomic redemption."""

import pytest

from app.core.errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from app.modules.invitations.schemas import Invitation, InvitationCreate, InvitationStatus
from app.modules.invitations.service import InvitationService
from app.modules.teams.schemas import Team


@pytest.fixture
def service(repository):
    return InvitationService(repository)


@pytest.fixture
def invitation(service, owner, team):
    return service.create_invitation(owner, team.id, InvitationCreate(email="x@y.com"))


def memberships(storage, team_id, user_id):
    return storage.select("team_members", {"team_id": team_id, "user_id": user_id})


class TestStatus:
    def test_transitions_are_monotonic(self):
        assert InvitationStatus.PENDING.can_transition_to(InvitationStatus.ACCEPTED)
        assert InvitationStatus.PENDING.can_transition_to(InvitationStatus.REVOKED)
        assert not InvitationStatus.ACCEPTED.can_transition_to(InvitationStatus.PENDING)
        assert not InvitationStatus.REVOKED.can_transition_to(InvitationStatus.ACCEPTED)
        assert not InvitationStatus.PENDING.can_transition_to(InvitationStatus.PENDING)


class TestCreate:
    def test_owner_invites(self, invitation, owner, team, storage):
        assert invitation.status == InvitationStatus.PENDING
        assert invitation.invited_by == owner.id
        assert invitation.team_id == team.id
        assert storage.select("activity_logs", {"action": "INVITE_TEAM_MEMBER"})[0]["user_id"] == owner.id

    def test_duplicate_pending_invitation(self, service, owner, team, invitation):
        with pytest.raises(ConflictError):
            service.create_invitation(owner, team.id, InvitationCreate(email="X@Y.com"))

    def test_members_cannot_invite(self, service, team, make_user, add_member):
        member = make_user("b@example.com")
        add_member(team, member)
        with pytest.raises(ForbiddenError):
            service.create_invitation(member, team.id, InvitationCreate(email="c@example.com"))

    def test_inviter_must_exist(self, repository, owner, team):
        ghost_invite = Invitation(team_id=team.id, email="c@example.com", invited_by="ghost")
        with pytest.raises(ValidationError):
            repository.create(owner, ghost_invite, action="INVITE_TEAM_MEMBER")

    def test_invitations_visible_to_members_only(self, service, team, make_user, add_member, invitation):
        member = make_user("b@example.com")
        outsider = make_user("c@example.com")
        add_member(team, member)
        assert [i.id for i in service.list_invitations(member, team.id)] == [invitation.id]
        assert service.list_invitations(outsider, team.id) == []
        with pytest.raises(ForbiddenError):
            service.get_invitation(outsider, team.id, invitation.id)


class TestRedeem:
    def test_redeem_creates_membership(self, service, repository, storage, team, invitation, make_user):
        invitee = make_user("X@y.com")

        membership = service.redeem_invitation(invitee, invitation.id)

        assert membership.team_id == team.id
        assert membership.user_id == invitee.id
        assert membership.role == "member"
        assert storage.get("invitations", invitation.id)["status"] == "accepted"
        assert repository.index.is_member(team.id, invitee.id)
        accepted = storage.select("activity_logs", {"team_id": team.id, "action": "ACCEPT_INVITATION"})
        assert [l["user_id"] for l in accepted] == [invitee.id]

    def test_second_redeem_conflicts_without_duplicate(self, service, storage, team, invitation, make_user):
        invitee = make_user("x@y.com")
        service.redeem_invitation(invitee, invitation.id)
        with pytest.raises(ConflictError):
            service.redeem_invitation(invitee, invitation.id)
        assert len(memberships(storage, team.id, invitee.id)) == 1

    def test_redeem_after_leaving_still_conflicts(self, service, repository, storage, team, invitation, make_user):
        invitee = make_user("x@y.com")
        joined = service.redeem_invitation(invitee, invitation.id)
        repository.delete(invitee, "team_members", joined.id, action="REMOVE_TEAM_MEMBER")
        with pytest.raises(ConflictError):
            service.redeem_invitation(invitee, invitation.id)
        assert memberships(storage, team.id, invitee.id) == []

    def test_wrong_email_is_forbidden(self, service, storage, team, invitation, make_user):
        stranger = make_user("someone@else.com")
        with pytest.raises(ForbiddenError):
            service.redeem_invitation(stranger, invitation.id)
        assert memberships(storage, team.id, stranger.id) == []
        assert storage.get("invitations", invitation.id)["status"] == "pending"

    def test_unknown_invitation_is_forbidden(self, service, make_user):
        invitee = make_user("x@y.com")
        with pytest.raises(ForbiddenError):
            service.redeem_invitation(invitee, "no-such-invitation")

    def test_redeem_for_someone_else_is_forbidden(self, repository, invitation, make_user, owner):
        make_user("x@y.com")
        with pytest.raises(ForbiddenError):
            repository.redeem_invitation(owner, invitation.id, "someone-else")

    def test_existing_member_cannot_redeem(self, service, team, invitation, make_user, add_member):
        invitee = make_user("x@y.com")
        add_member(team, invitee)
        with pytest.raises(ConflictError):
            service.redeem_invitation(invitee, invitation.id)

    def test_redeem_is_atomic(self, service, repository, storage, team, invitation, make_user, monkeypatch):
        invitee = make_user("x@y.com")

        def broken_record(*args, **kwargs):
            raise RuntimeError("audit store offline")

        monkeypatch.setattr(repository.recorder, "record", broken_record)
        with pytest.raises(RuntimeError):
            service.redeem_invitation(invitee, invitation.id)
        assert storage.get("invitations", invitation.id)["status"] == "pending"
        assert memberships(storage, team.id, invitee.id) == []
        assert not repository.index.is_member(team.id, invitee.id)


class TestRevoke:
    def test_revoked_invitation_cannot_be_redeemed(self, service, owner, team, invitation, make_user):
        revoked = service.revoke_invitation(owner, team.id, invitation.id)
        assert revoked.status == InvitationStatus.REVOKED
        invitee = make_user("x@y.com")
        with pytest.raises(ConflictError):
            service.redeem_invitation(invitee, invitation.id)

    def test_terminal_status_cannot_go_back(self, repository, service, owner, team, invitation):
        service.revoke_invitation(owner, team.id, invitation.id)
        with pytest.raises(ConflictError):
            repository.update(owner, "invitations", invitation.id, {"status": "pending"}, action="REOPEN")

    def test_revoke_through_wrong_team_is_not_found(self, service, repository, owner, team, invitation):
        other = repository.create_team(owner, Team(name="Other"))
        with pytest.raises(NotFoundError):
            service.revoke_invitation(owner, other.id, invitation.id)


class TestAcceptanceOnlyByRedeem:
    def test_generic_update_cannot_accept(self, repository, storage, owner, team, invitation):
        with pytest.raises(ValidationError):
            repository.update(owner, "invitations", invitation.id, {"status": "accepted"}, action="ACCEPT")

        assert storage.get("invitations", invitation.id)["status"] == "pending"
        assert [m["user_id"] for m in storage.select("team_members", {"team_id": team.id})] == [owner.id]
        assert "ACCEPT" not in [l["action"] for l in storage.select("activity_logs", {"team_id": team.id})]

    def test_invitee_redeems_after_rejected_update(self, service, repository, storage, owner, team, invitation, make_user):
        with pytest.raises(ValidationError):
            repository.update(owner, "invitations", invitation.id, {"status": "accepted"}, action="ACCEPT")
        invitee = make_user("x@y.com")

        service.redeem_invitation(invitee, invitation.id)

        assert len(memberships(storage, team.id, invitee.id)) == 1
        assert storage.get("invitations", invitation.id)["status"] == "accepted"

    def test_blank_role_is_rejected(self, repository, owner, team, invitation):
        with pytest.raises(ValidationError):
            repository.update(owner, "invitations", invitation.id, {"role": "  "}, action="EDIT")

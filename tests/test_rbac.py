import pytest

from app.civic.errors import AuthorizationError
from app.civic.rbac import POLICY, Identity, ensure_permission, user_has_permission


@pytest.mark.parametrize(
    "key",
    ["election.create", "election.publish", "election.activate", "election.complete", "election.cancel"],
)
def test_lifecycle_is_official_only(key):
    assert user_has_permission(Identity(1, "admin"), key)
    assert user_has_permission(Identity(1, "election_official"), key)
    for role in ("voter", "volunteer", "campaign_staff"):
        assert not user_has_permission(Identity(1, role), key)


def test_every_role_may_vote_and_run():
    for role in ("voter", "volunteer", "campaign_staff", "election_official", "admin"):
        assert user_has_permission(Identity(7, role), "vote.cast")
        assert user_has_permission(Identity(7, role), "candidate.register")


@pytest.mark.parametrize("key", ["candidate.manage_any", "candidate.reactivate"])
def test_admin_only_candidate_operations(key):
    assert POLICY[key] == frozenset({"admin"})
    assert not user_has_permission(Identity(1, "election_official"), key)


def test_inactive_or_missing_identity_has_no_permissions():
    assert not user_has_permission(Identity(1, "admin", is_active=False), "election.create")
    assert not user_has_permission(None, "vote.cast")


def test_unknown_key_is_denied():
    assert not user_has_permission(Identity(1, "admin"), "election.delete")


def test_ensure_permission_raises_authorization_error():
    ensure_permission(Identity(1, "admin"), "vote.invalidate")
    with pytest.raises(AuthorizationError) as exc:
        ensure_permission(Identity(1, "voter"), "vote.invalidate")
    assert exc.value.status_code == 403
    assert exc.value.code == "authorization_error"

"""Tests for the voter eligibility gate."""
from datetime import datetime, timedelta

import pytest
from werkzeug.security import generate_password_hash

from app.civic import create_app
from app.civic.db import session_scope
from app.civic.errors import CivicError
from app.civic.models import Base, User, VoterRegistration
from app.civic.modules.candidates.service import register_candidate
from app.civic.modules.elections.models import Election
from app.civic.modules.elections.service import activate_election, create_election, publish_election
from app.civic.modules.voting.eligibility import (
    REASON_ALREADY_VOTED,
    REASON_ELECTION_NOT_FOUND,
    REASON_ENDED,
    REASON_NOT_ACTIVE,
    REASON_NOT_ELIGIBLE,
    REASON_NOT_REGISTERED,
    REASON_NOT_STARTED,
    REASON_NOT_VERIFIED,
    check_eligibility,
    evaluate_eligibility,
)
from app.civic.modules.voting.service import cast_vote
from app.civic.rbac import Identity

T0 = datetime(2030, 3, 1, 12, 0, 0)
START = T0 + timedelta(hours=1)
END = T0 + timedelta(hours=25)


def _election(status="active", requires_verification=True) -> Election:
    return Election(
        title="Mayor",
        description="Mayoral race",
        status=status,
        start_date=START,
        end_date=END,
        requires_verification=requires_verification,
    )


def _registration(eligible=True, verified=True) -> VoterRegistration:
    return VoterRegistration(user_id=1, is_eligible=eligible, eligibility_verified_at=T0 if verified else None)


class TestEvaluateEligibility:
    def test_all_rules_pass(self):
        result = evaluate_eligibility(_registration(), _election(), already_voted=False, now=START)
        assert result.eligible is True
        assert result.reasons == ()

    def test_missing_registration_short_circuits(self):
        result = evaluate_eligibility(None, _election(status="draft"), already_voted=True, now=T0)
        assert result.reasons == (REASON_NOT_REGISTERED,)

    def test_failures_accumulate_in_order(self):
        result = evaluate_eligibility(
            _registration(eligible=False, verified=False),
            _election(status="published"),
            already_voted=True,
            now=T0,
        )
        assert result.eligible is False
        assert result.reasons == (
            REASON_NOT_ELIGIBLE,
            REASON_NOT_ACTIVE,
            REASON_NOT_STARTED,
            REASON_NOT_VERIFIED,
            REASON_ALREADY_VOTED,
        )

    def test_window_edges_are_inclusive(self):
        assert evaluate_eligibility(_registration(), _election(), already_voted=False, now=START).eligible
        assert evaluate_eligibility(_registration(), _election(), already_voted=False, now=END).eligible
        late = evaluate_eligibility(_registration(), _election(), already_voted=False, now=END + timedelta(seconds=1))
        assert late.reasons == (REASON_ENDED,)

    def test_verification_only_when_required(self):
        unverified = _registration(verified=False)
        assert evaluate_eligibility(unverified, _election(requires_verification=False), already_voted=False, now=START).eligible
        result = evaluate_eligibility(unverified, _election(), already_voted=False, now=START)
        assert result.reasons == (REASON_NOT_VERIFIED,)

    def test_to_dict(self):
        result = evaluate_eligibility(None, _election(), already_voted=False, now=START)
        assert result.to_dict() == {"eligible": False, "reasons": [REASON_NOT_REGISTERED]}


VOTERS = (
    # email, registration (None = not registered), eligible, verified
    ("ok@example.com", True, True, True),
    ("unregistered@example.com", None, None, None),
    ("ineligible@example.com", True, False, True),
    ("unverified@example.com", True, True, False),
)


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")

    app = create_app()
    Base.metadata.create_all(bind=app.extensions["sqlalchemy_engine"])

    with session_scope(app) as s:
        official = User(email="official@example.com", password_hash=generate_password_hash("pw"), role="election_official", is_active=True)
        s.add(official)
        for email, registered, eligible, verified in VOTERS:
            u = User(email=email, password_hash=generate_password_hash("pw"), role="voter", is_active=True)
            s.add(u)
            s.flush()
            if registered:
                s.add(
                    VoterRegistration(
                        user_id=u.id,
                        is_eligible=eligible,
                        eligibility_verified_at=T0 if verified else None,
                    )
                )
        s.flush()
        official_id = Identity.from_user(official)

        e = create_election(
            s,
            {"title": "Mayor", "description": "Mayoral race", "start_date": START, "end_date": END},
            official_id,
            now=T0,
        )
        ok_user = s.query(User).filter(User.email == "ok@example.com").one()
        c = register_candidate(s, e.id, Identity.from_user(ok_user), {"candidate_name": "Pat Lane"}, now=T0)
        publish_election(s, e.id, official_id, now=T0)
        activate_election(s, e.id, official_id, now=START)
        app.config["TEST_ELECTION_ID"] = e.id
        app.config["TEST_CANDIDATE_ID"] = c.id
    return app


def _identity(app, email: str) -> Identity:
    with session_scope(app) as s:
        return Identity.from_user(s.query(User).filter(User.email == email).one())


def test_check_eligibility_unknown_election(app):
    with session_scope(app) as s:
        result = check_eligibility(s, _identity(app, "ok@example.com").user_id, 999, now=START)
    assert result.reasons == (REASON_ELECTION_NOT_FOUND,)


@pytest.mark.parametrize("email", [row[0] for row in VOTERS])
@pytest.mark.parametrize("offset", [timedelta(minutes=-30), timedelta(hours=2), timedelta(hours=30)])
def test_advisory_check_matches_enforcement(app, email, offset):
    eid = app.config["TEST_ELECTION_ID"]
    cid = app.config["TEST_CANDIDATE_ID"]
    voter = _identity(app, email)
    now = START + offset

    with session_scope(app) as s:
        advisory = check_eligibility(s, voter.user_id, eid, now=now)

    try:
        with session_scope(app) as s:
            cast_vote(s, eid, cid, voter, now=now)
        accepted = True
    except CivicError:
        accepted = False

    assert advisory.eligible is accepted
    assert (advisory.reasons == ()) is accepted

    # After a successful vote the advisory check reports the duplicate.
    if accepted:
        with session_scope(app) as s:
            again = check_eligibility(s, voter.user_id, eid, now=now)
        assert again.reasons == (REASON_ALREADY_VOTED,)

"""Tests for the election lifecycle engine."""
from datetime import datetime, timedelta

import pytest
from werkzeug.security import generate_password_hash

from app.civic import create_app
from app.civic.db import session_scope
from app.civic.errors import AuthorizationError, NotFoundError, StateConflictError, ValidationError
from app.civic.models import AuditEvent, Base, User, VoterRegistration
from app.civic.modules.candidates.service import register_candidate
from app.civic.modules.elections.models import Election
from app.civic.modules.elections.service import (
    activate_election,
    cancel_election,
    complete_election,
    create_election,
    get_election_status,
    list_active_elections,
    list_elections,
    list_upcoming_elections,
    publish_election,
    update_election,
)
from app.civic.rbac import Identity

T0 = datetime(2030, 3, 1, 12, 0, 0)
START = T0 + timedelta(hours=1)
END = T0 + timedelta(hours=25)


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")

    app = create_app()
    Base.metadata.create_all(bind=app.extensions["sqlalchemy_engine"])

    with session_scope(app) as s:
        for email, role in (("official@example.com", "election_official"), ("voter@example.com", "voter")):
            u = User(email=email, password_hash=generate_password_hash("pw"), role=role, is_active=True)
            s.add(u)
            s.flush()
            s.add(VoterRegistration(user_id=u.id, is_eligible=True, eligibility_verified_at=T0))
    return app


def _identity(app, email: str) -> Identity:
    with session_scope(app) as s:
        return Identity.from_user(s.query(User).filter(User.email == email).one())


def _payload(**overrides) -> dict:
    data = {
        "title": "City Council 2030",
        "description": "Annual council seat election",
        "election_type": "local",
        "start_date": START.isoformat(),
        "end_date": END.isoformat(),
        "jurisdiction": "Springfield",
    }
    data.update(overrides)
    return data


def _create(app, **overrides) -> int:
    official = _identity(app, "official@example.com")
    with session_scope(app) as s:
        return create_election(s, _payload(**overrides), official, now=T0).id


def _add_candidate(app, election_id: int) -> None:
    voter = _identity(app, "voter@example.com")
    with session_scope(app) as s:
        register_candidate(s, election_id, voter, {"candidate_name": "Alice Park"}, now=T0)


def test_create_defaults_to_draft(app):
    eid = _create(app)
    with session_scope(app) as s:
        e = s.get(Election, eid)
        assert e.status == "draft"
        assert e.requires_verification is True
        assert e.allows_absentee_voting is False
        assert e.end_date > e.start_date
        assert s.query(AuditEvent).filter(AuditEvent.action == "election.create").count() == 1


def test_create_rejects_bad_dates(app):
    official = _identity(app, "official@example.com")
    with pytest.raises(ValidationError, match="End date must be after start date"):
        with session_scope(app) as s:
            create_election(s, _payload(end_date=START.isoformat()), official, now=T0)

    with pytest.raises(ValidationError, match="cannot be in the past"):
        with session_scope(app) as s:
            create_election(s, _payload(start_date=(T0 - timedelta(minutes=1)).isoformat()), official, now=T0)


def test_create_rejects_unknown_type_and_missing_title(app):
    official = _identity(app, "official@example.com")
    with pytest.raises(ValidationError) as exc:
        with session_scope(app) as s:
            create_election(s, _payload(title="", election_type="galactic"), official, now=T0)
    assert "Title is required" in exc.value.message
    assert "Invalid election type" in exc.value.message


def test_voter_cannot_create(app):
    voter = _identity(app, "voter@example.com")
    with pytest.raises(AuthorizationError):
        with session_scope(app) as s:
            create_election(s, _payload(), voter, now=T0)


def test_update_only_in_draft_and_keeps_date_order(app):
    official = _identity(app, "official@example.com")
    eid = _create(app)

    with pytest.raises(ValidationError):
        with session_scope(app) as s:
            update_election(s, eid, {"end_date": (START - timedelta(hours=1)).isoformat()}, official)

    with session_scope(app) as s:
        e = update_election(s, eid, {"title": "Renamed", "jurisdiction": "Shelbyville"}, official)
        assert e.title == "Renamed"

    _add_candidate(app, eid)
    with session_scope(app) as s:
        publish_election(s, eid, official, now=T0)

    with pytest.raises(StateConflictError):
        with session_scope(app) as s:
            update_election(s, eid, {"title": "Too late"}, official)


def test_publish_requires_candidate(app):
    official = _identity(app, "official@example.com")
    eid = _create(app)
    with pytest.raises(StateConflictError, match="without candidates"):
        with session_scope(app) as s:
            publish_election(s, eid, official, now=T0)

    _add_candidate(app, eid)
    with session_scope(app) as s:
        assert publish_election(s, eid, official, now=T0).status == "published"


def test_full_lifecycle_respects_wall_clock(app):
    official = _identity(app, "official@example.com")
    eid = _create(app)
    _add_candidate(app, eid)

    with session_scope(app) as s:
        publish_election(s, eid, official, now=T0)

    with pytest.raises(StateConflictError, match="before start date"):
        with session_scope(app) as s:
            activate_election(s, eid, official, now=START - timedelta(seconds=1))

    with session_scope(app) as s:
        assert activate_election(s, eid, official, now=START).status == "active"
        assert get_election_status(s, eid, now=START + timedelta(minutes=5))["is_open_for_voting"] is True

    with pytest.raises(StateConflictError, match="before end date"):
        with session_scope(app) as s:
            complete_election(s, eid, official, now=END - timedelta(seconds=1))

    with session_scope(app) as s:
        assert complete_election(s, eid, official, now=END).status == "completed"

    with pytest.raises(StateConflictError, match="Cannot cancel completed"):
        with session_scope(app) as s:
            cancel_election(s, eid, official, now=END)

    with session_scope(app) as s:
        actions = [e.action for e in s.query(AuditEvent).filter(AuditEvent.entity_type == "Election").order_by(AuditEvent.id)]
    assert actions == ["election.create", "election.publish", "election.activate", "election.complete"]


def test_transitions_skip_states_are_rejected(app):
    official = _identity(app, "official@example.com")
    eid = _create(app)

    # draft -> active is not a legal edge even after the start date
    with pytest.raises(StateConflictError):
        with session_scope(app) as s:
            activate_election(s, eid, official, now=START)

    with pytest.raises(StateConflictError):
        with session_scope(app) as s:
            complete_election(s, eid, official, now=END)


def test_authorization_is_checked_before_state(app):
    voter = _identity(app, "voter@example.com")
    eid = _create(app)

    # Wrong role on an illegal transition still reports the role problem.
    with pytest.raises(AuthorizationError):
        with session_scope(app) as s:
            complete_election(s, eid, voter, now=END)


def test_cancel_from_each_open_state(app):
    official = _identity(app, "official@example.com")

    draft = _create(app)
    with session_scope(app) as s:
        e = cancel_election(s, draft, official, reason="Merged with county ballot", now=T0)
        assert e.status == "cancelled"
        ev = s.query(AuditEvent).filter(AuditEvent.action == "election.cancel").one()
        assert ev.reason == "Merged with county ballot"

    with pytest.raises(StateConflictError):
        with session_scope(app) as s:
            cancel_election(s, draft, official, now=T0)

    active = _create(app)
    _add_candidate(app, active)
    with session_scope(app) as s:
        publish_election(s, active, official, now=T0)
        activate_election(s, active, official, now=START)
        assert cancel_election(s, active, official, now=START).status == "cancelled"


def test_transition_that_loses_a_race_fails(app):
    official = _identity(app, "official@example.com")
    eid = _create(app)
    _add_candidate(app, eid)
    with session_scope(app) as s:
        publish_election(s, eid, official, now=T0)

    sm = app.extensions["sqlalchemy_sessionmaker"]
    stale = sm()
    try:
        assert stale.get(Election, eid).status == "published"
        stale.commit()  # release the read; the loaded object stays in the identity map

        with session_scope(app) as s:
            cancel_election(s, eid, official, now=T0)

        with pytest.raises(StateConflictError, match="no longer in 'published'"):
            activate_election(stale, eid, official, now=START)
        stale.rollback()
    finally:
        stale.close()

    with session_scope(app) as s:
        assert s.get(Election, eid).status == "cancelled"


def test_get_missing_election(app):
    official = _identity(app, "official@example.com")
    with pytest.raises(NotFoundError):
        with session_scope(app) as s:
            publish_election(s, 404, official, now=T0)


def test_listing_filters(app):
    official = _identity(app, "official@example.com")
    local = _create(app)
    state = _create(app, title="Governor", election_type="state", jurisdiction="Oregon",
                    start_date=(START + timedelta(days=2)).isoformat(), end_date=(END + timedelta(days=2)).isoformat())
    _add_candidate(app, local)
    with session_scope(app) as s:
        publish_election(s, local, official, now=T0)
        activate_election(s, local, official, now=START)

    with session_scope(app) as s:
        assert [e.id for e in list_elections(s)] == [state, local]
        assert [e.id for e in list_elections(s, election_type="state")] == [state]
        assert [e.id for e in list_elections(s, status="active")] == [local]
        assert [e.id for e in list_elections(s, jurisdiction="Springfield")] == [local]
        assert [e.id for e in list_elections(s, start_from=START + timedelta(days=1))] == [state]
        assert [e.id for e in list_active_elections(s, now=START + timedelta(hours=1))] == [local]
        assert list_active_elections(s, now=END + timedelta(hours=1)) == []
        # the draft state election is not "upcoming"
        assert [e.id for e in list_upcoming_elections(s, now=T0)] == [local]

    with pytest.raises(ValidationError):
        with session_scope(app) as s:
            list_elections(s, status="archived")

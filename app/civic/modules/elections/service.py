"""
Election lifecycle engine.
Handles election creation, draft edits, and role-gated status transitions.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from app.civic.audit import record_event
from app.civic.constants import (
    DEFAULT_ELECTION_TYPE,
    STATUS_ACTIVE,
    STATUS_CANCELLED,
    STATUS_COMPLETED,
    STATUS_DRAFT,
    STATUS_PUBLISHED,
    VALID_ELECTION_STATUSES,
    VALID_ELECTION_TYPES,
)
from app.civic.errors import NotFoundError, StateConflictError, ValidationError
from app.civic.rbac import ensure_permission
from app.civic.utils import clean_str, parse_bool, parse_datetime, utcnow

from .models import Election

if TYPE_CHECKING:
    from app.civic.rbac import Identity

logger = logging.getLogger(__name__)

# Valid status transitions
STATUS_TRANSITIONS = {
    STATUS_DRAFT: {STATUS_PUBLISHED, STATUS_CANCELLED},
    STATUS_PUBLISHED: {STATUS_ACTIVE, STATUS_CANCELLED},
    STATUS_ACTIVE: {STATUS_COMPLETED, STATUS_CANCELLED},
    STATUS_COMPLETED: set(),
    STATUS_CANCELLED: set(),
}

TITLE_MAX_LENGTH = 200
JURISDICTION_MAX_LENGTH = 100


def _validate_dates(start_date: datetime | None, end_date: datetime | None) -> list[str]:
    errors = []
    if start_date is None:
        errors.append("Start date is required.")
    if end_date is None:
        errors.append("End date is required.")
    if start_date is not None and end_date is not None and start_date >= end_date:
        errors.append("End date must be after start date.")
    return errors


def validate_election_payload(payload: dict, *, partial: bool = False) -> list[str]:
    """Validate election creation/update payload. Returns list of errors."""
    errors = []

    if not partial or "title" in payload:
        title = clean_str(payload.get("title"))
        if not title:
            errors.append("Title is required.")
        elif len(title) > TITLE_MAX_LENGTH:
            errors.append(f"Title must be at most {TITLE_MAX_LENGTH} characters.")

    if not partial or "description" in payload:
        if not clean_str(payload.get("description")):
            errors.append("Description is required.")

    if "election_type" in payload:
        election_type = clean_str(payload.get("election_type"))
        if election_type and election_type not in VALID_ELECTION_TYPES:
            errors.append(f"Invalid election type. Must be one of: {', '.join(sorted(VALID_ELECTION_TYPES))}")

    jurisdiction = clean_str(payload.get("jurisdiction"))
    if jurisdiction and len(jurisdiction) > JURISDICTION_MAX_LENGTH:
        errors.append(f"Jurisdiction must be at most {JURISDICTION_MAX_LENGTH} characters.")

    return errors


def create_election(s: Session, payload: dict, actor: Identity, *, now: datetime | None = None) -> Election:
    """Create a new election in draft status."""
    ensure_permission(actor, "election.create")
    now = now or utcnow()

    errors = validate_election_payload(payload)
    start_date = parse_datetime(payload.get("start_date"), field="start_date")
    end_date = parse_datetime(payload.get("end_date"), field="end_date")
    errors.extend(_validate_dates(start_date, end_date))
    if start_date is not None and start_date < now:
        errors.append("Start date cannot be in the past.")
    if errors:
        raise ValidationError(" ".join(errors))

    election = Election(
        title=clean_str(payload.get("title")),
        description=clean_str(payload.get("description")),
        election_type=clean_str(payload.get("election_type")) or DEFAULT_ELECTION_TYPE,
        status=STATUS_DRAFT,
        start_date=start_date,
        end_date=end_date,
        jurisdiction=clean_str(payload.get("jurisdiction")),
        requires_verification=parse_bool(payload.get("requires_verification"), default=True),
        allows_absentee_voting=parse_bool(payload.get("allows_absentee_voting"), default=False),
        created_at=now,
        updated_at=now,
        created_by_user_id=actor.user_id,
    )
    s.add(election)
    s.flush()

    record_event(
        s,
        actor=actor,
        action="election.create",
        entity_type="Election",
        entity_id=str(election.id),
        metadata={
            "title": election.title,
            "election_type": election.election_type,
            "start_date": election.start_date.isoformat(),
            "end_date": election.end_date.isoformat(),
        },
    )
    logger.info("Election created id=%s by user=%s", election.id, actor.user_id)
    return election


def get_election(s: Session, election_id: int) -> Election:
    election = s.get(Election, election_id)
    if not election:
        raise NotFoundError("Election not found.")
    return election


def list_elections(
    s: Session,
    *,
    status: str | None = None,
    election_type: str | None = None,
    jurisdiction: str | None = None,
    start_from: datetime | None = None,
    start_to: datetime | None = None,
) -> list[Election]:
    """List elections, newest start date first."""
    q = select(Election)
    if status:
        if status not in VALID_ELECTION_STATUSES:
            raise ValidationError(f"Invalid status filter: {status}")
        q = q.where(Election.status == status)
    if election_type:
        if election_type not in VALID_ELECTION_TYPES:
            raise ValidationError(f"Invalid election type filter: {election_type}")
        q = q.where(Election.election_type == election_type)
    if jurisdiction:
        q = q.where(Election.jurisdiction == jurisdiction)
    if start_from is not None:
        q = q.where(Election.start_date >= start_from)
    if start_to is not None:
        q = q.where(Election.start_date <= start_to)
    return list(s.scalars(q.order_by(Election.start_date.desc(), Election.id.desc())))


def list_active_elections(s: Session, *, now: datetime | None = None) -> list[Election]:
    """Elections currently accepting votes."""
    now = now or utcnow()
    q = (
        select(Election)
        .where(Election.status == STATUS_ACTIVE, Election.start_date <= now, Election.end_date >= now)
        .order_by(Election.start_date.asc(), Election.id.asc())
    )
    return list(s.scalars(q))


def list_upcoming_elections(s: Session, *, now: datetime | None = None) -> list[Election]:
    now = now or utcnow()
    q = (
        select(Election)
        .where(Election.status.in_((STATUS_PUBLISHED, STATUS_ACTIVE)), Election.start_date > now)
        .order_by(Election.start_date.asc(), Election.id.asc())
    )
    return list(s.scalars(q))


def is_open_for_voting(election: Election, *, now: datetime | None = None) -> bool:
    now = now or utcnow()
    return election.status == STATUS_ACTIVE and election.start_date <= now <= election.end_date


def get_election_status(s: Session, election_id: int, *, now: datetime | None = None) -> dict:
    election = get_election(s, election_id)
    return {
        "election_id": election.id,
        "status": election.status,
        "is_open_for_voting": is_open_for_voting(election, now=now),
    }


def update_election(s: Session, election_id: int, payload: dict, actor: Identity) -> Election:
    """Update election details (draft only)."""
    ensure_permission(actor, "election.update")
    election = get_election(s, election_id)

    if election.status != STATUS_DRAFT:
        raise StateConflictError("Can only update elections in draft status.")

    errors = validate_election_payload(payload, partial=True)
    start_date = parse_datetime(payload.get("start_date"), field="start_date") or election.start_date
    end_date = parse_datetime(payload.get("end_date"), field="end_date") or election.end_date
    errors.extend(_validate_dates(start_date, end_date))
    if errors:
        raise ValidationError(" ".join(errors))

    changes = {}

    def _set(field: str, new_value: object) -> None:
        old_value = getattr(election, field)
        if new_value != old_value:
            changes[field] = {"old": str(old_value) if old_value is not None else None, "new": str(new_value) if new_value is not None else None}
            setattr(election, field, new_value)

    if "title" in payload:
        _set("title", clean_str(payload.get("title")))
    if "description" in payload:
        _set("description", clean_str(payload.get("description")))
    if clean_str(payload.get("election_type")):
        _set("election_type", clean_str(payload.get("election_type")))
    _set("start_date", start_date)
    _set("end_date", end_date)
    if "jurisdiction" in payload:
        _set("jurisdiction", clean_str(payload.get("jurisdiction")))
    if "requires_verification" in payload:
        _set("requires_verification", parse_bool(payload.get("requires_verification"), default=election.requires_verification))
    if "allows_absentee_voting" in payload:
        _set("allows_absentee_voting", parse_bool(payload.get("allows_absentee_voting"), default=election.allows_absentee_voting))

    if changes:
        election.updated_at = utcnow()
        s.flush()
        record_event(
            s,
            actor=actor,
            action="election.update",
            entity_type="Election",
            entity_id=str(election.id),
            metadata={"title": election.title, "changes": changes},
        )
    return election


def _require_status(election: Election, new_status: str) -> None:
    if new_status not in STATUS_TRANSITIONS.get(election.status, set()):
        raise StateConflictError(f"Cannot transition election from '{election.status}' to '{new_status}'.")


def _apply_transition(
    s: Session,
    election: Election,
    new_status: str,
    actor: Identity,
    *,
    now: datetime,
    reason: str | None = None,
) -> Election:
    """Persist a status change only if nobody else moved the election first."""
    old_status = election.status
    result = s.execute(
        update(Election)
        .where(Election.id == election.id, Election.status == old_status)
        .values(status=new_status, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        s.expire(election)
        logger.warning(
            "Election transition lost race id=%s expected=%s target=%s", election.id, old_status, new_status
        )
        raise StateConflictError(f"Election is no longer in '{old_status}' status.")
    s.refresh(election)

    record_event(
        s,
        actor=actor,
        action=f"election.{_TRANSITION_ACTIONS[new_status]}",
        entity_type="Election",
        entity_id=str(election.id),
        reason=reason,
        metadata={"title": election.title, "from": old_status, "to": new_status},
    )
    logger.info("Election id=%s %s -> %s by user=%s", election.id, old_status, new_status, actor.user_id)
    return election


_TRANSITION_ACTIONS = {
    STATUS_PUBLISHED: "publish",
    STATUS_ACTIVE: "activate",
    STATUS_COMPLETED: "complete",
    STATUS_CANCELLED: "cancel",
}


def count_active_candidates(s: Session, election_id: int) -> int:
    from app.civic.modules.candidates.models import Candidate

    q = select(func.count(Candidate.id)).where(Candidate.election_id == election_id, Candidate.is_active.is_(True))
    return int(s.scalar(q) or 0)


def publish_election(s: Session, election_id: int, actor: Identity, *, now: datetime | None = None) -> Election:
    """Draft -> published. Requires at least one active candidate."""
    ensure_permission(actor, "election.publish")
    election = get_election(s, election_id)
    _require_status(election, STATUS_PUBLISHED)

    if count_active_candidates(s, election.id) == 0:
        raise StateConflictError("Cannot publish election without candidates.")

    return _apply_transition(s, election, STATUS_PUBLISHED, actor, now=now or utcnow())


def activate_election(s: Session, election_id: int, actor: Identity, *, now: datetime | None = None) -> Election:
    """Published -> active. Voting opens; only allowed once the start date has passed."""
    ensure_permission(actor, "election.activate")
    now = now or utcnow()
    election = get_election(s, election_id)
    _require_status(election, STATUS_ACTIVE)

    if now < election.start_date:
        raise StateConflictError("Cannot activate election before start date.")

    return _apply_transition(s, election, STATUS_ACTIVE, actor, now=now)


def complete_election(s: Session, election_id: int, actor: Identity, *, now: datetime | None = None) -> Election:
    """Active -> completed. Only allowed once the end date has passed."""
    ensure_permission(actor, "election.complete")
    now = now or utcnow()
    election = get_election(s, election_id)
    _require_status(election, STATUS_COMPLETED)

    if now < election.end_date:
        raise StateConflictError("Cannot complete election before end date.")

    return _apply_transition(s, election, STATUS_COMPLETED, actor, now=now)


def cancel_election(
    s: Session,
    election_id: int,
    actor: Identity,
    *,
    reason: str | None = None,
    now: datetime | None = None,
) -> Election:
    """Any non-terminal status -> cancelled."""
    ensure_permission(actor, "election.cancel")
    election = get_election(s, election_id)
    if election.status == STATUS_COMPLETED:
        raise StateConflictError("Cannot cancel completed elections.")
    _require_status(election, STATUS_CANCELLED)

    return _apply_transition(s, election, STATUS_CANCELLED, actor, now=now or utcnow(), reason=clean_str(reason))

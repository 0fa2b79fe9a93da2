"""
Candidate registry.
Per-election candidacies keyed by (election, user) with verification and
soft activation flags. Rows are never deleted.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.civic.audit import record_event
from app.civic.constants import DEFAULT_PARTY_AFFILIATION, STATUS_DRAFT, STATUS_PUBLISHED, VALID_PARTY_AFFILIATIONS
from app.civic.errors import ConflictError, ForbiddenError, NotFoundError, StateConflictError, ValidationError
from app.civic.modules.elections.service import get_election
from app.civic.modules.voting.eligibility import get_voter_registration, standing_failures
from app.civic.rbac import ensure_permission, user_has_permission
from app.civic.utils import clean_str, utcnow

from .models import Candidate

if TYPE_CHECKING:
    from app.civic.rbac import Identity

logger = logging.getLogger(__name__)

# Candidacies can only change before voting opens.
OPEN_FOR_CANDIDACY = {STATUS_DRAFT, STATUS_PUBLISHED}

PROFILE_FIELDS = ("candidate_name", "party_affiliation", "bio", "platform", "website")
NAME_MAX_LENGTH = 200
WEBSITE_MAX_LENGTH = 255


def validate_candidate_payload(payload: dict, *, partial: bool = False) -> list[str]:
    """Validate candidate registration/update payload. Returns list of errors."""
    errors = []
    if not partial or "candidate_name" in payload:
        name = clean_str(payload.get("candidate_name"))
        if not name:
            errors.append("Candidate name is required.")
        elif len(name) > NAME_MAX_LENGTH:
            errors.append(f"Candidate name must be at most {NAME_MAX_LENGTH} characters.")
    party = clean_str(payload.get("party_affiliation"))
    if party and party not in VALID_PARTY_AFFILIATIONS:
        errors.append(f"Invalid party affiliation. Must be one of: {', '.join(sorted(VALID_PARTY_AFFILIATIONS))}")
    website = clean_str(payload.get("website"))
    if website and len(website) > WEBSITE_MAX_LENGTH:
        errors.append(f"Website must be at most {WEBSITE_MAX_LENGTH} characters.")
    return errors


def get_candidate(s: Session, candidate_id: int) -> Candidate:
    candidate = s.get(Candidate, candidate_id)
    if not candidate:
        raise NotFoundError("Candidate not found.")
    return candidate


def find_active_candidacy(s: Session, user_id: int, election_id: int) -> Candidate | None:
    q = select(Candidate).where(
        Candidate.user_id == user_id,
        Candidate.election_id == election_id,
        Candidate.is_active.is_(True),
    )
    return s.scalars(q).first()


def register_candidate(
    s: Session,
    election_id: int,
    actor: Identity,
    payload: dict,
    *,
    now: datetime | None = None,
) -> Candidate:
    """Register the acting user as a candidate in an election."""
    ensure_permission(actor, "candidate.register")
    now = now or utcnow()

    errors = validate_candidate_payload(payload)
    if errors:
        raise ValidationError(" ".join(errors))

    election = get_election(s, election_id)
    if election.status not in OPEN_FOR_CANDIDACY:
        raise StateConflictError("Can only register for draft or published elections.")
    if election.status == STATUS_PUBLISHED and now >= election.start_date:
        raise StateConflictError("Candidate registration closed - election has started.")

    if find_active_candidacy(s, actor.user_id, election.id):
        raise ConflictError("User is already registered as a candidate in this election.")

    registration = get_voter_registration(s, actor.user_id)
    if registration is None or standing_failures(registration):
        raise ForbiddenError("Must be a registered and eligible voter to run as candidate.")

    try:
        with s.begin_nested():
            candidate = Candidate(
                user_id=actor.user_id,
                election_id=election.id,
                candidate_name=clean_str(payload.get("candidate_name")),
                party_affiliation=clean_str(payload.get("party_affiliation")) or DEFAULT_PARTY_AFFILIATION,
                bio=clean_str(payload.get("bio")),
                platform=clean_str(payload.get("platform")),
                website=clean_str(payload.get("website")),
                is_active=True,
                is_verified=False,
                created_at=now,
                updated_at=now,
            )
            s.add(candidate)
            s.flush()  # force the active-candidacy unique index check now
    except IntegrityError:
        logger.warning("Duplicate candidacy race user=%s election=%s", actor.user_id, election.id)
        raise ConflictError("User is already registered as a candidate in this election.") from None

    record_event(
        s,
        actor=actor,
        action="candidate.register",
        entity_type="Candidate",
        entity_id=str(candidate.id),
        metadata={
            "election_id": election.id,
            "candidate_name": candidate.candidate_name,
            "party_affiliation": candidate.party_affiliation,
        },
    )
    return candidate


def list_candidates(s: Session, election_id: int, *, include_inactive: bool = False) -> list[Candidate]:
    q = select(Candidate).where(Candidate.election_id == election_id)
    if not include_inactive:
        q = q.where(Candidate.is_active.is_(True))
    return list(s.scalars(q.order_by(Candidate.candidate_name.asc(), Candidate.id.asc())))


def get_candidate_for_user(s: Session, user_id: int, election_id: int) -> Candidate | None:
    """Latest candidacy of a user in an election, preferring the active one."""
    q = (
        select(Candidate)
        .where(Candidate.user_id == user_id, Candidate.election_id == election_id)
        .order_by(Candidate.is_active.desc(), Candidate.created_at.desc(), Candidate.id.desc())
    )
    return s.scalars(q).first()


def is_user_candidate(s: Session, user_id: int, election_id: int) -> bool:
    return find_active_candidacy(s, user_id, election_id) is not None


def list_user_candidacies(s: Session, user_id: int) -> list[Candidate]:
    q = select(Candidate).where(Candidate.user_id == user_id).order_by(Candidate.created_at.desc(), Candidate.id.desc())
    return list(s.scalars(q))


def _ensure_owner_or_admin(candidate: Candidate, actor: Identity, what: str) -> None:
    ensure_permission(actor, "candidate.register")
    if candidate.user_id != actor.user_id and not user_has_permission(actor, "candidate.manage_any"):
        raise ForbiddenError(f"Not authorized to {what} this candidate profile.")


def update_candidate(s: Session, candidate_id: int, payload: dict, actor: Identity) -> Candidate:
    """Update candidate profile fields (self or admin, before voting opens)."""
    candidate = get_candidate(s, candidate_id)
    _ensure_owner_or_admin(candidate, actor, "update")

    if candidate.election.status not in OPEN_FOR_CANDIDACY:
        raise StateConflictError("Candidate profiles can only be changed before voting opens.")

    errors = validate_candidate_payload(payload, partial=True)
    if errors:
        raise ValidationError(" ".join(errors))

    changes = {}
    for field in PROFILE_FIELDS:
        if field not in payload:
            continue
        new_value = clean_str(payload.get(field))
        if field == "party_affiliation":
            new_value = new_value or DEFAULT_PARTY_AFFILIATION
        old_value = getattr(candidate, field)
        if new_value != old_value:
            # Long free text is not copied into the audit trail.
            if field in ("bio", "platform"):
                changes[field] = {"old": "...", "new": "..."}
            else:
                changes[field] = {"old": old_value, "new": new_value}
            setattr(candidate, field, new_value)

    if changes:
        candidate.updated_at = utcnow()
        record_event(
            s,
            actor=actor,
            action="candidate.update",
            entity_type="Candidate",
            entity_id=str(candidate.id),
            metadata={"election_id": candidate.election_id, "changes": changes},
        )
    return candidate


def verify_candidate(s: Session, candidate_id: int, actor: Identity, *, now: datetime | None = None) -> Candidate:
    ensure_permission(actor, "candidate.verify")
    candidate = get_candidate(s, candidate_id)

    now = now or utcnow()
    candidate.is_verified = True
    candidate.verified_at = now
    candidate.updated_at = now

    record_event(
        s,
        actor=actor,
        action="candidate.verify",
        entity_type="Candidate",
        entity_id=str(candidate.id),
        metadata={"election_id": candidate.election_id, "candidate_name": candidate.candidate_name},
    )
    return candidate


def deactivate_candidate(s: Session, candidate_id: int, actor: Identity, *, reason: str | None = None) -> Candidate:
    """Withdraw a candidacy (soft). Blocked while voting is open."""
    candidate = get_candidate(s, candidate_id)
    _ensure_owner_or_admin(candidate, actor, "deactivate")

    if candidate.election.status not in OPEN_FOR_CANDIDACY:
        raise StateConflictError("Cannot withdraw once voting has opened.")
    if not candidate.is_active:
        raise StateConflictError("Candidate is already inactive.")

    candidate.is_active = False
    candidate.updated_at = utcnow()
    s.flush()

    record_event(
        s,
        actor=actor,
        action="candidate.deactivate",
        entity_type="Candidate",
        entity_id=str(candidate.id),
        reason=clean_str(reason),
        metadata={"election_id": candidate.election_id, "self_withdrawal": candidate.user_id == actor.user_id},
    )
    return candidate


def reactivate_candidate(s: Session, candidate_id: int, actor: Identity) -> Candidate:
    ensure_permission(actor, "candidate.reactivate")
    candidate = get_candidate(s, candidate_id)

    if candidate.election.status not in OPEN_FOR_CANDIDACY:
        raise StateConflictError("Cannot reactivate candidate for elections that have started.")
    if candidate.is_active:
        raise StateConflictError("Candidate is already active.")

    try:
        with s.begin_nested():
            candidate.is_active = True
            candidate.updated_at = utcnow()
            s.flush()
    except IntegrityError:
        raise ConflictError("User already has an active candidacy in this election.") from None

    record_event(
        s,
        actor=actor,
        action="candidate.reactivate",
        entity_type="Candidate",
        entity_id=str(candidate.id),
        metadata={"election_id": candidate.election_id},
    )
    return candidate

"""
Voter eligibility gate.

The same rule functions back the advisory eligibility check and the
enforcement inside vote casting, so the two cannot drift apart.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.civic.constants import STATUS_ACTIVE
from app.civic.models import VoterRegistration
from app.civic.modules.elections.models import Election
from app.civic.utils import utcnow

from .models import Vote

REASON_NOT_REGISTERED = "User is not registered as a voter"
REASON_NOT_ELIGIBLE = "User is not eligible to vote"
REASON_ELECTION_NOT_FOUND = "Election not found"
REASON_NOT_ACTIVE = "Election is not currently active"
REASON_NOT_STARTED = "Voting has not started yet"
REASON_ENDED = "Voting period has ended"
REASON_NOT_VERIFIED = "Voter eligibility must be verified for this election"
REASON_ALREADY_VOTED = "User has already voted in this election"


@dataclass(frozen=True)
class EligibilityResult:
    eligible: bool
    reasons: tuple[str, ...]

    def to_dict(self) -> dict:
        return {"eligible": self.eligible, "reasons": list(self.reasons)}


def get_voter_registration(s: Session, user_id: int) -> VoterRegistration | None:
    return s.scalars(select(VoterRegistration).where(VoterRegistration.user_id == user_id)).one_or_none()


def has_voted(s: Session, user_id: int, election_id: int) -> bool:
    q = select(Vote.id).where(Vote.voter_id == user_id, Vote.election_id == election_id).limit(1)
    return s.scalar(q) is not None


def standing_failures(registration: VoterRegistration) -> list[str]:
    """Rules about the voter's own standing. Registration presence is checked by the caller."""
    if not registration.is_eligible:
        return [REASON_NOT_ELIGIBLE]
    return []


def verification_failures(registration: VoterRegistration, election: Election) -> list[str]:
    if election.requires_verification and registration.eligibility_verified_at is None:
        return [REASON_NOT_VERIFIED]
    return []


def window_failures(election: Election, now: datetime) -> list[str]:
    """Rules about the election's state and voting window."""
    reasons = []
    if election.status != STATUS_ACTIVE:
        reasons.append(REASON_NOT_ACTIVE)
    if now < election.start_date:
        reasons.append(REASON_NOT_STARTED)
    if now > election.end_date:
        reasons.append(REASON_ENDED)
    return reasons


def evaluate_eligibility(
    registration: VoterRegistration | None,
    election: Election,
    *,
    already_voted: bool,
    now: datetime,
) -> EligibilityResult:
    """
    Pure evaluation. A missing registration short-circuits; every other rule
    is accumulated so the caller sees all reasons at once.
    """
    if registration is None:
        return EligibilityResult(eligible=False, reasons=(REASON_NOT_REGISTERED,))

    reasons = standing_failures(registration)
    reasons.extend(window_failures(election, now))
    reasons.extend(verification_failures(registration, election))
    if already_voted:
        reasons.append(REASON_ALREADY_VOTED)
    return EligibilityResult(eligible=not reasons, reasons=tuple(reasons))


def check_eligibility(s: Session, user_id: int, election_id: int, *, now: datetime | None = None) -> EligibilityResult:
    """Advisory pre-check: would a vote by this user in this election be accepted right now?"""
    now = now or utcnow()
    registration = get_voter_registration(s, user_id)
    if registration is None:
        return EligibilityResult(eligible=False, reasons=(REASON_NOT_REGISTERED,))

    election = s.get(Election, election_id)
    if election is None:
        return EligibilityResult(eligible=False, reasons=(REASON_ELECTION_NOT_FOUND,))

    return evaluate_eligibility(
        registration,
        election,
        already_voted=has_voted(s, user_id, election_id),
        now=now,
    )

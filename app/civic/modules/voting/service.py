"""
Voting ledger.
Casting, receipts, hash verification, soft invalidation and counts.
"""
from __future__ import annotations

import hashlib
import logging
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.civic.audit import record_event
from app.civic.errors import ConflictError, ForbiddenError, NotFoundError, StateConflictError, ValidationError
from app.civic.modules.candidates.models import Candidate
from app.civic.modules.elections.service import get_election
from app.civic.rbac import ensure_permission
from app.civic.utils import clean_str, iso_utc, utcnow

from .eligibility import get_voter_registration, has_voted, standing_failures, verification_failures, window_failures
from .models import Vote

if TYPE_CHECKING:
    from app.civic.rbac import Identity

logger = logging.getLogger(__name__)


def compute_vote_hash(election_id: int, voter_id: int, candidate_id: int, timestamp: str) -> str:
    """Receipt fingerprint. Field order and separator are fixed; changing them breaks old receipts."""
    payload = f"{election_id}:{voter_id}:{candidate_id}:{timestamp}"
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def _hash_for(vote: Vote) -> str:
    return compute_vote_hash(vote.election_id, vote.voter_id, vote.candidate_id, iso_utc(vote.created_at))


@dataclass(frozen=True)
class VoteReceipt:
    vote_id: int
    election_id: int
    election_title: str
    vote_hash: str
    timestamp: str
    verified: bool

    def to_dict(self) -> dict:
        return asdict(self)


def _receipt(vote: Vote) -> VoteReceipt:
    # The candidate choice is intentionally absent from receipts.
    return VoteReceipt(
        vote_id=vote.id,
        election_id=vote.election_id,
        election_title=vote.election.title,
        vote_hash=vote.vote_hash,
        timestamp=iso_utc(vote.created_at),
        verified=True,
    )


def cast_vote(
    s: Session,
    election_id: int,
    candidate_id: int,
    actor: Identity,
    *,
    voter_id: int | None = None,
    ip_address: str | None = None,
    now: datetime | None = None,
) -> VoteReceipt:
    """
    Record one ballot for the acting user.

    The existence check fails fast; the (election_id, voter_id) unique
    constraint decides concurrent duplicates.
    """
    if voter_id is not None and voter_id != actor.user_id:
        raise ForbiddenError("Cannot cast a vote on behalf of another user.")
    ensure_permission(actor, "vote.cast")
    now = now or utcnow()

    election = get_election(s, election_id)
    window = window_failures(election, now)
    if window:
        raise StateConflictError("Election is not currently accepting votes: " + "; ".join(window) + ".")

    registration = get_voter_registration(s, actor.user_id)
    if registration is None:
        raise ForbiddenError("User is not registered as a voter.")
    blocked = standing_failures(registration) + verification_failures(registration, election)
    if blocked:
        raise ForbiddenError("; ".join(blocked) + ".")

    if has_voted(s, actor.user_id, election.id):
        raise ConflictError("User has already voted in this election.")

    candidate = s.scalars(
        select(Candidate).where(
            Candidate.id == candidate_id,
            Candidate.election_id == election.id,
            Candidate.is_active.is_(True),
        )
    ).first()
    if candidate is None:
        raise NotFoundError("Candidate not found or not active in this election.")

    vote_hash = compute_vote_hash(election.id, actor.user_id, candidate.id, iso_utc(now))
    try:
        with s.begin_nested():
            vote = Vote(
                election_id=election.id,
                voter_id=actor.user_id,
                candidate_id=candidate.id,
                vote_hash=vote_hash,
                ip_address=clean_str(ip_address),
                is_valid=True,
                verified_at=now,
                created_at=now,
            )
            s.add(vote)
            s.flush()
    except IntegrityError:
        logger.warning("Duplicate vote rejected by constraint election=%s voter=%s", election.id, actor.user_id)
        raise ConflictError("User has already voted in this election.") from None

    record_event(
        s,
        actor=actor,
        action="vote.cast",
        entity_type="Vote",
        entity_id=str(vote.id),
        metadata={"election_id": election.id, "vote_hash": vote_hash},
    )
    logger.info("Vote cast id=%s election=%s", vote.id, election.id)
    return _receipt(vote)


def get_vote(s: Session, vote_id: int) -> Vote:
    vote = s.get(Vote, vote_id)
    if not vote:
        raise NotFoundError("Vote not found.")
    return vote


def get_vote_receipt(s: Session, user_id: int, election_id: int) -> VoteReceipt | None:
    vote = s.scalars(select(Vote).where(Vote.voter_id == user_id, Vote.election_id == election_id)).first()
    if vote is None:
        return None
    return _receipt(vote)


def verify_vote_hash(s: Session, vote_id: int, vote_hash: str) -> bool:
    vote = s.get(Vote, vote_id)
    if vote is None:
        return False
    return vote.vote_hash == (vote_hash or "").strip().lower()


def verify_vote_integrity(s: Session, vote_id: int) -> dict:
    """Recompute the fingerprint from the stored row."""
    vote = get_vote(s, vote_id)
    expected = _hash_for(vote)
    return {
        "vote_id": vote.id,
        "is_valid": vote.is_valid,
        "hash_matches": expected == vote.vote_hash,
    }


def invalidate_vote(
    s: Session,
    vote_id: int,
    reason: str | None,
    actor: Identity,
    *,
    now: datetime | None = None,
) -> Vote:
    """Soft-invalidate a vote. The row stays for audit; tallies skip it."""
    ensure_permission(actor, "vote.invalidate")
    reason = clean_str(reason)
    if not reason:
        raise ValidationError("Reason is required to invalidate a vote.")

    vote = get_vote(s, vote_id)
    if not vote.is_valid:
        raise StateConflictError("Vote is already invalid.")

    vote.is_valid = False
    vote.invalidated_at = now or utcnow()
    vote.invalidated_by_user_id = actor.user_id
    vote.invalidation_reason = reason
    s.flush()

    record_event(
        s,
        actor=actor,
        action="vote.invalidate",
        entity_type="Vote",
        entity_id=str(vote.id),
        reason=reason,
        metadata={"election_id": vote.election_id},
    )
    logger.warning("Vote invalidated id=%s election=%s by user=%s", vote.id, vote.election_id, actor.user_id)
    return vote


def count_election_votes(s: Session, election_id: int) -> int:
    q = select(func.count(Vote.id)).where(Vote.election_id == election_id, Vote.is_valid.is_(True))
    return int(s.scalar(q) or 0)


def count_candidate_votes(s: Session, candidate_id: int) -> int:
    q = select(func.count(Vote.id)).where(Vote.candidate_id == candidate_id, Vote.is_valid.is_(True))
    return int(s.scalar(q) or 0)


def tally_by_candidate(s: Session, election_id: int) -> dict[int, int]:
    """Valid vote counts keyed by candidate id. Candidates without votes are absent."""
    q = (
        select(Vote.candidate_id, func.count(Vote.id))
        .where(Vote.election_id == election_id, Vote.is_valid.is_(True))
        .group_by(Vote.candidate_id)
    )
    return {candidate_id: int(n) for candidate_id, n in s.execute(q)}


@dataclass(frozen=True)
class VotingStatistics:
    election_id: int
    total_votes: int
    valid_votes: int
    invalid_votes: int
    start_date: str
    end_date: str
    hours_remaining: float

    def to_dict(self) -> dict:
        return asdict(self)


def get_voting_statistics(s: Session, election_id: int, *, now: datetime | None = None) -> VotingStatistics:
    election = get_election(s, election_id)
    now = now or utcnow()

    total = int(s.scalar(select(func.count(Vote.id)).where(Vote.election_id == election.id)) or 0)
    valid = count_election_votes(s, election.id)
    remaining = (election.end_date - now).total_seconds() / 3600

    return VotingStatistics(
        election_id=election.id,
        total_votes=total,
        valid_votes=valid,
        invalid_votes=total - valid,
        start_date=iso_utc(election.start_date),
        end_date=iso_utc(election.end_date),
        hours_remaining=max(0.0, round(remaining, 1)),
    )


def list_election_votes(s: Session, election_id: int, actor: Identity) -> list[Vote]:
    """Official audit listing, oldest first."""
    ensure_permission(actor, "vote.audit")
    election = get_election(s, election_id)
    q = select(Vote).where(Vote.election_id == election.id).order_by(Vote.created_at.asc(), Vote.id.asc())
    return list(s.scalars(q))

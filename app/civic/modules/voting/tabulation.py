"""
Results tabulator. Only completed elections have results.
"""
from __future__ import annotations

from dataclasses import asdict, dataclass

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.civic.constants import STATUS_COMPLETED
from app.civic.errors import StateConflictError
from app.civic.models import VoterRegistration
from app.civic.modules.candidates.models import Candidate
from app.civic.modules.elections.service import get_election

from .service import tally_by_candidate


@dataclass(frozen=True)
class CandidateResult:
    candidate_id: int
    candidate_name: str
    party_affiliation: str
    vote_count: int
    percentage: float


@dataclass(frozen=True)
class ElectionResults:
    election_id: int
    election_title: str
    total_votes: int
    voter_turnout: float | None
    results: tuple[CandidateResult, ...]

    def to_dict(self) -> dict:
        data = asdict(self)
        data["results"] = [asdict(r) for r in self.results]
        return data


def percentage_of(count: int, total: int) -> float:
    if total <= 0:
        return 0.0
    return round(count / total * 100, 2)


def eligible_voter_count(s: Session) -> int:
    q = select(func.count(VoterRegistration.id)).where(VoterRegistration.is_eligible.is_(True))
    return int(s.scalar(q) or 0)


def get_results(s: Session, election_id: int) -> ElectionResults:
    """
    Tabulate valid votes for a completed election.

    Every candidate of the election is listed, with zero for those without
    votes. Ordering is by vote count descending; ties keep registration
    order (created_at, then id).
    """
    election = get_election(s, election_id)
    if election.status != STATUS_COMPLETED:
        raise StateConflictError("Results are only available for completed elections.")

    tally = tally_by_candidate(s, election.id)
    total = sum(tally.values())

    candidates = s.scalars(
        select(Candidate)
        .where(Candidate.election_id == election.id)
        .order_by(Candidate.created_at.asc(), Candidate.id.asc())
    ).all()
    rows = [
        CandidateResult(
            candidate_id=c.id,
            candidate_name=c.candidate_name,
            party_affiliation=c.party_affiliation,
            vote_count=tally.get(c.id, 0),
            percentage=percentage_of(tally.get(c.id, 0), total),
        )
        for c in candidates
    ]
    # sorted() is stable, so registration order survives for equal counts.
    rows = sorted(rows, key=lambda r: r.vote_count, reverse=True)

    eligible = eligible_voter_count(s)
    turnout = round(total / eligible * 100, 2) if eligible else None

    return ElectionResults(
        election_id=election.id,
        election_title=election.title,
        total_votes=total,
        voter_turnout=turnout,
        results=tuple(rows),
    )

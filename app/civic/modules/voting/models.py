from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.civic.models import Base
from app.civic.modules.candidates.models import Candidate
from app.civic.modules.elections.models import Election


class Vote(Base):
    __tablename__ = "votes"
    __table_args__ = (
        # One vote per election per voter. Concurrent duplicate casts are resolved here.
        UniqueConstraint("election_id", "voter_id", name="uq_votes_election_voter"),
        Index("idx_votes_election_created", "election_id", "created_at"),
        Index("idx_votes_candidate_valid", "candidate_id", "is_valid"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    election_id: Mapped[int] = mapped_column(ForeignKey("elections.id", ondelete="RESTRICT"), nullable=False)
    voter_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="RESTRICT"), nullable=False)
    candidate_id: Mapped[int] = mapped_column(ForeignKey("candidates.id", ondelete="RESTRICT"), nullable=False)

    vote_hash: Mapped[str] = mapped_column(String(64), nullable=False)  # sha256 hex
    ip_address: Mapped[str | None] = mapped_column(String(64), nullable=True)

    is_valid: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    verified_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)

    # Soft invalidation (dispute resolution)
    invalidated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    invalidated_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    invalidation_reason: Mapped[str | None] = mapped_column(String(512), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    election: Mapped[Election] = relationship("Election", lazy="joined")
    candidate: Mapped[Candidate] = relationship("Candidate", lazy="select")

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, CheckConstraint, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.civic.constants import DEFAULT_ELECTION_TYPE, STATUS_DRAFT
from app.civic.models import Base


class Election(Base):
    __tablename__ = "elections"
    __table_args__ = (
        CheckConstraint("end_date > start_date", name="ck_elections_date_order"),
        Index("idx_elections_status_start", "status", "start_date"),
        Index("idx_elections_type_status", "election_type", "status"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    # Required
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    election_type: Mapped[str] = mapped_column(String(32), nullable=False, default=DEFAULT_ELECTION_TYPE)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default=STATUS_DRAFT)

    # Voting window (naive UTC)
    start_date: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    end_date: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)

    jurisdiction: Mapped[str | None] = mapped_column(String(100), nullable=True)
    requires_verification: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    allows_absentee_voting: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    created_by_user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="RESTRICT"), nullable=False)

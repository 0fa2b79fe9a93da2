#!/usr/bin/env python3
"""Put a user on the voter roll, or update their entry (idempotent).

Usage:
  python scripts/register_voter.py --email vera@example.com --verify
  python scripts/register_voter.py --email walt@example.com --ineligible
"""

import sys
import os
import argparse
from datetime import datetime
from pathlib import Path

from sqlalchemy import select
from sqlalchemy.orm import Session

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.civic.db import build_engine, build_sessionmaker
from app.civic.models import User, VoterRegistration


def register_voter(
    s: Session,
    email: str,
    *,
    voter_id_number: str | None = None,
    eligible: bool = True,
    verify: bool = False,
    now: datetime | None = None,
) -> tuple[VoterRegistration, bool]:
    """Returns (registration, created). Raises LookupError for an unknown email."""
    user = s.scalars(select(User).where(User.email == email.strip().lower())).one_or_none()
    if not user:
        raise LookupError(f"User not found: {email}")

    reg = s.scalars(select(VoterRegistration).where(VoterRegistration.user_id == user.id)).one_or_none()
    created = reg is None
    if created:
        reg = VoterRegistration(user_id=user.id)
        s.add(reg)
    if voter_id_number:
        reg.voter_id_number = voter_id_number
    reg.is_eligible = eligible
    if verify and reg.eligibility_verified_at is None:
        reg.eligibility_verified_at = now or datetime.utcnow()
    s.flush()
    return reg, created


def main() -> None:
    parser = argparse.ArgumentParser()
    parser.add_argument("--email", required=True, help="User email to register")
    parser.add_argument("--voter-id", default=None, help="Official voter ID number")
    parser.add_argument("--ineligible", action="store_true", help="Mark the registration as not eligible")
    parser.add_argument("--verify", action="store_true", help="Record eligibility verification now")
    args = parser.parse_args()

    db_url = (os.environ.get("DATABASE_URL") or "sqlite:///civic.db").strip()
    engine = build_engine(db_url)
    s: Session = build_sessionmaker(engine)()
    try:
        reg, created = register_voter(
            s,
            args.email,
            voter_id_number=args.voter_id,
            eligible=not args.ineligible,
            verify=args.verify,
        )
        s.commit()
    except LookupError as e:
        s.rollback()
        print(str(e))
        sys.exit(1)
    finally:
        s.close()
        engine.dispose()

    state = "eligible" if reg.is_eligible else "ineligible"
    verified = "verified" if reg.eligibility_verified_at else "unverified"
    print(f"{'Registered' if created else 'Updated'} {args.email}: {state}, {verified}")


if __name__ == "__main__":
    main()

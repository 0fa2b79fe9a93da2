import sys
from pathlib import Path
import os

from werkzeug.security import generate_password_hash
from sqlalchemy import select

# Ensure repo root is on sys.path when running as a script.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.civic.constants import ROLE_ADMIN, ROLE_ELECTION_OFFICIAL
from app.civic.db import build_engine, build_sessionmaker
from app.civic.models import User


def _ensure_user(s, *, email: str, password: str, role: str, first_name: str) -> tuple[User, bool]:
    """Create the account if missing. Never overwrites an existing password."""
    user = s.scalars(select(User).where(User.email == email)).one_or_none()
    if user:
        if user.role != role:
            user.role = role
        return user, False
    user = User(
        email=email,
        password_hash=generate_password_hash(password),
        first_name=first_name,
        role=role,
        is_active=True,
    )
    s.add(user)
    return user, True


def seed_only(*, database_url: str | None = None) -> None:
    """
    Seed the admin and election-official accounts in an idempotent way.
    """
    admin_email = (os.environ.get("ADMIN_EMAIL") or "admin@civic.local").strip().lower()
    admin_password = os.environ.get("ADMIN_PASSWORD") or "change-me"
    official_email = (os.environ.get("OFFICIAL_EMAIL") or "official@civic.local").strip().lower()
    official_password = os.environ.get("OFFICIAL_PASSWORD") or "change-me"

    db_url = (database_url or os.environ.get("DATABASE_URL") or "sqlite:///civic.db").strip()

    # Direct engine/session so this can run in release without importing app.wsgi.
    engine = build_engine(db_url)
    sm = build_sessionmaker(engine)
    s = sm()
    try:
        _, admin_created = _ensure_user(s, email=admin_email, password=admin_password, role=ROLE_ADMIN, first_name="Admin")
        _, official_created = _ensure_user(
            s, email=official_email, password=official_password, role=ROLE_ELECTION_OFFICIAL, first_name="Official"
        )
        s.commit()
    except Exception:
        s.rollback()
        raise
    finally:
        s.close()
        engine.dispose()

    print("Initialized database (seed_only).")
    print(f"Admin email: {admin_email} ({'created' if admin_created else 'exists'})")
    print(f"Official email: {official_email} ({'created' if official_created else 'exists'})")
    print("Passwords: (from ADMIN_PASSWORD / OFFICIAL_PASSWORD)")


def main() -> None:
    seed_only(database_url=None)


if __name__ == "__main__":
    main()

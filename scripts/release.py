"""
Release-phase helper.

- Fail fast if DATABASE_URL is missing (avoid silently using SQLite in prod).
- Run alembic migrations.
- Confirm the ledger constraints exist: one vote per (election, voter) and one
  active candidacy per (user, election). The services rely on them when two
  requests race, so a schema without them must never serve traffic.
- Seed admin/official accounts (idempotent; does NOT overwrite existing passwords).

Usage:
  python scripts/release.py [--skip-seed]
"""

from __future__ import annotations

import argparse
import os
import sys
from pathlib import Path

from sqlalchemy import inspect


ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.civic.db import build_engine

VOTE_UNIQUE_COLUMNS = ("election_id", "voter_id")
ACTIVE_CANDIDACY_INDEX = "uq_candidates_active_user_election"


def _require_env(name: str) -> str:
    v = (os.environ.get(name) or "").strip()
    if not v:
        raise RuntimeError(f"Missing required environment variable {name}.")
    return v


def _alembic_config(db_url: str):
    from alembic.config import Config

    cfg = Config(str(ROOT / "alembic.ini"))
    cfg.set_main_option("script_location", str(ROOT / "migrations"))
    cfg.set_main_option("sqlalchemy.url", db_url)
    return cfg


def migrate(db_url: str) -> None:
    from alembic import command

    command.upgrade(_alembic_config(db_url), "head")


def missing_ledger_constraints(db_url: str) -> list[str]:
    """Names of the race-deciding constraints absent from the live schema."""
    engine = build_engine(db_url)
    try:
        insp = inspect(engine)
        tables = set(insp.get_table_names())
        missing: list[str] = []

        vote_unique = "votes UNIQUE(election_id, voter_id)"
        if "votes" not in tables:
            missing.append(vote_unique)
        else:
            uniques = [tuple(uc["column_names"]) for uc in insp.get_unique_constraints("votes")]
            uniques += [tuple(ix["column_names"]) for ix in insp.get_indexes("votes") if ix.get("unique")]
            if VOTE_UNIQUE_COLUMNS not in uniques:
                missing.append(vote_unique)

        if "candidates" not in tables or not any(
            ix["name"] == ACTIVE_CANDIDACY_INDEX and ix.get("unique") for ix in insp.get_indexes("candidates")
        ):
            missing.append(f"candidates {ACTIVE_CANDIDACY_INDEX}")
        return missing
    finally:
        engine.dispose()


def run_release(*, seed: bool = True) -> None:
    db_url = _require_env("DATABASE_URL")
    # Guardrail: prevent accidental prod deploys against SQLite.
    env = (os.environ.get("ENV") or "").strip().lower()
    if env in ("prod", "production") and db_url.startswith("sqlite"):
        raise RuntimeError("Refusing to run release on sqlite DATABASE_URL in production. Set DATABASE_URL to Postgres.")

    print("=== civic release start ===", flush=True)
    print(f"ENV={env or '(unset)'}", flush=True)
    print("Running Alembic migrations...", flush=True)
    migrate(db_url)
    print("Migrations complete.", flush=True)

    missing = missing_ledger_constraints(db_url)
    if missing:
        raise RuntimeError(f"Schema is missing ledger constraints: {', '.join(missing)}")
    print("Ledger constraints present.", flush=True)

    if seed:
        print("Seeding admin/official accounts (idempotent)...", flush=True)
        from scripts import init_db

        init_db.seed_only(database_url=db_url)
        print("Seed complete.", flush=True)
    else:
        print("Seed skipped.", flush=True)
    print("=== civic release done ===", flush=True)


def main() -> None:
    ap = argparse.ArgumentParser(description="Migrate, check ledger constraints and seed accounts.")
    ap.add_argument("--skip-seed", action="store_true", help="Do not create the admin/official accounts.")
    args = ap.parse_args()
    run_release(seed=not args.skip_seed)


if __name__ == "__main__":
    main()

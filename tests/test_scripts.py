import pytest
from sqlalchemy import select
from werkzeug.security import check_password_hash

from app.civic.db import build_engine, build_sessionmaker
from app.civic.models import Base, User
from scripts import release
from scripts.init_db import seed_only
from scripts.register_voter import register_voter
from scripts.release import missing_ledger_constraints
from scripts.start import gunicorn_argv, resolve_port, resolve_workers


@pytest.fixture()
def db_url(tmp_path):
    url = f"sqlite:///{tmp_path/'seed.db'}"
    engine = build_engine(url)
    Base.metadata.create_all(bind=engine)
    engine.dispose()
    return url


def _session(db_url):
    return build_sessionmaker(build_engine(db_url))()


def test_seed_is_idempotent(db_url, monkeypatch):
    monkeypatch.setenv("ADMIN_EMAIL", "Root@Example.com")
    monkeypatch.setenv("ADMIN_PASSWORD", "first")
    monkeypatch.setenv("OFFICIAL_EMAIL", "clerk@example.com")
    monkeypatch.setenv("OFFICIAL_PASSWORD", "clerk-pw")
    seed_only(database_url=db_url)

    # A second run must not reset the password.
    monkeypatch.setenv("ADMIN_PASSWORD", "second")
    seed_only(database_url=db_url)

    s = _session(db_url)
    try:
        users = {u.email: u for u in s.scalars(select(User))}
    finally:
        s.close()
    assert set(users) == {"root@example.com", "clerk@example.com"}
    assert users["root@example.com"].role == "admin"
    assert users["clerk@example.com"].role == "election_official"
    assert check_password_hash(users["root@example.com"].password_hash, "first")


def test_register_voter(db_url, monkeypatch):
    monkeypatch.setenv("ADMIN_EMAIL", "root@example.com")
    seed_only(database_url=db_url)

    s = _session(db_url)
    try:
        reg, created = register_voter(s, "root@example.com", voter_id_number="OR-1001")
        assert created is True
        assert reg.is_eligible is True
        assert reg.eligibility_verified_at is None

        reg, created = register_voter(s, "ROOT@example.com", verify=True)
        assert created is False
        assert reg.voter_id_number == "OR-1001"
        assert reg.eligibility_verified_at is not None

        with pytest.raises(LookupError):
            register_voter(s, "ghost@example.com")
    finally:
        s.close()


def test_ledger_constraints_present_after_create_all(db_url):
    assert missing_ledger_constraints(db_url) == []


def test_ledger_constraints_missing_are_reported(tmp_path):
    url = f"sqlite:///{tmp_path/'bare.db'}"
    engine = build_engine(url)
    Base.metadata.create_all(bind=engine, tables=[User.__table__])
    engine.dispose()

    assert missing_ledger_constraints(url) == [
        "votes UNIQUE(election_id, voter_id)",
        "candidates uq_candidates_active_user_election",
    ]


def test_release_refuses_schema_without_ledger_constraints(tmp_path, monkeypatch):
    url = f"sqlite:///{tmp_path/'bare.db'}"
    monkeypatch.setenv("DATABASE_URL", url)
    monkeypatch.delenv("ENV", raising=False)
    monkeypatch.setattr(release, "migrate", lambda db_url: None)

    with pytest.raises(RuntimeError, match="missing ledger constraints"):
        release.run_release()


def test_release_requires_database_url(monkeypatch):
    monkeypatch.delenv("DATABASE_URL", raising=False)
    with pytest.raises(RuntimeError, match="DATABASE_URL"):
        release.run_release()


def test_start_settings():
    assert resolve_port(None) == 8080
    assert resolve_port(" 5000 ") == 5000
    with pytest.raises(ValueError):
        resolve_port("70000")
    with pytest.raises(ValueError):
        resolve_port("http")

    assert resolve_workers("") == 2
    assert resolve_workers("4") == 4
    with pytest.raises(ValueError):
        resolve_workers("0")

    argv = gunicorn_argv(5000, 3)
    assert argv[:2] == ["gunicorn", "app.wsgi:app"]
    assert argv[argv.index("--bind") + 1] == "0.0.0.0:5000"
    assert argv[argv.index("--workers") + 1] == "3"

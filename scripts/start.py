#!/usr/bin/env python3
"""
Production startup script.

1. Runs migrations, the ledger constraint check and the seed (release.py),
   unless SKIP_RELEASE is set because the platform runs release as its own job.
2. Starts gunicorn (replaces this process via os.execvp)

Environment:
    PORT              listen port, default 8080
    WEB_CONCURRENCY   gunicorn workers, default 2
    SKIP_RELEASE      "1"/"true" to go straight to gunicorn
    RELEASE_SKIP_SEED "1"/"true" to migrate without seeding accounts

Usage:
    python scripts/start.py
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.civic.utils import parse_bool

DEFAULT_PORT = 8080
DEFAULT_WORKERS = 2


def resolve_port(raw: str | None) -> int:
    raw = (raw or "").strip()
    if not raw:
        print(f"WARNING: PORT not set, using default {DEFAULT_PORT}", flush=True)
        return DEFAULT_PORT
    port = int(raw)
    if port < 1 or port > 65535:
        raise ValueError("Port out of range")
    return port


def resolve_workers(raw: str | None) -> int:
    raw = (raw or "").strip()
    if not raw:
        return DEFAULT_WORKERS
    workers = int(raw)
    if workers < 1:
        raise ValueError("WEB_CONCURRENCY must be at least 1")
    return workers


def gunicorn_argv(port: int, workers: int) -> list[str]:
    return [
        "gunicorn",
        "app.wsgi:app",
        "--bind", f"0.0.0.0:{port}",
        "--workers", str(workers),
        "--timeout", "60",
        "--preload",
        "--access-logfile", "-",
        "--error-logfile", "-",
    ]


def main() -> None:
    try:
        port = resolve_port(os.environ.get("PORT"))
        workers = resolve_workers(os.environ.get("WEB_CONCURRENCY"))
    except ValueError as e:
        print(f"ERROR: {e}. PORT must be 1-65535 and WEB_CONCURRENCY a positive integer.", flush=True)
        sys.exit(1)

    if parse_bool(os.environ.get("SKIP_RELEASE"), default=False):
        print("=== Release skipped (SKIP_RELEASE) ===", flush=True)
    else:
        print("=== Running release phase ===", flush=True)
        from scripts.release import run_release
        try:
            run_release(seed=not parse_bool(os.environ.get("RELEASE_SKIP_SEED"), default=False))
        except Exception as e:
            print(f"Release failed: {e}", flush=True)
            sys.exit(1)

    print(f"=== Starting gunicorn on 0.0.0.0:{port} ({workers} workers) ===", flush=True)
    # exec so gunicorn becomes PID 1 and receives signals directly
    os.execvp("gunicorn", gunicorn_argv(port, workers))


if __name__ == "__main__":
    main()

#!/usr/bin/env python3
"""
Container entry point: migrate + seed, then hand the process over to gunicorn.

Usage:
    python scripts/start.py

Settings: PORT (default 8080), WEB_CONCURRENCY (default 2), plus everything
scripts/release.py needs.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

DEFAULT_PORT = 8080


def _port() -> int:
    raw = (os.environ.get("PORT") or "").strip() or str(DEFAULT_PORT)
    if not raw.isdigit() or not 1 <= int(raw) <= 65535:
        print(f"ERROR: PORT must be an integer 1-65535 (got {raw!r}).", flush=True)
        sys.exit(1)
    return int(raw)


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
    port = _port()
    workers = int((os.environ.get("WEB_CONCURRENCY") or "2").strip())

    from scripts.release import run_release

    try:
        run_release()
    except Exception as e:
        print(f"Release failed: {e}", flush=True)
        sys.exit(1)

    print(f"Starting gunicorn on :{port} with {workers} workers", flush=True)
    # exec: gunicorn becomes PID 1 and receives signals directly
    os.execvp("gunicorn", gunicorn_argv(port, workers))


if __name__ == "__main__":
    main()

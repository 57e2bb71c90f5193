#!/usr/bin/env python3
"""Probe the persistent store: liveness, readiness wait, collection counts.

Usage:
    DB_HOST=localhost DB_PORT=5432 python scripts/check_store.py

    # Shorter wait while debugging:
    python scripts/check_store.py --attempts 3 --interval 0.5

Environment Variables:
    DB_HOST, DB_PORT, DB_DATABASE, DB_USER, DB_PASSWORD: persistent store location
    USE_MEMORY_STORE: probe the in-process store instead
"""
from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

# Add project root to path for imports
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))


async def check_store(attempts: int | None, interval: float | None) -> dict:
    """Wait for the store and return its liveness and user/file counts."""
    # Import here to avoid loading config before argument parsing
    from files_manager.config import get_settings
    from files_manager.service.runtime import Runtime

    settings = get_settings()
    overrides = {}
    if attempts is not None:
        overrides["readiness_attempts"] = attempts
    if interval is not None:
        overrides["readiness_interval_seconds"] = interval
    if overrides:
        settings = settings.model_copy(update=overrides)

    runtime = Runtime(settings)
    try:
        print(f"Is the store alive? {runtime.store.is_alive()}")
        await runtime.wait_until_ready()
        print(f"Is the store alive after waiting? {runtime.store.is_alive()}")
        stats = await runtime.stats()
        print(f"Number of users: {stats['users']}")
        print(f"Number of files: {stats['files']}")
        return stats
    finally:
        await runtime.close()
        print("Store connection closed.")


def main() -> None:
    parser = argparse.ArgumentParser(description="Check persistent store readiness")
    parser.add_argument(
        "--attempts",
        type=int,
        default=None,
        help="Readiness probe attempts (default: READINESS_ATTEMPTS or 10)",
    )
    parser.add_argument(
        "--interval",
        type=float,
        default=None,
        help="Seconds between probes (default: READINESS_INTERVAL_SECONDS or 1)",
    )
    args = parser.parse_args()

    from files_manager.service.errors import ServiceError

    try:
        asyncio.run(check_store(args.attempts, args.interval))
    except ServiceError as e:
        print(f"Error during store checks: {e.message}")
        sys.exit(1)


if __name__ == "__main__":
    main()

#!/usr/bin/env python3
"""Expired session sweep for Cybercards.

Deletes every session record whose expiry has passed. Sessions are also
removed lazily when a request presents them, but sessions of users who never
come back are only cleaned up here.

Usage:
    python scripts/sweep_sessions.py

This script is designed to be run via systemd timer (daily) or manually as needed.
"""

import sqlite3
import sys
from pathlib import Path

# Add parent directory to path so we can import cybercards
sys.path.insert(0, str(Path(__file__).parent.parent))

from cybercards.config import Config
from cybercards.db.kv_store import KvStore
from cybercards.services.user_service import UserService
from cybercards.utils.logging import get_logger, setup_logging

logger = get_logger(__name__)


def sweep_sessions(db_path: Path) -> int | None:
    """Sweep expired sessions in the KV store at db_path.

    Returns:
        Number of sessions removed, or None if the sweep failed
    """
    if not db_path.exists():
        logger.warning("KV store not found, skipping", extra={"path": str(db_path)})
        return 0

    try:
        store = KvStore(db_path)
    except sqlite3.Error as e:
        logger.error(
            "Failed to open KV store",
            extra={"path": str(db_path), "error": str(e)},
            exc_info=True,
        )
        return None

    try:
        return UserService(store).sweep_expired_sessions()
    except sqlite3.Error as e:
        logger.error(
            "Session sweep failed",
            extra={"path": str(db_path), "error": str(e)},
            exc_info=True,
        )
        return None
    finally:
        store.close()


def main() -> int:
    """Run the sweep.

    Returns:
        0 on success, 1 on failure
    """
    setup_logging()
    logger.info("Starting session sweep", extra={"path": str(Config.DATABASE_PATH)})

    removed = sweep_sessions(Config.DATABASE_PATH)
    if removed is None:
        logger.error("Session sweep completed with errors")
        return 1

    logger.info("Session sweep completed successfully", extra={"removed": removed})
    return 0


if __name__ == "__main__":
    sys.exit(main())

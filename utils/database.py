"""
SQLite storage for the table-backed device registry.
"""

from __future__ import annotations

import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Generator

import config
from utils.logging import get_logger

logger = get_logger('roguewatch.database')

DB_DIR = Path(config.DATA_DIR)
DB_PATH = DB_DIR / 'roguewatch.db'

# Thread-local connections
_local = threading.local()


def get_connection() -> sqlite3.Connection:
    """Get the connection for the current thread, opening it on first use."""
    if getattr(_local, 'connection', None) is None:
        DB_DIR.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(str(DB_PATH), check_same_thread=False)
        conn.row_factory = sqlite3.Row
        conn.execute('PRAGMA journal_mode=WAL')
        _local.connection = conn
    return _local.connection


@contextmanager
def get_db() -> Generator[sqlite3.Connection, None, None]:
    """Context manager committing on success and rolling back on error."""
    conn = get_connection()
    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise


def init_db() -> None:
    """Create tables if they do not exist."""
    with get_db() as conn:
        conn.execute('''
            CREATE TABLE IF NOT EXISTS registry_entries (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                ledger TEXT NOT NULL,
                address TEXT NOT NULL,
                fingerprint TEXT,
                payload TEXT NOT NULL,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        ''')
        conn.execute('''
            CREATE INDEX IF NOT EXISTS idx_registry_ledger_address
            ON registry_entries(ledger, address)
        ''')
        conn.execute('''
            CREATE INDEX IF NOT EXISTS idx_registry_ledger_fingerprint
            ON registry_entries(ledger, fingerprint)
        ''')
    logger.info(f"Database initialized at {DB_PATH}")


def close_db() -> None:
    """Close the current thread's connection."""
    conn = getattr(_local, 'connection', None)
    if conn is not None:
        conn.close()
        _local.connection = None

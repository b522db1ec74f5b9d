"""
SQLite-backed ledger.

Alternate backend with the same append-only contract, storing every ledger
in the shared ``registry_entries`` table.
"""

from __future__ import annotations

import json
import sqlite3
import threading
from typing import Optional

from utils.bluetooth.models import RegistryEntry
from utils.database import get_db
from utils.logging import get_logger

from .base import Ledger, LedgerWriteError

logger = get_logger('roguewatch.registry.table')


class TableLedger(Ledger):
    """Append-only ledger stored as rows in ``registry_entries``."""

    def __init__(self, name: str):
        self.name = name
        self._lock = threading.Lock()

    def append(self, entry: RegistryEntry) -> None:
        with self._lock:
            try:
                with get_db() as conn:
                    conn.execute('''
                        INSERT INTO registry_entries (ledger, address, fingerprint, payload)
                        VALUES (?, ?, ?, ?)
                    ''', (
                        self.name,
                        entry.address,
                        entry.fingerprint,
                        json.dumps(entry.to_dict(), ensure_ascii=False),
                    ))
            except sqlite3.Error as e:
                raise LedgerWriteError(self.name, str(e)) from e

    def load_all(self) -> list[RegistryEntry]:
        with get_db() as conn:
            cursor = conn.execute(
                'SELECT id, payload FROM registry_entries WHERE ledger = ? ORDER BY id ASC',
                (self.name,)
            )
            return [e for e in (self._parse(row) for row in cursor) if e is not None]

    def find_by_address(self, address: str) -> Optional[RegistryEntry]:
        return self._find_one('address', address)

    def find_by_fingerprint(self, fingerprint: str) -> Optional[RegistryEntry]:
        return self._find_one('fingerprint', fingerprint)

    def _find_one(self, column: str, value: str) -> Optional[RegistryEntry]:
        with get_db() as conn:
            cursor = conn.execute(
                f'SELECT id, payload FROM registry_entries WHERE ledger = ? AND {column} = ? ORDER BY id ASC',
                (self.name, value)
            )
            for row in cursor:
                entry = self._parse(row)
                if entry is not None:
                    return entry
        return None

    def _parse(self, row: sqlite3.Row) -> Optional[RegistryEntry]:
        try:
            return RegistryEntry.from_dict(json.loads(row['payload']))
        except (TypeError, ValueError) as e:
            logger.debug(f"Skipping malformed registry row {row['id']}: {e}")
            return None

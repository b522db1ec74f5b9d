"""
Device registry: the safe, potential-rogue and confirmed-rogue ledgers.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import config

from .base import (
    LEDGER_POTENTIAL,
    LEDGER_ROGUE,
    LEDGER_SAFE,
    LEDGERS,
    Ledger,
    LedgerWriteError,
    RegistryStore,
)
from .ledger import JsonLinesLedger
from .table import TableLedger

LEDGER_FILES = {
    LEDGER_SAFE: config.SAFE_LEDGER_FILE,
    LEDGER_POTENTIAL: config.POTENTIAL_LEDGER_FILE,
    LEDGER_ROGUE: config.ROGUE_LEDGER_FILE,
}


def create_registry_store(
    backend: Optional[str] = None,
    ledger_dir: Optional[Path | str] = None,
) -> RegistryStore:
    """
    Build a RegistryStore for the configured backend.

    Args:
        backend: 'ledger' (JSON lines files) or 'table' (SQLite)
        ledger_dir: Directory holding the ledger files (ledger backend only)
    """
    backend = backend or config.REGISTRY_BACKEND

    if backend == 'ledger':
        directory = Path(ledger_dir or config.LEDGER_DIR)
        return RegistryStore({
            name: JsonLinesLedger(name, directory / filename)
            for name, filename in LEDGER_FILES.items()
        })

    if backend == 'table':
        from utils.database import init_db
        init_db()
        return RegistryStore({name: TableLedger(name) for name in LEDGERS})

    raise ValueError(f"Unknown registry backend: {backend}")


__all__ = [
    'JsonLinesLedger',
    'LEDGERS',
    'LEDGER_POTENTIAL',
    'LEDGER_ROGUE',
    'LEDGER_SAFE',
    'Ledger',
    'LedgerWriteError',
    'RegistryStore',
    'TableLedger',
    'create_registry_store',
]

"""
JSON-lines ledger backend.

One JSON object per line, UTF-8, no header or footer. A crash can leave a
truncated final line; it is skipped on read and fenced off with a newline
before the next append.
"""

from __future__ import annotations

import json
import os
import threading
from pathlib import Path

from utils.bluetooth.models import RegistryEntry
from utils.logging import get_logger

from .base import Ledger, LedgerWriteError

logger = get_logger('roguewatch.registry.ledger')


class JsonLinesLedger(Ledger):
    """Append-only ledger stored as newline-delimited JSON."""

    def __init__(self, name: str, path: Path | str):
        self.name = name
        self.path = Path(path)
        self._lock = threading.Lock()

        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.touch(exist_ok=True)

    def append(self, entry: RegistryEntry) -> None:
        line = (json.dumps(entry.to_dict(), ensure_ascii=False) + '\n').encode('utf-8')

        with self._lock:
            try:
                with self.path.open('a+b') as f:
                    # Terminate a fragment left behind by an interrupted write
                    f.seek(0, os.SEEK_END)
                    if f.tell() > 0:
                        f.seek(-1, os.SEEK_END)
                        if f.read(1) != b'\n':
                            line = b'\n' + line
                    f.write(line)
                    f.flush()
                    os.fsync(f.fileno())
            except OSError as e:
                raise LedgerWriteError(self.name, str(e)) from e

    def load_all(self) -> list[RegistryEntry]:
        try:
            raw = self.path.read_bytes()
        except FileNotFoundError:
            return []

        lines = raw.split(b'\n')
        # Anything after the last newline is an unfinished record
        lines.pop()

        entries = []
        for lineno, line in enumerate(lines, start=1):
            if not line.strip():
                continue
            try:
                entries.append(RegistryEntry.from_dict(json.loads(line.decode('utf-8'))))
            except (UnicodeDecodeError, json.JSONDecodeError, ValueError) as e:
                logger.debug(f"Skipping malformed record {self.path.name}:{lineno}: {e}")
        return entries

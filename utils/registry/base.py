"""
Registry ledger interface and the three-ledger store.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Iterable, Optional

from utils.bluetooth.models import RegistryEntry
from utils.logging import get_logger

logger = get_logger('roguewatch.registry')

LEDGER_SAFE = 'safe'
LEDGER_POTENTIAL = 'potential_rogue'
LEDGER_ROGUE = 'confirmed_rogue'

LEDGERS = (LEDGER_SAFE, LEDGER_POTENTIAL, LEDGER_ROGUE)


class LedgerWriteError(Exception):
    """An append could not be persisted."""

    def __init__(self, ledger: str, message: str):
        super().__init__(f"{ledger}: {message}")
        self.ledger = ledger


class Ledger(ABC):
    """
    Append-only record log for one trust category.

    Implementations must make ``append`` atomic with respect to other appends
    on the same ledger, and readers must never observe a partial record.
    """

    name: str

    @abstractmethod
    def append(self, entry: RegistryEntry) -> None:
        """Persist one entry. Raises LedgerWriteError on failure."""

    @abstractmethod
    def load_all(self) -> list[RegistryEntry]:
        """All readable entries in append order."""

    def find_by_address(self, address: str) -> Optional[RegistryEntry]:
        for entry in self.load_all():
            if entry.address == address:
                return entry
        return None

    def find_by_fingerprint(self, fingerprint: str) -> Optional[RegistryEntry]:
        for entry in self.load_all():
            if entry.fingerprint == fingerprint:
                return entry
        return None


class RegistryStore:
    """
    Owns the safe, potential-rogue and confirmed-rogue ledgers.

    Ledgers are independent: each carries its own write lock so appends to
    different ledgers never contend.
    """

    def __init__(self, ledgers: dict[str, Ledger]):
        missing = [name for name in LEDGERS if name not in ledgers]
        if missing:
            raise ValueError(f"Missing ledgers: {', '.join(missing)}")
        self._ledgers = dict(ledgers)

    def ledger(self, name: str) -> Ledger:
        try:
            return self._ledgers[name]
        except KeyError:
            raise ValueError(f"Unknown ledger: {name}")

    def append(self, ledger: str, entry: RegistryEntry) -> None:
        self.ledger(ledger).append(entry)
        logger.debug(f"Appended {entry.address} to {ledger} ledger")

    def find_by_address(self, ledger: str, address: str) -> Optional[RegistryEntry]:
        return self.ledger(ledger).find_by_address(address)

    def find_by_fingerprint(self, ledger: str, fingerprint: str) -> Optional[RegistryEntry]:
        return self.ledger(ledger).find_by_fingerprint(fingerprint)

    def entries(self, ledger: str) -> list[RegistryEntry]:
        return self.ledger(ledger).load_all()

    def find_first(
        self,
        address: str,
        order: Iterable[str] = LEDGERS,
    ) -> tuple[Optional[str], Optional[RegistryEntry]]:
        """Look the address up ledger by ledger, stopping at the first hit."""
        for name in order:
            entry = self.find_by_address(name, address)
            if entry is not None:
                return name, entry
        return None, None

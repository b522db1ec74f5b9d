"""
Live device state merged with registry history.

Holds the current session's sightings keyed by address and overlays them on
records derived from the ledgers, so one query answers both "what is around
me now" and "what have I classified before".
"""

from __future__ import annotations

import threading
from dataclasses import replace
from datetime import datetime
from typing import Optional

from utils.bluetooth.heuristics import assess_threat
from utils.bluetooth.models import Classification, DeviceRecord, RegistryEntry, ThreatLevel
from utils.logging import get_logger
from utils.registry import LEDGER_POTENTIAL, LEDGER_ROGUE, LEDGER_SAFE, RegistryStore

logger = get_logger('roguewatch.live_state')

# Precedence when an address shows up in more than one ledger
HISTORY_LEDGERS = (
    (LEDGER_SAFE, Classification.SAFE),
    (LEDGER_ROGUE, Classification.KNOWN_ROGUE),
    (LEDGER_POTENTIAL, Classification.POTENTIAL),
)


class LiveStateMerger:
    """Sole mutator of DeviceRecord for the lifetime of the process."""

    def __init__(self, registry: RegistryStore):
        self._registry = registry
        self._devices: dict[str, DeviceRecord] = {}
        # address -> (reason, operator) while flagged, None once unflagged this session
        self._flag_overrides: dict[str, Optional[tuple[str, str]]] = {}
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Sightings
    # ------------------------------------------------------------------

    def record_sighting(self, candidate: DeviceRecord) -> DeviceRecord:
        """Fold one sighting into the live map and return a snapshot of it."""
        address = candidate.address
        seen_at = candidate.last_seen or datetime.now()

        with self._lock:
            known = address in self._devices or address in self._flag_overrides
        ledger_flag = None if known else self._ledger_flag(address)

        with self._lock:
            record = self._devices.get(address)
            if record is None:
                record = replace(
                    candidate,
                    first_seen=candidate.first_seen or seen_at,
                    last_seen=seen_at,
                    times_seen=1,
                    source='live',
                )
                if address not in self._flag_overrides and ledger_flag is not None:
                    self._flag_overrides[address] = (ledger_flag.reason, ledger_flag.operator)
                self._devices[address] = record
            else:
                if candidate.name:
                    record.name = candidate.name
                record.rssi = candidate.rssi
                record.distance = candidate.distance
                record.device_type = candidate.device_type
                record.service_ids = list(candidate.service_ids)
                record.connectable = candidate.connectable
                if candidate.manufacturer_data is not None:
                    record.manufacturer_data = candidate.manufacturer_data
                if record.last_seen is None or seen_at > record.last_seen:
                    record.last_seen = seen_at
                record.times_seen += 1

            self._apply_flag_state(record)
            return replace(record)

    def set_classification(self, address: str, classification: Classification) -> Optional[DeviceRecord]:
        with self._lock:
            record = self._devices.get(address)
            if record is None:
                return None
            record.classification = classification
            return replace(record)

    def clear(self) -> int:
        """Forget live sightings. Ledgers and flags are untouched."""
        with self._lock:
            count = len(self._devices)
            self._devices.clear()
        logger.info(f"Cleared {count} live devices")
        return count

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_device(self, address: str) -> Optional[DeviceRecord]:
        with self._lock:
            record = self._devices.get(address)
            if record is not None:
                return replace(record)
        return self._history().get(address)

    def list_devices(self) -> list[DeviceRecord]:
        """Live and historical devices, strongest signal first."""
        merged = self._history()
        with self._lock:
            for address, record in self._devices.items():
                merged[address] = replace(record)

        return sorted(
            merged.values(),
            key=lambda d: (d.rssi is not None, d.rssi if d.rssi is not None else 0),
            reverse=True,
        )

    def flagged_devices(self) -> list[dict]:
        """Manual flag records from the confirmed-rogue ledger."""
        with self._lock:
            overrides = dict(self._flag_overrides)
        results = []
        for entry in self._registry.entries(LEDGER_ROGUE):
            if not entry.is_flag_record:
                continue
            data = entry.to_dict()
            # Ledger flags stay active until unflagged in this session
            data['active'] = overrides.get(entry.address, True) is not None
            results.append(data)
        return results

    # ------------------------------------------------------------------
    # Manual flagging
    # ------------------------------------------------------------------

    def flag(self, address: str, reason: str, operator: str) -> DeviceRecord:
        """
        Flag a device as rogue.

        The flag is recorded in the confirmed-rogue ledger.

        Raises:
            LedgerWriteError: if the flag record could not be persisted.
        """
        current = self.get_device(address)
        entry = RegistryEntry(
            address=address,
            fingerprint=current.fingerprint if current else '',
            name=current.name if current else None,
            reason=reason,
            operator=operator,
            flagged_at=datetime.now().isoformat(),
        )

        self._registry.append(LEDGER_ROGUE, entry)

        with self._lock:
            self._flag_overrides[address] = (reason, operator)
            record = self._devices.get(address)
            if record is not None:
                self._apply_flag_state(record)

        logger.info(f"Device {address} flagged by {operator}: {reason}")
        return self.get_device(address)

    def unflag(self, address: str) -> Optional[DeviceRecord]:
        """Clear a flag and recompute the threat level. Ledger entries stay."""
        if self.get_device(address) is None:
            return None

        with self._lock:
            self._flag_overrides[address] = None
            record = self._devices.get(address)
            if record is not None:
                self._apply_flag_state(record)

        logger.info(f"Device {address} unflagged")
        return self.get_device(address)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _apply_flag_state(self, record: DeviceRecord) -> None:
        flag = self._flag_overrides.get(record.address)
        if flag is not None:
            record.flagged = True
            record.flag_reason, record.flagged_by = flag
            record.threat_level = ThreatLevel.HIGH
        else:
            record.flagged = False
            record.flag_reason = None
            record.flagged_by = None
            record.threat_level = assess_threat(record)

    def _ledger_flag(self, address: str) -> Optional[RegistryEntry]:
        latest = None
        for entry in self._registry.entries(LEDGER_ROGUE):
            if entry.address == address and entry.is_flag_record:
                latest = entry
        return latest

    def _history(self) -> dict[str, DeviceRecord]:
        """One record per ledgered address, first ledger in precedence order wins."""
        history: dict[str, DeviceRecord] = {}
        ledger_flags: dict[str, tuple[str, str]] = {}

        for ledger, classification in HISTORY_LEDGERS:
            for entry in self._registry.entries(ledger):
                if ledger == LEDGER_ROGUE and entry.is_flag_record:
                    ledger_flags[entry.address] = (entry.reason, entry.operator)
                if entry.address in history:
                    continue
                history[entry.address] = DeviceRecord(
                    address=entry.address,
                    name=entry.name,
                    service_ids=entry.fingerprint.split(', ') if entry.fingerprint else [],
                    classification=classification,
                    source='history',
                )

        with self._lock:
            overrides = dict(self._flag_overrides)

        for address, record in history.items():
            flag = overrides[address] if address in overrides else ledger_flags.get(address)
            if flag is not None:
                record.flagged = True
                record.flag_reason, record.flagged_by = flag
                record.threat_level = ThreatLevel.HIGH
            else:
                record.threat_level = assess_threat(record)
        return history

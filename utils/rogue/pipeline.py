"""
Discovery event classification pipeline.

Each event is scored, folded into the live state, then classified against the
registry:

    safe ledger            -> safe          (stop)
    confirmed-rogue ledger -> known_rogue   (stop)
    potential ledger       -> potential     (stop)
    vulnerability lookup   -> rogue | potential, appended to the matching ledger
    unreadable registry    -> potential     (no lookup, no append)

Ledger checks run inline on the intake thread. Only the vulnerability lookup
is handed to a worker pool, and at most one lookup per address is in flight.
"""

from __future__ import annotations

import queue
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Iterable, Optional

import config
from utils.bluetooth.heuristics import assess_threat, classify_device_type, estimate_distance
from utils.bluetooth.models import (
    Classification,
    DeviceRecord,
    DiscoveryEvent,
    RegistryEntry,
    normalize_service_id,
)
from utils.logging import get_logger
from utils.registry import LEDGER_POTENTIAL, LEDGER_ROGUE, LEDGER_SAFE, LedgerWriteError

from .context import MonitorContext
from .vulnerability import VulnerabilityLookup, VulnerabilityLookupError

logger = get_logger('roguewatch.pipeline')

# Registry lookup order; the first hit decides
REGISTRY_ORDER = (
    (LEDGER_SAFE, Classification.SAFE),
    (LEDGER_ROGUE, Classification.KNOWN_ROGUE),
    (LEDGER_POTENTIAL, Classification.POTENTIAL),
)
REGISTRY_CLASSIFICATIONS = dict(REGISTRY_ORDER)


@dataclass
class ClassificationResult:
    address: str
    classification: Classification
    record: DeviceRecord
    findings_count: int = 0
    # Ledger appended to, None when the registry already knew the device
    ledger: Optional[str] = None
    persisted: bool = True
    error: Optional[str] = None
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict:
        return {
            'type': 'classification',
            'address': self.address,
            'classification': self.classification.value,
            'findings_count': self.findings_count,
            'ledger': self.ledger,
            'persisted': self.persisted,
            'error': self.error,
            'timestamp': self.timestamp.isoformat(),
            'device': self.record.to_dict(),
        }


def build_candidate(event: DiscoveryEvent) -> DeviceRecord:
    """Run the distance, type and threat heuristics over one event."""
    record = DeviceRecord(
        address=event.address,
        name=event.name,
        rssi=event.rssi,
        distance=estimate_distance(event.rssi),
        device_type=classify_device_type(event.name, event.service_ids),
        first_seen=event.timestamp,
        last_seen=event.timestamp,
        times_seen=1,
        service_ids=list(event.service_ids),
        connectable=event.connectable,
        manufacturer_data=event.manufacturer_data,
    )
    record.threat_level = assess_threat(record)
    return record


class ClassificationPipeline:
    """
    Classifies discovery events and records the outcome.

    Events can be fed synchronously through ``handle_event`` or queued with
    ``submit`` for the intake thread started by ``start``.
    """

    def __init__(
        self,
        context: MonitorContext,
        lookup: VulnerabilityLookup,
        max_workers: Optional[int] = None,
        queue_size: Optional[int] = None,
        scan_services: Optional[Iterable[str]] = None,
        allow_duplicates: Optional[bool] = None,
    ):
        self.context = context
        self.lookup = lookup

        self._executor = ThreadPoolExecutor(
            max_workers=max_workers or config.LOOKUP_WORKERS,
            thread_name_prefix='vuln-lookup',
        )
        self._queue: queue.Queue = queue.Queue(
            maxsize=queue_size if queue_size is not None else config.EVENT_QUEUE_SIZE
        )

        services = scan_services if scan_services is not None else config.SCAN_SERVICES
        self._scan_services = frozenset(normalize_service_id(s) for s in services if s)
        self._allow_duplicates = (
            allow_duplicates if allow_duplicates is not None else config.SCAN_ALLOW_DUPLICATES
        )
        self._seen_addresses: set[str] = set()

        # Guards _inflight, _pending and _seen_addresses
        self._cond = threading.Condition()
        self._inflight: dict[str, Future] = {}
        self._pending = 0

        self._listeners: list[Callable[[ClassificationResult], None]] = []
        self._intake_thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()

        self.counters = {
            'events_received': 0,
            'events_filtered': 0,
            'events_coalesced': 0,
            'lookups': 0,
            'lookup_failures': 0,
            'write_failures': 0,
            'read_failures': 0,
        }
        self.last_write_error: Optional[str] = None
        self.last_read_error: Optional[str] = None

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def add_listener(self, callback: Callable[[ClassificationResult], None]) -> None:
        self._listeners.append(callback)

    # ------------------------------------------------------------------
    # Intake channel
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Start the intake thread if it is not already running."""
        if self._intake_thread and self._intake_thread.is_alive():
            return
        self._stop_event.clear()
        self._intake_thread = threading.Thread(target=self._intake_loop, name='rogue-intake', daemon=True)
        self._intake_thread.start()
        logger.info("Classification pipeline started")

    def stop(self) -> None:
        """Stop consuming queued events. In-flight lookups keep draining."""
        self._stop_event.set()
        if self._intake_thread:
            self._intake_thread.join(timeout=2.0)
            self._intake_thread = None
        logger.info("Classification pipeline stopped")

    def shutdown(self, wait: bool = False) -> None:
        """Stop intake and release the worker pool; pending lookups are abandoned unless wait is set."""
        self.stop()
        self._executor.shutdown(wait=wait, cancel_futures=not wait)

    @property
    def is_running(self) -> bool:
        return bool(self._intake_thread and self._intake_thread.is_alive())

    def submit(self, event: DiscoveryEvent) -> bool:
        """Queue an event for the intake thread. Returns False when the queue is full."""
        with self._cond:
            self._pending += 1
        try:
            self._queue.put_nowait(event)
        except queue.Full:
            with self._cond:
                self._pending -= 1
                self._cond.notify_all()
            logger.warning(f"Intake queue full, dropping event for {event.address}")
            return False
        return True

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """Block until every queued event and in-flight lookup has finished."""
        with self._cond:
            return self._cond.wait_for(lambda: self._pending == 0 and not self._inflight, timeout)

    def _intake_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                event = self._queue.get(timeout=0.2)
            except queue.Empty:
                continue
            try:
                self.handle_event(event)
            except Exception as e:
                logger.error(f"Failed to process discovery event for {event.address}: {e}")
            finally:
                with self._cond:
                    self._pending -= 1
                    self._cond.notify_all()

    # ------------------------------------------------------------------
    # Classification
    # ------------------------------------------------------------------

    def handle_event(self, event: DiscoveryEvent) -> Optional[Future]:
        """
        Process one discovery event.

        Returns:
            A future resolving to the ClassificationResult, already complete
            when the registry knew the device. None when the event was
            filtered or coalesced into a classification already in flight.
        """
        address = event.address
        self._count('events_received')

        if not self._accepts(event):
            self._count('events_filtered')
            return None

        candidate = build_candidate(event)
        self.context.live_state.record_sighting(candidate)

        with self._cond:
            if address in self._inflight:
                self.counters['events_coalesced'] += 1
                logger.debug(f"Classification already in flight for {address}, coalescing")
                return None
            future: Future = Future()
            self._inflight[address] = future

        try:
            try:
                ledger, classification = self._check_registry(address)
            except Exception as e:
                # Membership unknown: never look up or append
                error = f"Could not read registry: {e}"
                self._count('read_failures')
                self.last_read_error = error
                logger.error(f"Registry read failed while classifying {address}: {e}")
                result = self._finish(
                    event, Classification.POTENTIAL, persisted=False, error=error,
                )
                self._complete(address, future, result)
                return future
            if ledger is not None:
                self._complete(address, future, self._finish(event, classification))
                return future
        except Exception:
            self._release(address)
            raise

        try:
            self._executor.submit(self._classify_new, event, future)
        except RuntimeError as e:
            # Executor already shut down
            logger.debug(f"Dropping classification for {address}: {e}")
            self._release(address)
            future.cancel()
            return None
        return future

    def _accepts(self, event: DiscoveryEvent) -> bool:
        if self._scan_services:
            advertised = {normalize_service_id(s) for s in event.service_ids}
            if not advertised & self._scan_services:
                return False
        if not self._allow_duplicates:
            with self._cond:
                if event.address in self._seen_addresses:
                    return False
                self._seen_addresses.add(event.address)
        return True

    def _check_registry(self, address: str) -> tuple[Optional[str], Optional[Classification]]:
        ledger, _ = self.context.registry.find_first(address, REGISTRY_CLASSIFICATIONS)
        if ledger is None:
            return None, None
        return ledger, REGISTRY_CLASSIFICATIONS[ledger]

    def _classify_new(self, event: DiscoveryEvent, future: Future) -> None:
        address = event.address
        try:
            self._count('lookups')
            try:
                findings = self.lookup.lookup(address)
            except VulnerabilityLookupError as e:
                self._count('lookup_failures')
                logger.error(f"Vulnerability check failed for {address}: {e}")
                findings = None
            except Exception as e:
                self._count('lookup_failures')
                logger.error(f"Vulnerability check raised unexpectedly for {address}: {e}")
                findings = None

            if findings:
                classification, ledger = Classification.ROGUE, LEDGER_ROGUE
            else:
                classification, ledger = Classification.POTENTIAL, LEDGER_POTENTIAL

            error = None
            try:
                self.context.registry.append(ledger, RegistryEntry.from_event(event))
            except LedgerWriteError as e:
                error = str(e)
                self._count('write_failures')
                self.last_write_error = error
                logger.error(f"Could not record {address} in {ledger} ledger: {e}")

            result = self._finish(
                event,
                classification,
                findings_count=len(findings or []),
                ledger=ledger,
                persisted=error is None,
                error=error,
            )
            self._complete(address, future, result)
        except Exception as e:
            self._release(address)
            future.set_exception(e)
            logger.error(f"Classification of {address} failed: {e}")

    def _finish(
        self,
        event: DiscoveryEvent,
        classification: Classification,
        findings_count: int = 0,
        ledger: Optional[str] = None,
        persisted: bool = True,
        error: Optional[str] = None,
    ) -> ClassificationResult:
        record = self.context.live_state.set_classification(event.address, classification)
        if record is None:
            # Live state was cleared while the lookup ran
            record = build_candidate(event)
            record.classification = classification

        label = f"{event.name or 'Unknown'} ({event.address})"
        if classification == Classification.SAFE:
            logger.info(f"Safe device detected: {label}")
        elif classification == Classification.KNOWN_ROGUE:
            logger.warning(f"Known rogue device detected: {label}")
        elif classification == Classification.ROGUE:
            logger.warning(f"Confirmed rogue device added: {label} ({findings_count} findings)")
        elif ledger is not None:
            logger.info(f"Unknown device flagged as potential rogue: {label}")
        else:
            logger.debug(f"Potential rogue device seen again: {label}")

        return ClassificationResult(
            address=event.address,
            classification=classification,
            record=record,
            findings_count=findings_count,
            ledger=ledger,
            persisted=persisted,
            error=error,
        )

    def _complete(self, address: str, future: Future, result: ClassificationResult) -> None:
        # Release first so the next event for this address re-reads the registry
        self._release(address)
        for callback in self._listeners:
            try:
                callback(result)
            except Exception as e:
                logger.debug(f"Classification listener failed: {e}")
        future.set_result(result)

    def _release(self, address: str) -> None:
        with self._cond:
            self._inflight.pop(address, None)
            self._cond.notify_all()

    def _count(self, key: str) -> None:
        with self._cond:
            self.counters[key] += 1

    def get_status(self) -> dict:
        with self._cond:
            return {
                'running': self.is_running,
                'queued': self._queue.qsize(),
                'in_flight': len(self._inflight),
                'counters': dict(self.counters),
                'last_write_error': self.last_write_error,
                'last_read_error': self.last_read_error,
            }

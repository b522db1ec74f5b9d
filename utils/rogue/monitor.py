"""
Process-wide rogue device monitor.

Wires the classification pipeline, the optional BLE discovery source, the
discovery log and the SSE result queue together behind one object the
routes and the CLI talk to.
"""

from __future__ import annotations

import queue
import threading
from concurrent.futures import Future
from pathlib import Path
from typing import Generator, Optional

import config
from utils.bluetooth.discovery import BleakDiscoverySource
from utils.bluetooth.models import DeviceRecord, DiscoveryEvent
from utils.logging import get_logger

from .context import MonitorContext, create_monitor_context
from .discovery_log import DiscoveryLog
from .export import build_snapshot, write_snapshot
from .pipeline import ClassificationPipeline, ClassificationResult
from .vulnerability import VulnerabilityLookup, create_vulnerability_lookup

logger = get_logger('roguewatch.monitor')


class RogueMonitor:
    def __init__(
        self,
        context: MonitorContext,
        lookup: VulnerabilityLookup,
        discovery_log: Optional[DiscoveryLog] = None,
        **pipeline_options,
    ) -> None:
        self.context = context
        self.pipeline = ClassificationPipeline(context, lookup, **pipeline_options)
        self.discovery_log = discovery_log
        self.source: Optional[BleakDiscoverySource] = None
        self._queue: queue.Queue = queue.Queue(maxsize=1000)
        self._scan_lock = threading.Lock()

        self.pipeline.add_listener(self._queue_result)
        if discovery_log is not None:
            self.pipeline.add_listener(discovery_log.record)

    # ------------------------------------------------------------------
    # Scanning
    # ------------------------------------------------------------------

    def start_scan(self, duration: Optional[float] = None) -> bool:
        with self._scan_lock:
            if self.source and self.source.is_scanning:
                return True
            self.pipeline.start()
            self.source = BleakDiscoverySource(
                on_event=self.pipeline.submit,
                service_uuids=list(config.SCAN_SERVICES) or None,
            )
            return self.source.start(duration if duration is not None else config.SCAN_DURATION)

    def stop_scan(self) -> None:
        with self._scan_lock:
            if self.source:
                self.source.stop()

    def wait_for_scan(self, timeout: Optional[float] = None) -> None:
        if self.source:
            self.source.wait(timeout)

    def get_status(self) -> dict:
        source = self.source.get_status() if self.source else {
            'is_scanning': False,
            'backend': 'bleak',
            'started_at': None,
            'events_emitted': 0,
            'error': None,
        }
        return {
            'scanner': source,
            'pipeline': self.pipeline.get_status(),
            'operator': self.context.operator,
        }

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def ingest(self, event: DiscoveryEvent) -> Optional[Future]:
        """Classify an externally supplied event on the caller's thread."""
        return self.pipeline.handle_event(event)

    def _queue_result(self, result: ClassificationResult) -> None:
        payload = result.to_dict()
        try:
            self._queue.put_nowait(payload)
        except queue.Full:
            try:
                self._queue.get_nowait()
                self._queue.put_nowait(payload)
            except queue.Empty:
                pass

    def stream_events(self, timeout: float = 1.0) -> Generator[dict, None, None]:
        while True:
            try:
                yield self._queue.get(timeout=timeout)
            except queue.Empty:
                yield {'type': 'keepalive'}

    # ------------------------------------------------------------------
    # Queries and operator actions
    # ------------------------------------------------------------------

    def list_devices(self) -> list[DeviceRecord]:
        return self.context.live_state.list_devices()

    def get_device(self, address: str) -> Optional[DeviceRecord]:
        return self.context.live_state.get_device(address)

    def flag(self, address: str, reason: str, operator: Optional[str] = None) -> DeviceRecord:
        return self.context.live_state.flag(address, reason, operator or self.context.operator)

    def unflag(self, address: str) -> Optional[DeviceRecord]:
        return self.context.live_state.unflag(address)

    def flagged_devices(self) -> list[dict]:
        return self.context.live_state.flagged_devices()

    def statistics(self) -> dict:
        return self.context.statistics.compute()

    def snapshot(self) -> dict:
        return build_snapshot(self.context)

    def export(self, directory: Optional[Path | str] = None) -> Path:
        return write_snapshot(self.snapshot(), directory or config.EXPORT_DIR)

    def clear(self) -> int:
        return self.context.live_state.clear()

    def shutdown(self) -> None:
        self.stop_scan()
        self.pipeline.shutdown(wait=False)


def create_monitor(
    context: Optional[MonitorContext] = None,
    lookup: Optional[VulnerabilityLookup] = None,
) -> RogueMonitor:
    discovery_log = DiscoveryLog(config.DISCOVERY_LOG_DIR) if config.DISCOVERY_LOG_ENABLED else None
    return RogueMonitor(
        context or create_monitor_context(),
        lookup or create_vulnerability_lookup(),
        discovery_log=discovery_log,
    )


_monitor: RogueMonitor | None = None
_monitor_lock = threading.Lock()


def get_monitor() -> RogueMonitor:
    global _monitor
    with _monitor_lock:
        if _monitor is None:
            _monitor = create_monitor()
        return _monitor


def set_monitor(monitor: Optional[RogueMonitor]) -> None:
    """Replace the process-wide monitor, shutting down the previous one."""
    global _monitor
    with _monitor_lock:
        previous, _monitor = _monitor, monitor
    if previous is not None and previous is not monitor:
        previous.shutdown()

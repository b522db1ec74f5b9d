"""
BLE discovery source backed by bleak.

Runs the bleak scanner in its own asyncio loop on a background thread and
hands every advertisement to a callback as a DiscoveryEvent.
"""

from __future__ import annotations

import asyncio
import threading
from datetime import datetime
from typing import Callable, Optional

from utils.logging import get_logger

from .models import DiscoveryEvent

logger = get_logger('roguewatch.bluetooth.discovery')


class BleakDiscoverySource:
    """
    Cross-platform BLE discovery source.

    Works on Linux, macOS, and Windows.
    """

    def __init__(
        self,
        on_event: Optional[Callable[[DiscoveryEvent], None]] = None,
        service_uuids: Optional[list[str]] = None,
    ):
        self._on_event = on_event
        self._service_uuids = service_uuids or None
        self._is_scanning = False
        self._scan_thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self.started_at: Optional[datetime] = None
        self.events_emitted = 0
        self.error: Optional[str] = None

    def start(self, duration: float = 0.0) -> bool:
        """Start scanning in a background thread. A duration of 0 scans until stopped."""
        try:
            import bleak  # noqa: F401
        except ImportError:
            self.error = 'bleak library not installed'
            logger.error(self.error)
            return False

        if self._is_scanning:
            return True

        self.error = None
        self._stop_event.clear()
        self._scan_thread = threading.Thread(
            target=self._scan_loop,
            args=(duration,),
            daemon=True,
        )
        self._is_scanning = True
        self.started_at = datetime.now()
        self._scan_thread.start()
        logger.info("Bleak discovery started")
        return True

    def stop(self) -> None:
        """Stop feeding new events. In-flight classification is left to drain."""
        self._stop_event.set()
        if self._scan_thread:
            self._scan_thread.join(timeout=2.0)
        self._is_scanning = False
        logger.info("Bleak discovery stopped")

    def wait(self, timeout: Optional[float] = None) -> None:
        """Block until a timed scan finishes."""
        if self._scan_thread:
            self._scan_thread.join(timeout=timeout)

    @property
    def is_scanning(self) -> bool:
        return self._is_scanning

    def get_status(self) -> dict:
        return {
            'is_scanning': self._is_scanning,
            'backend': 'bleak',
            'started_at': self.started_at.isoformat() if self.started_at else None,
            'events_emitted': self.events_emitted,
            'error': self.error,
        }

    def _scan_loop(self, duration: float) -> None:
        try:
            asyncio.run(self._async_scan(duration))
        except Exception as e:
            self.error = str(e)
            logger.error(f"Bleak scan error: {e}")
        finally:
            self._is_scanning = False

    async def _async_scan(self, duration: float) -> None:
        from bleak import BleakScanner

        def detection_callback(device, adv_data) -> None:
            if self._stop_event.is_set():
                return
            try:
                event = self._convert(device, adv_data)
            except Exception as e:
                logger.debug(f"Error converting bleak advertisement: {e}")
                return
            self.events_emitted += 1
            if self._on_event:
                self._on_event(event)

        scanner = BleakScanner(
            detection_callback=detection_callback,
            service_uuids=self._service_uuids,
        )
        await scanner.start()

        loop = asyncio.get_running_loop()
        start_time = loop.time()
        try:
            while not self._stop_event.is_set():
                await asyncio.sleep(0.1)
                if duration > 0 and (loop.time() - start_time) >= duration:
                    break
        finally:
            await scanner.stop()

    @staticmethod
    def _convert(device, adv_data) -> DiscoveryEvent:
        """Convert a bleak device/advertisement pair to a DiscoveryEvent."""
        manufacturer_data = None
        if adv_data.manufacturer_data:
            company_id, payload = next(iter(adv_data.manufacturer_data.items()))
            manufacturer_data = company_id.to_bytes(2, 'little') + bytes(payload)

        return DiscoveryEvent(
            address=device.address.upper() if device.address else '',
            rssi=adv_data.rssi,
            name=adv_data.local_name or device.name,
            service_ids=list(adv_data.service_uuids or []),
            manufacturer_data=manufacturer_data,
            connectable=bool(getattr(adv_data, 'connectable', True)),
            timestamp=datetime.now(),
        )

"""Derived device counts served alongside the device list."""

from __future__ import annotations

from collections import Counter
from datetime import datetime, timedelta
from typing import Optional

import config
from utils.bluetooth.models import Classification, ThreatLevel

from .live_state import LiveStateMerger


class StatisticsAggregator:
    """Computes statistics on demand from the merged device view."""

    def __init__(self, live_state: LiveStateMerger, recent_window_seconds: Optional[int] = None):
        self._live_state = live_state
        self.recent_window = timedelta(
            seconds=recent_window_seconds if recent_window_seconds is not None else config.RECENT_WINDOW_SECONDS
        )

    def compute(self, now: Optional[datetime] = None) -> dict:
        devices = self._live_state.list_devices()
        cutoff = (now or datetime.now()) - self.recent_window

        classifications = Counter(d.classification.value for d in devices)

        return {
            'total': len(devices),
            'flagged': sum(1 for d in devices if d.flagged),
            'critical': sum(1 for d in devices if d.threat_level == ThreatLevel.HIGH),
            'recentlySeen': sum(1 for d in devices if d.last_seen is not None and d.last_seen > cutoff),
            'classifications': {c.value: classifications.get(c.value, 0) for c in Classification},
        }

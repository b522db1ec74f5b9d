"""Registry + live state context passed to every pipeline and query operation."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import config
from utils.registry import RegistryStore, create_registry_store

from .live_state import LiveStateMerger
from .statistics import StatisticsAggregator


@dataclass
class MonitorContext:
    registry: RegistryStore
    live_state: LiveStateMerger
    statistics: StatisticsAggregator
    operator: str = config.DEFAULT_OPERATOR


def create_monitor_context(
    registry: Optional[RegistryStore] = None,
    operator: Optional[str] = None,
) -> MonitorContext:
    registry = registry or create_registry_store()
    live_state = LiveStateMerger(registry)
    return MonitorContext(
        registry=registry,
        live_state=live_state,
        statistics=StatisticsAggregator(live_state),
        operator=operator or config.DEFAULT_OPERATOR,
    )

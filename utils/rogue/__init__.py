"""
Rogue device classification: pipeline, live state, statistics and export.
"""

from .context import MonitorContext, create_monitor_context
from .discovery_log import DiscoveryLog, export_discovery_logs
from .export import build_snapshot, devices_to_csv, write_snapshot
from .live_state import LiveStateMerger
from .monitor import RogueMonitor, create_monitor, get_monitor, set_monitor
from .pipeline import ClassificationPipeline, ClassificationResult, build_candidate
from .statistics import StatisticsAggregator
from .vulnerability import (
    HttpVulnerabilityLookup,
    UnavailableVulnerabilityLookup,
    VulnerabilityLookup,
    VulnerabilityLookupError,
    create_vulnerability_lookup,
)

__all__ = [
    'ClassificationPipeline',
    'ClassificationResult',
    'DiscoveryLog',
    'HttpVulnerabilityLookup',
    'LiveStateMerger',
    'MonitorContext',
    'RogueMonitor',
    'StatisticsAggregator',
    'UnavailableVulnerabilityLookup',
    'VulnerabilityLookup',
    'VulnerabilityLookupError',
    'build_candidate',
    'build_snapshot',
    'create_monitor',
    'create_monitor_context',
    'create_vulnerability_lookup',
    'devices_to_csv',
    'export_discovery_logs',
    'get_monitor',
    'set_monitor',
    'write_snapshot',
]

"""
Bluetooth discovery models, heuristics and the bleak discovery source.
"""

from .constants import DEVICE_TYPE_SUSPICIOUS, DEVICE_TYPE_UNKNOWN, DISTANCE_UNKNOWN
from .discovery import BleakDiscoverySource
from .heuristics import (
    DEVICE_TYPE_RULES,
    assess_threat,
    classify_device_type,
    estimate_distance,
    score_threat,
    threat_level_for_score,
)
from .models import (
    Classification,
    DeviceRecord,
    DiscoveryEvent,
    RegistryEntry,
    ThreatLevel,
    normalize_service_id,
    service_fingerprint,
)

__all__ = [
    'BleakDiscoverySource',
    'Classification',
    'DEVICE_TYPE_RULES',
    'DEVICE_TYPE_SUSPICIOUS',
    'DEVICE_TYPE_UNKNOWN',
    'DISTANCE_UNKNOWN',
    'DeviceRecord',
    'DiscoveryEvent',
    'RegistryEntry',
    'ThreatLevel',
    'assess_threat',
    'classify_device_type',
    'estimate_distance',
    'normalize_service_id',
    'score_threat',
    'service_fingerprint',
    'threat_level_for_score',
]

"""
Signal and naming heuristics for discovered Bluetooth devices.

Distance estimation, the ordered device type rule table and the threat
scorer. Everything here is a pure function of its inputs.
"""

from __future__ import annotations

from typing import Callable, Iterable, Optional

import config
from data.device_signatures import (
    NAME_VOCABULARY,
    SERVICE_CODE_LABELS,
    SUSPICIOUS_NAME_TOKENS,
    SUSPICIOUS_SERVICE_CODES,
    THREAT_NAME_TOKENS,
    UNNAMED_PLACEHOLDERS,
)

from .constants import (
    DEVICE_TYPE_SUSPICIOUS,
    DEVICE_TYPE_UNKNOWN,
    DISTANCE_FAR_COEFFICIENT,
    DISTANCE_FAR_EXPONENT,
    DISTANCE_FAR_OFFSET,
    DISTANCE_NEAR_EXPONENT,
    DISTANCE_UNKNOWN,
    SCORE_HIDDEN_SERVICES,
    SCORE_NO_NAME,
    SCORE_STRONG_UNKNOWN,
    SCORE_SUSPICIOUS_NAME,
    STRONG_SIGNAL_DBM,
    THREAT_HIGH_THRESHOLD,
    THREAT_MEDIUM_THRESHOLD,
)
from .models import DeviceRecord, ThreatLevel, normalize_service_id

# (name_lower, normalized service codes) -> bool
RulePredicate = Callable[[str, frozenset], bool]


# =============================================================================
# DISTANCE
# =============================================================================

def estimate_distance(rssi: int, reference_power: Optional[int] = None) -> float:
    """
    Estimate distance in meters from RSSI.

    Args:
        rssi: Received signal strength in dBm
        reference_power: Calibrated RSSI at 1 meter (defaults to config)

    Returns:
        Distance in meters, or DISTANCE_UNKNOWN when rssi is 0.
    """
    if rssi == 0:
        return DISTANCE_UNKNOWN

    if reference_power is None:
        reference_power = config.REFERENCE_POWER_DBM

    ratio = rssi * 1.0 / reference_power
    if ratio < 1.0:
        return ratio ** DISTANCE_NEAR_EXPONENT

    return round(DISTANCE_FAR_COEFFICIENT * ratio ** DISTANCE_FAR_EXPONENT + DISTANCE_FAR_OFFSET, 2)


# =============================================================================
# DEVICE TYPE
# =============================================================================

def _name_contains(tokens: Iterable[str]) -> RulePredicate:
    tokens = tuple(tokens)
    return lambda name, services: any(token in name for token in tokens)


def _has_service(*codes: str) -> RulePredicate:
    wanted = frozenset(codes)
    return lambda name, services: bool(services & wanted)


def _build_rule_table() -> list[tuple[RulePredicate, str]]:
    rules: list[tuple[RulePredicate, str]] = [
        (_name_contains(SUSPICIOUS_NAME_TOKENS), DEVICE_TYPE_SUSPICIOUS),
    ]
    for label, tokens in NAME_VOCABULARY:
        rules.append((_name_contains(tokens), label))
    for code, label in SERVICE_CODE_LABELS:
        rules.append((_has_service(code), label))
    rules.append((_has_service(*SUSPICIOUS_SERVICE_CODES), DEVICE_TYPE_SUSPICIOUS))
    return rules


# Evaluated top to bottom, first match wins
DEVICE_TYPE_RULES = _build_rule_table()


def classify_device_type(name: Optional[str], service_ids: Iterable[str]) -> str:
    """Label a device from its advertised name and service identifiers."""
    name_lower = (name or '').lower()
    services = frozenset(normalize_service_id(s) for s in service_ids if s)

    for predicate, label in DEVICE_TYPE_RULES:
        if predicate(name_lower, services):
            return label
    return DEVICE_TYPE_UNKNOWN


# =============================================================================
# THREAT SCORING
# =============================================================================

def has_suspicious_name(name: Optional[str]) -> bool:
    name_lower = (name or '').lower()
    return any(token in name_lower for token in THREAT_NAME_TOKENS)


def is_unnamed(name: Optional[str]) -> bool:
    return not name or name.strip().lower() in UNNAMED_PLACEHOLDERS


def score_threat(record: DeviceRecord) -> int:
    """Sum the weighted threat contributions for a device."""
    score = 0

    if has_suspicious_name(record.name):
        score += SCORE_SUSPICIOUS_NAME

    if is_unnamed(record.name):
        score += SCORE_NO_NAME

    if (
        record.rssi is not None
        and record.rssi > STRONG_SIGNAL_DBM
        and record.device_type == DEVICE_TYPE_UNKNOWN
    ):
        score += SCORE_STRONG_UNKNOWN

    if not record.service_ids and record.connectable:
        score += SCORE_HIDDEN_SERVICES

    return score


def threat_level_for_score(score: int) -> ThreatLevel:
    if score >= THREAT_HIGH_THRESHOLD:
        return ThreatLevel.HIGH
    if score >= THREAT_MEDIUM_THRESHOLD:
        return ThreatLevel.MEDIUM
    return ThreatLevel.LOW


def assess_threat(record: DeviceRecord) -> ThreatLevel:
    return threat_level_for_score(score_threat(record))

"""
Bluetooth constants for discovery, scoring and classification.
"""

from __future__ import annotations

# =============================================================================
# DISTANCE MODEL
# =============================================================================

# Sentinel returned when distance cannot be determined (rssi == 0)
DISTANCE_UNKNOWN = -1.0

# Coefficients of the piecewise RSSI ratio model
DISTANCE_NEAR_EXPONENT = 10
DISTANCE_FAR_COEFFICIENT = 0.89976
DISTANCE_FAR_EXPONENT = 7.7095
DISTANCE_FAR_OFFSET = 0.111

# =============================================================================
# DEVICE TYPES
# =============================================================================

DEVICE_TYPE_SUSPICIOUS = 'Suspicious'
DEVICE_TYPE_UNKNOWN = 'Unknown'

# =============================================================================
# THREAT SCORING
# =============================================================================

SCORE_SUSPICIOUS_NAME = 40
SCORE_NO_NAME = 20
SCORE_STRONG_UNKNOWN = 30
SCORE_HIDDEN_SERVICES = 15

# Signal stronger than this from an Unknown device adds SCORE_STRONG_UNKNOWN
STRONG_SIGNAL_DBM = -50

THREAT_HIGH_THRESHOLD = 60
THREAT_MEDIUM_THRESHOLD = 30

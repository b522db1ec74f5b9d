"""
Device Signature Tables

Name vocabulary and GATT service codes used to label discovered Bluetooth
devices and score how suspicious they look.
"""

from __future__ import annotations

# =============================================================================
# Name Tokens
# =============================================================================

# Covert camera / bug style names. Any hit labels the device Suspicious.
SUSPICIOUS_NAME_TOKENS = ('spy', 'cam', 'hidden', 'covert', 'mini', 'micro')

# Threat scoring also catches cheap serial / wifi modules (HC-05, ESP32)
THREAT_NAME_TOKENS = SUSPICIOUS_NAME_TOKENS + ('hc-', 'esp')

# Checked in order after the suspicious tokens
NAME_VOCABULARY = (
    ('Audio', ('airpods', 'beats')),
    ('Phone', ('iphone', 'android', 'phone')),
    ('Wearable', ('watch', 'band')),
    ('Media', ('tv', 'speaker')),
    ('Computer', ('laptop', 'macbook')),
    ('Vehicle', ('car', 'tesla')),
)

# Placeholders the discovery stack substitutes for a missing local name
UNNAMED_PLACEHOLDERS = ('unknown', 'unknown device')

# =============================================================================
# GATT Service Codes (16-bit)
# =============================================================================

SERVICE_CODE_LABELS = (
    ('180d', 'Heart Rate Monitor'),
    ('180f', 'Battery'),
    ('1812', 'HID'),
    ('110a', 'Audio'),  # A2DP audio source
    ('110b', 'Audio'),  # A2DP audio sink
)

# Generic Access / Generic Attribute advertised on their own are typical of
# bare camera modules.
SUSPICIOUS_SERVICE_CODES = ('1800', '1801')

BLUETOOTH_BASE_UUID_SUFFIX = '-0000-1000-8000-00805f9b34fb'

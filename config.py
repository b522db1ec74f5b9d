"""Configuration settings for RogueWatch.

Every value can be overridden with a ``ROGUEWATCH_<NAME>`` environment
variable.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

VERSION = '1.0.0'


def _get_env(key: str, default: str) -> str:
    """Get environment variable with ROGUEWATCH_ prefix."""
    return os.environ.get(f'ROGUEWATCH_{key}', default)


def _get_env_int(key: str, default: int) -> int:
    """Get environment variable as integer."""
    try:
        return int(_get_env(key, str(default)))
    except ValueError:
        return default


def _get_env_float(key: str, default: float) -> float:
    """Get environment variable as float."""
    try:
        return float(_get_env(key, str(default)))
    except ValueError:
        return default


def _get_env_bool(key: str, default: bool) -> bool:
    """Get environment variable as boolean."""
    val = _get_env(key, '').lower()
    if val in ('true', '1', 'yes', 'on'):
        return True
    if val in ('false', '0', 'no', 'off'):
        return False
    return default


def _get_env_list(key: str, default: list[str]) -> list[str]:
    """Get a comma separated environment variable as a list."""
    val = _get_env(key, '')
    if not val:
        return list(default)
    return [item.strip() for item in val.split(',') if item.strip()]


# Storage
DATA_DIR = Path(_get_env('DATA_DIR', str(Path(__file__).parent / 'instance')))
LEDGER_DIR = Path(_get_env('LEDGER_DIR', str(DATA_DIR)))
SAFE_LEDGER_FILE = _get_env('SAFE_LEDGER_FILE', 'known.safe.devices.db')
POTENTIAL_LEDGER_FILE = _get_env('POTENTIAL_LEDGER_FILE', 'potential.rogue_devices.db')
ROGUE_LEDGER_FILE = _get_env('ROGUE_LEDGER_FILE', 'known.rogue.devices.db')

# 'ledger' (JSON lines files) or 'table' (SQLite)
REGISTRY_BACKEND = _get_env('REGISTRY_BACKEND', 'ledger')

# Vulnerability lookup service
VULN_LOOKUP_URL = _get_env('VULN_LOOKUP_URL', '')
VULN_LOOKUP_TIMEOUT = _get_env_float('VULN_LOOKUP_TIMEOUT', 10.0)
LOOKUP_WORKERS = _get_env_int('LOOKUP_WORKERS', 4)

# Signal model
REFERENCE_POWER_DBM = _get_env_int('REFERENCE_POWER_DBM', -59)

# Statistics
RECENT_WINDOW_SECONDS = _get_env_int('RECENT_WINDOW_SECONDS', 3600)

# Intake channel (0 = unbounded)
EVENT_QUEUE_SIZE = _get_env_int('EVENT_QUEUE_SIZE', 0)

# Scanner behaviour
SCAN_SERVICES = _get_env_list('SCAN_SERVICES', [])
SCAN_ALLOW_DUPLICATES = _get_env_bool('SCAN_ALLOW_DUPLICATES', True)
SCAN_DURATION = _get_env_float('SCAN_DURATION', 0.0)

# Discovery log and scan exports
DISCOVERY_LOG_ENABLED = _get_env_bool('DISCOVERY_LOG_ENABLED', True)
DISCOVERY_LOG_DIR = Path(_get_env('DISCOVERY_LOG_DIR', str(DATA_DIR / 'logs')))
EXPORT_DIR = Path(_get_env('EXPORT_DIR', str(DATA_DIR / 'exports')))

# Operator recorded on manual flags
DEFAULT_OPERATOR = _get_env('OPERATOR', 'ALPHA-7')

# Logging
LOG_LEVEL = getattr(logging, _get_env('LOG_LEVEL', 'INFO').upper(), logging.INFO)
LOG_FORMAT = '%(asctime)s [%(levelname)s] %(name)s: %(message)s'

# Server
HOST = _get_env('HOST', '0.0.0.0')
PORT = _get_env_int('PORT', 5050)
DEBUG = _get_env_bool('DEBUG', False)

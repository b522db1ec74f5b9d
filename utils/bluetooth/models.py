"""
Bluetooth data models for discovery, registry entries and merged device state.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from data.device_signatures import BLUETOOTH_BASE_UUID_SUFFIX

from .constants import DEVICE_TYPE_UNKNOWN


class ThreatLevel(str, Enum):
    LOW = 'LOW'
    MEDIUM = 'MEDIUM'
    HIGH = 'HIGH'


class Classification(str, Enum):
    SAFE = 'safe'
    KNOWN_ROGUE = 'known_rogue'
    ROGUE = 'rogue'
    POTENTIAL = 'potential'
    UNKNOWN = 'unknown'


def normalize_service_id(service_id: str) -> str:
    """Reduce a service UUID to its lower-case 16-bit code where possible."""
    if not service_id:
        return ''
    value = str(service_id).lower().strip()
    if value.startswith('0x'):
        value = value[2:]
    # Bluetooth Base UUID normalization (16-bit UUIDs)
    if value.endswith(BLUETOOTH_BASE_UUID_SUFFIX) and len(value) >= 8:
        return value[4:8]
    return value


def service_fingerprint(service_ids: list[str]) -> str:
    """Order-independent fingerprint of an advertised service set."""
    codes = sorted({normalize_service_id(s) for s in service_ids if s})
    return ', '.join(codes)


def _parse_bytes(value: Any) -> Optional[bytes]:
    if value is None or value == '':
        return None
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    if isinstance(value, str):
        return bytes.fromhex(value)
    if isinstance(value, (list, tuple)):
        return bytes(value)
    raise ValueError(f'Unsupported manufacturer data: {value!r}')


def _parse_timestamp(value: Any) -> datetime:
    if value is None:
        return datetime.now()
    if isinstance(value, bool):
        raise ValueError(f"Invalid timestamp: {value!r}")
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value)
    if not isinstance(value, datetime):
        value = datetime.fromisoformat(str(value))
    # Live state compares against naive local time
    if value.tzinfo is not None:
        value = value.astimezone().replace(tzinfo=None)
    return value


@dataclass
class DiscoveryEvent:
    """A single advertisement seen by the discovery source."""

    address: str
    rssi: int
    name: Optional[str] = None
    service_ids: list[str] = field(default_factory=list)
    manufacturer_data: Optional[bytes] = None
    connectable: bool = False
    timestamp: datetime = field(default_factory=datetime.now)

    @property
    def fingerprint(self) -> str:
        return service_fingerprint(self.service_ids)

    @classmethod
    def from_dict(cls, data: dict) -> DiscoveryEvent:
        """
        Build an event from the discovery source wire shape.

        Accepts ``{address, name?, rssi, serviceIds[], manufacturerData?,
        connectable}`` plus snake_case spellings.

        Raises:
            ValueError: if the address or rssi is missing, or any field has
                the wrong type.
        """
        if not isinstance(data, dict):
            raise ValueError('Discovery event must be an object')

        address = str(data.get('address') or data.get('mac') or '').strip()
        if not address:
            raise ValueError('Discovery event is missing an address')

        rssi = data.get('rssi')
        if isinstance(rssi, bool) or rssi is None:
            raise ValueError(f'Discovery event for {address} has no rssi')
        try:
            rssi = int(rssi)
        except (TypeError, ValueError):
            raise ValueError(f'Invalid rssi for {address}: {rssi!r}')

        services = data.get('serviceIds', data.get('service_ids', data.get('uuids'))) or []
        if isinstance(services, str):
            services = [s.strip() for s in services.split(',') if s.strip()]

        name = data.get('name')
        if name is not None and not isinstance(name, str):
            raise ValueError(f'Invalid name for {address}: {name!r}')

        connectable = data.get('connectable', False)
        if connectable is None:
            connectable = False
        if not isinstance(connectable, bool):
            raise ValueError(f'Invalid connectable flag for {address}: {connectable!r}')

        try:
            manufacturer_data = _parse_bytes(
                data.get('manufacturerData', data.get('manufacturer_data'))
            )
            timestamp = _parse_timestamp(data.get('timestamp'))
        except (TypeError, ValueError, OverflowError, OSError) as e:
            raise ValueError(f'Invalid discovery event for {address}: {e}')

        return cls(
            address=address,
            rssi=rssi,
            name=name or None,
            service_ids=[str(s) for s in services],
            manufacturer_data=manufacturer_data,
            connectable=connectable,
            timestamp=timestamp,
        )

    def to_dict(self) -> dict:
        return {
            'address': self.address,
            'name': self.name,
            'rssi': self.rssi,
            'service_ids': self.service_ids,
            'manufacturer_data': self.manufacturer_data.hex() if self.manufacturer_data else None,
            'connectable': self.connectable,
            'timestamp': self.timestamp.isoformat(),
        }


@dataclass
class RegistryEntry:
    """One persisted ledger record."""

    address: str
    fingerprint: str = ''
    name: Optional[str] = None

    # Only present on manual flag records
    reason: Optional[str] = None
    operator: Optional[str] = None
    flagged_at: Optional[str] = None

    @property
    def is_flag_record(self) -> bool:
        return self.flagged_at is not None

    @classmethod
    def from_event(cls, event: DiscoveryEvent) -> RegistryEntry:
        return cls(
            address=event.address,
            fingerprint=event.fingerprint,
            name=event.name or 'Unknown',
        )

    @classmethod
    def from_dict(cls, data: dict) -> RegistryEntry:
        """
        Parse a stored record.

        Raises:
            ValueError: if the record is not an object with an address.
        """
        if not isinstance(data, dict) or not data.get('address'):
            raise ValueError('Registry record has no address')
        return cls(
            address=str(data['address']),
            fingerprint=str(data.get('fingerprint') or ''),
            name=data.get('name'),
            reason=data.get('reason'),
            operator=data.get('operator'),
            flagged_at=data.get('flaggedAt'),
        )

    def to_dict(self) -> dict:
        """Serialized form written to the ledgers."""
        data = {
            'address': self.address,
            'name': self.name,
            'fingerprint': self.fingerprint,
        }
        if self.is_flag_record:
            data['reason'] = self.reason
            data['operator'] = self.operator
            data['flaggedAt'] = self.flagged_at
        return data


@dataclass
class DeviceRecord:
    """Merged device state served to collaborators."""

    address: str
    name: Optional[str] = None
    rssi: Optional[int] = None
    distance: Optional[float] = None
    device_type: str = DEVICE_TYPE_UNKNOWN
    threat_level: ThreatLevel = ThreatLevel.LOW
    flagged: bool = False

    first_seen: Optional[datetime] = None
    last_seen: Optional[datetime] = None
    times_seen: int = 0

    service_ids: list[str] = field(default_factory=list)
    connectable: bool = False
    manufacturer_data: Optional[bytes] = None

    classification: Classification = Classification.UNKNOWN
    # 'live' for sightings this session, 'history' for ledger-derived records
    source: str = 'live'
    flag_reason: Optional[str] = None
    flagged_by: Optional[str] = None

    @property
    def fingerprint(self) -> str:
        return service_fingerprint(self.service_ids)

    @property
    def age_seconds(self) -> Optional[float]:
        """Seconds since last seen."""
        if self.last_seen is None:
            return None
        return (datetime.now() - self.last_seen).total_seconds()

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            'address': self.address,
            'name': self.name,
            'rssi': self.rssi,
            'distance': self.distance,
            'device_type': self.device_type,
            'threat_level': self.threat_level.value,
            'flagged': self.flagged,
            'flag_reason': self.flag_reason,
            'flagged_by': self.flagged_by,
            'first_seen': self.first_seen.isoformat() if self.first_seen else None,
            'last_seen': self.last_seen.isoformat() if self.last_seen else None,
            'age_seconds': round(self.age_seconds, 1) if self.age_seconds is not None else None,
            'times_seen': self.times_seen,
            'service_ids': self.service_ids,
            'fingerprint': self.fingerprint,
            'connectable': self.connectable,
            'manufacturer_data': self.manufacturer_data.hex() if self.manufacturer_data else None,
            'classification': self.classification.value,
            'source': self.source,
        }

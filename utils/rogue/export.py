"""Snapshot export of the merged device view."""

from __future__ import annotations

import csv
import io
import json
import time
from datetime import datetime
from pathlib import Path

from utils.bluetooth.models import DeviceRecord
from utils.logging import get_logger

from .context import MonitorContext

logger = get_logger('roguewatch.export')

CSV_COLUMNS = [
    'address', 'name', 'rssi', 'distance', 'device_type', 'threat_level',
    'classification', 'flagged', 'first_seen', 'last_seen', 'times_seen',
    'fingerprint', 'source',
]


def build_snapshot(context: MonitorContext) -> dict:
    devices = context.live_state.list_devices()
    return {
        'timestamp': datetime.now().isoformat(),
        'operator': context.operator,
        'statistics': context.statistics.compute(),
        'devices': [d.to_dict() for d in devices],
        'flaggedCount': sum(1 for d in devices if d.flagged),
    }


def write_snapshot(snapshot: dict, directory: Path | str) -> Path:
    """Write a snapshot to ``scan-<epoch ms>.json`` and return its path."""
    directory = Path(directory)
    directory.mkdir(parents=True, exist_ok=True)
    output_path = directory / f"scan-{int(time.time() * 1000)}.json"
    output_path.write_text(json.dumps(snapshot, indent=2), encoding='utf-8')
    logger.info(f"Data exported to {output_path}")
    return output_path


def devices_to_csv(devices: list[DeviceRecord]) -> str:
    output = io.StringIO()
    writer = csv.writer(output)
    writer.writerow(CSV_COLUMNS)

    for device in devices:
        row = device.to_dict()
        writer.writerow(['' if row[col] is None else row[col] for col in CSV_COLUMNS])

    return output.getvalue()

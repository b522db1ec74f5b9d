"""Per-discovery classification log written as dated JSON-lines files."""

from __future__ import annotations

import json
import threading
from datetime import datetime
from pathlib import Path

from utils.logging import get_logger

from .pipeline import ClassificationResult

logger = get_logger('roguewatch.discovery_log')

LOG_PREFIX = 'discoveries_'


class DiscoveryLog:
    """Appends every classification result to ``discoveries_<date>.jsonl``."""

    def __init__(self, directory: Path | str):
        self.directory = Path(directory)
        self._lock = threading.Lock()

    def path_for(self, day: datetime) -> Path:
        return self.directory / f"{LOG_PREFIX}{day.strftime('%Y%m%d')}.jsonl"

    def record(self, result: ClassificationResult) -> None:
        device = result.record
        entry = {
            'timestamp': result.timestamp.isoformat(),
            'address': result.address,
            'name': device.name or 'Unknown',
            'rssi': device.rssi,
            'uuids': device.service_ids,
            'classification': result.classification.value,
        }
        line = json.dumps(entry, ensure_ascii=True) + '\n'
        try:
            with self._lock:
                self.directory.mkdir(parents=True, exist_ok=True)
                with self.path_for(result.timestamp).open('a', encoding='utf-8') as f:
                    f.write(line)
        except OSError as e:
            logger.debug(f"Discovery log write failed: {e}")


def export_discovery_logs(directory: Path | str) -> list[dict]:
    """Collect every logged discovery, oldest file first."""
    directory = Path(directory)
    if not directory.is_dir():
        return []

    entries = []
    for path in sorted(directory.glob(f'{LOG_PREFIX}*.jsonl')):
        try:
            content = path.read_text(encoding='utf-8')
        except OSError as e:
            logger.error(f"Skipping {path.name}: {e}")
            continue
        for line in content.splitlines():
            if not line.strip():
                continue
            try:
                entries.append(json.loads(line))
            except json.JSONDecodeError:
                logger.debug(f"Skipping unreadable line in {path.name}")
    return entries

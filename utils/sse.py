"""Server-Sent Events helpers."""

from __future__ import annotations

import json
from typing import Any


def format_sse(data: dict[str, Any] | str, event: str | None = None) -> str:
    """Format data as an SSE message."""
    if isinstance(data, dict):
        data = json.dumps(data, default=str)
    lines = []
    if event:
        lines.append(f'event: {event}')
    for line in str(data).splitlines() or ['']:
        lines.append(f'data: {line}')
    return '\n'.join(lines) + '\n\n'

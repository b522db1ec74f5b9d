"""
RogueWatch - BLE rogue device monitor.

Flask application: health check plus the device API blueprint.
"""

from __future__ import annotations

import time

from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException

import config
from routes import register_blueprints
from utils.logging import get_logger
from utils.rogue import get_monitor

logger = get_logger('roguewatch.app')

_started_at = time.time()

app = Flask(__name__)
register_blueprints(app)


@app.errorhandler(Exception)
def handle_unexpected_error(e):
    if isinstance(e, HTTPException):
        return jsonify({'status': 'error', 'message': e.description}), e.code
    logger.exception(f"Unhandled error: {e}")
    return jsonify({'status': 'error', 'message': 'Internal server error'}), 500


@app.route('/health')
def health_check():
    """Liveness plus a summary of the monitor state."""
    monitor = get_monitor()
    status = monitor.get_status()
    return jsonify({
        'status': 'healthy',
        'version': config.VERSION,
        'uptime_seconds': round(time.time() - _started_at, 1),
        'processes': {
            'scanner': status['scanner']['is_scanning'],
            'pipeline': status['pipeline']['running'],
        },
        'data': {
            'devices': len(monitor.list_devices()),
            'write_failures': status['pipeline']['counters']['write_failures'],
        },
    })


def main(host: str | None = None, port: int | None = None, debug: bool | None = None) -> None:
    host = host or config.HOST
    port = port or config.PORT

    print("=" * 50)
    print("  ROGUEWATCH // BLE Rogue Device Monitor")
    print("=" * 50)
    print()
    print(f"Open http://localhost:{port} in your browser")
    print()
    print("Press Ctrl+C to stop")
    print()

    monitor = get_monitor()
    monitor.pipeline.start()
    try:
        app.run(host=host, port=port, debug=config.DEBUG if debug is None else debug, threaded=True)
    finally:
        monitor.shutdown()


if __name__ == '__main__':
    main()

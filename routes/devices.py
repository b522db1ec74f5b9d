"""
Rogue device monitor API.

REST endpoints for ingesting discovery events, querying the merged device
view, manual flagging, exports and scanner control, plus an SSE stream of
classification results.
"""

from __future__ import annotations

import json
from datetime import datetime
from typing import Generator

from flask import Blueprint, Response, jsonify, request

from utils.bluetooth.models import DiscoveryEvent
from utils.logging import get_logger
from utils.registry import LedgerWriteError
from utils.rogue import devices_to_csv, get_monitor
from utils.sse import format_sse

logger = get_logger('roguewatch.routes.devices')

devices_bp = Blueprint('devices', __name__, url_prefix='/api/devices')


# =============================================================================
# DEVICE QUERIES
# =============================================================================


@devices_bp.route('', methods=['GET'])
def list_devices():
    """
    List live and previously classified devices, strongest signal first.

    Query parameters:
        - classification: Only devices with this classification
        - flagged: 'true' to return flagged devices only
    """
    devices = get_monitor().list_devices()

    classification = request.args.get('classification')
    if classification:
        devices = [d for d in devices if d.classification.value == classification]
    if request.args.get('flagged', '').lower() in ('1', 'true', 'yes'):
        devices = [d for d in devices if d.flagged]

    return jsonify({
        'status': 'success',
        'count': len(devices),
        'devices': [d.to_dict() for d in devices],
    })


@devices_bp.route('/<address>', methods=['GET'])
def get_device(address: str):
    device = get_monitor().get_device(address)
    if device is None:
        return jsonify({'status': 'error', 'message': 'Device not found'}), 404
    return jsonify({'status': 'success', 'device': device.to_dict()})


@devices_bp.route('/flagged', methods=['GET'])
def list_flagged():
    flagged = get_monitor().flagged_devices()
    return jsonify({'status': 'success', 'count': len(flagged), 'flagged': flagged})


@devices_bp.route('/statistics', methods=['GET'])
def get_statistics():
    return jsonify({'status': 'success', 'statistics': get_monitor().statistics()})


# =============================================================================
# EVENT INTAKE
# =============================================================================


@devices_bp.route('/events', methods=['POST'])
def ingest_events():
    """
    Ingest one discovery event or a list of them.

    Events whose address the registry already knows are classified before
    the response is sent; new devices report 'pending' until the
    vulnerability lookup finishes and are announced on the stream.
    """
    data = request.get_json(silent=True)
    if data is None:
        return jsonify({'status': 'error', 'message': 'Request body must be JSON'}), 400

    raw_events = data if isinstance(data, list) else [data]
    try:
        events = [DiscoveryEvent.from_dict(item) for item in raw_events]
    except ValueError as e:
        return jsonify({'status': 'error', 'message': str(e)}), 400

    monitor = get_monitor()
    results = []
    for event in events:
        future = monitor.ingest(event)
        if future is None:
            results.append({'address': event.address, 'status': 'skipped'})
        elif future.done() and not future.cancelled() and future.exception() is None:
            result = future.result()
            results.append({
                'address': event.address,
                'status': 'classified',
                'classification': result.classification.value,
            })
        else:
            results.append({'address': event.address, 'status': 'pending'})

    return jsonify({'status': 'success', 'accepted': len(events), 'results': results})


# =============================================================================
# MANUAL FLAGGING
# =============================================================================


@devices_bp.route('/<address>/flag', methods=['POST'])
def flag_device(address: str):
    """
    Flag a device as rogue.

    Request JSON:
        - reason: Why the device was flagged (required)
        - operator: Who flagged it (defaults to the configured operator)
    """
    data = request.get_json(silent=True) or {}
    reason = str(data.get('reason') or '').strip()
    if not reason:
        return jsonify({'status': 'error', 'message': 'reason is required'}), 400

    try:
        device = get_monitor().flag(address, reason, data.get('operator'))
    except LedgerWriteError as e:
        logger.error(f"Flag for {address} not persisted: {e}")
        return jsonify({'status': 'error', 'message': str(e)}), 500

    return jsonify({'status': 'success', 'device': device.to_dict() if device else None})


@devices_bp.route('/<address>/unflag', methods=['POST'])
def unflag_device(address: str):
    device = get_monitor().unflag(address)
    if device is None:
        return jsonify({'status': 'error', 'message': 'Device not found'}), 404
    return jsonify({'status': 'success', 'device': device.to_dict()})


# =============================================================================
# EXPORT / CLEAR
# =============================================================================


@devices_bp.route('/export', methods=['GET'])
def export_devices():
    """
    Export the device list.

    Query parameters:
        - format: Export format ('json', 'csv')
    """
    export_format = request.args.get('format', 'json').lower()
    monitor = get_monitor()
    stamp = datetime.now().strftime('%Y%m%d_%H%M%S')

    if export_format == 'csv':
        return Response(
            devices_to_csv(monitor.list_devices()),
            mimetype='text/csv',
            headers={'Content-Disposition': f'attachment; filename=roguewatch_devices_{stamp}.csv'},
        )
    if export_format != 'json':
        return jsonify({'status': 'error', 'message': f'Unsupported format: {export_format}'}), 400

    return Response(
        json.dumps(monitor.snapshot(), indent=2),
        mimetype='application/json',
        headers={'Content-Disposition': f'attachment; filename=roguewatch_devices_{stamp}.json'},
    )


@devices_bp.route('/export', methods=['POST'])
def write_export():
    """Write a snapshot of the device view to the export directory."""
    try:
        path = get_monitor().export()
    except OSError as e:
        logger.error(f"Export failed: {e}")
        return jsonify({'status': 'error', 'message': str(e)}), 500
    return jsonify({'status': 'success', 'path': str(path)})


@devices_bp.route('/clear', methods=['POST'])
def clear_devices():
    """Forget live sightings. Ledgers are not touched."""
    cleared = get_monitor().clear()
    return jsonify({'status': 'success', 'cleared': cleared})


# =============================================================================
# SCANNER CONTROL
# =============================================================================


@devices_bp.route('/scan/start', methods=['POST'])
def start_scan():
    """
    Start BLE discovery.

    Request JSON:
        - duration_s: Scan duration in seconds (optional, 0 scans until stopped)
    """
    data = request.get_json(silent=True) or {}
    duration = data.get('duration_s')
    if duration is not None:
        try:
            duration = float(duration)
        except (TypeError, ValueError):
            return jsonify({'status': 'error', 'message': 'duration_s must be a number'}), 400

    monitor = get_monitor()
    if monitor.start_scan(duration):
        return jsonify({'status': 'started', 'scan_status': monitor.get_status()})

    status = monitor.get_status()
    return jsonify({
        'status': 'error',
        'message': status['scanner']['error'] or 'Failed to start scan',
    }), 500


@devices_bp.route('/scan/stop', methods=['POST'])
def stop_scan():
    get_monitor().stop_scan()
    return jsonify({'status': 'stopped'})


@devices_bp.route('/scan/status', methods=['GET'])
def get_scan_status():
    return jsonify({'status': 'success', 'scan_status': get_monitor().get_status()})


# =============================================================================
# STREAM
# =============================================================================


@devices_bp.route('/stream', methods=['GET'])
def stream_classifications() -> Response:
    """SSE stream of classification results."""
    monitor = get_monitor()

    def generate() -> Generator[str, None, None]:
        for event in monitor.stream_events(timeout=1.0):
            yield format_sse(event, event=event.get('type'))

    response = Response(generate(), mimetype='text/event-stream')
    response.headers['Cache-Control'] = 'no-cache'
    response.headers['X-Accel-Buffering'] = 'no'
    response.headers['Connection'] = 'keep-alive'
    return response

"""Tests for Flask routes and API endpoints."""

import json
from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

import pytest

from utils.registry import LEDGER_ROGUE, LEDGER_SAFE, LedgerWriteError


def post_json(client, url, payload):
    return client.post(url, data=json.dumps(payload), content_type='application/json')


class TestHealthEndpoint:
    """Tests for health check endpoint."""

    def test_health_check(self, client):
        """Test health endpoint returns expected data."""
        response = client.get('/health')
        assert response.status_code == 200

        data = json.loads(response.data)
        assert data['status'] == 'healthy'
        assert 'version' in data
        assert 'uptime_seconds' in data
        assert data['processes']['scanner'] is False
        assert data['data']['devices'] == 0


class TestDeviceQueries:
    """Tests for device listing and lookup."""

    def test_list_empty(self, client):
        """No devices yet."""
        data = client.get('/api/devices').get_json()
        assert data['status'] == 'success'
        assert data['count'] == 0

    def test_list_sorted_and_filtered(self, client, monitor, seed):
        """Devices come back strongest first and can be filtered."""
        seed(LEDGER_SAFE, 'AA:01')
        post_json(client, '/api/devices/events', [
            {'address': 'AA:01', 'rssi': -80, 'name': 'Desk Phone'},
            {'address': 'AA:02', 'rssi': -50, 'name': 'Watch'},
        ])
        monitor.pipeline.wait_idle(timeout=5)

        data = client.get('/api/devices').get_json()
        assert [d['address'] for d in data['devices']] == ['AA:02', 'AA:01']

        safe = client.get('/api/devices?classification=safe').get_json()
        assert [d['address'] for d in safe['devices']] == ['AA:01']

    def test_get_device(self, client):
        """A single device by address."""
        post_json(client, '/api/devices/events', {'address': 'AA:03', 'rssi': -70})
        data = client.get('/api/devices/AA:03').get_json()
        assert data['device']['address'] == 'AA:03'
        assert data['device']['times_seen'] == 1

    def test_get_device_not_found(self, client):
        """Unknown addresses are 404."""
        response = client.get('/api/devices/FF:FF')
        assert response.status_code == 404
        assert response.get_json()['status'] == 'error'


class TestEventIntake:
    """Tests for posting discovery events."""

    def test_known_device_classified_inline(self, client, seed):
        """Registry hits are classified in the response."""
        seed(LEDGER_ROGUE, 'AA:10')
        data = post_json(client, '/api/devices/events', {
            'address': 'AA:10', 'rssi': -55, 'serviceIds': ['180f'], 'connectable': True,
        }).get_json()

        assert data['accepted'] == 1
        assert data['results'][0]['status'] == 'classified'
        assert data['results'][0]['classification'] == 'known_rogue'

    def test_new_device_looked_up(self, client, monitor, lookup):
        """New devices are looked up in the background."""
        response = post_json(client, '/api/devices/events', {'address': 'AA:11', 'rssi': -60})
        assert response.status_code == 200
        assert monitor.pipeline.wait_idle(timeout=5)

        assert lookup.calls == ['AA:11']
        device = client.get('/api/devices/AA:11').get_json()['device']
        assert device['classification'] == 'potential'

    def test_missing_rssi(self, client):
        """Events without rssi are rejected."""
        response = post_json(client, '/api/devices/events', {'address': 'AA:12'})
        assert response.status_code == 400
        assert 'rssi' in response.get_json()['message']

    def test_missing_address(self, client):
        """Events without an address are rejected."""
        response = post_json(client, '/api/devices/events', [{'address': 'AA:13', 'rssi': -40}, {'rssi': -40}])
        assert response.status_code == 400

    def test_not_json(self, client):
        """Non-JSON bodies are rejected."""
        response = client.post('/api/devices/events', data='hello', content_type='text/plain')
        assert response.status_code == 400

    def test_timezone_aware_timestamp(self, client):
        """Offset timestamps are accepted and the device stays listable."""
        stamp = datetime.now(timezone.utc).isoformat()
        response = post_json(client, '/api/devices/events', {'address': 'AA:14', 'rssi': -60, 'timestamp': stamp})
        assert response.status_code == 200

        listing = client.get('/api/devices')
        assert listing.status_code == 200
        assert listing.get_json()['devices'][0]['address'] == 'AA:14'

        stats = client.get('/api/devices/statistics')
        assert stats.status_code == 200
        assert stats.get_json()['statistics']['recentlySeen'] == 1

    @pytest.mark.parametrize('field,value', [('name', 123), ('connectable', 'false')])
    def test_wrong_field_type(self, client, field, value):
        """Fields of the wrong type are rejected."""
        response = post_json(client, '/api/devices/events', {'address': 'AA:15', 'rssi': -60, field: value})
        assert response.status_code == 400
        assert field in response.get_json()['message']


class TestFlagging:
    """Tests for flag and unflag endpoints."""

    def test_flag_and_list(self, client):
        """Flagged devices appear in /flagged with the operator."""
        post_json(client, '/api/devices/events', {'address': 'AA:20', 'rssi': -70, 'name': 'Car Audio'})
        response = post_json(client, '/api/devices/AA:20/flag', {'reason': 'followed convoy'})

        assert response.status_code == 200
        device = response.get_json()['device']
        assert device['flagged'] is True
        assert device['threat_level'] == 'HIGH'
        assert device['flagged_by'] == 'TEST-OP'

        flagged = client.get('/api/devices/flagged').get_json()['flagged']
        assert flagged[0]['address'] == 'AA:20'
        assert flagged[0]['reason'] == 'followed convoy'

    def test_flag_with_operator(self, client):
        """An explicit operator is recorded."""
        response = post_json(client, '/api/devices/AA:21/flag', {'reason': 'r', 'operator': 'BRAVO-2'})
        assert response.get_json()['device']['flagged_by'] == 'BRAVO-2'

    def test_flag_requires_reason(self, client):
        """A reason is mandatory."""
        response = post_json(client, '/api/devices/AA:20/flag', {})
        assert response.status_code == 400

    def test_flag_write_failure(self, client, registry):
        """A flag that cannot be persisted is a 500."""
        with patch.object(registry, 'append', side_effect=LedgerWriteError(LEDGER_ROGUE, 'disk full')):
            response = post_json(client, '/api/devices/AA:22/flag', {'reason': 'r'})
        assert response.status_code == 500
        assert 'disk full' in response.get_json()['message']

    def test_unflag(self, client):
        """Unflag clears the flag."""
        post_json(client, '/api/devices/events', {'address': 'AA:23', 'rssi': -70, 'name': 'Car Audio'})
        post_json(client, '/api/devices/AA:23/flag', {'reason': 'r'})
        device = client.post('/api/devices/AA:23/unflag').get_json()['device']
        assert device['flagged'] is False

    def test_unflag_unknown(self, client):
        """Unflagging an unknown address is 404."""
        assert client.post('/api/devices/FF:FF/unflag').status_code == 404


class TestStatisticsAndExport:
    """Tests for statistics, export and clear."""

    def test_statistics(self, client):
        """Statistics reflect posted events."""
        post_json(client, '/api/devices/events', {'address': 'AA:30', 'rssi': -40, 'connectable': True})
        stats = client.get('/api/devices/statistics').get_json()['statistics']
        assert stats['total'] == 1
        assert stats['critical'] == 1
        assert stats['recentlySeen'] == 1

    def test_export_json(self, client):
        """JSON export is the snapshot."""
        post_json(client, '/api/devices/events', {'address': 'AA:31', 'rssi': -60})
        response = client.get('/api/devices/export?format=json')
        assert response.mimetype == 'application/json'
        data = json.loads(response.data)
        assert data['operator'] == 'TEST-OP'
        assert data['devices'][0]['address'] == 'AA:31'
        assert 'flaggedCount' in data

    def test_export_csv(self, client):
        """CSV export has a header row."""
        post_json(client, '/api/devices/events', {'address': 'AA:32', 'rssi': -60})
        response = client.get('/api/devices/export?format=csv')
        assert response.mimetype == 'text/csv'
        lines = response.data.decode('utf-8').splitlines()
        assert lines[0].startswith('address,name,rssi')
        assert lines[1].startswith('AA:32')

    def test_export_bad_format(self, client):
        """Unknown formats are rejected."""
        assert client.get('/api/devices/export?format=xml').status_code == 400

    def test_export_to_disk(self, client, tmp_path):
        """POST export writes a scan file."""
        with patch('config.EXPORT_DIR', tmp_path):
            data = client.post('/api/devices/export').get_json()
        assert data['status'] == 'success'
        assert data['path'].startswith(str(tmp_path))

    def test_clear(self, client, monitor):
        """Clear forgets live devices; ledger history remains."""
        post_json(client, '/api/devices/events', {'address': 'AA:33', 'rssi': -60})
        monitor.pipeline.wait_idle(timeout=5)

        assert client.post('/api/devices/clear').get_json()['cleared'] == 1
        device = client.get('/api/devices/AA:33').get_json()['device']
        assert device['source'] == 'history'
        assert device['classification'] == 'potential'


class TestScanControl:
    """Tests for scanner control endpoints."""

    @pytest.fixture
    def fake_source(self):
        with patch('utils.rogue.monitor.BleakDiscoverySource') as source_cls:
            source = MagicMock()
            source.is_scanning = False
            source.get_status.return_value = {
                'is_scanning': True,
                'backend': 'bleak',
                'started_at': None,
                'events_emitted': 0,
                'error': None,
            }
            source_cls.return_value = source
            yield source

    def test_start_scan(self, client, fake_source):
        """Scanning starts with the requested duration."""
        fake_source.start.return_value = True
        response = post_json(client, '/api/devices/scan/start', {'duration_s': 5})

        assert response.get_json()['status'] == 'started'
        fake_source.start.assert_called_once_with(5.0)

    def test_start_scan_failure(self, client, fake_source):
        """A missing backend is reported, not raised."""
        fake_source.start.return_value = False
        fake_source.get_status.return_value = {
            'is_scanning': False,
            'backend': 'bleak',
            'started_at': None,
            'events_emitted': 0,
            'error': 'bleak library not installed',
        }
        response = post_json(client, '/api/devices/scan/start', {})

        assert response.status_code == 500
        assert response.get_json()['message'] == 'bleak library not installed'

    def test_invalid_duration(self, client):
        """Non-numeric durations are rejected."""
        response = post_json(client, '/api/devices/scan/start', {'duration_s': 'soon'})
        assert response.status_code == 400

    def test_stop_and_status(self, client):
        """Stop is idempotent and status reports the pipeline."""
        assert client.post('/api/devices/scan/stop').get_json()['status'] == 'stopped'
        status = client.get('/api/devices/scan/status').get_json()['scan_status']
        assert status['scanner']['is_scanning'] is False
        assert 'write_failures' in status['pipeline']['counters']


class TestStream:
    """Tests for the classification stream."""

    def test_stream_yields_results(self, monitor, seed):
        """Results are queued for SSE clients."""
        from conftest import make_event

        seed(LEDGER_SAFE, 'AA:40')
        monitor.ingest(make_event('AA:40'))

        events = monitor.stream_events(timeout=0.05)
        first = next(events)
        assert first['type'] == 'classification'
        assert first['address'] == 'AA:40'
        assert next(events) == {'type': 'keepalive'}

    def test_stream_endpoint(self, client):
        """The endpoint answers with an event stream."""
        response = client.get('/api/devices/stream')
        assert response.mimetype == 'text/event-stream'
        assert response.headers['Cache-Control'] == 'no-cache'
        response.close()

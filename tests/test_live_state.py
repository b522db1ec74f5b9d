"""Tests for live state merging, flagging and statistics."""

from datetime import datetime, timedelta

import pytest

from conftest import make_event
from utils.bluetooth.models import Classification, ThreatLevel
from utils.registry import LEDGER_POTENTIAL, LEDGER_ROGUE, LEDGER_SAFE, LedgerWriteError
from utils.rogue.live_state import LiveStateMerger
from utils.rogue.pipeline import build_candidate
from utils.rogue.statistics import StatisticsAggregator


@pytest.fixture
def live_state(context):
    return context.live_state


def sight(live_state, address='AA:01', **kwargs):
    return live_state.record_sighting(build_candidate(make_event(address, **kwargs)))


class TestRecordSighting:
    """Tests for folding sightings into the live map."""

    def test_new_address(self, live_state):
        """First sighting inserts with times_seen of one."""
        record = sight(live_state, rssi=-70)
        assert record.times_seen == 1
        assert record.rssi == -70
        assert record.source == 'live'

    def test_repeat_sighting_updates(self, live_state):
        """Later sightings update signal and count, keep first_seen."""
        start = datetime.now() - timedelta(minutes=2)
        first = sight(live_state, rssi=-80, timestamp=start)
        second = sight(live_state, rssi=-45, timestamp=start + timedelta(minutes=1))

        assert second.times_seen == 2
        assert second.rssi == -45
        assert second.first_seen == first.first_seen
        assert second.last_seen == start + timedelta(minutes=1)

    def test_missing_name_keeps_previous(self, live_state):
        """A sighting without a name does not erase a known name."""
        sight(live_state, name='Fitbit Charge')
        record = sight(live_state, name=None)
        assert record.name == 'Fitbit Charge'

    def test_threat_recomputed(self, live_state):
        """Threat follows the latest signal."""
        weak = sight(live_state, name=None, rssi=-80, service_ids=['fe95'])
        strong = sight(live_state, name=None, rssi=-40, service_ids=['fe95'])
        assert weak.threat_level == ThreatLevel.LOW
        assert strong.threat_level == ThreatLevel.MEDIUM

    def test_returned_record_is_a_copy(self, live_state):
        """Callers cannot mutate the live map."""
        record = sight(live_state)
        record.rssi = 0
        assert live_state.get_device('AA:01').rssi == -60

    def test_clear_keeps_ledgers(self, live_state, seed):
        """clear drops sightings; history stays visible."""
        seed(LEDGER_SAFE, 'AA:02')
        sight(live_state, 'AA:01')

        assert live_state.clear() == 1
        devices = live_state.list_devices()
        assert [d.address for d in devices] == ['AA:02']
        assert devices[0].source == 'history'


class TestListDevices:
    """Tests for the merged device view."""

    def test_sorted_by_rssi(self, live_state):
        """Strongest signal first."""
        sight(live_state, 'AA:01', rssi=-90)
        sight(live_state, 'AA:02', rssi=-40)
        sight(live_state, 'AA:03', rssi=-65)
        assert [d.address for d in live_state.list_devices()] == ['AA:02', 'AA:03', 'AA:01']

    def test_history_sorts_last(self, live_state, seed):
        """Ledger-only devices have no rssi and come after live ones."""
        seed(LEDGER_POTENTIAL, 'AA:09')
        sight(live_state, 'AA:01', rssi=-95)
        assert [d.address for d in live_state.list_devices()] == ['AA:01', 'AA:09']

    def test_live_wins_over_history(self, live_state, seed):
        """One record per address, live data preferred."""
        seed(LEDGER_SAFE, 'AA:01', name='Ledger name')
        sight(live_state, 'AA:01', name='Live name')

        devices = live_state.list_devices()
        assert len(devices) == 1
        assert devices[0].name == 'Live name'
        assert devices[0].source == 'live'

    def test_history_classification_precedence(self, live_state, seed):
        """Safe history wins over potential history."""
        seed(LEDGER_POTENTIAL, 'AA:05')
        seed(LEDGER_SAFE, 'AA:05')
        assert live_state.get_device('AA:05').classification == Classification.SAFE

    def test_history_restores_services(self, live_state, seed):
        """Fingerprints are expanded back into service codes."""
        seed(LEDGER_ROGUE, 'AA:06', fingerprint='180d, 180f')
        record = live_state.get_device('AA:06')
        assert record.service_ids == ['180d', '180f']
        assert record.classification == Classification.KNOWN_ROGUE


class TestFlagging:
    """Tests for manual flag and unflag."""

    def test_flag_live_device(self, live_state, registry):
        """Flagging sets HIGH threat and writes a flag record."""
        sight(live_state, name='Kitchen Speaker', rssi=-80, service_ids=['110b'])
        record = live_state.flag('AA:01', 'seen in three rooms', 'ALPHA-7')

        assert record.flagged
        assert record.threat_level == ThreatLevel.HIGH
        assert record.flag_reason == 'seen in three rooms'
        assert record.flagged_by == 'ALPHA-7'

        entry = registry.find_by_address(LEDGER_ROGUE, 'AA:01')
        assert entry.is_flag_record
        assert entry.reason == 'seen in three rooms'
        assert entry.fingerprint == '110b'

    def test_flag_survives_new_sighting(self, live_state):
        """A flagged device stays HIGH when seen again."""
        sight(live_state, name='Kitchen Speaker', rssi=-80, service_ids=['110b'])
        live_state.flag('AA:01', 'reason', 'OP')
        record = sight(live_state, name='Kitchen Speaker', rssi=-85, service_ids=['110b'])
        assert record.flagged
        assert record.threat_level == ThreatLevel.HIGH

    def test_flag_unseen_address(self, live_state, registry):
        """Flagging an address never seen live creates history flag state."""
        record = live_state.flag('FF:01', 'reported by guard', 'OP')

        assert record.flagged
        assert record.source == 'history'
        assert registry.find_by_address(LEDGER_ROGUE, 'FF:01').is_flag_record

    def test_unflag_recomputes_threat(self, live_state, registry):
        """Unflag restores the scored threat level; the ledger keeps the record."""
        sight(live_state, name='Kitchen Speaker', rssi=-80, service_ids=['110b'])
        live_state.flag('AA:01', 'reason', 'OP')
        record = live_state.unflag('AA:01')

        assert not record.flagged
        assert record.flag_reason is None
        assert record.threat_level == ThreatLevel.LOW
        assert registry.find_by_address(LEDGER_ROGUE, 'AA:01') is not None

    def test_unflag_unknown_address(self, live_state):
        """Unflagging something never seen returns None."""
        assert live_state.unflag('FF:FF') is None

    def test_flag_persists_across_restart(self, registry):
        """A new merger over the same ledgers sees the flag."""
        LiveStateMerger(registry).flag('AA:07', 'tailing', 'OP')

        restarted = LiveStateMerger(registry)
        assert restarted.get_device('AA:07').flagged
        record = restarted.record_sighting(build_candidate(make_event('AA:07', rssi=-70)))
        assert record.flagged
        assert record.flagged_by == 'OP'

    def test_flagged_devices(self, live_state):
        """Flag records are listed with their active state."""
        live_state.flag('AA:01', 'one', 'OP')
        live_state.flag('AA:02', 'two', 'OP')
        live_state.unflag('AA:02')

        flagged = {f['address']: f for f in live_state.flagged_devices()}
        assert flagged['AA:01']['reason'] == 'one'
        assert flagged['AA:01']['active'] is True
        assert flagged['AA:02']['active'] is False
        assert 'flaggedAt' in flagged['AA:01']

    def test_flag_write_failure_raises(self, live_state, registry):
        """A flag that cannot be persisted raises and leaves the device unflagged."""
        sight(live_state)
        before = live_state.get_device('AA:01').threat_level
        with pytest.raises(LedgerWriteError):
            with pytest.MonkeyPatch.context() as mp:
                mp.setattr(registry, 'append', _failing_append)
                live_state.flag('AA:01', 'reason', 'OP')

        record = live_state.get_device('AA:01')
        assert record.flagged is False
        assert record.flag_reason is None
        assert record.threat_level == before


def _failing_append(ledger, entry):
    raise LedgerWriteError(ledger, 'read-only filesystem')


class TestStatistics:
    """Tests for the statistics aggregator."""

    def test_empty(self, context):
        """No devices, all zero."""
        stats = context.statistics.compute()
        assert stats['total'] == 0
        assert stats['flagged'] == 0
        assert stats['critical'] == 0
        assert stats['recentlySeen'] == 0
        assert stats['classifications']['safe'] == 0

    def test_counts(self, context, seed):
        """Totals, flags, critical and recent counts."""
        live_state = context.live_state
        now = datetime.now()
        seed(LEDGER_SAFE, 'AA:09')

        sight(live_state, 'AA:01', name=None, rssi=-40, connectable=True, timestamp=now)
        sight(live_state, 'AA:02', name='iPhone', rssi=-70, service_ids=['180f'],
              timestamp=now - timedelta(hours=2))
        sight(live_state, 'AA:03', name='Pixel Watch', rssi=-60, service_ids=['180d'],
              timestamp=now - timedelta(minutes=10))
        live_state.flag('AA:03', 'reason', 'OP')

        stats = context.statistics.compute(now=now)
        assert stats['total'] == 4
        assert stats['flagged'] == 1
        # AA:01 scores 65, AA:03 is flagged
        assert stats['critical'] == 2
        # AA:01 and AA:03; AA:02 is two hours old, AA:09 was never seen live
        assert stats['recentlySeen'] == 2
        assert stats['classifications']['safe'] == 1
        assert stats['classifications']['unknown'] == 3

    def test_window_is_configurable(self, context):
        """A shorter window drops older sightings."""
        now = datetime.now()
        sight(context.live_state, 'AA:01', timestamp=now - timedelta(minutes=10))

        aggregator = StatisticsAggregator(context.live_state, recent_window_seconds=60)
        assert aggregator.compute(now=now)['recentlySeen'] == 0
        assert context.statistics.compute(now=now)['recentlySeen'] == 1

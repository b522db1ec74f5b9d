"""Shared fixtures for RogueWatch tests."""

import threading

import pytest

from utils.bluetooth.models import DiscoveryEvent, RegistryEntry
from utils.registry import create_registry_store
from utils.rogue.context import create_monitor_context
from utils.rogue.vulnerability import VulnerabilityLookup, VulnerabilityLookupError


class FakeLookup(VulnerabilityLookup):
    """Scripted vulnerability lookup that records every call."""

    def __init__(self, findings=None, failing=(), gate=None):
        self.findings = findings or {}
        self.failing = set(failing)
        self.gate = gate
        self.calls = []
        self._lock = threading.Lock()

    def lookup(self, address):
        with self._lock:
            self.calls.append(address)
        if self.gate is not None:
            self.gate.wait(timeout=5)
        if address in self.failing:
            raise VulnerabilityLookupError(f'service unavailable for {address}')
        return list(self.findings.get(address, []))


def make_event(address='AA:BB:CC:DD:EE:01', rssi=-60, name='Test Device', **kwargs):
    return DiscoveryEvent(address=address, rssi=rssi, name=name, **kwargs)


@pytest.fixture
def ledger_dir(tmp_path):
    return tmp_path / 'ledgers'


@pytest.fixture
def registry(ledger_dir):
    return create_registry_store('ledger', ledger_dir)


@pytest.fixture
def context(registry):
    return create_monitor_context(registry=registry, operator='TEST-OP')


@pytest.fixture
def lookup():
    return FakeLookup()


@pytest.fixture
def seed(registry):
    """Append a plain entry to a ledger."""
    def _seed(ledger, address, name='Seeded', fingerprint=''):
        registry.append(ledger, RegistryEntry(address=address, name=name, fingerprint=fingerprint))
    return _seed


@pytest.fixture
def monitor(context, lookup):
    from utils.rogue.monitor import RogueMonitor, set_monitor

    rogue_monitor = RogueMonitor(context, lookup, max_workers=2)
    set_monitor(rogue_monitor)
    yield rogue_monitor
    set_monitor(None)


@pytest.fixture
def app(monitor):
    """Flask app wired to the per-test monitor."""
    import app as app_module

    app_module.app.config['TESTING'] = True
    return app_module.app


@pytest.fixture
def client(app):
    return app.test_client()

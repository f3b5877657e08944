"""
Health monitor state machine, listeners and polling loop.
"""

import threading
import time

import pytest

from schemabridge.core.errors import ServerError
from schemabridge.core.health import HealthMonitor
from schemabridge.core.schema import ONLINE, DEGRADED, OFFLINE, DUMMY


class ScriptedProbe:
    """Probe whose outcome the test flips."""

    def __init__(self, up=True):
        self.up = up
        self.calls = 0

    def __call__(self):
        self.calls += 1
        if not self.up:
            raise ServerError("probe failed", reason=ServerError.UNREACHABLE)


@pytest.fixture
def probe():
    return ScriptedProbe()


class TestStateMachine:
    """online -> degraded -> offline -> online transitions."""

    def test_initial_state_reported_before_first_probe(self, probe):
        monitor = HealthMonitor(probe, interval_sec=60, failure_threshold=3, dummy=False)
        assert monitor.current_state() == OFFLINE
        assert probe.calls == 0

    def test_invalid_initial_state(self, probe):
        with pytest.raises(ValueError):
            HealthMonitor(probe, dummy=False, initial_state=DUMMY)

    def test_success_goes_online(self, probe):
        monitor = HealthMonitor(probe, interval_sec=60, failure_threshold=3, dummy=False)

        assert monitor.probe() == ONLINE
        assert monitor.snapshot().consecutive_failures == 0
        assert monitor.snapshot().last_check is not None

    def test_failures_degrade_then_go_offline(self, probe):
        monitor = HealthMonitor(probe, interval_sec=60, failure_threshold=3, dummy=False)
        monitor.probe()
        probe.up = False

        assert monitor.probe() == DEGRADED
        assert monitor.probe() == DEGRADED
        assert monitor.probe() == OFFLINE
        assert monitor.snapshot().consecutive_failures == 3
        assert monitor.snapshot().last_error == ServerError.UNREACHABLE

    def test_offline_stays_offline_on_further_failures(self, probe):
        probe.up = False
        monitor = HealthMonitor(probe, interval_sec=60, failure_threshold=3, dummy=False)

        assert monitor.probe() == OFFLINE
        assert monitor.probe() == OFFLINE

    def test_single_success_recovers(self, probe):
        monitor = HealthMonitor(probe, interval_sec=60, failure_threshold=2, dummy=False)
        probe.up = False
        monitor.probe()
        monitor.probe()
        assert monitor.current_state() == OFFLINE

        probe.up = True

        assert monitor.probe() == ONLINE
        assert monitor.snapshot().consecutive_failures == 0
        assert monitor.snapshot().last_error is None

    def test_snapshot_version_increments(self, probe):
        monitor = HealthMonitor(probe, interval_sec=60, dummy=False)
        before = monitor.snapshot().version

        monitor.probe()

        assert monitor.snapshot().version == before + 1


class TestDummyOverride:
    """Dummy mode is reported but never probed."""

    def test_dummy_never_calls_probe(self, probe):
        monitor = HealthMonitor(probe, interval_sec=60, dummy=True)

        for _ in range(5):
            assert monitor.probe() == DUMMY

        assert probe.calls == 0
        assert monitor.get_status()["status"] == DUMMY

    def test_force_dummy_toggle(self, probe):
        monitor = HealthMonitor(probe, interval_sec=60, dummy=False)
        monitor.probe()

        monitor.force_dummy(True)
        assert monitor.current_state() == DUMMY
        # The underlying reachability state is kept
        assert monitor.snapshot().state == ONLINE

        monitor.force_dummy(False)
        assert monitor.current_state() == ONLINE

    def test_force_dummy_notifies_listeners(self, probe):
        monitor = HealthMonitor(probe, interval_sec=60, dummy=False)
        seen = []
        monitor.add_listener(lambda prev, cur: seen.append((prev, cur)))

        monitor.force_dummy(True)
        monitor.force_dummy(True)

        assert seen == [(OFFLINE, DUMMY)]


class TestListeners:
    """Transition callbacks."""

    def test_listener_sees_each_transition_once(self, probe):
        monitor = HealthMonitor(probe, interval_sec=60, failure_threshold=2, dummy=False)
        seen = []
        monitor.add_listener(lambda prev, cur: seen.append((prev, cur)))

        monitor.probe()
        monitor.probe()
        probe.up = False
        monitor.probe()
        monitor.probe()
        monitor.probe()

        assert seen == [(OFFLINE, ONLINE), (ONLINE, DEGRADED), (DEGRADED, OFFLINE)]

    def test_failing_listener_does_not_break_probe(self, probe):
        monitor = HealthMonitor(probe, interval_sec=60, dummy=False)
        seen = []

        def broken(prev, cur):
            raise RuntimeError("listener bug")

        monitor.add_listener(broken)
        monitor.add_listener(lambda prev, cur: seen.append(cur))

        assert monitor.probe() == ONLINE
        assert seen == [ONLINE]

    def test_listener_must_be_callable(self, probe):
        monitor = HealthMonitor(probe, dummy=False)
        with pytest.raises(ValueError):
            monitor.add_listener("not callable")


class TestPollingLoop:
    """Background thread lifecycle."""

    def test_start_probes_immediately_and_stop(self, probe):
        monitor = HealthMonitor(probe, interval_sec=60, dummy=False)
        probed = threading.Event()
        monitor.add_listener(lambda prev, cur: probed.set())

        monitor.start()
        try:
            assert monitor.running
            assert probed.wait(timeout=5)
            assert monitor.current_state() == ONLINE
        finally:
            monitor.stop()

        assert not monitor.running
        assert monitor.get_status()["running"] is False

    def test_double_start_rejected(self, probe):
        monitor = HealthMonitor(probe, interval_sec=60, dummy=False)
        monitor.start()
        try:
            with pytest.raises(RuntimeError):
                monitor.start()
        finally:
            monitor.stop()

    def test_stop_when_not_running_is_noop(self, probe):
        monitor = HealthMonitor(probe, interval_sec=60, dummy=False)
        monitor.stop()
        assert not monitor.running

    def test_loop_keeps_polling(self, probe):
        monitor = HealthMonitor(probe, interval_sec=0.01, dummy=False)
        monitor.start()
        try:
            deadline = time.monotonic() + 5
            while probe.calls < 3 and time.monotonic() < deadline:
                time.sleep(0.01)
        finally:
            monitor.stop()

        assert probe.calls >= 3


class TestStatus:
    def test_status_projection(self, probe):
        monitor = HealthMonitor(probe, interval_sec=60, dummy=False)
        status = monitor.get_status()
        assert status["status"] == OFFLINE
        assert status["lastCheck"] is None

        monitor.probe()
        status = monitor.get_status()

        assert status["status"] == ONLINE
        assert status["lastCheck"] is not None
        assert status["consecutiveFailures"] == 0

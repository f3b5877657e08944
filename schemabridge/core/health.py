"""
Health Monitor - tracks backend reachability on a fixed polling interval.

State machine: online -> degraded after one failed probe, degraded -> offline
once consecutive failures reach the threshold, degraded|offline -> online after
one successful probe. Dummy mode is a configured override that is reported
but never probed. Only the monitor's own probes change state.
"""

import threading
import time
from typing import Callable, Dict, List, Optional

from . import config
from .errors import ServerError
from .schema import HealthSnapshot, ONLINE, DEGRADED, OFFLINE, DUMMY, utcnow
from util.logging import logger

Listener = Callable[[str, str], None]


class HealthMonitor:
    """
    Owns the process-wide health state.

    Readers take an immutable HealthSnapshot via a single attribute read;
    writers (the polling loop, explicit probes, force_dummy) build a new
    snapshot under a lock and swap it in.
    """

    def __init__(self, probe_func: Callable[[], None], interval_sec: float = None,
                 failure_threshold: int = None, dummy: bool = None, initial_state: str = OFFLINE):
        """
        Args:
            probe_func: Active check; returns on success, raises ServerError on failure
            interval_sec: Polling interval, independent of request traffic
            failure_threshold: Consecutive failures before degraded becomes offline
            dummy: Start with the dummy override active
            initial_state: State reported before the first probe completes
        """
        if initial_state not in (ONLINE, DEGRADED, OFFLINE):
            raise ValueError(f"Invalid initial state: {initial_state}")

        self.probe_func = probe_func
        self.interval_sec = interval_sec or config.HEALTH_PROBE_INTERVAL_SEC
        self.failure_threshold = failure_threshold or config.HEALTH_FAILURE_THRESHOLD

        if dummy is None:
            dummy = config.is_dummy_mode_forced()
        self._snapshot = HealthSnapshot(state=initial_state, dummy_forced=dummy)

        self._lock = threading.Lock()
        self._probe_lock = threading.Lock()
        self._listeners: List[Listener] = []
        self._thread: Optional[threading.Thread] = None
        self._shutdown_event = threading.Event()

    # Readers

    def snapshot(self) -> HealthSnapshot:
        return self._snapshot

    def current_state(self) -> str:
        """Effective state: dummy when the override is active."""
        snap = self._snapshot
        return DUMMY if snap.dummy_forced else snap.state

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    # Writers

    def probe(self) -> str:
        """
        Run one active check and apply the state machine.

        Never touches the network while the dummy override is active.
        Concurrent callers are serialized so each failure is counted once.
        """
        if self._snapshot.dummy_forced:
            return DUMMY

        with self._probe_lock:
            start_time = time.monotonic()
            try:
                self.probe_func()
                ok, error = True, None
            except ServerError as e:
                ok, error = False, e.reason
            self._record(ok, error, time.monotonic() - start_time)

        return self.current_state()

    def _record(self, ok: bool, error: Optional[str], duration: float):
        with self._lock:
            previous = self._snapshot
            if ok:
                state, failures = ONLINE, 0
            else:
                failures = previous.consecutive_failures + 1
                if failures >= self.failure_threshold:
                    state = OFFLINE
                elif previous.state == OFFLINE:
                    state = OFFLINE
                else:
                    state = DEGRADED

            self._snapshot = HealthSnapshot(
                state=state,
                consecutive_failures=failures,
                last_check=utcnow(),
                last_error=error,
                dummy_forced=previous.dummy_forced,
                version=previous.version + 1,
            )

        if state != previous.state:
            logger.log_health_transition(previous.state, state, failures, {
                "probe_ms": round(duration * 1000, 2),
                "error": error
            })
            self._notify(previous.state, state)

    def force_dummy(self, enabled: bool):
        """Toggle the dummy override (explicit configuration, not a probe result)."""
        with self._lock:
            previous = self._snapshot
            if previous.dummy_forced == enabled:
                return
            self._snapshot = HealthSnapshot(
                state=previous.state,
                consecutive_failures=previous.consecutive_failures,
                last_check=previous.last_check,
                last_error=previous.last_error,
                dummy_forced=enabled,
                version=previous.version + 1,
            )

        before = DUMMY if previous.dummy_forced else previous.state
        after = DUMMY if enabled else previous.state
        logger.log_health_transition(before, after, previous.consecutive_failures, {"reason": "dummy_override"})
        self._notify(before, after)

    # Listeners

    def add_listener(self, listener: Listener):
        """Register a callback(previous_state, current_state) for transitions."""
        if not callable(listener):
            raise ValueError(f"Listener must be callable: {listener}")
        self._listeners.append(listener)

    def _notify(self, previous: str, current: str):
        for listener in list(self._listeners):
            try:
                listener(previous, current)
            except Exception as e:
                # Listener failures never break the polling loop
                logger.error(f"Health listener {getattr(listener, '__name__', listener)} failed: {e}")

    # Lifecycle

    def start(self):
        """Start the polling loop in a daemon thread (first probe runs immediately)."""
        if self.running:
            raise RuntimeError("Health monitor already running")

        self._shutdown_event.clear()
        self._thread = threading.Thread(target=self._run, name="health-monitor", daemon=True)
        self._thread.start()
        logger.info(f"Health monitor started (every {self.interval_sec}s, threshold {self.failure_threshold})")

    def _run(self):
        while not self._shutdown_event.is_set():
            self.probe()
            self._shutdown_event.wait(self.interval_sec)

    def stop(self, timeout: float = 5.0):
        """Stop the polling loop gracefully."""
        if not self.running:
            return

        self._shutdown_event.set()
        self._thread.join(timeout=timeout)
        self._thread = None
        logger.info("Health monitor stopped")

    def get_status(self) -> Dict[str, object]:
        """Status projection for /server-status."""
        snap = self._snapshot
        return {
            "status": DUMMY if snap.dummy_forced else snap.state,
            "lastCheck": snap.last_check.isoformat() if snap.last_check else None,
            "consecutiveFailures": snap.consecutive_failures,
            "lastError": snap.last_error,
            "running": self.running,
        }

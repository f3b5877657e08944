"""
Replay-and-compare reconciliation after the server recovers.

Policy: server truth always wins. Offline predictions logged since the last
online period are replayed through the online path; the server's answer is
appended as a new exemplar (mode=online, source=reconciled) and replaces the
offline cache entry. Differences between prediction and truth are recorded
as divergences for audit, never merged.
"""

import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

from ..core import config
from ..core.errors import CacheError, RetrievalError, ServerError, TranslationError
from ..core.knowledge_base import KnowledgeBase
from ..core.schema import Exemplar, ONLINE, DEGRADED, OFFLINE, SUCCESS, utcnow
from .cache import ResponseCache, fingerprint
from util.logging import logger


@dataclass(frozen=True)
class ReplayResult:
    """Outcome of one request sent through the online path."""
    server_request: Dict[str, Any]
    server_response: Dict[str, Any]
    response: Dict[str, Any]


@dataclass(frozen=True)
class Divergence:
    """A predicted response that differed from server truth."""
    exemplar_id: str
    reconciled_id: str
    fields: Tuple[str, ...]
    predicted_confidence: Optional[str] = None
    last_known_good_fields: Optional[Tuple[str, ...]] = None


@dataclass
class ReconciliationSummary:
    replayed: int = 0
    failed: int = 0
    skipped: int = 0
    stopped_early: bool = False
    divergences: List[Divergence] = field(default_factory=list)
    started_at: datetime = field(default_factory=utcnow)
    finished_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "replayed": self.replayed,
            "failed": self.failed,
            "skipped": self.skipped,
            "stopped_early": self.stopped_early,
            "divergences": [
                {"exemplar_id": d.exemplar_id, "reconciled_id": d.reconciled_id, "fields": list(d.fields)}
                for d in self.divergences
            ],
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
        }


def diff_fields(predicted: Optional[Dict[str, Any]], actual: Optional[Dict[str, Any]]) -> Tuple[str, ...]:
    """Top-level fields whose values differ (missing counts as different)."""
    predicted = predicted or {}
    actual = actual or {}
    return tuple(sorted(k for k in set(predicted) | set(actual) if predicted.get(k) != actual.get(k)))


class Reconciler:
    """
    Replays offline predictions once the Health Monitor reports recovery.

    Attach ``on_transition`` as a monitor listener. Runs are serialized;
    a recovery that arrives while a run is in progress is ignored.
    """

    def __init__(self, knowledge_base: KnowledgeBase, cache: ResponseCache,
                 replay: Callable[[Dict[str, Any]], ReplayResult],
                 enabled: bool = None, max_replay: int = None):
        self.knowledge_base = knowledge_base
        self.cache = cache
        self.replay = replay
        self.enabled = config.is_reconcile_enabled() if enabled is None else enabled
        self.max_replay = max_replay or config.RECONCILE_MAX_REPLAY

        self._offline_since: Optional[datetime] = None
        self._run_lock = threading.Lock()
        self.last_summary: Optional[ReconciliationSummary] = None

    def on_transition(self, previous: str, current: str):
        """Health Monitor listener."""
        if previous == ONLINE and current in (DEGRADED, OFFLINE):
            self._offline_since = utcnow()
            return

        if current == ONLINE and previous in (DEGRADED, OFFLINE) and self.enabled:
            threading.Thread(target=self.run, name="reconciler", daemon=True).start()

    def _window_start(self) -> Optional[datetime]:
        if self._offline_since is not None:
            return self._offline_since
        latest_online = self.knowledge_base.latest(mode=ONLINE)
        return latest_online.timestamp if latest_online else None

    def run(self) -> Optional[ReconciliationSummary]:
        """
        Replay offline exemplars logged since the last online period.

        Returns:
            Summary, or None when another run is already in progress
        """
        if not self._run_lock.acquire(blocking=False):
            return None

        try:
            summary = ReconciliationSummary()
            try:
                candidates = self.knowledge_base.since(self._window_start(), mode=OFFLINE, limit=self.max_replay)
            except RetrievalError as e:
                logger.log_reconciliation(0, 0, status="failed", details={"error": str(e)})
                return summary

            for exemplar in candidates:
                if exemplar.outcome != SUCCESS:
                    summary.skipped += 1
                    continue
                try:
                    self._reconcile_one(exemplar, summary)
                except ServerError as e:
                    # Server went away again; the next recovery picks up from here
                    summary.stopped_early = True
                    logger.warning(f"Reconciliation stopped, server unavailable: {e.reason}")
                    break
                except TranslationError as e:
                    summary.failed += 1
                    logger.warning(f"Reconciliation replay of {exemplar.id} failed: {e.reason}")

            if not summary.stopped_early:
                self._offline_since = None

            summary.finished_at = utcnow()
            self.last_summary = summary
            logger.log_reconciliation(summary.replayed, len(summary.divergences), details={
                "failed": summary.failed,
                "skipped": summary.skipped,
                "stopped_early": summary.stopped_early
            })
            return summary
        finally:
            self._run_lock.release()

    def _reconcile_one(self, exemplar: Exemplar, summary: ReconciliationSummary):
        replayed = self.replay(exemplar.consumer_request)

        reconciled = Exemplar(
            id=Exemplar.new_id(),
            consumer_request=exemplar.consumer_request,
            schema_version=exemplar.schema_version,
            mode=ONLINE,
            outcome=SUCCESS,
            response=replayed.response,
            server_request=replayed.server_request,
            server_response=replayed.server_response,
            embedding=exemplar.embedding,
            source="reconciled",
        )
        try:
            self.knowledge_base.append(reconciled)
        except RetrievalError as e:
            logger.error(f"Failed to log reconciled exemplar for {exemplar.id}: {e}")

        last_known_good = None
        try:
            last_known_good = self.cache.get_last_known_good(exemplar.consumer_request, exemplar.schema_version)
            self.cache.invalidate(fingerprint(exemplar.consumer_request, exemplar.schema_version, OFFLINE))
            self.cache.put(fingerprint(exemplar.consumer_request, exemplar.schema_version, ONLINE),
                           replayed.response, mode=ONLINE, metadata={"source": "reconciled"})
        except CacheError as e:
            logger.warning(f"Bypassing response cache during reconciliation: {e}")

        summary.replayed += 1
        fields = diff_fields(exemplar.response, replayed.response)
        if fields:
            divergence = Divergence(
                exemplar_id=exemplar.id,
                reconciled_id=reconciled.id,
                fields=fields,
                predicted_confidence=exemplar.confidence,
                last_known_good_fields=diff_fields(last_known_good.payload, replayed.response) if last_known_good else None,
            )
            summary.divergences.append(divergence)
            logger.log_operation("reconcile.divergence", "logged", {
                "exemplar_id": exemplar.id,
                "fields": list(fields),
                "predicted_confidence": exemplar.confidence
            })

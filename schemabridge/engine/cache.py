"""
Response Cache - short-circuits repeated and near-identical requests.

Entries are keyed by a fingerprint of (normalized payload, schema version,
mode) and bounded by TTL plus a capacity LRU. The key space is split into
shards, each with its own lock, so an eviction in one shard never blocks a
lookup in another.
"""

import copy
import hashlib
import re
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from ..core import config
from ..core.errors import CacheError
from ..core.schema import ONLINE, canonical_json
from util.logging import logger

_WHITESPACE_RE = re.compile(r"\s+")


def normalize_payload(payload: Any) -> Any:
    """Strings trimmed, casefolded and space-collapsed; structure kept."""
    if isinstance(payload, str):
        return _WHITESPACE_RE.sub(" ", payload.strip()).casefold()
    if isinstance(payload, dict):
        return {str(k): normalize_payload(v) for k, v in payload.items()}
    if isinstance(payload, (list, tuple)):
        return [normalize_payload(item) for item in payload]
    return payload


def fingerprint(payload: Any, schema_version: str, mode: str) -> str:
    """
    Stable hash of (normalized payload, schema version, mode).

    Raises:
        CacheError: payload cannot be canonicalized
    """
    try:
        text = canonical_json({"payload": normalize_payload(payload), "schema": schema_version, "mode": mode})
    except (TypeError, ValueError) as e:
        raise CacheError(f"Cannot fingerprint payload: {e}") from e
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class CacheEntry:
    fingerprint: str
    payload: Dict[str, Any]
    mode: str
    expires_at: float
    created_at: float
    metadata: Dict[str, Any] = field(default_factory=dict)

    def expired(self, now: float) -> bool:
        return now >= self.expires_at


class _Shard:
    def __init__(self, capacity: int):
        self.capacity = capacity
        self.entries: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self.lock = threading.Lock()
        self.hits = 0
        self.misses = 0
        self.evictions = 0
        self.expirations = 0


class ResponseCache:
    """Sharded LRU + TTL cache of response payloads."""

    def __init__(self, max_entries: int = None, default_ttl: float = None, shards: int = None,
                 clock: Callable[[], float] = time.monotonic):
        """
        Args:
            max_entries: Total capacity across shards
            default_ttl: Seconds an entry lives when put() gets no ttl
            shards: Number of independently locked shards
            clock: Monotonic time source (injectable for tests)
        """
        max_entries = max_entries or config.CACHE_MAX_ENTRIES
        shard_count = max(1, min(shards or config.CACHE_SHARDS, max_entries))
        per_shard = -(-max_entries // shard_count)

        self.max_entries = max_entries
        self.default_ttl = default_ttl if default_ttl is not None else config.CACHE_TTL_SEC
        self._clock = clock
        self._shards: List[_Shard] = [_Shard(per_shard) for _ in range(shard_count)]

    def _shard(self, fp: str) -> _Shard:
        return self._shards[int(fp[:8], 16) % len(self._shards)]

    def fingerprint(self, payload: Any, schema_version: str, mode: str) -> str:
        return fingerprint(payload, schema_version, mode)

    def get(self, fp: str) -> Optional[CacheEntry]:
        """Live entry for ``fp`` or None (miss or expired)."""
        shard = self._shard(fp)
        now = self._clock()
        with shard.lock:
            entry = shard.entries.get(fp)
            if entry is None:
                shard.misses += 1
                return None
            if entry.expired(now):
                del shard.entries[fp]
                shard.expirations += 1
                shard.misses += 1
                expired = True
            else:
                shard.entries.move_to_end(fp)
                shard.hits += 1
                expired = False

        logger.log_cache_event("expired" if expired else "hit", fp)
        return None if expired else entry

    def put(self, fp: str, payload: Dict[str, Any], ttl: float = None, mode: str = None,
            metadata: Optional[Dict[str, Any]] = None) -> CacheEntry:
        """
        Store a payload under ``fp``.

        Raises:
            CacheError: ttl is not positive
        """
        ttl = self.default_ttl if ttl is None else ttl
        if ttl <= 0:
            raise CacheError(f"Cache ttl must be positive, got {ttl}")

        now = self._clock()
        entry = CacheEntry(
            fingerprint=fp,
            payload=copy.deepcopy(payload),
            mode=mode or "",
            expires_at=now + ttl,
            created_at=now,
            metadata=dict(metadata or {}),
        )

        shard = self._shard(fp)
        evicted = []
        with shard.lock:
            shard.entries[fp] = entry
            shard.entries.move_to_end(fp)
            while len(shard.entries) > shard.capacity:
                old_fp, _ = shard.entries.popitem(last=False)
                shard.evictions += 1
                evicted.append(old_fp)

        for old_fp in evicted:
            logger.log_cache_event("evicted", old_fp)
        return entry

    def invalidate(self, fp: str) -> bool:
        shard = self._shard(fp)
        with shard.lock:
            return shard.entries.pop(fp, None) is not None

    def get_last_known_good(self, payload: Any, schema_version: str) -> Optional[CacheEntry]:
        """
        Online entry for a request regardless of the current mode.

        Only reconciliation reads across modes, and only through this call.
        """
        return self.get(fingerprint(payload, schema_version, ONLINE))

    def clear(self):
        for shard in self._shards:
            with shard.lock:
                shard.entries.clear()

    def __len__(self) -> int:
        return sum(len(shard.entries) for shard in self._shards)

    def stats(self) -> Dict[str, int]:
        totals = {"entries": 0, "hits": 0, "misses": 0, "evictions": 0, "expirations": 0}
        for shard in self._shards:
            with shard.lock:
                totals["entries"] += len(shard.entries)
                totals["hits"] += shard.hits
                totals["misses"] += shard.misses
                totals["evictions"] += shard.evictions
                totals["expirations"] += shard.expirations
        totals["capacity"] = self.max_entries
        totals["shards"] = len(self._shards)
        return totals

"""
TTL cache holding the in-memory snapshot of benefit records.

The analytics calculators work on a full copy of the benefit collection.
Fetching it is the most expensive step of a request, so the latest copy is
kept for ``ttl_seconds`` and shared by every command and every request that
uses the same cache instance.

Refreshes are single-flight: concurrent callers that find the snapshot stale
wait for one fetch instead of each issuing their own.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from ...core.logging_config import get_logger
from ...core.settings import settings
from ...models.benefit_record import BenefitRecord
from ..record_store.client import RecordStore


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Snapshot:
    """Immutable copy of all benefit records at ``fetched_at``."""
    records: Tuple[BenefitRecord, ...]
    fetched_at: datetime
    source_path: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return not self.records

    def __len__(self) -> int:
        return len(self.records)


@dataclass
class CacheStats:
    hits: int = 0
    misses: int = 0
    fetches: int = 0
    last_fetch_ms: float = 0.0
    paths_probed: List[str] = field(default_factory=list)


def records_from_node(node: Any) -> List[BenefitRecord]:
    """Convert a store node (mapping of id -> document) into records."""
    if not isinstance(node, dict):
        return []

    records = []
    for key, raw in node.items():
        record = BenefitRecord.from_store(key, raw)
        if record is not None:
            records.append(record)
    return records


class SnapshotCache:
    """
    Lazily refreshed snapshot of the benefit collection.

    Attributes:
        ttl (timedelta): Validity window of a snapshot
        root_paths (Sequence[str]): Roots probed in order on refresh
        _store (RecordStore): Source of the records
        _snapshot (Optional[Snapshot]): Current snapshot, replaced wholesale
        _lock (asyncio.Lock): Serializes refreshes

    Example:
        >>> cache = SnapshotCache(store, ttl_seconds=300)
        >>> snapshot = await cache.get()
        >>> len(snapshot.records)
        1250
    """

    def __init__(
        self,
        store: RecordStore,
        ttl_seconds: Optional[int] = None,
        root_paths: Optional[Sequence[str]] = None,
        clock: Callable[[], datetime] = _utcnow,
        logger: Optional[logging.Logger] = None
    ):
        self._store = store
        self.ttl = timedelta(
            seconds=settings.snapshot_ttl_seconds if ttl_seconds is None else ttl_seconds
        )
        self.root_paths = list(root_paths or settings.benefits_root_paths)
        self._clock = clock
        self._logger = logger or get_logger(__name__)
        self._snapshot: Optional[Snapshot] = None
        self._lock = asyncio.Lock()
        self._stats = CacheStats()
        self._generation = 0

    def _is_fresh(self, snapshot: Optional[Snapshot]) -> bool:
        if snapshot is None:
            return False
        return self._clock() - snapshot.fetched_at < self.ttl

    async def get(self, use_cache: bool = True) -> Snapshot:
        """
        Return the current snapshot, refreshing it when stale.

        Args:
            use_cache (bool): False forces a fresh fetch

        Returns:
            Snapshot (possibly empty when no root holds data)

        Raises:
            RecordStoreError: If the store cannot be read
        """
        snapshot = self._snapshot
        if use_cache and self._is_fresh(snapshot):
            self._stats.hits += 1
            age = (self._clock() - snapshot.fetched_at).total_seconds()
            self._logger.debug(f"Using cached snapshot (age: {age:.1f}s)")
            return snapshot

        self._stats.misses += 1
        generation = self._generation

        async with self._lock:
            # Another caller refreshed while we waited
            current = self._snapshot
            if self._generation != generation and self._is_fresh(current):
                return current

            self._snapshot = await self._fetch()
            self._generation += 1
            return self._snapshot

    async def _fetch(self) -> Snapshot:
        started = self._clock()
        self._stats.fetches += 1
        self._stats.paths_probed = []
        self._logger.info("Fetching fresh benefit snapshot")

        for path in self.root_paths:
            self._stats.paths_probed.append(path)
            self._logger.debug(f"Probing snapshot root: {path}")
            node = await self._store.fetch(path)
            if node is None:
                continue

            records = records_from_node(node)
            fetched_at = self._clock()
            self._stats.last_fetch_ms = (fetched_at - started).total_seconds() * 1000
            self._logger.info(
                f"Snapshot loaded from {path}: {len(records)} records",
                extra={"path": path, "record_count": len(records)}
            )
            return Snapshot(records=tuple(records), fetched_at=fetched_at, source_path=path)

        self._logger.warning(
            "No benefit data found under any root",
            extra={"paths": self.root_paths}
        )
        return Snapshot(records=(), fetched_at=self._clock(), source_path=None)

    def invalidate(self) -> None:
        """Drop the current snapshot; the next ``get`` fetches again."""
        self._snapshot = None
        self._logger.info("Snapshot cache invalidated")

    @property
    def snapshot(self) -> Optional[Snapshot]:
        return self._snapshot

    def stats(self) -> Dict[str, Any]:
        snapshot = self._snapshot
        return {
            "hits": self._stats.hits,
            "misses": self._stats.misses,
            "fetches": self._stats.fetches,
            "last_fetch_ms": round(self._stats.last_fetch_ms, 2),
            "paths_probed": list(self._stats.paths_probed),
            "age_seconds": (
                round((self._clock() - snapshot.fetched_at).total_seconds(), 2)
                if snapshot is not None else None
            ),
            "record_count": len(snapshot) if snapshot is not None else 0,
        }

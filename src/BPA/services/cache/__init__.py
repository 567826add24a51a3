"""Snapshot cache for benefit records."""

from .snapshot_cache import Snapshot, SnapshotCache

__all__ = ["Snapshot", "SnapshotCache"]

"""Record store access: REST client and in-memory store."""

from .client import InMemoryRecordStore, RecordStore, RecordStoreClient

__all__ = ["InMemoryRecordStore", "RecordStore", "RecordStoreClient"]

"""Record store: the single writer to the memory graph."""

from .record_store import RecordStore

__all__ = ["RecordStore"]

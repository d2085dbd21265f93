"""
Store Module - Persistence for progress records.

Components:
- local_store: SQLite key-value cache (always available, never raises)
- remote_store: Per-user documents in a Firestore-compatible REST store
"""

from studysync.store.local_store import LocalProgressStore
from studysync.store.remote_store import RemoteProgressStore

__all__ = [
    "LocalProgressStore",
    "RemoteProgressStore",
]

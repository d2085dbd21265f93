"""
Sync Module - Reconciliation of local and remote progress.

Components:
- conflict: Arbitration when the remote record is newer
- resolution: ProgressResolver, run on every course load
- course_store: Live state and the write-back path
- transfer: Progress import/export files
"""

from studysync.sync.conflict import ConflictArbiter, KeepLocalArbiter, SyncChoice
from studysync.sync.course_store import CourseState, CourseStore, ProgressStats
from studysync.sync.resolution import ProgressResolver

__all__ = [
    "ConflictArbiter",
    "CourseState",
    "CourseStore",
    "KeepLocalArbiter",
    "ProgressResolver",
    "ProgressStats",
    "SyncChoice",
]

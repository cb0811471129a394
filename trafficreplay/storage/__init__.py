"""
Snapshot storage: append-only pilot/controller history with filtered reads.
"""

from trafficreplay.storage.snapshot_store import SnapshotStore, AGGREGATE_COLUMNS

__all__ = ['SnapshotStore', 'AGGREGATE_COLUMNS']

"""
Replay reconstruction: bucketed playback frames over stored samples.
"""

from trafficreplay.replay.resolver import (
    MAX_BUCKETS,
    MAX_REPLAY_RANGE_SECONDS,
    PlaybackFrames,
    SnapshotResolver,
    bucket_grid,
    match_buckets,
    validate_range,
    validate_window,
)

__all__ = [
    'MAX_BUCKETS',
    'MAX_REPLAY_RANGE_SECONDS',
    'PlaybackFrames',
    'SnapshotResolver',
    'bucket_grid',
    'match_buckets',
    'validate_range',
    'validate_window',
]

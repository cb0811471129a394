"""
Snapshot resolver - evenly spaced playback frames from irregular samples.

Playback wants one frame every `step` seconds, but the store only holds
the timestamps the poller actually produced (clock drift, missed polls,
late cycles). The resolver bridges the two in three phases:

1. Resolve: walk the bucket grid and the sorted real timestamps together
   with a monotonic pointer, mapping each bucket to its nearest real
   timestamp. O(buckets + real timestamps).
2. Fetch: deduplicate the chosen source timestamps and read their rows
   once, with filters applied in the store.
3. Redistribute: hand each source timestamp's rows to every bucket that
   mapped to it.

Cost therefore follows the number of distinct real timestamps touched,
not the number of buckets requested.

Matching rules:
- nearest by absolute distance
- an exact tie goes to the LATER real timestamp
- a match further than max_source_age is dropped; the bucket stays empty
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from trafficreplay.config import config
from trafficreplay.errors import ReplayRequestError
from trafficreplay.filters import SnapshotFilters
from trafficreplay.models import ControllerSample, PilotSample
from trafficreplay.storage import SnapshotStore

logger = logging.getLogger(__name__)

MAX_REPLAY_RANGE_SECONDS = config.replay.max_range_seconds
MAX_BUCKETS = config.replay.max_buckets


def validate_range(since: int, until: int, max_range: int = MAX_REPLAY_RANGE_SECONDS) -> None:
    """Reject out-of-order or over-long ranges."""
    if until < since:
        raise ReplayRequestError(
            'until must be >= since',
            {'since': since, 'until': until},
        )
    span = until - since
    if span > max_range:
        raise ReplayRequestError(
            'replay range exceeds maximum span',
            {
                'maxRangeSeconds': max_range,
                'replayRangeSeconds': span,
                'since': since,
                'until': until,
            },
        )


def validate_window(window: int, max_range: int = MAX_REPLAY_RANGE_SECONDS) -> None:
    """Reject negative windows and windows whose full span exceeds max_range."""
    if window < 0:
        raise ReplayRequestError('window must not be negative', {'window': window})
    if 2 * window > max_range:
        raise ReplayRequestError(
            'window exceeds maximum',
            {'window': window, 'maxRangeSeconds': max_range},
        )


def bucket_grid(since: int, until: int, step: int) -> List[int]:
    """since, since+step, ... up to the last value <= until."""
    return list(range(since, until + 1, step))


def match_buckets(
    buckets: Sequence[int],
    available: Sequence[int],
    max_source_age: int,
) -> Dict[int, int]:
    """
    Map each bucket to its nearest available timestamp.

    Both sequences must be sorted ascending. A single pointer advances
    through `available` as buckets increase, so the walk is linear.
    Buckets with no candidate within max_source_age are omitted.
    """
    mapping: Dict[int, int] = {}
    if not available:
        return mapping

    count = len(available)
    # Index of the first available timestamp strictly after the bucket
    right = 0
    for bucket in buckets:
        while right < count and available[right] <= bucket:
            right += 1

        left_ts = available[right - 1] if right > 0 else None
        right_ts = available[right] if right < count else None

        if left_ts is None:
            nearest = right_ts
        elif right_ts is None:
            nearest = left_ts
        elif (right_ts - bucket) <= (bucket - left_ts):
            # Equidistant candidates resolve to the later one
            nearest = right_ts
        else:
            nearest = left_ts

        if abs(nearest - bucket) <= max_source_age:
            mapping[bucket] = nearest

    return mapping


@dataclass
class PlaybackFrames:
    """Resolved frames for a replay request."""
    timestamps: List[int]
    source_by_bucket: Dict[int, int]
    pilots: Dict[int, List[PilotSample]]
    controllers: Dict[int, List[ControllerSample]]
    filters: SnapshotFilters = field(default_factory=SnapshotFilters)

    @property
    def source_timestamps(self) -> List[int]:
        return sorted(set(self.source_by_bucket.values()))

    def to_dict(self) -> dict:
        """JSON-serializable form keyed by bucket timestamp."""
        return {
            'timestamps': self.timestamps,
            'sourceTsByBucket': {str(b): s for b, s in self.source_by_bucket.items()},
            'rowsByTs': {
                str(b): [p.to_dict(include_timestamp=False) for p in rows]
                for b, rows in self.pilots.items()
            },
            'atcRowsByTs': {
                str(b): [c.to_dict(include_timestamp=False) for c in rows]
                for b, rows in self.controllers.items()
            },
        }


class SnapshotResolver:
    """
    Builds bucketed playback views over a SnapshotStore.

    Usage:
        resolver = SnapshotResolver(store)
        frames = resolver.resolve(since, until, step=15, window=7, max_source_age=30)
    """

    def __init__(
        self,
        store: SnapshotStore,
        max_range_seconds: int = MAX_REPLAY_RANGE_SECONDS,
        max_buckets: int = MAX_BUCKETS,
    ):
        self.store = store
        self.max_range_seconds = max_range_seconds
        self.max_buckets = max_buckets

    def validate(self, since: int, until: int, step: int, window: int, max_source_age: int) -> int:
        """
        Check a request before doing any work.

        Returns the bucket count.
        """
        if step <= 0:
            raise ReplayRequestError('step must be positive', {'step': step})
        validate_window(window, self.max_range_seconds)
        if max_source_age < 0:
            raise ReplayRequestError(
                'maxSourceAge must not be negative',
                {'maxSourceAge': max_source_age},
            )

        validate_range(since, until, self.max_range_seconds)

        bucket_count = (until - since) // step + 1
        if bucket_count > self.max_buckets:
            raise ReplayRequestError(
                'range too large',
                {'maxBuckets': self.max_buckets, 'requestedBuckets': bucket_count, 'step': step},
            )
        return bucket_count

    def resolve_frames(
        self,
        since: int,
        until: int,
        step: int,
        window: int,
        max_source_age: int,
        filters: Optional[SnapshotFilters] = None,
        include_controllers: bool = True,
    ) -> PlaybackFrames:
        """Resolve, fetch and redistribute pilot (and controller) rows per bucket."""
        filters = filters or SnapshotFilters()
        self.validate(since, until, step, window, max_source_age)

        buckets = bucket_grid(since, until, step)
        available = self.store.distinct_timestamps(since - window, until + window)
        source_by_bucket = match_buckets(buckets, available, max_source_age)
        sources = sorted(set(source_by_bucket.values()))

        pilots_by_source: Dict[int, List[PilotSample]] = {ts: [] for ts in sources}
        for sample in self.store.query_at_timestamps(sources, filters):
            pilots_by_source[sample.timestamp].append(sample)

        controllers_by_source: Dict[int, List[ControllerSample]] = {ts: [] for ts in sources}
        if include_controllers:
            for sample in self.store.controllers_at_timestamps(sources):
                controllers_by_source[sample.timestamp].append(sample)

        pilots: Dict[int, List[PilotSample]] = {}
        controllers: Dict[int, List[ControllerSample]] = {}
        for bucket in buckets:
            source = source_by_bucket.get(bucket)
            if source is None:
                pilots[bucket] = []
                controllers[bucket] = []
                continue
            pilots[bucket] = list(pilots_by_source[source])
            controllers[bucket] = list(controllers_by_source[source])

        logger.debug(
            f'Resolved {len(buckets)} buckets onto {len(sources)} source timestamps '
            f'({len(available)} available)'
        )

        return PlaybackFrames(
            timestamps=buckets,
            source_by_bucket=source_by_bucket,
            pilots=pilots,
            controllers=controllers,
            filters=filters,
        )

    def resolve(
        self,
        since: int,
        until: int,
        step: int,
        window: int,
        max_source_age: int,
        filters: Optional[SnapshotFilters] = None,
    ) -> Dict[int, List[PilotSample]]:
        """Bucket timestamp -> pilot samples; empty list where no source qualifies."""
        return self.resolve_frames(
            since, until, step, window, max_source_age,
            filters=filters,
            include_controllers=False,
        ).pilots

"""Poll cycle orchestration."""

import threading
import time

import pytest

from trafficreplay.airspace import AirspaceMatcher
from trafficreplay.errors import FeedUnavailableError
from trafficreplay.ingestion import FeedSnapshot, IngestionPipeline

from conftest import controller, feature_collection, pilot, polygon_feature, square


class StubFeed:
    """Feed client returning queued snapshots (or raising queued errors)."""

    def __init__(self, *snapshots):
        self.snapshots = list(snapshots)
        self.calls = 0

    def fetch(self):
        self.calls += 1
        item = self.snapshots.pop(0) if self.snapshots else FeedSnapshot()
        if isinstance(item, Exception):
            raise item
        return item


class BlockingFeed:
    def __init__(self):
        self.entered = threading.Event()
        self.release = threading.Event()

    def fetch(self):
        self.entered.set()
        self.release.wait(timeout=5)
        return FeedSnapshot(pilots=[pilot('SLOW')], source='live')


class StubEventSync:
    def __init__(self, error=None):
        self.error = error
        self.calls = 0

    def sync(self, force=False):
        self.calls += 1
        if self.error:
            raise self.error
        return 0


def _live(*pilots, controllers=()):
    return FeedSnapshot(pilots=list(pilots), controllers=list(controllers), fetched_at=0, source='live')


def test_cycle_labels_and_stores_pilots(store, clock):
    matcher = AirspaceMatcher.from_geojson(
        feature_collection(polygon_feature('EGTT', square(-2, 50, 2, 54))), clock=clock,
    )
    feed = StubFeed(_live(
        pilot('INSIDE', lat=51.5, lon=-0.5),
        pilot('OUTSIDE', lat=10.0, lon=10.0),
        controllers=[controller('EGLL_TWR')],
    ))
    pipeline = IngestionPipeline(store, client=feed, matcher=matcher, retention_hours=24, clock=clock)

    result = pipeline.poll_once()

    assert result.inserted == 2
    assert result.controllers == 1
    ts = int(clock.now)
    rows = {r.callsign: r for r in store.query_range(ts, ts)}
    assert rows['INSIDE'].airspace == 'EGTT'
    assert rows['OUTSIDE'].airspace is None
    assert [c.callsign for c in store.controllers_at(ts, 0)] == ['EGLL_TWR']


def test_cycle_prunes_past_retention(store, clock):
    old_ts = int(clock.now) - 25 * 3600
    store.insert_batch(old_ts, [pilot('OLD')])

    pipeline = IngestionPipeline(store, client=StubFeed(_live(pilot('NEW'))), retention_hours=24, clock=clock)
    result = pipeline.poll_once()

    assert result.pruned == 1
    assert store.distinct_timestamps(0, int(clock.now)) == [int(clock.now)]


def test_failed_cycle_does_not_stop_the_next(store, clock):
    feed = StubFeed(RuntimeError('boom'), _live(pilot('A')))
    pipeline = IngestionPipeline(store, client=feed, retention_hours=24, clock=clock)

    assert pipeline.poll_once() is None
    clock.advance(15)
    assert pipeline.poll_once() is not None

    assert pipeline.stats['error_count'] == 1
    assert pipeline.stats['cycle_count'] == 1


def test_cached_feed_leaves_a_gap(store, clock):
    stale = FeedSnapshot(pilots=[pilot('A')], controllers=[controller('EGLL_TWR')], fetched_at=0, source='cache')
    feed = StubFeed(_live(pilot('A')), stale)
    pipeline = IngestionPipeline(store, client=feed, retention_hours=24, clock=clock)

    first_ts = int(clock.now)
    assert pipeline.poll_once().inserted == 1
    clock.advance(15)
    result = pipeline.poll_once()

    assert result.feed_source == 'cache'
    assert result.inserted == 0
    assert store.distinct_timestamps(0, int(clock.now)) == [first_ts]
    assert store.controllers_at(int(clock.now), 0) == []


def test_overlapping_tick_is_deferred(store, clock):
    feed = BlockingFeed()
    pipeline = IngestionPipeline(store, client=feed, retention_hours=24, clock=clock)

    worker = threading.Thread(target=pipeline.poll_once)
    worker.start()
    assert feed.entered.wait(timeout=5)

    assert pipeline.poll_once() is None
    assert pipeline.stats['deferred_count'] == 1

    feed.release.set()
    worker.join(timeout=5)
    assert pipeline.stats['cycle_count'] == 1
    assert [r.callsign for r in store.query_range(0, int(clock.now))] == ['SLOW']


def test_event_sync_failure_is_not_fatal(store, clock):
    event_sync = StubEventSync(error=FeedUnavailableError('events down'))
    pipeline = IngestionPipeline(
        store, client=StubFeed(_live(pilot('A'))), event_sync=event_sync,
        retention_hours=24, clock=clock,
    )

    assert pipeline.poll_once() is not None
    assert event_sync.calls == 1


def test_unreachable_boundaries_leave_pilots_unlabelled(store, clock):
    matcher = AirspaceMatcher(urls=(), clock=clock)
    pipeline = IngestionPipeline(
        store, client=StubFeed(_live(pilot('A'))), matcher=matcher,
        retention_hours=24, clock=clock,
    )

    result = pipeline.poll_once()
    assert result.inserted == 1
    assert store.query_range(0, int(clock.now))[0].airspace is None


def test_callbacks_receive_cycle_result(store, clock):
    seen = []
    pipeline = IngestionPipeline(store, client=StubFeed(_live(pilot('A'))), retention_hours=24, clock=clock)
    pipeline.add_cycle_callback(seen.append)
    pipeline.add_cycle_callback(lambda result: 1 / 0)

    result = pipeline.poll_once()

    assert seen == [result]


def test_background_loop_starts_and_stops(store, clock):
    feed = StubFeed()
    pipeline = IngestionPipeline(store, client=feed, retention_hours=24, clock=clock)

    pipeline.start_background(interval=0.01)
    deadline = time.monotonic() + 5
    while feed.calls < 2 and time.monotonic() < deadline:
        time.sleep(0.01)
    pipeline.stop()

    assert feed.calls >= 2
    assert not pipeline.stats['running']


@pytest.mark.parametrize('hours', [1, 720])
def test_retention_cutoff_follows_configured_hours(store, clock, hours):
    edge = int(clock.now) - hours * 3600
    store.insert_batch(edge - 1, [pilot('GONE')])
    store.insert_batch(edge, [pilot('KEPT')])

    IngestionPipeline(store, client=StubFeed(), retention_hours=hours, clock=clock).poll_once()

    assert [r.callsign for r in store.query_range(0, int(clock.now))] == ['KEPT']

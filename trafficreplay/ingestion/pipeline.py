"""
Ingestion pipeline - orchestrates data flow from the network feed to storage.

Pipeline stages (one poll cycle):
1. Fetch: pull pilots and controllers from the feed (shared, timeout-bound)
2. Classify: label each pilot with its enclosing airspace
3. Append: write every row of the cycle under one timestamp, atomically
4. Prune: drop samples past the retention horizon, sparing protected ranges
5. Events: periodically refresh protected ranges from the events API

Cycles are self-excluding: a tick that arrives while a cycle is still
running is deferred instead of starting an overlapping cycle. A failed
cycle is logged and counted; the next cycle runs independently.
"""

import logging
import threading
import time
from dataclasses import dataclass, replace
from typing import Callable, List, Optional

from trafficreplay.airspace import AirspaceMatcher
from trafficreplay.config import config
from trafficreplay.errors import BoundaryFetchError, FeedUnavailableError
from trafficreplay.ingestion.events_client import EventSync
from trafficreplay.ingestion.feed_client import FeedClient
from trafficreplay.models import PilotSample
from trafficreplay.storage import SnapshotStore

logger = logging.getLogger(__name__)


@dataclass
class CycleResult:
    """Summary of one completed poll cycle."""
    timestamp: int
    pilots: int
    inserted: int
    controllers: int
    pruned: int
    feed_source: str


class IngestionPipeline:
    """
    Manages the data ingestion lifecycle.

    Coordinates feed fetching, airspace classification and storage.
    Can run as a background thread for continuous polling.
    """

    def __init__(
        self,
        store: SnapshotStore,
        client: Optional[FeedClient] = None,
        matcher: Optional[AirspaceMatcher] = None,
        event_sync: Optional[EventSync] = None,
        retention_hours: Optional[int] = None,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize the ingestion pipeline.

        Args:
            store: Snapshot store receiving each cycle's batch
            client: Feed client (created from config if None)
            matcher: Airspace matcher; pilots stay unlabelled if None
            event_sync: Protected-range sync run after each cycle
            retention_hours: History horizon (config default if None)
        """
        self.store = store
        self.client = client or FeedClient.from_config()
        self.matcher = matcher
        self.event_sync = event_sync
        self.retention_hours = retention_hours or config.retention.hours
        self._clock = clock

        # Held for the whole cycle; ticks that can't take it are deferred
        self._cycle_lock = threading.Lock()

        # State tracking
        self._running = False
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._last_cycle: Optional[CycleResult] = None
        self._cycle_count: int = 0
        self._error_count: int = 0
        self._deferred_count: int = 0

        # Callbacks for external integration
        self._on_cycle_callbacks: List[Callable[[CycleResult], None]] = []

    def add_cycle_callback(self, callback: Callable[[CycleResult], None]) -> None:
        """
        Register callback to be invoked after each successful cycle.

        Callback receives the CycleResult.
        """
        self._on_cycle_callbacks.append(callback)

    def classify(self, pilots: List[PilotSample]) -> List[PilotSample]:
        """
        Label pilots with their airspace.

        A boundary refresh failure is not fatal: the previous boundary
        set (if any) keeps serving lookups.
        """
        if self.matcher is None:
            return pilots

        try:
            self.matcher.ensure_fresh()
        except BoundaryFetchError as e:
            logger.warning(f'Airspace matcher unavailable: {e}')

        return [replace(p, airspace=self.matcher.lookup(p.latitude, p.longitude)) for p in pilots]

    def _run_cycle(self) -> CycleResult:
        ts = int(self._clock())

        # Stage 1: Fetch
        feed = self.client.fetch()

        # Stage 2: Classify
        pilots = self.classify(feed.pilots)

        # Stage 3: Append (single transaction). Last-good data is never
        # re-stamped; a failed fetch leaves a gap at this timestamp.
        if feed.source == 'cache':
            logger.warning(f'Feed served from cache at ts={ts}, skipping insert')
            inserted = 0
        else:
            inserted = self.store.insert_batch(ts, pilots, feed.controllers)

        # Stage 4: Prune
        cutoff = ts - self.retention_hours * 3600
        pruned = self.store.prune(cutoff)

        # Stage 5: Events (rate-limited inside EventSync)
        if self.event_sync is not None:
            try:
                self.event_sync.sync()
            except FeedUnavailableError as e:
                logger.warning(f'Event sync failed: {e}')

        result = CycleResult(
            timestamp=ts,
            pilots=len(feed.pilots),
            inserted=inserted,
            controllers=len(feed.controllers),
            pruned=pruned,
            feed_source=feed.source,
        )
        logger.info(
            f'ts={ts} pilots={result.pilots} inserted={inserted} '
            f'controllers={result.controllers} pruned={pruned} source={feed.source}'
        )
        return result

    def poll_once(self) -> Optional[CycleResult]:
        """
        Execute one ingestion cycle.

        Returns the cycle summary, or None if the cycle was deferred
        (another one still running) or failed.
        """
        if not self._cycle_lock.acquire(blocking=False):
            self._deferred_count += 1
            logger.warning('Previous poll cycle still running; deferring tick')
            return None

        try:
            result = self._run_cycle()
        except Exception as e:
            self._error_count += 1
            logger.error(f'Poll cycle failed: {e}')
            return None
        finally:
            self._cycle_lock.release()

        self._cycle_count += 1
        self._last_cycle = result

        # Notify callbacks
        for callback in self._on_cycle_callbacks:
            try:
                callback(result)
            except Exception as e:
                logger.error(f'Cycle callback error: {e}')

        return result

    def run_continuous(self, interval: Optional[float] = None) -> None:
        """
        Run ingestion loop continuously.

        This method blocks - use start_background() for non-blocking.
        """
        interval = interval or config.ingestion.poll_interval
        self._running = True
        self._stop_event.clear()

        logger.info(f'Starting continuous ingestion (interval={interval}s)')

        while not self._stop_event.is_set():
            self.poll_once()
            self._stop_event.wait(interval)

        self._running = False
        logger.info('Ingestion stopped')

    def start_background(self, interval: Optional[float] = None) -> None:
        """Start ingestion in background thread."""
        if self._thread and self._thread.is_alive():
            logger.warning('Ingestion already running')
            return

        self._thread = threading.Thread(
            target=self.run_continuous,
            args=(interval,),
            name='ingestion',
            daemon=True,
        )
        self._thread.start()
        logger.info('Background ingestion started')

    def stop(self) -> None:
        """Stop background ingestion."""
        self._stop_event.set()
        if self._thread:
            self._thread.join(timeout=5)

    @property
    def stats(self) -> dict:
        """Get ingestion statistics."""
        last = self._last_cycle
        return {
            'cycle_count': self._cycle_count,
            'error_count': self._error_count,
            'deferred_count': self._deferred_count,
            'last_cycle_ts': last.timestamp if last else None,
            'last_feed_source': last.feed_source if last else None,
            'running': self._running,
        }

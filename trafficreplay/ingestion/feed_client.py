"""
Network data feed client.

Fetches the periodic JSON dump of connected pilots and controllers
(VATSIM v3 layout) and normalizes it into sample records.

Feed format (relevant fields only):
    {
      "pilots": [{"callsign", "cid", "latitude", "longitude", "altitude",
                  "groundspeed", "heading",
                  "flight_plan": {"departure", "arrival"}}],
      "controllers": [{"callsign", "cid", "frequency", "facility",
                       "latitude"?, "longitude"?}]
    }

Failure policy:
- every request carries a timeout
- on failure the last good payload is reused while it is younger than
  the staleness ceiling; past that the cycle sees an empty feed
- concurrent fetches share one in-flight request
"""

import logging
import threading
import time
from concurrent.futures import Future
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

import requests

from trafficreplay.config import config
from trafficreplay.errors import FeedUnavailableError
from trafficreplay.models import ControllerSample, PilotSample

logger = logging.getLogger(__name__)


def parse_feed(data: Dict[str, Any]) -> Tuple[List[PilotSample], List[ControllerSample]]:
    """Extract valid pilot and controller samples; malformed rows are skipped."""
    raw_pilots = data.get('pilots') if isinstance(data.get('pilots'), list) else []
    raw_controllers = data.get('controllers') if isinstance(data.get('controllers'), list) else []

    pilots = [p for p in (PilotSample.from_feed(raw) for raw in raw_pilots) if p is not None]
    controllers = [
        c for c in (ControllerSample.from_feed(raw) for raw in raw_controllers) if c is not None
    ]

    skipped = (len(raw_pilots) - len(pilots)) + (len(raw_controllers) - len(controllers))
    if skipped:
        logger.debug(f'Skipped {skipped} malformed feed rows')

    return pilots, controllers


@dataclass
class FeedSnapshot:
    """One resolved feed payload, parsed."""
    pilots: List[PilotSample] = field(default_factory=list)
    controllers: List[ControllerSample] = field(default_factory=list)
    fetched_at: Optional[float] = None
    # 'live', 'cache' (last good payload reused) or 'empty'
    source: str = 'empty'

    @property
    def is_empty(self) -> bool:
        return not self.pilots and not self.controllers


class FeedClient:
    """
    Client for the network data feed.

    Handles:
    - GET of the JSON dump with a bounded timeout
    - last-known-good fallback within a staleness ceiling
    - coalescing of concurrent identical fetches
    """

    def __init__(
        self,
        url: Optional[str] = None,
        timeout: Optional[float] = None,
        stale_ceiling: Optional[float] = None,
        http: Optional[requests.Session] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.url = url or config.feed.url
        self.timeout = timeout if timeout is not None else config.feed.timeout_seconds
        self.stale_ceiling = (
            stale_ceiling if stale_ceiling is not None else config.feed.stale_ceiling_seconds
        )
        self.http = http or requests.Session()
        self._clock = clock

        self._lock = threading.Lock()
        self._inflight: Optional[Future] = None

        self._last_good: Optional[FeedSnapshot] = None

        # Statistics
        self._request_count = 0
        self._failure_count = 0
        self._coalesced_count = 0

    @classmethod
    def from_config(cls) -> 'FeedClient':
        """Create client from application configuration."""
        return cls(
            url=config.feed.url,
            timeout=config.feed.timeout_seconds,
            stale_ceiling=config.feed.stale_ceiling_seconds,
        )

    def _request(self) -> Dict[str, Any]:
        """
        Perform one HTTP fetch.

        Raises FeedUnavailableError on network, HTTP or decoding errors.
        """
        self._request_count += 1
        try:
            response = self.http.get(
                self.url,
                headers={'User-Agent': config.feed.user_agent},
                timeout=self.timeout,
            )
            response.raise_for_status()
            data = response.json()
        except requests.exceptions.Timeout as e:
            raise FeedUnavailableError(f'feed timeout after {self.timeout}s') from e
        except requests.exceptions.HTTPError as e:
            status = e.response.status_code if e.response is not None else 'unknown'
            raise FeedUnavailableError(f'feed HTTP error {status}') from e
        except requests.exceptions.RequestException as e:
            raise FeedUnavailableError(f'feed request failed: {e}') from e
        except ValueError as e:
            raise FeedUnavailableError(f'feed returned invalid JSON: {e}') from e

        if not isinstance(data, dict):
            raise FeedUnavailableError('feed payload is not an object')
        return data

    def _fetch_with_fallback(self) -> FeedSnapshot:
        try:
            data = self._request()
        except FeedUnavailableError as e:
            self._failure_count += 1
            return self._fallback(e)

        pilots, controllers = parse_feed(data)
        snapshot = FeedSnapshot(
            pilots=pilots,
            controllers=controllers,
            fetched_at=self._clock(),
            source='live',
        )
        self._last_good = snapshot
        logger.info(f'Received {len(pilots)} pilots and {len(controllers)} controllers')
        return snapshot

    def _fallback(self, error: Exception) -> FeedSnapshot:
        last_good = self._last_good
        if last_good is not None:
            age = self._clock() - last_good.fetched_at
            if age <= self.stale_ceiling:
                logger.warning(f'Feed fetch failed; using cached data ({int(age)}s old): {error}')
                return FeedSnapshot(
                    pilots=last_good.pilots,
                    controllers=last_good.controllers,
                    fetched_at=last_good.fetched_at,
                    source='cache',
                )
            logger.error(f'Feed fetch failed and cached data is too old ({int(age)}s): {error}')
        else:
            logger.error(f'Feed fetch failed with no cached data: {error}')
        return FeedSnapshot()

    def fetch(self) -> FeedSnapshot:
        """
        Fetch the current feed, sharing any request already in flight.

        Never raises for upstream problems: the result is live data,
        recent cached data, or an empty snapshot.
        """
        with self._lock:
            future = self._inflight
            is_owner = future is None
            if is_owner:
                future = Future()
                self._inflight = future
            else:
                self._coalesced_count += 1

        if not is_owner:
            return future.result()

        try:
            snapshot = self._fetch_with_fallback()
        except Exception as e:
            future.set_exception(e)
            raise
        else:
            future.set_result(snapshot)
            return snapshot
        finally:
            with self._lock:
                self._inflight = None

    @property
    def stats(self) -> dict:
        last_good = self._last_good
        return {
            'requests': self._request_count,
            'failures': self._failure_count,
            'coalesced': self._coalesced_count,
            'last_good_at': last_good.fetched_at if last_good else None,
        }

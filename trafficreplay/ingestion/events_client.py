"""
Upstream event sync.

Scheduled network events are fetched periodically and stored as
protected ranges, so samples recorded during an event survive the
retention sweep.
"""

import logging
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

import requests

from trafficreplay.config import config, USER_AGENT
from trafficreplay.errors import FeedUnavailableError
from trafficreplay.storage import SnapshotStore

logger = logging.getLogger(__name__)


def parse_event_time(value: Any) -> Optional[int]:
    """Parse an ISO-8601 timestamp into unix seconds; naive times are UTC."""
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    if text.endswith('Z'):
        text = text[:-1] + '+00:00'
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return int(parsed.timestamp())


def parse_event(raw: Any) -> Optional[Dict[str, Any]]:
    """Normalize one upstream event; None if id or a valid window is missing."""
    if not isinstance(raw, dict):
        return None
    event_id = raw.get('id')
    if event_id is None or str(event_id).strip() == '':
        return None
    start_ts = parse_event_time(raw.get('start_time'))
    end_ts = parse_event_time(raw.get('end_time'))
    if start_ts is None or end_ts is None or end_ts < start_ts:
        return None
    return {
        'event_id': str(event_id),
        'name': raw.get('name'),
        'start_ts': start_ts,
        'end_ts': end_ts,
    }


class EventsClient:
    """Fetches the latest N events from the events API."""

    def __init__(
        self,
        api_base: Optional[str] = None,
        latest_num: Optional[int] = None,
        timeout: Optional[float] = None,
        http: Optional[requests.Session] = None,
    ):
        self.api_base = (api_base or config.events.api_base).rstrip('/')
        self.latest_num = latest_num or config.events.latest_num
        self.timeout = timeout if timeout is not None else config.events.timeout_seconds
        self.http = http or requests.Session()

    def fetch_events(self) -> List[Dict[str, Any]]:
        """
        Fetch and normalize events.

        Raises FeedUnavailableError on network or payload errors.
        """
        url = f'{self.api_base}/{self.latest_num}'
        try:
            response = self.http.get(url, headers={'User-Agent': USER_AGENT}, timeout=self.timeout)
            response.raise_for_status()
            body = response.json()
        except requests.exceptions.RequestException as e:
            raise FeedUnavailableError(f'events request failed: {e}') from e
        except ValueError as e:
            raise FeedUnavailableError(f'events API returned invalid JSON: {e}') from e

        items = body.get('data') if isinstance(body, dict) else None
        if not isinstance(items, list):
            return []
        return [e for e in (parse_event(item) for item in items) if e is not None]


class EventSync:
    """Rate-limited sync of upstream events into protected ranges."""

    def __init__(
        self,
        client: EventsClient,
        store: SnapshotStore,
        interval: Optional[int] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.client = client
        self.store = store
        self.interval = interval if interval is not None else config.events.poll_interval
        self._clock = clock
        self._last_sync: float = 0

    def sync(self, force: bool = False) -> int:
        """
        Fetch events and upsert their windows.

        Skipped (returns 0) when the last sync is younger than the
        interval, unless forced. Upstream errors propagate.
        """
        now = self._clock()
        if not force and now - self._last_sync < self.interval:
            return 0

        events = self.client.fetch_events()
        written = self.store.upsert_protected_ranges(events, fetched_at=int(now))
        self._last_sync = now
        logger.info(f'Events synced: fetched={len(events)} upserted={written}')
        return len(events)

"""
Configuration management for Traffic Replay.

Loads settings from environment variables with sensible defaults.
All configuration is centralized here to avoid magic strings scattered
throughout the codebase.
"""

import os
from dataclasses import dataclass, field
from typing import Tuple

from dotenv import load_dotenv

load_dotenv()


DEFAULT_AIRSPACE_URLS = (
    'https://raw.githubusercontent.com/vatsimnetwork/vatspy-data-project/main/Boundaries.geojson',
    'https://raw.githubusercontent.com/vatsimnetwork/vatspy-data-project/master/Boundaries.geojson',
)

USER_AGENT = 'traffic-replay/1.0 (+https://example.local)'


def _parse_url_list(value: str) -> Tuple[str, ...]:
    """Parse comma-separated URL list, falling back to the public boundary mirrors."""
    urls = tuple(u.strip() for u in (value or '').split(',') if u.strip())
    return urls or DEFAULT_AIRSPACE_URLS


def _clamp(value: int, low: int, high: int) -> int:
    return max(low, min(high, value))


@dataclass(frozen=True)
class DatabaseConfig:
    """Database configuration."""
    url: str = os.getenv('DATABASE_URL', 'sqlite:///data/traffic_replay.db')

    @property
    def is_sqlite(self) -> bool:
        return self.url.startswith('sqlite')


@dataclass(frozen=True)
class FeedConfig:
    """Upstream network feed settings."""
    url: str = os.getenv('FEED_URL', 'https://data.vatsim.net/v3/vatsim-data.json')
    timeout_seconds: float = float(os.getenv('FEED_TIMEOUT_SECONDS', '12'))
    # Last good payload is reused on failure for at most this long
    stale_ceiling_seconds: int = 30 * 60
    user_agent: str = USER_AGENT


@dataclass(frozen=True)
class IngestionConfig:
    """Data ingestion settings."""
    poll_interval: int = int(os.getenv('POLL_INTERVAL_SECONDS', '15'))


@dataclass(frozen=True)
class RetentionConfig:
    """Data retention policy."""
    hours: int = int(os.getenv('RETENTION_HOURS', '720'))


@dataclass(frozen=True)
class AirspaceConfig:
    """Airspace boundary sources."""
    urls: Tuple[str, ...] = field(
        default_factory=lambda: _parse_url_list(os.getenv('AIRSPACE_URLS', ''))
    )
    timeout_seconds: float = float(os.getenv('AIRSPACE_TIMEOUT_SECONDS', '5'))
    max_age_seconds: int = 60 * 60


@dataclass(frozen=True)
class EventsConfig:
    """Upstream event feed (event windows are protected from pruning)."""
    api_base: str = os.getenv('EVENTS_API_BASE', 'https://my.vatsim.net/api/v2/events/latest')
    latest_num: int = _clamp(int(os.getenv('EVENTS_LATEST_NUM', '150')), 1, 500)
    poll_interval: int = int(os.getenv('EVENT_POLL_INTERVAL_SECONDS', '3600'))
    timeout_seconds: float = 12.0


@dataclass(frozen=True)
class ReplayConfig:
    """Hard ceilings for replay queries."""
    max_range_seconds: int = 24 * 3600
    max_buckets: int = 10000  # ~24 hours at a 15s step


@dataclass(frozen=True)
class CacheConfig:
    """In-memory query cache settings."""
    ttl_seconds: float = float(os.getenv('QUERY_CACHE_TTL_SECONDS', '2'))
    max_entries: int = 256


@dataclass(frozen=True)
class AppConfig:
    """Main application configuration."""
    database: DatabaseConfig
    feed: FeedConfig
    ingestion: IngestionConfig
    retention: RetentionConfig
    airspace: AirspaceConfig
    events: EventsConfig
    replay: ReplayConfig
    cache: CacheConfig

    # Flask settings
    secret_key: str
    debug: bool

    @property
    def default_window(self) -> int:
        """Default snapshot window: half a poll interval, at least 5s."""
        return max(5, self.ingestion.poll_interval // 2)


def load_config() -> AppConfig:
    """Load and validate all configuration."""
    return AppConfig(
        database=DatabaseConfig(),
        feed=FeedConfig(),
        ingestion=IngestionConfig(),
        retention=RetentionConfig(),
        airspace=AirspaceConfig(),
        events=EventsConfig(),
        replay=ReplayConfig(),
        cache=CacheConfig(),
        secret_key=os.getenv('SECRET_KEY', 'dev-key-change-in-prod'),
        debug=os.getenv('FLASK_DEBUG', '0') == '1',
    )


# Singleton instance
config = load_config()

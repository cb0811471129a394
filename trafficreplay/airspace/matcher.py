"""
Airspace boundary cache and point-in-polygon matcher.

Loads a named-polygon dataset (GeoJSON FeatureCollection of airspace
boundaries), keeps it as an immutable snapshot, and answers
"which airspace is this point in?" for the ingestion pipeline.

Lookup semantics:
- features are scanned in load order
- bounding box reject first, then ray casting with hole subtraction
- the FIRST matching feature wins; overlapping boundaries are resolved
  purely by dataset order, not by area or priority

Refresh semantics (stale-while-revalidate):
- sources are tried in order, each with its own timeout
- the first well-formed collection replaces the whole feature set
- if every source fails, the previous set stays in place and
  BoundaryFetchError is raised
- readers always see one complete set: the swap is a single reference
  assignment of an immutable FeatureSet

Lookups are O(features x ring length). They only run at ingest time,
once per pilot per poll cycle.
"""

import logging
import math
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional, Sequence, Tuple

import requests

from trafficreplay.airspace.geometry import (
    BoundingBox,
    PolygonRings,
    geometry_bbox,
    iter_polygons,
)
from trafficreplay.config import config, USER_AGENT
from trafficreplay.errors import BoundaryFetchError

logger = logging.getLogger(__name__)

# Property names tried, in order, when the feature id is not usable
LABEL_PROPERTIES = (
    'id',
    'icao',
    'ident',
    'name',
    'label',
    'callsign',
    'prefix',
    'sector',
    'sector_name',
)


def feature_label(feature: Any) -> Optional[str]:
    """Derive a feature's airspace label: first non-empty string wins."""
    if not isinstance(feature, dict):
        return None

    feature_id = feature.get('id')
    if isinstance(feature_id, str) and feature_id.strip():
        return feature_id.strip()

    props = feature.get('properties') or {}
    if not isinstance(props, dict):
        return None

    for key in LABEL_PROPERTIES:
        value = props.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


@dataclass(frozen=True)
class BoundaryFeature:
    """A labelled airspace polygon set with its precomputed bounding box."""
    label: str
    polygons: Tuple[PolygonRings, ...]
    bbox: BoundingBox

    def contains(self, lon: float, lat: float) -> bool:
        if not self.bbox.contains(lon, lat):
            return False
        return any(polygon.contains(lon, lat) for polygon in self.polygons)


@dataclass(frozen=True)
class FeatureSet:
    """Immutable snapshot of loaded boundaries."""
    features: Tuple[BoundaryFeature, ...] = ()
    loaded_at: float = 0.0
    source: Optional[str] = None
    raw: Optional[Dict[str, Any]] = field(default=None, compare=False, repr=False)

    def __len__(self) -> int:
        return len(self.features)


def extract_features(collection: Dict[str, Any]) -> Tuple[BoundaryFeature, ...]:
    """
    Build BoundaryFeatures from a FeatureCollection.

    Features without a derivable label, a geometry, or a bounding box
    are dropped.
    """
    features = []
    for raw_feature in collection.get('features') or []:
        label = feature_label(raw_feature)
        geometry = raw_feature.get('geometry') if isinstance(raw_feature, dict) else None
        if not label or not geometry:
            continue
        bbox = geometry_bbox(geometry)
        if bbox is None:
            continue
        features.append(BoundaryFeature(
            label=label,
            polygons=tuple(iter_polygons(geometry)),
            bbox=bbox,
        ))
    return tuple(features)


def _is_feature_collection(data: Any) -> bool:
    return isinstance(data, dict) and isinstance(data.get('features'), list)


class AirspaceMatcher:
    """
    Thread-safe airspace classifier backed by a refreshable boundary set.

    Usage:
        matcher = AirspaceMatcher.from_config()
        matcher.ensure_fresh()
        matcher.lookup(51.47, -0.45)  # 'EGTT'
    """

    def __init__(
        self,
        urls: Sequence[str] = (),
        timeout: Optional[float] = None,
        http: Optional[requests.Session] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.urls = tuple(urls)
        self.timeout = timeout if timeout is not None else config.airspace.timeout_seconds
        self.http = http or requests.Session()
        self._clock = clock

        self._features = FeatureSet()
        self._load_lock = threading.Lock()

        self._load_count = 0
        self._failure_count = 0

    @classmethod
    def from_config(cls) -> 'AirspaceMatcher':
        """Create matcher from application configuration."""
        return cls(
            urls=config.airspace.urls,
            timeout=config.airspace.timeout_seconds,
        )

    @classmethod
    def from_geojson(cls, collection: Dict[str, Any], clock: Callable[[], float] = time.time) -> 'AirspaceMatcher':
        """Create a matcher preloaded from an in-memory collection."""
        matcher = cls(clock=clock)
        matcher.replace(collection, source='memory')
        return matcher

    # -------------------------------------------------------------------------
    # Loading
    # -------------------------------------------------------------------------

    def replace(self, collection: Dict[str, Any], source: Optional[str] = None) -> int:
        """Swap in a new feature set built from a collection. Returns feature count."""
        if not _is_feature_collection(collection):
            raise BoundaryFetchError('not a feature collection')

        features = extract_features(collection)
        self._features = FeatureSet(
            features=features,
            loaded_at=self._clock(),
            source=source,
            raw=collection,
        )
        self._load_count += 1
        logger.info(f'Loaded {len(features)} airspace features from {source}')
        return len(features)

    def _fetch_collection(self) -> Tuple[str, Dict[str, Any]]:
        """Try each source in order; return the first well-formed collection."""
        last_status = None

        for url in self.urls:
            try:
                response = self.http.get(
                    url,
                    headers={'User-Agent': USER_AGENT},
                    timeout=self.timeout,
                )
                last_status = response.status_code
                if not response.ok:
                    logger.warning(f'Airspace source {url} returned {response.status_code}')
                    continue
                data = response.json()
            except requests.exceptions.RequestException as e:
                logger.warning(f'Airspace source {url} failed: {e}')
                continue
            except ValueError as e:
                logger.warning(f'Airspace source {url} returned invalid JSON: {e}')
                continue

            if not _is_feature_collection(data):
                logger.warning(f'Airspace source {url} is not a feature collection')
                continue

            return url, data

        raise BoundaryFetchError(
            f'Failed to load airspace boundaries (status: {last_status or "unknown"})'
        )

    def load(self) -> int:
        """
        Fetch boundaries and replace the feature set.

        Raises BoundaryFetchError when no source succeeds; the previous
        feature set is left untouched in that case.
        """
        try:
            url, collection = self._fetch_collection()
        except BoundaryFetchError:
            self._failure_count += 1
            raise
        return self.replace(collection, source=url)

    def is_fresh(self, max_age: float) -> bool:
        current = self._features
        if len(current) == 0:
            return False
        return (self._clock() - current.loaded_at) < max_age

    def ensure_fresh(self, max_age: Optional[float] = None) -> None:
        """
        Reload only if the set is empty or older than max_age seconds.

        Concurrent callers share one reload: whoever waited on the lock
        re-checks freshness before fetching again.
        """
        if max_age is None:
            max_age = config.airspace.max_age_seconds

        if self.is_fresh(max_age):
            return

        with self._load_lock:
            if self.is_fresh(max_age):
                return
            self.load()

    # -------------------------------------------------------------------------
    # Lookup
    # -------------------------------------------------------------------------

    def lookup(self, lat: Any, lon: Any) -> Optional[str]:
        """
        Return the label of the first feature containing the point.

        Non-finite or non-numeric coordinates return None.
        """
        if not isinstance(lat, (int, float)) or not isinstance(lon, (int, float)):
            return None
        if not math.isfinite(lat) or not math.isfinite(lon):
            return None

        # Read the reference once so a concurrent swap can't mix sets
        current = self._features
        for feature in current.features:
            if feature.contains(lon, lat):
                return feature.label
        return None

    # -------------------------------------------------------------------------
    # Introspection
    # -------------------------------------------------------------------------

    @property
    def feature_count(self) -> int:
        return len(self._features)

    @property
    def geojson(self) -> Optional[Dict[str, Any]]:
        """Raw collection of the current set (for map passthrough)."""
        return self._features.raw

    @property
    def stats(self) -> dict:
        current = self._features
        return {
            'features': len(current),
            'source': current.source,
            'loaded_at': current.loaded_at or None,
            'age_seconds': round(self._clock() - current.loaded_at, 1) if current.loaded_at else None,
            'loads': self._load_count,
            'failures': self._failure_count,
        }

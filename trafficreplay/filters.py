"""
Filter composition shared by every replay query path.

Raw request inputs (comma/whitespace separated code lists, numeric
strings) are normalized into a SnapshotFilters value, which can then be
turned into SQLAlchemy criteria for the store or evaluated directly
against a sample.

Semantics:
- AND across categories (airspace AND airport AND altitude)
- OR within a category (airspace in {A, B})
- airport matches departure OR destination
- altitude: each given bound is checked; null altitude fails an active filter
- an empty or absent filter never restricts anything
"""

import math
import re
from dataclasses import dataclass
from typing import Any, Iterable, List, Mapping, Optional, Tuple

from sqlalchemy import and_, or_

_TOKEN_SPLIT = re.compile(r'[\s,;]+')


def parse_token_list(raw: Any) -> Tuple[str, ...]:
    """
    Split a raw filter value into normalized codes.

    Accepts a string or an iterable of strings. Tokens are stripped,
    upper-cased and deduplicated, keeping first-seen order.
    """
    if raw is None:
        return ()

    if isinstance(raw, str):
        parts: Iterable[str] = _TOKEN_SPLIT.split(raw)
    else:
        parts = [p for item in raw if isinstance(item, str) for p in _TOKEN_SPLIT.split(item)]

    seen = {}
    for part in parts:
        token = part.strip().upper()
        if token and token not in seen:
            seen[token] = None
    return tuple(seen)


def parse_altitude(raw: Any) -> Optional[int]:
    """
    Parse an altitude bound in feet.

    Empty, non-numeric and negative inputs mean "no bound".
    """
    if raw is None or isinstance(raw, bool):
        return None

    if isinstance(raw, (int, float)):
        value = raw
    else:
        text = str(raw).strip()
        if not text:
            return None
        try:
            value = int(text)
        except ValueError:
            try:
                value = float(text)
            except ValueError:
                return None

    if not math.isfinite(value) or value < 0:
        return None
    return int(value)


@dataclass(frozen=True)
class SnapshotFilters:
    """Normalized compound filter for pilot samples."""
    airspaces: Tuple[str, ...] = ()
    airports: Tuple[str, ...] = ()
    min_altitude: Optional[int] = None
    max_altitude: Optional[int] = None

    @classmethod
    def build(
        cls,
        airspaces: Any = None,
        airports: Any = None,
        min_altitude: Any = None,
        max_altitude: Any = None,
    ) -> 'SnapshotFilters':
        """Normalize raw inputs into a filter value."""
        return cls(
            airspaces=parse_token_list(airspaces),
            airports=parse_token_list(airports),
            min_altitude=parse_altitude(min_altitude),
            max_altitude=parse_altitude(max_altitude),
        )

    @classmethod
    def from_args(cls, args: Mapping[str, Any]) -> 'SnapshotFilters':
        """
        Build from request query parameters.

        Plural names win; singular `airspace` / `airport` are accepted
        for older clients.
        """
        airspaces = args.get('airspaces')
        if airspaces is None:
            airspaces = args.get('airspace')
        airports = args.get('airports')
        if airports is None:
            airports = args.get('airport')

        return cls.build(
            airspaces=airspaces,
            airports=airports,
            min_altitude=args.get('minAltitude'),
            max_altitude=args.get('maxAltitude'),
        )

    @property
    def has_altitude(self) -> bool:
        return self.min_altitude is not None or self.max_altitude is not None

    @property
    def is_empty(self) -> bool:
        return not self.airspaces and not self.airports and not self.has_altitude

    def matches(self, sample) -> bool:
        """Evaluate the filter against a PilotSample in Python."""
        if self.airspaces and sample.airspace not in self.airspaces:
            return False

        if self.airports and (
            sample.departure not in self.airports
            and sample.destination not in self.airports
        ):
            return False

        if self.has_altitude:
            if sample.altitude is None:
                return False
            if self.min_altitude is not None and sample.altitude < self.min_altitude:
                return False
            if self.max_altitude is not None and sample.altitude > self.max_altitude:
                return False

        return True

    def to_dict(self) -> dict:
        return {
            'airspaces': list(self.airspaces),
            'airports': list(self.airports),
            'minAltitude': self.min_altitude,
            'maxAltitude': self.max_altitude,
        }


def airspace_clause(airspaces: Tuple[str, ...], model):
    if not airspaces:
        return None
    return model.airspace.in_(airspaces)


def airport_clause(airports: Tuple[str, ...], model):
    if not airports:
        return None
    return or_(model.departure.in_(airports), model.destination.in_(airports))


def altitude_clause(min_altitude: Optional[int], max_altitude: Optional[int], model):
    conditions = []
    if min_altitude is not None:
        conditions.append(model.altitude >= min_altitude)
    if max_altitude is not None:
        conditions.append(model.altitude <= max_altitude)
    if not conditions:
        return None
    # A NULL altitude makes every comparison unknown, so it never passes
    return and_(*conditions)


def filter_clauses(filters: Optional[SnapshotFilters], model) -> List:
    """
    SQLAlchemy criteria for a filter, one per active category.

    Callers pass the result straight to `.where(*clauses)`.
    """
    if filters is None:
        return []

    clauses = [
        airspace_clause(filters.airspaces, model),
        airport_clause(filters.airports, model),
        altitude_clause(filters.min_altitude, filters.max_altitude, model),
    ]
    return [c for c in clauses if c is not None]

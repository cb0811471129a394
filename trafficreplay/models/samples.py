"""
Plain sample records passed between ingestion, storage and replay.

The upstream feed is loosely typed JSON. Rows are validated here, at the
ingestion boundary, and malformed ones are skipped so nothing of undefined
shape travels further inward.
"""

import math
from dataclasses import dataclass
from typing import Any, Mapping, Optional


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def finite_float(value: Any) -> Optional[float]:
    """Return value as float if it is a finite number, else None."""
    if not _is_number(value):
        return None
    value = float(value)
    return value if math.isfinite(value) else None


def optional_int(value: Any) -> Optional[int]:
    """Coerce finite numbers to int; anything else becomes None."""
    number = finite_float(value)
    return None if number is None else int(round(number))


def optional_code(value: Any) -> Optional[str]:
    """Normalize an airport/label code: stripped, upper-cased, empty -> None."""
    if not isinstance(value, str):
        return None
    value = value.strip().upper()
    return value or None


def _optional_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


@dataclass(frozen=True)
class PilotSample:
    """
    One pilot position at one poll timestamp.

    timestamp is 0 until the sample is stamped with its poll cycle.
    """
    callsign: str
    latitude: float
    longitude: float
    timestamp: int = 0
    cid: Optional[int] = None
    altitude: Optional[int] = None
    groundspeed: Optional[int] = None
    heading: Optional[int] = None
    airspace: Optional[str] = None
    departure: Optional[str] = None
    destination: Optional[str] = None

    @classmethod
    def from_feed(cls, raw: Mapping[str, Any]) -> Optional['PilotSample']:
        """
        Parse one feed pilot object.

        Returns None when the callsign or a finite position is missing.
        """
        if not isinstance(raw, Mapping):
            return None

        callsign = raw.get('callsign')
        if not isinstance(callsign, str) or not callsign.strip():
            return None

        lat = finite_float(raw.get('latitude'))
        lon = finite_float(raw.get('longitude'))
        if lat is None or lon is None:
            return None

        flight_plan = raw.get('flight_plan')
        if not isinstance(flight_plan, Mapping):
            flight_plan = {}

        return cls(
            callsign=callsign.strip().upper(),
            latitude=lat,
            longitude=lon,
            cid=optional_int(raw.get('cid')),
            altitude=optional_int(raw.get('altitude')),
            groundspeed=optional_int(raw.get('groundspeed')),
            heading=optional_int(raw.get('heading')),
            departure=optional_code(flight_plan.get('departure')),
            destination=optional_code(flight_plan.get('arrival')),
        )

    @classmethod
    def from_row(cls, row) -> 'PilotSample':
        """Build from a PilotSnapshot ORM row."""
        return cls(
            callsign=row.callsign,
            latitude=row.lat,
            longitude=row.lon,
            timestamp=row.ts,
            cid=row.cid,
            altitude=row.altitude,
            groundspeed=row.groundspeed,
            heading=row.heading,
            airspace=row.airspace,
            departure=row.departure,
            destination=row.destination,
        )

    def to_record(self, timestamp: int) -> dict:
        """Column mapping for a bulk insert under the given poll timestamp."""
        return {
            'ts': timestamp,
            'callsign': self.callsign,
            'cid': self.cid,
            'lat': self.latitude,
            'lon': self.longitude,
            'altitude': self.altitude,
            'groundspeed': self.groundspeed,
            'heading': self.heading,
            'airspace': self.airspace,
            'departure': self.departure,
            'destination': self.destination,
        }

    def to_dict(self, include_timestamp: bool = True) -> dict:
        """JSON-serializable form for API responses."""
        data = {
            'callsign': self.callsign,
            'cid': self.cid,
            'lat': self.latitude,
            'lon': self.longitude,
            'altitude': self.altitude,
            'groundspeed': self.groundspeed,
            'heading': self.heading,
            'airspace': self.airspace,
            'departure': self.departure,
            'destination': self.destination,
        }
        if include_timestamp:
            data['ts'] = self.timestamp
        return data


@dataclass(frozen=True)
class ControllerSample:
    """One controller position at one poll timestamp."""
    callsign: str
    timestamp: int = 0
    cid: Optional[int] = None
    frequency: Optional[str] = None
    facility: Optional[int] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None

    @classmethod
    def from_feed(cls, raw: Mapping[str, Any]) -> Optional['ControllerSample']:
        """Parse one feed controller object; None without a callsign."""
        if not isinstance(raw, Mapping):
            return None

        callsign = raw.get('callsign')
        if not isinstance(callsign, str) or not callsign.strip():
            return None

        return cls(
            callsign=callsign.strip().upper(),
            cid=optional_int(raw.get('cid')),
            frequency=_optional_str(raw.get('frequency')),
            facility=optional_int(raw.get('facility')),
            latitude=finite_float(raw.get('latitude')),
            longitude=finite_float(raw.get('longitude')),
        )

    @classmethod
    def from_row(cls, row) -> 'ControllerSample':
        """Build from a ControllerSnapshot ORM row."""
        return cls(
            callsign=row.callsign,
            timestamp=row.ts,
            cid=row.cid,
            frequency=row.frequency,
            facility=row.facility,
            latitude=row.lat,
            longitude=row.lon,
        )

    def to_record(self, timestamp: int) -> dict:
        return {
            'ts': timestamp,
            'callsign': self.callsign,
            'cid': self.cid,
            'frequency': self.frequency,
            'facility': self.facility,
            'lat': self.latitude,
            'lon': self.longitude,
        }

    def to_dict(self, include_timestamp: bool = True) -> dict:
        data = {
            'callsign': self.callsign,
            'frequency': self.frequency,
            'facility': self.facility,
            'lat': self.latitude,
            'lon': self.longitude,
        }
        if include_timestamp:
            data['ts'] = self.timestamp
        return data

"""
PilotSnapshot model - time-series position storage.

This is the backbone of replay. Every pilot position seen by a poll
cycle is recorded here under the cycle's timestamp, enabling:
- Point-in-time snapshot reconstruction
- Bucketed playback over a time range
- Per-callsign track reconstruction
- Filter option lists (airspaces, airports seen in a range)

Schema optimized for:
- Fast batch inserts (append-only pattern, one batch per poll cycle)
- Range scans on the timestamp column
- Equality lookups on label columns combined with time ranges
"""

from typing import Optional

from sqlalchemy import String, Float, Integer, Index
from sqlalchemy.orm import Mapped, mapped_column

from trafficreplay.models.base import Base


class PilotSnapshot(Base):
    """
    One pilot position observed at one poll timestamp.

    Rows are immutable once written and deleted only by retention pruning.
    (ts, callsign) is the logical key but is deliberately not unique:
    re-ingested duplicates are tolerated.
    """

    __tablename__ = 'pilot_snapshots'

    # Surrogate primary key; SQLite only autoincrements INTEGER keys
    id: Mapped[int] = mapped_column(
        Integer,
        primary_key=True,
        autoincrement=True,
        comment='Surrogate key'
    )

    # Poll cycle timestamp shared by every row of the batch
    ts: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        comment='Unix timestamp of the poll cycle'
    )

    callsign: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        comment='Pilot callsign'
    )

    cid: Mapped[Optional[int]] = mapped_column(
        Integer,
        nullable=True,
        comment='Network subject id'
    )

    # Position (WGS84)
    lat: Mapped[float] = mapped_column(
        Float,
        nullable=False,
        comment='Latitude in decimal degrees'
    )

    lon: Mapped[float] = mapped_column(
        Float,
        nullable=False,
        comment='Longitude in decimal degrees'
    )

    altitude: Mapped[Optional[int]] = mapped_column(
        Integer,
        nullable=True,
        comment='Altitude in feet'
    )

    groundspeed: Mapped[Optional[int]] = mapped_column(
        Integer,
        nullable=True,
        comment='Ground speed in knots'
    )

    heading: Mapped[Optional[int]] = mapped_column(
        Integer,
        nullable=True,
        comment='Heading in degrees'
    )

    # Assigned at ingest by the airspace matcher
    airspace: Mapped[Optional[str]] = mapped_column(
        String(64),
        nullable=True,
        comment='Enclosing airspace label'
    )

    departure: Mapped[Optional[str]] = mapped_column(
        String(8),
        nullable=True,
        comment='Flight plan departure airport'
    )

    destination: Mapped[Optional[str]] = mapped_column(
        String(8),
        nullable=True,
        comment='Flight plan arrival airport'
    )

    __table_args__ = (
        # Range scans and distinct timestamp index
        Index('ix_pilot_snapshots_ts', 'ts'),
        # Track reconstruction for one callsign
        Index('ix_pilot_snapshots_callsign_ts', 'callsign', 'ts'),
        # Airspace filter: label first for selective filters,
        # timestamp first for wide labels inside narrow ranges
        Index('ix_pilot_snapshots_airspace_ts', 'airspace', 'ts'),
        Index('ix_pilot_snapshots_ts_airspace', 'ts', 'airspace'),
        # Airport filter
        Index('ix_pilot_snapshots_departure_ts', 'departure', 'ts'),
        Index('ix_pilot_snapshots_ts_departure', 'ts', 'departure'),
        Index('ix_pilot_snapshots_destination_ts', 'destination', 'ts'),
        Index('ix_pilot_snapshots_ts_destination', 'ts', 'destination'),
    )

    def __repr__(self) -> str:
        return f'<PilotSnapshot {self.callsign} @ {self.ts}>'

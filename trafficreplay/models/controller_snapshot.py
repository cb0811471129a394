"""
ControllerSnapshot model - ATC positions recorded per poll cycle.
"""

from typing import Optional

from sqlalchemy import String, Float, Integer, Index
from sqlalchemy.orm import Mapped, mapped_column

from trafficreplay.models.base import Base


class ControllerSnapshot(Base):
    """One controller position observed at one poll timestamp."""

    __tablename__ = 'controller_snapshots'

    id: Mapped[int] = mapped_column(
        Integer,
        primary_key=True,
        autoincrement=True,
        comment='Surrogate key'
    )

    ts: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        comment='Unix timestamp of the poll cycle'
    )

    callsign: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        comment='Controller callsign (e.g., EGLL_N_TWR)'
    )

    cid: Mapped[Optional[int]] = mapped_column(
        Integer,
        nullable=True,
        comment='Network subject id'
    )

    frequency: Mapped[Optional[str]] = mapped_column(
        String(16),
        nullable=True,
        comment='Primary frequency'
    )

    facility: Mapped[Optional[int]] = mapped_column(
        Integer,
        nullable=True,
        comment='Facility type code'
    )

    # Controllers do not always report a position
    lat: Mapped[Optional[float]] = mapped_column(
        Float,
        nullable=True,
        comment='Latitude in decimal degrees'
    )

    lon: Mapped[Optional[float]] = mapped_column(
        Float,
        nullable=True,
        comment='Longitude in decimal degrees'
    )

    __table_args__ = (
        Index('ix_controller_snapshots_ts', 'ts'),
        Index('ix_controller_snapshots_callsign_ts', 'callsign', 'ts'),
    )

    def __repr__(self) -> str:
        return f'<ControllerSnapshot {self.callsign} @ {self.ts}>'

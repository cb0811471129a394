"""
ProtectedRange model - event windows exempt from retention pruning.

Upstream events (fly-ins, online days) are synced periodically. Samples
whose timestamp falls inside any stored window survive the retention
sweep no matter how old they are, so past events stay replayable.
"""

from typing import Optional

from sqlalchemy import String, Integer, Index
from sqlalchemy.orm import Mapped, mapped_column

from trafficreplay.models.base import Base


class ProtectedRange(Base):
    """An inclusive [start_ts, end_ts] window preserved from pruning."""

    __tablename__ = 'protected_ranges'

    id: Mapped[int] = mapped_column(
        Integer,
        primary_key=True,
        autoincrement=True,
        comment='Surrogate key'
    )

    event_id: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        unique=True,
        comment='Upstream event identifier'
    )

    name: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
        comment='Event name'
    )

    start_ts: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        comment='Window start (unix seconds, inclusive)'
    )

    end_ts: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        comment='Window end (unix seconds, inclusive)'
    )

    fetched_at: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        comment='Last sync time'
    )

    __table_args__ = (
        Index('ix_protected_ranges_window', 'start_ts', 'end_ts'),
    )

    def __repr__(self) -> str:
        return f'<ProtectedRange {self.event_id} {self.start_ts}..{self.end_ts}>'

    def contains(self, ts: int) -> bool:
        return self.start_ts <= ts <= self.end_ts

    def to_dict(self) -> dict:
        return {
            'event_id': self.event_id,
            'name': self.name,
            'start_ts': self.start_ts,
            'end_ts': self.end_ts,
            'fetched_at': self.fetched_at,
        }

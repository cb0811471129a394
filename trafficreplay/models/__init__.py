"""
Database models for Traffic Replay.

Schema designed for replayable time-series data with these priorities:
1. Fast ingestion (one atomic batch per poll cycle)
2. Efficient time-range and exact-timestamp queries
3. Indexed label filters (airspace, departure, destination)
4. Retention pruning that respects protected event windows
"""

from trafficreplay.models.base import (
    Base,
    engine,
    SessionLocal,
    init_db,
    make_session_factory,
    session_scope,
)
from trafficreplay.models.pilot_snapshot import PilotSnapshot
from trafficreplay.models.controller_snapshot import ControllerSnapshot
from trafficreplay.models.protected_range import ProtectedRange
from trafficreplay.models.samples import PilotSample, ControllerSample

__all__ = [
    'Base',
    'engine',
    'SessionLocal',
    'init_db',
    'make_session_factory',
    'session_scope',
    'PilotSnapshot',
    'ControllerSnapshot',
    'ProtectedRange',
    'PilotSample',
    'ControllerSample',
]

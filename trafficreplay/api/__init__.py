"""
API module for Traffic Replay.

Provides REST endpoints for:
- Replay data (snapshots, tracks, bucketed playback frames)
- Filter catalogs and reference data (airspaces, airports, events)
- System status
"""

from trafficreplay.api.replay import replay_bp
from trafficreplay.api.catalog import catalog_bp
from trafficreplay.api.status import status_bp

__all__ = ['replay_bp', 'catalog_bp', 'status_bp']

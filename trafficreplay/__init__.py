"""
Traffic Replay Package.

Historical replay service for network air traffic, built with Flask,
SQLAlchemy, and NumPy.

Modules:
    api/         REST endpoints for replay frames, tracks, catalogs and status
    models/      SQLAlchemy ORM models (PilotSnapshot, ControllerSnapshot, ProtectedRange)
    ingestion/   Network feed and events clients, background polling pipeline
    airspace/    Boundary loading and point-in-polygon airspace lookup
    storage/     Snapshot store: batch writes, range queries, retention pruning
    replay/      Bucket-to-sample resolution for playback
    filters.py   Filter parsing and query clause composition
    cache.py     Short-lived cache for repeated aggregate queries
    config.py    Centralized configuration from environment variables
"""

__version__ = '1.0.0'

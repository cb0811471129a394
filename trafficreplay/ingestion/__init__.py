"""
Data ingestion module for Traffic Replay.

Handles polling the network feed, classifying pilots into airspaces,
and appending each cycle to the snapshot store.
"""

from trafficreplay.ingestion.feed_client import FeedClient, FeedSnapshot
from trafficreplay.ingestion.events_client import EventsClient, EventSync
from trafficreplay.ingestion.pipeline import IngestionPipeline, CycleResult

__all__ = [
    'FeedClient',
    'FeedSnapshot',
    'EventsClient',
    'EventSync',
    'IngestionPipeline',
    'CycleResult',
]

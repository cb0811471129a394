"""
Exception types shared across Traffic Replay.
"""

from typing import Any, Dict, Optional


class TrafficReplayError(Exception):
    """Base class for all Traffic Replay errors."""


class FeedUnavailableError(TrafficReplayError):
    """Upstream network feed could not be fetched or parsed."""


class BoundaryFetchError(TrafficReplayError):
    """No airspace boundary source returned a usable feature collection."""


class ReplayRequestError(TrafficReplayError, ValueError):
    """
    Invalid replay request.

    `details` echoes the offending parameters back to the caller so the
    API layer can return them verbatim.
    """

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {'error': self.message, **self.details}

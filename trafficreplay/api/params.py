"""
Query parameter parsing shared by the API blueprints.
"""

import time
from typing import Optional, Tuple

from flask import current_app, request

from trafficreplay.errors import ReplayRequestError
from trafficreplay.replay import validate_range


def now_ts() -> int:
    return int(time.time())


def int_arg(name: str, default: Optional[int]) -> Optional[int]:
    """
    Read an integer query parameter.

    Missing or empty values give the default; anything unparsable is a
    ReplayRequestError echoing the received value.
    """
    raw = request.args.get(name)
    if raw is None or raw.strip() == '':
        return default
    try:
        return int(raw)
    except ValueError:
        try:
            return int(float(raw))
        except (ValueError, OverflowError):
            raise ReplayRequestError(f"invalid '{name}' parameter", {'received': raw}) from None


def time_range(default_span: int = 3600) -> Tuple[int, int]:
    """since/until with last-hour defaults, validated for order and span."""
    now = now_ts()
    since = int_arg('since', now - default_span)
    until = int_arg('until', now)
    validate_range(since, until)
    return since, until


def limit_arg(default: int, ceiling: int) -> int:
    limit = int_arg('limit', default)
    return max(1, min(limit, ceiling))


def service(name: str):
    """Fetch a service object registered on the app."""
    return current_app.config[name]

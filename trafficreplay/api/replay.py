"""
Replay API endpoints.

Provides endpoints for:
- GET /api/meta - Stored range and ingestion settings
- GET /api/callsigns - Callsigns seen in a range
- GET /api/track/<callsign> - Position history for one callsign
- GET /api/snapshot - Pilots around one timestamp
- GET /api/atc-snapshot - Controllers around one timestamp
- GET /api/preload-snapshots - Bucketed playback frames for a range

Every pilot endpoint accepts the same filter parameters:
airspaces (or airspace), airports (or airport), minAltitude, maxAltitude.
"""

import logging
import time

from flask import Blueprint, jsonify, request

from trafficreplay.api.params import int_arg, limit_arg, now_ts, service, time_range
from trafficreplay.config import config
from trafficreplay.filters import SnapshotFilters
from trafficreplay.ingestion.controller_roles import classify_controller
from trafficreplay.replay import validate_window

logger = logging.getLogger(__name__)

replay_bp = Blueprint('replay', __name__, url_prefix='/api')


def _controller_dict(sample, include_timestamp: bool = True) -> dict:
    data = sample.to_dict(include_timestamp=include_timestamp)
    data.update(classify_controller(sample.callsign).to_dict())
    return data


@replay_bp.route('/meta', methods=['GET'])
def get_meta():
    """Stored time range plus the settings clients need to build a timeline."""
    store = service('SNAPSHOT_STORE')
    meta = store.range_meta()
    return jsonify({
        'minTs': meta['min_ts'],
        'maxTs': meta['max_ts'],
        'rows': meta['rows'],
        'retentionHours': config.retention.hours,
        'pollIntervalSeconds': config.ingestion.poll_interval,
        'maxRangeSeconds': config.replay.max_range_seconds,
        'nowTs': now_ts(),
    })


@replay_bp.route('/callsigns', methods=['GET'])
def list_callsigns():
    """
    Callsigns seen in a range, most recently seen first.

    Query parameters:
    - since, until: unix seconds (default: last hour)
    - limit: max rows (default 2000)
    """
    since, until = time_range()
    limit = limit_arg(2000, 10000)
    filters = SnapshotFilters.from_args(request.args)

    rows = service('SNAPSHOT_STORE').callsigns_in_range(since, until, filters, limit)
    return jsonify({'since': since, 'until': until, **filters.to_dict(), 'rows': rows})


@replay_bp.route('/track/<callsign>', methods=['GET'])
def get_track(callsign: str):
    """
    Position history for a callsign.

    Query parameters:
    - since, until: unix seconds (default: last hour)
    - step: downsample bucket in seconds (0 = raw rows)
    """
    since, until = time_range()
    step = int_arg('step', 0)
    filters = SnapshotFilters.from_args(request.args)

    rows = service('SNAPSHOT_STORE').track(callsign, since, until, step, filters)
    return jsonify({
        'callsign': callsign.upper(),
        'since': since,
        'until': until,
        'step': step,
        **filters.to_dict(),
        'rows': rows,
    })


@replay_bp.route('/snapshot', methods=['GET'])
def get_snapshot():
    """
    Pilots within +/- window seconds of a timestamp.

    Query parameters:
    - ts: unix seconds (default: now)
    - window: seconds (default: half a poll interval, min 5)
    """
    ts = int_arg('ts', now_ts())
    window = int_arg('window', config.default_window)
    validate_window(window)
    filters = SnapshotFilters.from_args(request.args)

    rows = service('SNAPSHOT_STORE').query_at(ts, window, filters)
    return jsonify({
        'ts': ts,
        'window': window,
        **filters.to_dict(),
        'rows': [r.to_dict() for r in rows],
    })


@replay_bp.route('/atc-snapshot', methods=['GET'])
def get_atc_snapshot():
    """Controllers within +/- window seconds of a timestamp."""
    ts = int_arg('ts', now_ts())
    window = int_arg('window', config.default_window)
    validate_window(window)

    rows = service('SNAPSHOT_STORE').controllers_at(ts, window)
    return jsonify({'ts': ts, 'window': window, 'rows': [_controller_dict(r) for r in rows]})


@replay_bp.route('/preload-snapshots', methods=['GET'])
def preload_snapshots():
    """
    Evenly spaced playback frames for a range.

    Query parameters:
    - since, until: unix seconds (default: last hour)
    - step: frame spacing in seconds (default: poll interval)
    - window: extra seconds searched beyond the range (default: half a poll interval)
    - maxSourceAge: max distance between a frame and its source sample
      (default: max(window, 2 * step, 2 * poll interval))

    Frames without a source sample within maxSourceAge come back empty.
    """
    start_time = time.perf_counter()

    now = now_ts()
    poll = config.ingestion.poll_interval
    since = int_arg('since', now - 3600)
    until = int_arg('until', now)
    step = int_arg('step', poll)
    window = int_arg('window', config.default_window)
    max_source_age = int_arg('maxSourceAge', max(window, step * 2, poll * 2))
    filters = SnapshotFilters.from_args(request.args)

    frames = service('SNAPSHOT_RESOLVER').resolve_frames(
        since, until, step, window, max_source_age, filters=filters,
    )

    body = frames.to_dict()
    body['atcRowsByTs'] = {
        str(bucket): [_controller_dict(c, include_timestamp=False) for c in rows]
        for bucket, rows in frames.controllers.items()
    }

    query_time_ms = (time.perf_counter() - start_time) * 1000

    return jsonify({
        'since': since,
        'until': until,
        'step': step,
        'window': window,
        'maxSourceAge': max_source_age,
        **filters.to_dict(),
        **body,
        'query_time_ms': round(query_time_ms, 2),
    })

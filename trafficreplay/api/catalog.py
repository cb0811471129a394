"""
Catalog API endpoints - filter options and reference data.

Provides endpoints for:
- GET /api/airspaces - Airspace labels seen in a range, with counts
- GET /api/airports - Departure/arrival airports seen in a range
- GET /api/airspace - Raw boundary GeoJSON currently loaded
- GET /api/atc-online - Controllers in the current feed
- GET /api/events - Stored protected event windows
"""

import logging

from flask import Blueprint, jsonify, request

from trafficreplay.api.params import int_arg, limit_arg, service, time_range
from trafficreplay.errors import BoundaryFetchError, FeedUnavailableError
from trafficreplay.ingestion.controller_roles import classify_controller

logger = logging.getLogger(__name__)

catalog_bp = Blueprint('catalog', __name__, url_prefix='/api')


def _aggregate_response(column: str, default_limit: int):
    since, until = time_range()
    limit = limit_arg(default_limit, 10000)

    store = service('SNAPSHOT_STORE')
    cache = service('QUERY_CACHE')
    rows = cache.get_or_compute(
        (column, since, until, limit),
        lambda: store.aggregate_distinct(column, since, until, limit=limit),
    )

    response = jsonify({'since': since, 'until': until, 'rows': rows})
    response.headers['Cache-Control'] = 'public, max-age=5'
    return response


@catalog_bp.route('/airspaces', methods=['GET'])
def list_airspaces():
    """Airspace labels in range, busiest first."""
    return _aggregate_response('airspace', 2000)


@catalog_bp.route('/airports', methods=['GET'])
def list_airports():
    """Airports appearing as departure or destination in range, busiest first."""
    return _aggregate_response('airport', 3000)


@catalog_bp.route('/airspace', methods=['GET'])
def get_airspace_geojson():
    """
    Boundary collection used for classification.

    Refreshes the boundary set if stale; serves the previous set when
    the refresh fails, and 502 only when nothing was ever loaded.
    """
    matcher = service('AIRSPACE_MATCHER')
    try:
        matcher.ensure_fresh()
    except BoundaryFetchError as e:
        logger.warning(f'Airspace refresh failed: {e}')

    data = matcher.geojson
    if data is None:
        return jsonify({'error': 'airspace fetch failed'}), 502
    return jsonify(data)


@catalog_bp.route('/atc-online', methods=['GET'])
def list_atc_online():
    """Controllers in the current feed with their classified role and sector."""
    feed = service('FEED_CLIENT').fetch()
    positions = []
    for sample in feed.controllers:
        data = sample.to_dict(include_timestamp=False)
        data.update(classify_controller(sample.callsign).to_dict())
        positions.append(data)
    return jsonify({'positions': positions, 'source': feed.source})


@catalog_bp.route('/events', methods=['GET'])
def list_events():
    """
    Stored event windows (protected from pruning).

    Query parameters:
    - from, to: unix seconds bounding the windows (optional)
    - limit: max rows (default 500)
    - refresh: '1' to force an events sync first
    - includeWithoutData: '1' to include windows with no stored samples
    """
    if request.args.get('refresh', '').lower() in ('1', 'true'):
        event_sync = service('EVENT_SYNC')
        try:
            event_sync.sync(force=True)
        except FeedUnavailableError as e:
            logger.warning(f'Forced events sync failed: {e}')

    since = int_arg('from', None)
    until = int_arg('to', None)
    limit = limit_arg(500, 5000)
    include_without_data = request.args.get('includeWithoutData', '').lower() in ('1', 'true')

    ranges = service('SNAPSHOT_STORE').protected_ranges(
        since, until, limit, only_with_data=not include_without_data,
    )
    return jsonify({
        'from': since,
        'to': until,
        'limit': limit,
        'includeWithoutData': include_without_data,
        'rows': [r.to_dict() for r in ranges],
    })

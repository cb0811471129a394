"""
Status API endpoint.

Provides:
- GET /api/status - Ingestion, storage, boundary and cache health
"""

import logging
import time
from datetime import datetime, timezone

from flask import Blueprint, current_app, jsonify
from sqlalchemy.exc import SQLAlchemyError

from trafficreplay.api.params import service
from trafficreplay.config import config

logger = logging.getLogger(__name__)

status_bp = Blueprint('status', __name__, url_prefix='/api')


@status_bp.route('/status', methods=['GET'])
def get_system_status():
    """
    Get system health and status information.

    Returns:
    - Ingestion pipeline status
    - Stored range / database connectivity
    - Airspace boundary set
    - Feed client and cache statistics
    """
    start_time = time.perf_counter()

    pipeline = current_app.config.get('INGESTION_PIPELINE')
    pipeline_stats = pipeline.stats if pipeline else {'running': False}

    db_ok = True
    meta = None
    try:
        meta = service('SNAPSHOT_STORE').range_meta()
    except SQLAlchemyError as e:
        db_ok = False
        logger.error(f'Database health check failed: {e}')

    query_time_ms = (time.perf_counter() - start_time) * 1000

    return jsonify({
        'status': 'healthy' if (db_ok and pipeline_stats.get('running')) else 'degraded',
        'database': {
            'connected': db_ok,
            'type': 'sqlite' if config.database.is_sqlite else 'other',
            'range': meta,
        },
        'ingestion': pipeline_stats,
        'airspace': service('AIRSPACE_MATCHER').stats,
        'feed': service('FEED_CLIENT').stats,
        'cache': service('QUERY_CACHE').stats,
        'config': {
            'poll_interval': config.ingestion.poll_interval,
            'retention_hours': config.retention.hours,
        },
        'timestamp': datetime.now(timezone.utc).isoformat(),
        'query_time_ms': round(query_time_ms, 2),
    })

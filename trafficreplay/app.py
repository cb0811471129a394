"""
Traffic Replay Flask Application.

Main entry point for the web application. Initializes:
- Database schema
- Snapshot store, resolver and query cache
- Airspace matcher and feed clients
- Ingestion pipeline
- API routes

Usage:
    python -m trafficreplay.app

Or with gunicorn:
    gunicorn 'trafficreplay.app:create_app()'
"""

import logging
import os
from typing import Optional

from flask import Flask, jsonify
from flask_cors import CORS
from sqlalchemy.orm import sessionmaker

from trafficreplay.airspace import AirspaceMatcher
from trafficreplay.api import catalog_bp, replay_bp, status_bp
from trafficreplay.cache import QueryCache
from trafficreplay.config import config
from trafficreplay.errors import ReplayRequestError
from trafficreplay.ingestion import EventsClient, EventSync, FeedClient, IngestionPipeline
from trafficreplay.models import init_db
from trafficreplay.replay import SnapshotResolver
from trafficreplay.storage import SnapshotStore

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if config.debug else logging.INFO,
    format='%(asctime)s [%(levelname)s] %(name)s: %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S',
)
logger = logging.getLogger(__name__)


def create_app(
    start_ingestion: bool = True,
    session_factory: Optional[sessionmaker] = None,
    matcher: Optional[AirspaceMatcher] = None,
    feed_client: Optional[FeedClient] = None,
    events_client: Optional[EventsClient] = None,
) -> Flask:
    """
    Application factory for Flask.

    Args:
        start_ingestion: Whether to start the background ingestion pipeline.
                        Set to False for testing.
        session_factory: Session factory for the snapshot store. The
                        configured database is initialized and used if None.
        matcher: Airspace matcher (created from config if None)
        feed_client: Network feed client (created from config if None)
        events_client: Events API client (created from config if None)

    Returns:
        Configured Flask application instance.
    """
    app = Flask(__name__)

    # Configuration
    app.config['SECRET_KEY'] = config.secret_key

    # Enable CORS for API endpoints
    CORS(app, resources={r'/api/*': {'origins': '*'}})

    # Initialize database
    if session_factory is None:
        logger.info('Initializing database...')
        init_db()

    store = SnapshotStore(session_factory)
    cache = QueryCache()
    matcher = matcher or AirspaceMatcher.from_config()
    feed_client = feed_client or FeedClient.from_config()
    event_sync = EventSync(events_client or EventsClient(), store)

    app.config['SNAPSHOT_STORE'] = store
    app.config['SNAPSHOT_RESOLVER'] = SnapshotResolver(store)
    app.config['QUERY_CACHE'] = cache
    app.config['AIRSPACE_MATCHER'] = matcher
    app.config['FEED_CLIENT'] = feed_client
    app.config['EVENT_SYNC'] = event_sync

    # Register API blueprints
    app.register_blueprint(replay_bp)
    app.register_blueprint(catalog_bp)
    app.register_blueprint(status_bp)

    pipeline = IngestionPipeline(
        store,
        client=feed_client,
        matcher=matcher,
        event_sync=event_sync,
    )

    # New rows invalidate cached aggregates
    pipeline.add_cycle_callback(lambda result: cache.clear())
    app.config['INGESTION_PIPELINE'] = pipeline

    if start_ingestion:
        pipeline.start_background()
        logger.info(
            f'Ingestion started (interval={config.ingestion.poll_interval}s, '
            f'retention={config.retention.hours}h)'
        )

    @app.route('/health')
    def health():
        """Simple health check endpoint."""
        return {'status': 'ok'}

    # -------------------------------------------------------------------------
    # Error handlers
    # -------------------------------------------------------------------------

    @app.errorhandler(ReplayRequestError)
    def bad_request(e: ReplayRequestError):
        return jsonify(e.to_dict()), 400

    @app.errorhandler(404)
    def not_found(e):
        return {'error': 'Not found'}, 404

    @app.errorhandler(500)
    def server_error(e):
        logger.error(f'Server error: {e}')
        return {'error': 'Internal server error'}, 500

    return app


def run_development_server():
    """Run the development server."""
    app = create_app()

    # Get port from environment or default
    port = int(os.environ.get('PORT', 5000))

    logger.info(f'Starting Traffic Replay on http://localhost:{port}')

    app.run(
        host='0.0.0.0',
        port=port,
        debug=config.debug,
        use_reloader=False,  # Disable reloader to prevent duplicate pipeline threads
    )


if __name__ == '__main__':
    run_development_server()

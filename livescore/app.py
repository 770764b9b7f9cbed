import os
import logging
from flask import Flask, request, jsonify, Response

from live_engine.errors import (
    EngineError, ValidationError, NotFoundError, InvalidStateError,
    InvalidTransitionError, RecomputeFailure
)
from live_engine.match_engine import MatchEngine
from live_engine.models import Zone, PublishedResults
from live_engine.publisher import ResultPublisher
from live_engine.pubsub import PubSubClient
from live_engine.recompute import RecomputeScheduler
from live_engine.store import MemoryEntityStore, RedisEntityStore
from live_engine.sync import ClientSyncHub

from .config import config
from .models import db, RecomputeRun

logger = logging.getLogger(__name__)

ERROR_STATUS = {
    ValidationError: 400,
    NotFoundError: 404,
    InvalidStateError: 409,
    InvalidTransitionError: 409,
    RecomputeFailure: 500,
}


def build_store(app: Flask):
    backend = app.config.get('ENTITY_STORE', 'memory')
    if backend == 'redis':
        logger.info(f"Using Redis entity store at {app.config['REDIS_URL']}")
        return RedisEntityStore(app.config['REDIS_URL'], prefix=app.config.get('STORE_PREFIX', 'live:'))
    if backend == 'memory':
        logger.info("Using in-memory entity store")
        return MemoryEntityStore()
    raise ValueError(f"Unknown ENTITY_STORE backend: {backend}")


def create_app(config_name: str = None, store=None) -> Flask:
    """Application factory for the livescore service."""
    if config_name is None:
        config_name = os.getenv('FLASK_ENV', 'development')

    app = Flask(__name__)
    app.config.from_object(config[config_name])

    db.init_app(app)
    with app.app_context():
        db.create_all()

    store = store if store is not None else build_store(app)
    publisher = ResultPublisher(store)
    scheduler = RecomputeScheduler(
        store,
        publisher,
        debounce_seconds=app.config['RECOMPUTE_DEBOUNCE_SECONDS'],
        retry_seconds=app.config['RECOMPUTE_RETRY_SECONDS'],
        background=app.config['RECOMPUTE_BACKGROUND'],
        lock_timeout=app.config['RECOMPUTE_LOCK_TIMEOUT_SECONDS'],
        lock_wait=app.config['RECOMPUTE_LOCK_WAIT_SECONDS'],
    )
    hub = ClientSyncHub()

    scheduler.attach()
    hub.attach(store)

    if app.config.get('PUSH_ENABLED'):
        pubsub = PubSubClient(app.config['REDIS_URL'])
        publisher.add_listener(pubsub.publish_results)
        pubsub.subscribe_results(hub.broadcast_results)
        pubsub.start_listening()
        app.pubsub = pubsub
    else:
        publisher.add_listener(hub.broadcast_results)
        app.pubsub = None

    register_diagnostics(app, publisher, scheduler)

    app.store = store
    app.matches = MatchEngine(store)
    app.publisher = publisher
    app.scheduler = scheduler
    app.hub = hub

    register_error_handlers(app)
    register_api_routes(app)

    return app


def shutdown_app(app: Flask):
    """Stop the scheduler and every Redis listener thread the app started."""
    app.scheduler.shutdown()
    app.store.stop_listening()
    if app.pubsub is not None:
        app.pubsub.stop_listening()
    logger.info("Livescore background workers stopped")


def register_diagnostics(app: Flask, publisher: ResultPublisher, scheduler: RecomputeScheduler):
    """Log every pass to the recompute_runs table."""

    def record_published(results: PublishedResults):
        with app.app_context():
            db.session.add(RecomputeRun(
                version=results.version,
                calculated_by=results.calculated_by,
                calculated_at=results.calculated_at,
                status='published',
                entry_count=len(results.leaderboard),
                total_points=results.stats.total_points,
            ))
            db.session.commit()

    def record_failure(failure: RecomputeFailure):
        with app.app_context():
            db.session.add(RecomputeRun(
                version=failure.version,
                calculated_by=failure.provenance,
                status='failed',
                error=str(failure.cause),
            ))
            db.session.commit()

    publisher.add_listener(record_published)
    scheduler.on_failure(record_failure)


def register_error_handlers(app: Flask):

    @app.errorhandler(EngineError)
    def handle_engine_error(error: EngineError):
        code = 400
        for error_type, status in ERROR_STATUS.items():
            if isinstance(error, error_type):
                code = status
                break
        return jsonify({'error': str(error), 'kind': type(error).__name__}), code


def register_api_routes(app: Flask):
    """Register API routes."""

    def published_or_404():
        results = app.publisher.current()
        if results is None:
            return None, (jsonify({'error': 'No results published yet'}), 404)
        return results, None

    # ==================== Matches ====================

    @app.route('/api/v1/matches', methods=['GET'])
    def api_list_matches():
        """List matches with optional status filter."""
        status = request.args.get('status')
        matches = app.matches.list_matches(status=status)
        return jsonify({
            'matches': [m.to_dict() for m in matches],
            'count': len(matches)
        })

    @app.route('/api/v1/matches', methods=['POST'])
    def api_create_match():
        """Create a scheduled match."""
        data = request.get_json(silent=True) or {}
        match = app.matches.create_match(
            team_a=data.get('teamA'),
            team_b=data.get('teamB'),
            sport=data.get('sport'),
            zone=data.get('zone'),
        )
        return jsonify({
            'message': 'Match created',
            'match': match.to_dict()
        }), 201

    @app.route('/api/v1/matches/<match_id>', methods=['GET'])
    def api_get_match(match_id: str):
        return jsonify(app.matches.get_match(match_id).to_dict())

    @app.route('/api/v1/matches/<match_id>/score', methods=['POST'])
    def api_update_score(match_id: str):
        """Set both scores of a live or paused match."""
        data = request.get_json(silent=True) or {}
        if 'scoreA' not in data or 'scoreB' not in data:
            return jsonify({'error': 'scoreA and scoreB are required'}), 400

        match = app.matches.update_score(match_id, data['scoreA'], data['scoreB'])
        return jsonify({
            'message': 'Score updated',
            'match': match.to_dict()
        })

    @app.route('/api/v1/matches/<match_id>/status', methods=['POST'])
    def api_transition(match_id: str):
        """Move a match along the state machine."""
        data = request.get_json(silent=True) or {}
        status = data.get('status')
        if not status:
            return jsonify({'error': 'status is required'}), 400

        match = app.matches.transition(
            match_id, status, admin_override=bool(data.get('override', False))
        )
        return jsonify({
            'message': f'Match is now {match.status.value}',
            'match': match.to_dict()
        })

    # ==================== Derived artifacts ====================

    @app.route('/api/v1/stats/summary', methods=['GET'])
    def api_stats_summary():
        results, error = published_or_404()
        if error:
            return error
        return jsonify(results.stats.to_dict())

    @app.route('/api/v1/stats/leaderboard', methods=['GET'])
    def api_leaderboard():
        results, error = published_or_404()
        if error:
            return error

        leaderboard = results.leaderboard
        zone = request.args.get('zone')
        if zone:
            if Zone.parse(zone) is None:
                return jsonify({'error': f'Unknown zone: {zone}'}), 400
            leaderboard = leaderboard.for_zone(zone)

        return jsonify(leaderboard.to_dict())

    @app.route('/api/v1/stats/recalculate', methods=['POST'])
    def api_recalculate():
        """Manual trigger: run one pass now."""
        results = app.scheduler.trigger_manual()
        return jsonify({
            'message': 'Stats recalculated',
            'summary': results.stats.to_dict(),
            'leaderboard': results.leaderboard.to_dict(),
            'version': results.version
        })

    @app.route('/api/v1/stats/runs', methods=['GET'])
    def api_recompute_runs():
        """Recent recomputation passes, newest first."""
        limit = request.args.get('limit', 20, type=int)
        runs = RecomputeRun.query.order_by(RecomputeRun.id.desc()).limit(limit).all()
        return jsonify({
            'runs': [r.to_dict() for r in runs],
            'count': len(runs),
            'pending': app.scheduler.dirty,
            'version': app.scheduler.version
        })

    # ==================== Real-time Events (SSE) ====================

    @app.route('/api/v1/live/<subscriber_id>')
    def api_live_stream(subscriber_id: str):
        """SSE stream of match notifications and published results."""
        favourites = [f for f in request.args.get('favourites', '').split(',') if f]
        session = app.hub.register(subscriber_id, favourites)
        keepalive = app.config.get('SSE_KEEPALIVE_SECONDS', 30)

        def generate():
            try:
                yield from session.stream(keepalive=keepalive)
            finally:
                app.hub.unregister(subscriber_id, session)

        return Response(generate(), mimetype='text/event-stream', headers={
            'Cache-Control': 'no-cache',
            'X-Accel-Buffering': 'no'
        })

    # ==================== Health Check ====================

    @app.route('/health')
    def health_check():
        """Health check endpoint."""
        store_ok = app.store.ping()

        try:
            db.session.execute(db.text('SELECT 1'))
            db_ok = True
        except Exception:
            logger.exception("Database health check failed")
            db_ok = False

        status = 'healthy' if (store_ok and db_ok) else 'unhealthy'
        code = 200 if status == 'healthy' else 503

        results = app.publisher.current()
        return jsonify({
            'status': status,
            'store': 'connected' if store_ok else 'disconnected',
            'database': 'connected' if db_ok else 'disconnected',
            'last_calculated': results.calculated_at if results else None,
            'subscribers': app.hub.subscriber_count
        }), code

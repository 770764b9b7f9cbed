#!/usr/bin/env python3
"""
Entry point for the livescore service.

Usage:
    python run.py                    # Run the HTTP service (default)
    python run.py server             # Run the HTTP service explicitly
    python run.py recalculate        # Force one manual recomputation pass and exit

Environment Variables:
    FLASK_ENV: development, production or testing (default: development)
    PORT: Port to run on (default: 5000)
    ENTITY_STORE: memory or redis (production defaults to redis)
    LOG_LEVEL: logging level (default: INFO)
"""
import os
import sys
import json
import logging


def configure_logging():
    from livescore.config import config

    settings = config.get(os.getenv('FLASK_ENV', 'development'), config['default'])
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format='%(asctime)s %(levelname)s [%(name)s] %(message)s'
    )


def run_server():
    """Run the livescore HTTP service."""
    from livescore.app import create_app, shutdown_app

    app = create_app()
    port = int(os.getenv('PORT', 5000))
    debug = os.getenv('FLASK_ENV', 'development') == 'development'

    logging.getLogger(__name__).info(f"Starting livescore on port {port}...")
    try:
        # The reloader would start a second scheduler in the child process
        app.run(host='0.0.0.0', port=port, debug=debug, use_reloader=False, threaded=True)
    finally:
        shutdown_app(app)


def run_recalculate():
    """Run one manual pass against the configured store and print the summary."""
    from livescore.app import create_app, shutdown_app
    from live_engine.errors import RecomputeFailure

    app = create_app()
    try:
        results = app.scheduler.trigger_manual()
    except RecomputeFailure as e:
        logging.getLogger(__name__).error(str(e))
        sys.exit(1)
    finally:
        shutdown_app(app)

    print(json.dumps(results.stats.to_dict(), indent=2))


if __name__ == '__main__':
    configure_logging()
    mode = sys.argv[1] if len(sys.argv) > 1 else 'server'

    if mode == 'server':
        run_server()
    elif mode == 'recalculate':
        run_recalculate()
    else:
        print(f"Unknown mode: {mode}")
        print("Usage: python run.py [server|recalculate]")
        sys.exit(1)

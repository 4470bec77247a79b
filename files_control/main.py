"""
Development server entry point.

Runs the Flask app that serves the local storage endpoints and /health.
Background work runs in separate Celery worker and beat processes:

    celery -A files_control.celery_app:celery_app worker -Q default,storage_queue,cleanup_queue
    celery -A files_control.celery_app:celery_app beat
"""

import os

from .app_factory import create_app

app = create_app()

if __name__ == "__main__":
    host = os.getenv("FLASK_HOST", "0.0.0.0")
    port = int(os.getenv("FLASK_PORT", 8000))
    debug = os.getenv("FLASK_DEBUG", "false").lower() == "true"

    app.run(host=host, port=port, debug=debug)

"""
Celery Application Instance

Creates the Celery app instance for use by workers and beat scheduler.
Uses the app factory so tasks resolve fully wired services.
"""

from .app_factory import create_app

flask_app = create_app()

celery_app = flask_app.celery

# Task modules are listed by name so they are imported by the worker after
# celery_app exists (tasks -> celery_app -> app_factory would otherwise cycle)
celery_app.conf.imports = (
    "files_control.tasks.cleanup_task",
    "files_control.tasks.storage_tasks",
)

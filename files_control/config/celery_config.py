"""
Celery Configuration

Broker, queues and the periodic sweep for the storage workers. Storage
deletes and file cascades go to storage_queue; the expiry sweep runs on
cleanup_queue so a long sweep never delays deletes.
"""

import os

from celery import Celery
from kombu import Queue

STORAGE_QUEUE = "storage_queue"
CLEANUP_QUEUE = "cleanup_queue"

_DEFAULT_BROKER = os.getenv("REDIS_URL", "redis://localhost:6379/0")


class CeleryConfig:
    """Settings object passed to Celery.config_from_object."""

    broker_url = os.getenv("CELERY_BROKER_URL", _DEFAULT_BROKER)
    result_backend = os.getenv("CELERY_RESULT_BACKEND", _DEFAULT_BROKER)
    broker_connection_retry_on_startup = True

    task_serializer = result_serializer = "json"
    accept_content = ["json"]
    timezone = "UTC"
    enable_utc = True

    # Deletes are retried until they succeed; only ack once they have
    task_acks_late = True
    task_reject_on_worker_lost = True
    worker_prefetch_multiplier = 1
    worker_max_tasks_per_child = 200
    worker_concurrency = int(os.getenv("CELERY_WORKER_CONCURRENCY", 2))

    task_default_queue = "default"
    task_queues = (
        Queue("default", routing_key="default"),
        Queue(STORAGE_QUEUE, routing_key="storage"),
        Queue(CLEANUP_QUEUE, routing_key="cleanup"),
    )
    task_routes = {
        "tasks.delete_storage_object": {"queue": STORAGE_QUEUE},
        "tasks.delete_file_cascade": {"queue": STORAGE_QUEUE},
        "tasks.sweep_expired_records": {"queue": CLEANUP_QUEUE},
    }

    beat_schedule = {
        "sweep-expired-records": {
            "task": "tasks.sweep_expired_records",
            "schedule": float(os.getenv("SWEEP_INTERVAL_SECONDS", 3600)),
        },
    }

    task_soft_time_limit = int(os.getenv("CELERY_TASK_SOFT_TIME_LIMIT", 300))
    task_time_limit = int(os.getenv("CELERY_TASK_TIME_LIMIT", 360))
    result_expires = 3600


def make_celery(app) -> Celery:
    """
    Create the Celery app bound to a Flask app.

    Every task body runs inside app.app_context() so tasks can reach
    current_app and the app's dependency container.
    """
    celery = Celery(app.import_name, broker=CeleryConfig.broker_url,
                    backend=CeleryConfig.result_backend)
    celery.config_from_object(CeleryConfig)

    class FlaskContextTask(celery.Task):
        def __call__(self, *args, **kwargs):
            with app.app_context():
                return self.run(*args, **kwargs)

    celery.Task = FlaskContextTask
    return celery

"""
Application Factory

Builds the Flask app that serves the local storage endpoints and /health,
and carries the Celery app and dependency container used by the workers.
"""

import logging
import os
from typing import Optional

from flask import Flask, jsonify

from .application.dependency_container import DependencyContainer
from .application.event_publisher import EventPublisher
from .config.celery_config import make_celery
from .config.logging_config import configure_logging
from .config.redis_config import get_redis_repository, init_redis, redis_health_check
from .config.storage_config import S3Config, StorageConfig
from .domain.file_storage import (
    CleanupSweeper,
    DownloadGrantManager,
    FileLedgerRepository,
    FileRegistry,
    IObjectFetcher,
    ITaskRunner,
    SignedUrlService,
    StorageBackend,
    StorageBackends,
    TransferOrchestrator,
    UploadLedger,
)
from .infrastructure.http_object_fetcher import HttpObjectFetcher
from .infrastructure.local_object_storage import LocalObjectStorage
from .infrastructure.redis_file_ledger_repository import RedisFileLedgerRepository
from .infrastructure.storage_factory import StorageFactory
from .tasks.task_runner import CeleryTaskRunner

logger = logging.getLogger(__name__)


class AppConfig:
    """Process-level settings read from the environment at startup."""

    def __init__(self):
        self.log_level = os.getenv("LOG_LEVEL", "INFO")
        self.storage = StorageConfig()
        self.s3 = S3Config()


def create_app(config: Optional[AppConfig] = None) -> Flask:
    """
    Create the Flask application.

    Redis and Celery failures are logged rather than raised so the app can
    still boot and report itself degraded on /health.
    """
    config = config or AppConfig()

    configure_logging(config.log_level)

    app = Flask(__name__)
    app.config["SWEEP_BATCH_LIMIT"] = config.storage.sweep_batch_limit

    _initialize_infrastructure(app)
    _initialize_services(app, config)
    _register_blueprints(app)
    _register_health_endpoint(app)

    return app


def _initialize_infrastructure(app: Flask) -> None:
    app.celery = None
    try:
        init_redis()
        app.celery = make_celery(app)
    except Exception as e:
        logger.warning(f"Redis/Celery unavailable at startup: {e}")
        return
    logger.info("Redis pool and Celery app ready")


def _initialize_services(app: Flask, config: AppConfig) -> None:
    """
    Build the dependency container and attach it to the app as app.container.

    Adapters are created up front so configuration errors surface at boot;
    domain services are registered lazily and built on first use. On any
    failure app.container is None and /health reports the app degraded.
    """
    try:
        app.container = _build_container(config)
    except Exception as e:
        logger.error(f"Could not initialize services: {e}", exc_info=True)
        app.container = None


def _build_container(config: AppConfig) -> DependencyContainer:
    container = DependencyContainer()
    resolve = container.resolve

    events = EventPublisher()
    container.subscribe_event_handlers(events)
    container.register_singleton(EventPublisher, events)

    signer = StorageFactory.create_signer(config.storage)
    backends = StorageFactory.create_backends(config.storage, config.s3, signer)
    container.register_singleton(SignedUrlService, signer)
    container.register_singleton(StorageBackends, backends)
    container.register_singleton(LocalObjectStorage, backends.get(StorageBackend.LOCAL))
    container.register_singleton(
        FileLedgerRepository, RedisFileLedgerRepository(get_redis_repository())
    )
    container.register_singleton(ITaskRunner, CeleryTaskRunner())
    container.register_singleton(
        IObjectFetcher, HttpObjectFetcher(timeout=config.storage.fetch_timeout_seconds)
    )

    container.register_lazy(FileRegistry, lambda: FileRegistry(
        resolve(FileLedgerRepository), backends, resolve(ITaskRunner), event_publisher=events,
    ))
    container.register_lazy(UploadLedger, lambda: UploadLedger(
        resolve(FileRegistry), ttl_seconds=config.storage.pending_upload_ttl_seconds,
    ))
    container.register_lazy(DownloadGrantManager, lambda: DownloadGrantManager(
        resolve(FileLedgerRepository), backends, resolve(ITaskRunner), event_publisher=events,
    ))
    container.register_lazy(TransferOrchestrator, lambda: TransferOrchestrator(
        resolve(FileLedgerRepository), backends, resolve(IObjectFetcher),
        resolve(ITaskRunner), event_publisher=events,
    ))
    container.register_lazy(CleanupSweeper, lambda: CleanupSweeper(
        resolve(FileRegistry), event_publisher=events,
    ))

    configured = [b.value for b in StorageBackend if backends.is_configured(b)]
    logger.info(f"Services registered; storage backends: {', '.join(configured)}")
    return container


def _register_blueprints(app: Flask) -> None:
    from .api.local_storage import local_storage_bp

    app.register_blueprint(local_storage_bp)


def _check_redis() -> str:
    try:
        return "connected" if redis_health_check() else "disconnected"
    except Exception as e:
        return f"error: {e}"


def _get_health_status(app: Flask) -> tuple[dict, int]:
    """
    Report Redis, Celery and service wiring state.

    Returns:
        (body, status) where status is 503 if any component is not usable
    """
    components = {
        "redis": _check_redis(),
        "celery": "available" if getattr(app, "celery", None) is not None else "unavailable",
        "services": "initialized" if getattr(app, "container", None) is not None else "unavailable",
    }
    healthy = components["redis"] == "connected" and "unavailable" not in components.values()
    body = {"status": "ok" if healthy else "degraded", **components}
    return body, 200 if healthy else 503


def _register_health_endpoint(app: Flask) -> None:
    @app.route("/health", methods=["GET"])
    def health():
        body, status_code = _get_health_status(app)
        return jsonify(body), status_code

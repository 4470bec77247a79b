"""
Shared pytest fixtures and configuration for the files_control test suite.

This module provides:
- Hypothesis configuration for property-based testing
- A controllable clock
- Wired domain services over in-memory fakes
"""

from datetime import datetime, timedelta, timezone

import pytest
from hypothesis import HealthCheck, Phase, settings

from files_control.domain.file_storage import (
    CleanupSweeper,
    DownloadGrantManager,
    FileRegistry,
    StorageBackend,
    StorageBackends,
    TransferOrchestrator,
    UploadLedger,
)
from tests.fixtures.fake_storage import (
    FakeFetcher,
    InMemoryObjectStorage,
    RecordingEventPublisher,
    RecordingTaskRunner,
)
from tests.fixtures.mock_repositories import InMemoryFileLedgerRepository

# Register Hypothesis profiles
settings.register_profile(
    "default",
    max_examples=100,
    deadline=None,
    suppress_health_check=[HealthCheck.too_slow],
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.target, Phase.shrink],
)
settings.register_profile(
    "ci",
    max_examples=200,
    deadline=None,
    suppress_health_check=[HealthCheck.too_slow],
)
settings.register_profile(
    "dev",
    max_examples=10,
    deadline=None,
    suppress_health_check=[HealthCheck.too_slow],
)
settings.load_profile("default")


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


# =============================================================================
# Time-related Fixtures
# =============================================================================

@pytest.fixture
def fixed_datetime():
    """Provide a fixed UTC datetime for deterministic testing."""
    return datetime(2024, 1, 15, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def clock(fixed_datetime):
    return FakeClock(fixed_datetime)


# =============================================================================
# Fakes and wired services
# =============================================================================

@pytest.fixture
def ledger():
    return InMemoryFileLedgerRepository()


@pytest.fixture
def local_storage():
    return InMemoryObjectStorage(StorageBackend.LOCAL)


@pytest.fixture
def s3_storage():
    return InMemoryObjectStorage(StorageBackend.S3)


@pytest.fixture
def backends(local_storage, s3_storage):
    return StorageBackends(local=local_storage, s3=s3_storage)


@pytest.fixture
def task_runner():
    return RecordingTaskRunner()


@pytest.fixture
def events():
    return RecordingEventPublisher()


@pytest.fixture
def fetcher(backends):
    return FakeFetcher(backends)


@pytest.fixture
def registry(ledger, backends, task_runner, events, clock):
    return FileRegistry(ledger, backends, task_runner, event_publisher=events, clock=clock)


@pytest.fixture
def upload_ledger(registry):
    return UploadLedger(registry, ttl_seconds=3600)


@pytest.fixture
def grants(ledger, backends, task_runner, events, clock):
    return DownloadGrantManager(ledger, backends, task_runner, event_publisher=events, clock=clock)


@pytest.fixture
def transfers(ledger, backends, fetcher, task_runner, events, clock):
    return TransferOrchestrator(
        ledger, backends, fetcher, task_runner, event_publisher=events, clock=clock
    )


@pytest.fixture
def sweeper(registry, events):
    return CleanupSweeper(registry, event_publisher=events)


# =============================================================================
# Pytest Configuration Hooks
# =============================================================================

def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "unit: Unit tests (fast, no external dependencies)"
    )
    config.addinivalue_line(
        "markers", "integration: Integration tests (require external services)"
    )
    config.addinivalue_line(
        "markers", "property: Property-based tests using Hypothesis"
    )


def pytest_collection_modifyitems(config, items):
    """
    Automatically mark tests based on their location.

    - tests/unit/* -> @pytest.mark.unit
    - tests/integration/* -> @pytest.mark.integration
    - tests/property/* -> @pytest.mark.property
    """
    for item in items:
        test_path = str(item.fspath)

        if "/unit/" in test_path or "\\unit\\" in test_path:
            item.add_marker(pytest.mark.unit)
        elif "/integration/" in test_path or "\\integration\\" in test_path:
            item.add_marker(pytest.mark.integration)
        elif "/property/" in test_path or "\\property\\" in test_path:
            item.add_marker(pytest.mark.property)

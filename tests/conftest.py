"""Root pytest configuration for replay-store tests."""
from datetime import date

import pytest

from replay_store.buckets import BucketLoader
from replay_store.compactor import SnapshotCompactor
from replay_store.delta_writer import DeltaWriter
from replay_store.operations import Operations, OpsConfig
from replay_store.reconstructor import ReplayReconstructor
from replay_store.settings import Settings
from .storage.fakes.fake_object_store import FakeObjectStore

_ENV_VARS = (
    "REPLAY_STORE_BUCKET",
    "REPLAY_STORE_BACKEND",
    "REPLAY_STORE_TIMEOUT",
    "REPLAY_STORE_RETRY",
    "REPLAY_STORE_PRESIGN_TTL",
    "REPLAY_STORE_S3_ENDPOINT",
    "REPLAY_STORE_AZURE_BLOB_ENDPOINT",
    "REPLAY_STORE_FETCH_WORKERS",
    "REPLAY_STORE_LOOKBACK_HOURS",
    "REPLAY_STORE_COMPRESS",
    "AWS_REGION",
    "AWS_ACCESS_KEY_ID",
    "AWS_SECRET_ACCESS_KEY",
    "AZURE_STORAGE_CONNECTION_STRING",
    "AZURE_STORAGE_ACCOUNT",
    "AZURE_STORAGE_KEY",
)


# Configure pytest markers
def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers",
        "integration: mark test as integration test (requires a live object store)"
    )


# Set up test environment variables
@pytest.fixture(autouse=True)
def test_env(monkeypatch):
    """Clear ambient credentials and point settings at a test bucket."""
    for var in _ENV_VARS:
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setenv("REPLAY_STORE_BUCKET", "replay-test")
    monkeypatch.setenv("REPLAY_STORE_RETRY", "0")


# Standardized test fixtures
@pytest.fixture
def settings():
    """Standard test settings (no retries, so failures surface immediately)."""
    return Settings(bucket="replay-test", store_retry=0, fetch_workers=4)


@pytest.fixture
def store():
    """Standard fake object store for testing."""
    return FakeObjectStore()


@pytest.fixture
def loader(store):
    return BucketLoader(store, workers=4)


@pytest.fixture
def writer(store):
    return DeltaWriter(store)


@pytest.fixture
def compactor(store, loader):
    return SnapshotCompactor(store, loader)


@pytest.fixture
def reconstructor(loader):
    return ReplayReconstructor(loader)


@pytest.fixture
def ops(settings, store):
    """Operations facade over the fake store, referencing timeline objects by key."""
    return Operations(config=OpsConfig(presign_timeline=False), store=store, settings=settings)


@pytest.fixture
def day():
    return date(2024, 3, 14)

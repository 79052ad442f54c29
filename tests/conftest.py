"""
Shared pytest fixtures and configuration for all tests.
"""
import logging
import os
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from sessionstores.config.settings import clear_settings_cache
from sessionstores.telemetry import JSONFormatter, reset_telemetry

# Hypothesis configuration for property-based testing
from hypothesis import settings, Verbosity, Phase

# Default profile: balanced for local development
settings.register_profile(
    "default",
    max_examples=100,
    verbosity=Verbosity.normal,
    deadline=None,  # Disable deadline for async tests
    print_blob=True,  # Print failing examples for debugging
)

# CI profile: more thorough testing for continuous integration
settings.register_profile(
    "ci",
    max_examples=200,
    verbosity=Verbosity.verbose,
    deadline=None,
    print_blob=True,
    derandomize=True,  # Reproducible results in CI
)

# Debug profile: minimal examples for quick debugging
settings.register_profile(
    "debug",
    max_examples=10,
    verbosity=Verbosity.verbose,
    deadline=None,
    print_blob=True,
    phases=[Phase.explicit, Phase.reuse, Phase.generate],  # Skip shrinking for speed
)

# Fast profile: quick smoke tests
settings.register_profile(
    "fast",
    max_examples=20,
    verbosity=Verbosity.normal,
    deadline=None,
)

settings.load_profile(os.getenv("HYPOTHESIS_PROFILE", "default"))


class FakeClock:
    """Manually advanced clock for expiry tests."""

    def __init__(self, start: datetime):
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> None:
        self.current += timedelta(**kwargs)


@pytest.fixture
def clock() -> FakeClock:
    """A fake clock starting at a fixed instant."""
    return FakeClock(datetime(2024, 1, 15, 10, 30, tzinfo=timezone.utc))


@pytest.fixture
def id_sequence():
    """
    Build an identifier generator that yields the given ids in order.

    The returned generator records how many ids were handed out in
    its ``calls`` attribute.
    """
    def build(*ids: str):
        remaining = list(ids)

        def generate() -> str:
            generate.calls += 1
            return remaining.pop(0)

        generate.calls = 0
        return generate

    return build


@pytest.fixture
def mock_redis() -> MagicMock:
    """Create a mock Redis client for unit tests."""
    mock = MagicMock()
    mock.get = AsyncMock(return_value=None)
    mock.set = AsyncMock(return_value=True)
    mock.delete = AsyncMock(return_value=1)
    mock.ping = AsyncMock(return_value=True)
    mock.aclose = AsyncMock()
    return mock


@pytest.fixture
def mock_mongo_collection() -> MagicMock:
    """Create a mock MongoDB collection for unit tests."""
    mock = MagicMock()
    mock.insert_one = AsyncMock()
    mock.replace_one = AsyncMock()
    mock.find_one = AsyncMock(return_value=None)
    mock.delete_one = AsyncMock()
    mock.delete_many = AsyncMock(return_value=MagicMock(deleted_count=0))
    mock.create_index = AsyncMock(return_value="sessions_expiry_date_ttl")
    return mock


@pytest.fixture
def mock_mongo_client(mock_mongo_collection) -> MagicMock:
    """Create a mock AsyncMongoClient whose client[db][coll] is the mock collection."""
    mock = MagicMock()
    mock.__getitem__.return_value.__getitem__.return_value = mock_mongo_collection
    mock.admin.command = AsyncMock(return_value={"ok": 1})
    mock.close = AsyncMock()
    return mock


@pytest.fixture
def restore_root_logger():
    """Remove the JSON handlers and level installed by TelemetryService."""
    root = logging.getLogger()
    level = root.level
    yield
    for handler in root.handlers[:]:
        if isinstance(handler.formatter, JSONFormatter):
            root.removeHandler(handler)
    root.setLevel(level)


@pytest.fixture(autouse=True)
def reset_global_state():
    """Clear cached settings and the global telemetry service around each test."""
    clear_settings_cache()
    reset_telemetry()
    yield
    clear_settings_cache()
    reset_telemetry()

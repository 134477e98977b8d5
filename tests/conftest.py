"""
Breakwater Test Configuration

Shared pytest fixtures and configuration for all test types.
"""

import json
import os
import random
from pathlib import Path
from typing import Any, Generator

import pytest
import structlog
import yaml

from breakwater.core.clock import VirtualClock
from breakwater.core.config import reset_settings


def pytest_configure(config: pytest.Config) -> None:
    """Register the unit, integration and chaos markers."""
    for marker in (
        "unit: fast, isolated component tests",
        "integration: orchestrator driving a scripted dependency",
        "chaos: scripted outage and recovery sequences",
    ):
        config.addinivalue_line("markers", marker)


@pytest.fixture(autouse=True)
def isolate_global_state() -> Generator[None, None, None]:
    """Reset cached settings, BREAKWATER_ env vars and structlog around each test."""
    def _clear() -> None:
        reset_settings()
        for key in list(os.environ.keys()):
            if key.startswith("BREAKWATER_"):
                del os.environ[key]

    _clear()
    yield
    _clear()
    structlog.reset_defaults()


@pytest.fixture
def clock() -> VirtualClock:
    """Provide a virtual clock starting at t=0."""
    return VirtualClock()


@pytest.fixture
def rng() -> random.Random:
    """Provide a seeded random generator for reproducible jitter."""
    return random.Random(1234)


@pytest.fixture
def fixtures_dir() -> Path:
    """Return path to the fixtures directory."""
    return Path(__file__).parent / "fixtures"


@pytest.fixture
def load_fixture_data(fixtures_dir):
    """Return a loader for YAML or JSON files under tests/fixtures/."""
    loaders = {".json": json.loads, ".yaml": yaml.safe_load, ".yml": yaml.safe_load}

    def _load(relative_path: str) -> Any:
        path = fixtures_dir / relative_path
        if path.suffix not in loaders:
            raise ValueError(f"Unsupported fixture format: {relative_path}")
        return loaders[path.suffix](path.read_text())

    return _load


class TransientError(Exception):
    """Error flagged as retryable, like a 503 from an API client."""

    def __init__(self, message: str = "transient", retry_after: float | None = None) -> None:
        super().__init__(message)
        self.is_retryable = True
        self.retry_after = retry_after


class PermanentError(Exception):
    """Error flagged as non-retryable, like a 401 from an API client."""

    def __init__(self, message: str = "permanent") -> None:
        super().__init__(message)
        self.is_retryable = False


@pytest.fixture
def transient_error() -> type[TransientError]:
    return TransientError


@pytest.fixture
def permanent_error() -> type[PermanentError]:
    return PermanentError

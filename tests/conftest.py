"""Pytest configuration and fixtures shared across all test modules.

Environment variables are set before any import of ``throttler`` so the
global settings object is built for tests: in-memory store, known API keys.
"""

import os
from typing import Any, Callable
from unittest.mock import Mock

import pytest

# CRITICAL: Set this before any imports that might load settings
os.environ["APP_ENV"] = "testing"
os.environ.setdefault("APP_API_KEY_REQUIRED", "true")
os.environ.setdefault("APP_API_KEYS", "test-api-key-123,test-api-key-456")
os.environ.setdefault("THROTTLE_STORE", "memory")
os.environ.setdefault("LOG_LEVEL", "WARNING")

from fastapi import FastAPI  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from throttler.adapters.store.in_memory import InMemoryStore  # noqa: E402
from throttler.core.app_factory import create_app  # noqa: E402
from throttler.core.config import Settings, ThrottleSettings  # noqa: E402
from throttler.services.rate_limiter import RateLimiter  # noqa: E402


@pytest.fixture
def clock() -> Mock:
    """Frozen wall clock; tests move it by assigning ``return_value``."""
    return Mock(return_value=1000.0)


@pytest.fixture
def store(clock: Mock) -> InMemoryStore:
    return InMemoryStore(clock=clock)


@pytest.fixture
def limiter(store: InMemoryStore, clock: Mock) -> RateLimiter:
    return RateLimiter(store, clock=clock)


@pytest.fixture
def make_client(store: InMemoryStore, clock: Mock) -> Callable[..., TestClient]:
    """Build a TestClient around an app with custom throttle settings."""

    def _make(app_store: Any = None, **throttle: Any) -> TestClient:
        throttle.setdefault("store", "memory")
        settings = Settings(throttle=ThrottleSettings(**throttle))
        app: FastAPI = create_app(settings, store=app_store if app_store is not None else store, clock=clock)
        return TestClient(app)

    return _make


@pytest.fixture
def valid_api_key_headers() -> dict[str, str]:
    return {"X-API-Key": "test-api-key-123"}

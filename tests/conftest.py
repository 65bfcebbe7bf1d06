"""Shared fixtures for API and service tests."""

import pytest
from fastapi.testclient import TestClient

from app.config import config, get_config
from app.rate_limiter import rate_limiter
from helpers import with_overrides
from main import app


@pytest.fixture
def settings():
    """Default config with the demo delay removed."""
    return with_overrides(config, demo={"delay_seconds": 0})


@pytest.fixture
def client(settings):
    """TestClient using the ``settings`` fixture as the injected config."""
    app.dependency_overrides[get_config] = lambda: settings
    rate_limiter.reset()
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
    rate_limiter.reset()

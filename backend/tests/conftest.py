import os

# Set default env vars for tests before any app imports
os.environ.setdefault("PREDICTION_PROVIDER", "replicate")
os.environ.setdefault("REPLICATE_API_TOKEN", "test-token")
os.environ.setdefault("POLL_INTERVAL_SECONDS", "0")
os.environ.setdefault("POLL_MAX_ATTEMPTS", "5")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from app.main import app  # noqa: E402
from app.services.predictions import get_prediction_client  # noqa: E402


@pytest.fixture
def client():
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def use_fake():
    """Install a prediction client double behind the transform endpoint."""

    def _install(fake):
        async def _override():
            yield fake

        app.dependency_overrides[get_prediction_client] = _override
        return fake

    return _install

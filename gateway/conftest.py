# gateway/conftest.py
from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

from gateway.core.config import Settings
from gateway.core.metrics import METRICS
from gateway.features.identity.service import issue_token
from gateway.features.plans.catalog import default_catalog
from gateway.features.ratelimit.store import InMemoryCounterStore
from gateway.features.responders.service import FallbackResponder

TEST_FREE_KEY = "free-test-key-123"
TEST_JWT_SECRET = "test-jwt-secret-0123456789abcdef0123456789"


class FakeTime:
    """Manually advanced clock for window tests."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_settings(**overrides) -> Settings:
    values = {
        "ENV": "test",
        "FREE_MODE_API_KEY": TEST_FREE_KEY,
        "JWT_SECRET": TEST_JWT_SECRET,
        "GROQ_API_KEY": None,
        "PLAN_CATALOG_PATH": None,
        "AD_DELIVERY_ENABLED": False,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture(autouse=True)
def reset_metrics():
    METRICS.reset()
    yield


@pytest.fixture
def fake_time():
    return FakeTime()


@pytest.fixture
def settings_factory():
    return make_settings


@pytest.fixture
def test_settings():
    return make_settings()


@pytest.fixture
def jwt_secret():
    return TEST_JWT_SECRET


@pytest.fixture
def catalog():
    return default_catalog()


@pytest.fixture
def counter_store():
    return InMemoryCounterStore()


@pytest.fixture
def make_client(catalog, counter_store, fake_time):
    """Build a TestClient over a fresh app; keyword args override settings."""

    def _make(responder=None, plan_lookup=None, **overrides):
        from gateway.main import create_app

        app = create_app(
            make_settings(**overrides),
            catalog=catalog,
            responder=responder or FallbackResponder(),
            store=counter_store,
            time_fn=fake_time,
            plan_lookup=plan_lookup,
        )
        return TestClient(app)

    return _make


@pytest.fixture
def client(make_client):
    return make_client()


@pytest.fixture
def bearer():
    """Authorization headers for a signed token."""

    def _bearer(user_id: str = "user_1", plan=None, expires_in=timedelta(hours=1)):
        token = issue_token(
            user_id,
            plan,
            secret=TEST_JWT_SECRET,
            algorithm="HS256",
            expires_in=expires_in,
        )
        return {"Authorization": f"Bearer {token}"}

    return _bearer


@pytest.fixture
def free_headers():
    return {"X-API-Key": TEST_FREE_KEY}

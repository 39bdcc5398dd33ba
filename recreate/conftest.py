# recreate/conftest.py
import pytest
from fastapi.testclient import TestClient

from recreate.core.auth import issue_session_token
from recreate.core.config import Settings
from recreate.core.database import Database
from recreate.features.plans.service import create_plan
from recreate.features.users.service import resolve_or_create_user, update_profile
from recreate.main import create_app
from recreate.models.price_plan import PricePlanRequest
from recreate.models.user import ProfileUpdateRequest, UserStatus
from recreate.tests.mocks import FakePayments, InMemoryStorage


@pytest.fixture
def test_settings():
    """Settings isolated from the developer's .env file."""
    return Settings(
        _env_file=None,
        ENV="test",
        DATABASE_URL="sqlite://",
        SESSION_JWT_SECRET="test-session-secret",
        IDP_JWT_SECRET="test-idp-secret",
        BASE_URL="https://recreate.test",
        MAX_DELIVERY_BYTES=1024,
    )


@pytest.fixture
def db(test_settings):
    """Fresh in-memory SQLite database per test."""
    database = Database("sqlite://", test_settings)
    database.create_all()
    yield database
    database.dispose()


@pytest.fixture
def storage():
    return InMemoryStorage()


@pytest.fixture
def payments():
    return FakePayments()


@pytest.fixture
def app(test_settings, db, storage, payments):
    return create_app(settings_obj=test_settings, database=db, storage=storage, payments=payments)


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def make_user(db):
    counter = {"n": 0}

    def _make(handle: str = None, display_name: str = None):
        counter["n"] += 1
        handle = handle or f"user{counter['n']}"
        return resolve_or_create_user(db, external_id=f"ext-{handle}", handle=handle, display_name=display_name)

    return _make


@pytest.fixture
def make_creator(db, make_user):
    """User with one visible plan and status available. Returns (user, plan)."""

    def _make(handle: str = None, amount: int = 1000, payment_link: str = None):
        user = make_user(handle)
        result = create_plan(
            db,
            user.user_id,
            PricePlanRequest(title="Illustration", description="One character", amount=amount, payment_link=payment_link),
        )
        user = update_profile(db, user.user_id, ProfileUpdateRequest(status=UserStatus.AVAILABLE))
        return user, result.plan

    return _make


@pytest.fixture
def auth_headers(test_settings):
    def _headers(user) -> dict:
        return {"Authorization": f"Bearer {issue_session_token(user.user_id, test_settings)}"}

    return _headers

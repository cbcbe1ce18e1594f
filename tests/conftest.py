"""
Pytest configuration and core fixtures.

Every test gets its own in-memory SQLite database with all tables created,
a login orchestrator wired to a recording notification channel, and a
clock the OTP manager reads so expiry and lockout can be stepped through.
"""

import os
from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

TEST_PASSWORD = "Password123"


def pytest_configure(config):
    """Configure the environment before the application modules are imported."""
    os.environ["ENVIRONMENT"] = "test"
    os.environ["DATABASE_URL"] = os.environ.get(
        "TEST_DATABASE_URL", "sqlite+aiosqlite:///:memory:"
    )
    os.environ["DEBUG"] = "false"
    os.environ["ENABLE_SCHEDULER"] = "false"
    os.environ["RATE_LIMIT_ENABLED"] = "true"
    os.environ["OTP_CONSOLE_FALLBACK"] = "false"
    os.environ["INTERNAL_API_SECRET"] = "test-internal-secret"


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime.now(timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


class RecordingChannel:
    """Notification channel that keeps every code it is asked to send."""

    name = "recording"

    def __init__(self):
        self.sent: list[tuple[str, str, object]] = []
        self.fail = False

    @property
    def is_configured(self) -> bool:
        return True

    async def send(self, identifier, code, purpose) -> None:
        from expense_tracker.core.exceptions.types import DeliveryFailedException

        if self.fail:
            raise DeliveryFailedException()
        self.sent.append((identifier, code, purpose))

    async def aclose(self) -> None:
        return None

    def last_code(self, identifier: str | None = None) -> str:
        for sent_to, code, _ in reversed(self.sent):
            if identifier is None or sent_to == identifier:
                return code
        raise AssertionError(f"No code was sent to {identifier}")


@pytest.fixture
async def db_engine():
    """Fresh in-memory database; StaticPool keeps the single connection alive."""
    import expense_tracker.core.db.models  # noqa: F401
    from expense_tracker.core.db import Base

    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    try:
        yield engine
    finally:
        await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return async_sessionmaker(
        bind=db_engine,
        autoflush=False,
        expire_on_commit=False,
    )


@pytest.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture(autouse=True)
async def reset_rate_limits():
    """Clear the per-IP counters so tests do not throttle each other."""
    from expense_tracker.core.services.rate_limit import reset_rate_limits

    await reset_rate_limits()
    yield
    await reset_rate_limits()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def channel() -> RecordingChannel:
    return RecordingChannel()


@pytest.fixture
def dispatcher(channel):
    from expense_tracker.core.enums import OTPChannel
    from expense_tracker.core.services.notifications import NotificationDispatcher

    return NotificationDispatcher(
        providers={OTPChannel.EMAIL: channel, OTPChannel.PHONE: channel},
        timeout=2,
    )


@pytest.fixture
def otp_manager(clock):
    from expense_tracker.core.services.otp import OTPChallengeManager

    return OTPChallengeManager(clock=clock)


@pytest.fixture
def orchestrator(dispatcher, otp_manager):
    from expense_tracker.core.services.auth import LoginOrchestrator

    return LoginOrchestrator(dispatcher, otp_manager=otp_manager)


@pytest.fixture
def app():
    """FastAPI application for testing."""
    from expense_tracker.main import app as fastapi_app

    return fastapi_app


@pytest.fixture
async def client(
    app, db_session: AsyncSession, orchestrator
) -> AsyncGenerator[AsyncClient, None]:
    """Provide an async HTTP client bound to the test session and orchestrator.

    The lifespan does not run under ASGITransport, so the orchestrator is
    placed on ``app.state`` here.
    """
    from expense_tracker.core.dependencies import get_async_session

    async def override_get_session():
        yield db_session

    app.dependency_overrides[get_async_session] = override_get_session
    app.state.auth_orchestrator = orchestrator

    try:
        async with AsyncClient(
            transport=ASGITransport(app=app),
            base_url="http://test",
        ) as ac:
            yield ac
    finally:
        app.dependency_overrides.pop(get_async_session, None)


async def _create_user(
    session: AsyncSession,
    email: str | None = None,
    phone: str | None = None,
    password: str | None = TEST_PASSWORD,
    is_verified: bool = True,
    full_name: str = "Test User",
):
    from expense_tracker.core.db.crud import user_db
    from expense_tracker.core.enums import IdentityType
    from expense_tracker.core.utils import hash_password

    identity_type = IdentityType.LOCAL_EMAIL if email else IdentityType.LOCAL_PHONE
    return await user_db.create_with_identity(
        session,
        {
            "email": email,
            "phone": phone,
            "full_name": full_name,
            "password_hash": hash_password(password) if password else None,
            "is_verified": is_verified,
        },
        identity_type=identity_type,
        external_id=email or phone,
    )


@pytest.fixture
def make_user(db_session: AsyncSession):
    """Factory creating committed users: ``await make_user(email=...)``."""

    async def factory(**kwargs):
        return await _create_user(db_session, **kwargs)

    return factory


@pytest.fixture
async def test_user(db_session: AsyncSession):
    return await _create_user(db_session, email="alice@example.com", full_name="Alice")


@pytest.fixture
async def test_user_unverified(db_session: AsyncSession):
    return await _create_user(
        db_session, email="unverified@example.com", is_verified=False
    )


@pytest.fixture
def auth_headers(test_user) -> dict[str, str]:
    """Generate authentication headers for test user."""
    from expense_tracker.core.utils import create_jwt_token

    access_token = create_jwt_token(
        data={"sub": str(test_user.id), "type": "access"},
        expires_delta=timedelta(minutes=15),
    )
    return {"Authorization": f"Bearer {access_token}"}


@pytest.fixture
async def authenticated_client(
    client: AsyncClient,
    auth_headers: dict[str, str],
) -> AsyncClient:
    """Provide authenticated async client."""
    client.headers.update(auth_headers)
    return client

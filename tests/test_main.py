"""
Unit tests for the main FastAPI application.

- FastAPI app initialization and configuration
- Lifespan events (startup and shutdown)
- Health check endpoint
- Root endpoint
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from expense_tracker.core.config import settings
from expense_tracker.core.dependencies import get_async_session
from expense_tracker.core.services.auth import LoginOrchestrator
from expense_tracker.main import app, lifespan


class TestAppConfiguration:

    def test_app_title(self):
        assert app.title == settings.APP_NAME

    def test_app_version(self):
        assert app.version == settings.APP_VERSION

    def test_routers_are_mounted(self):
        paths = {route.path for route in app.routes}

        assert "/auth/login" in paths
        assert "/auth/verify-otp" in paths
        assert "/profile" in paths
        assert "/profile/devices/{device_id}" in paths

    def test_external_login_is_hidden_from_schema(self):
        assert "/auth/external" not in app.openapi()["paths"]


class TestLifespan:

    @pytest.fixture(autouse=True)
    def lifespan_mocks(self):
        """Provide common mocks for all lifespan tests."""
        with (
            patch("expense_tracker.main.init_db", new_callable=AsyncMock) as mock_init_db,
            patch("expense_tracker.main.dispose_db", new_callable=AsyncMock) as mock_dispose,
            patch("expense_tracker.main.Renderer") as mock_renderer,
            patch("expense_tracker.main.NotificationDispatcher") as mock_dispatcher_cls,
            patch("expense_tracker.main.scheduler") as mock_scheduler,
            patch("expense_tracker.main.initialize_scheduler") as mock_init_sched,
        ):
            dispatcher = MagicMock()
            dispatcher.aclose = AsyncMock()
            mock_dispatcher_cls.from_settings.return_value = dispatcher

            self.mocks = {
                "init_db": mock_init_db,
                "dispose_db": mock_dispose,
                "renderer": mock_renderer,
                "dispatcher": dispatcher,
                "scheduler": mock_scheduler,
                "initialize_scheduler": mock_init_sched,
            }
            yield self.mocks

    async def test_startup_and_shutdown(self):
        fastapi_app = MagicMock()

        async with lifespan(fastapi_app):
            self.mocks["init_db"].assert_awaited_once()
            self.mocks["renderer"].initialize.assert_called_once()
            assert isinstance(fastapi_app.state.auth_orchestrator, LoginOrchestrator)
            assert fastapi_app.state.auth_orchestrator.dispatcher is self.mocks["dispatcher"]

        self.mocks["dispatcher"].aclose.assert_awaited_once()
        self.mocks["dispose_db"].assert_awaited_once()

    async def test_scheduler_disabled(self):
        with patch.object(settings, "ENABLE_SCHEDULER", False):
            async with lifespan(MagicMock()):
                pass

        self.mocks["scheduler"].start.assert_not_called()
        self.mocks["initialize_scheduler"].assert_not_called()

    async def test_scheduler_enabled(self):
        with patch.object(settings, "ENABLE_SCHEDULER", True):
            async with lifespan(MagicMock()):
                self.mocks["scheduler"].start.assert_called_once()
                self.mocks["initialize_scheduler"].assert_called_once()

        self.mocks["scheduler"].shutdown.assert_called_once()


class TestEndpoints:

    async def test_root(self, client: AsyncClient):
        response = await client.get("/")

        assert response.status_code == 200
        data = response.json()
        assert data["version"] == settings.APP_VERSION
        assert data["documentations"]["swagger"] == "http://test/docs"

    async def test_health_ok(self, client: AsyncClient):
        response = await client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "ok"
        assert response.json()["checks"]["database"] == "ok"

    async def test_health_database_down(self):
        session = AsyncMock(spec=AsyncSession)
        session.execute.side_effect = OperationalError("SELECT 1", {}, Exception("down"))

        async def override_get_session():
            yield session

        app.dependency_overrides[get_async_session] = override_get_session
        try:
            async with AsyncClient(
                transport=ASGITransport(app=app), base_url="http://test"
            ) as ac:
                response = await ac.get("/health")
        finally:
            app.dependency_overrides.pop(get_async_session, None)

        assert response.status_code == 503
        data = response.json()
        assert data["status"] == "degraded"
        assert data["checks"]["database"] == "unhealthy"

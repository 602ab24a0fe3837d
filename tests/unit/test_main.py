"""Tests for the FastAPI application factory module."""

from unittest.mock import AsyncMock, patch

import pytest
from fastapi.testclient import TestClient

from tally_api.core.config import Settings
from tally_api.main import create_app, lifespan


def _settings(**overrides: object) -> Settings:
    return Settings(
        _env_file=None,
        database_url="sqlite+aiosqlite:///:memory:",
        jwt_secret_key="test-secret-key-not-for-production",
        **overrides,
    )


class TestCreateApp:
    """Tests for create_app."""

    @pytest.fixture
    def app(self):
        with patch("tally_api.main.get_settings", return_value=_settings()):
            return create_app()

    def test_app_is_created(self, app) -> None:
        assert app.title == "Tally API"

    def test_routes_registered(self, app) -> None:
        paths = {route.path for route in app.routes}
        assert "/api/v1/tally/{category}/zones/{zone_id}" in paths
        assert "/api/v1/offline-ballots/{category}/merge" in paths
        assert "/api/v1/declaration/challenges/{challenge_id}/codes" in paths
        assert "/api/v1/declaration/status" in paths
        assert "/api/v1/audit" in paths

    def test_health_endpoint(self, app) -> None:
        client = TestClient(app)
        response = client.get("/api/v1/health")
        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}
        assert response.headers["Cache-Control"] == "no-store"

    def test_error_handlers_registered(self, app) -> None:
        from tally_api.core.errors import ServiceError

        assert app.exception_handlers.get(ServiceError) is not None
        assert app.exception_handlers.get(ValueError) is not None


class TestAppLifespan:
    """Tests for lifespan management."""

    @pytest.mark.asyncio
    async def test_lifespan_init_and_dispose(self) -> None:
        mock_app = AsyncMock()

        with (
            patch("tally_api.main.get_settings", return_value=_settings(declaration_cleanup_enabled=False)),
            patch("tally_api.main.setup_logging") as mock_setup_logging,
            patch("tally_api.main.init_engine") as mock_init_engine,
            patch("tally_api.main.dispose_engine", new_callable=AsyncMock) as mock_dispose,
        ):
            async with lifespan(mock_app):
                mock_setup_logging.assert_called_once()
                mock_init_engine.assert_called_once()

            mock_dispose.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_lifespan_starts_and_cancels_cleanup(self) -> None:
        mock_app = AsyncMock()
        loop_mock = AsyncMock()

        with (
            patch("tally_api.main.get_settings", return_value=_settings(declaration_cleanup_enabled=True)),
            patch("tally_api.main.setup_logging"),
            patch("tally_api.main.init_engine"),
            patch("tally_api.main.dispose_engine", new_callable=AsyncMock),
            patch("tally_api.services.otp_service.declaration_cleanup_loop", loop_mock),
        ):
            async with lifespan(mock_app):
                pass

        loop_mock.assert_called_once_with(600)

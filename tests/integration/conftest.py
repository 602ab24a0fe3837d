"""Fixtures for API tests against the in-memory database."""

from collections.abc import AsyncGenerator, Callable

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tally_api.api.router import create_router
from tally_api.core.config import Settings
from tally_api.core.dependencies import get_async_session, get_current_user, get_notifier_dependency
from tally_api.lib.notifier import BaseNotifier
from tally_api.models.user import User


@pytest.fixture
def make_client(
    session_factory: async_sessionmaker[AsyncSession],
    notifier: BaseNotifier,
    settings: Settings,
) -> Callable[..., AsyncClient]:
    """Build an API client, optionally authenticated as ``user``.

    Each request gets its own session from the test engine.  Without a user
    the bearer token check runs unmodified.
    """

    def _make(user: User | None = None, *, code_notifier: BaseNotifier | None = None) -> AsyncClient:
        app = FastAPI()
        app.include_router(create_router(settings))

        async def _session() -> AsyncGenerator[AsyncSession]:
            async with session_factory() as session:
                yield session

        app.dependency_overrides[get_async_session] = _session
        app.dependency_overrides[get_notifier_dependency] = lambda: code_notifier or notifier
        if user is not None:
            app.dependency_overrides[get_current_user] = lambda: user
        return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")

    return _make

"""Fixtures for HTTP-level tests."""

from __future__ import annotations

from collections.abc import Awaitable, Callable

import pytest
from httpx import AsyncClient

from mcprouter.models.database import User
from mcprouter.web.auth.session import SESSION_COOKIE
from mcprouter.web.dependencies import Services


@pytest.fixture()
def make_user(services: Services) -> Callable[..., Awaitable[User]]:
    async def _make(email: str, verified: bool = True) -> User:
        await services.users.create(email=email)
        if verified:
            await services.users.mark_email_verified(email)
        user = await services.users.get_by_email(email)
        assert user is not None
        return user

    return _make


@pytest.fixture()
def login(services: Services, client: AsyncClient) -> Callable[[User], Awaitable[None]]:
    """Attach a fresh session cookie for ``user`` to the shared client."""

    async def _login(user: User) -> None:
        token = await services.sessions.create_session(user.id)
        client.cookies.set(SESSION_COOKIE, token)

    return _login

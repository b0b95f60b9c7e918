"""Unit tests for SessionAuth."""

from __future__ import annotations

import pytest

from mcprouter.web.auth.session import SESSION_PREFIX, SessionAuth


@pytest.mark.unit
class TestSessionAuth:
    async def test_create_and_validate(self, kv) -> None:
        auth = SessionAuth(kv, "secret")
        token = await auth.create_session("user-1")
        session = await auth.validate_session(token)
        assert session is not None
        assert session.user_id == "user-1"

    async def test_token_is_signed(self, kv) -> None:
        auth = SessionAuth(kv, "secret")
        token = await auth.create_session("user-1")
        raw, signature = token.rsplit(".", 1)
        assert len(signature) == 32
        assert await kv.get(SESSION_PREFIX + raw) is not None
        # The store never sees the signed form
        assert await kv.get(SESSION_PREFIX + token) is None

    async def test_tampered_signature_rejected(self, kv) -> None:
        auth = SessionAuth(kv, "secret")
        token = await auth.create_session("user-1")
        raw, _ = token.rsplit(".", 1)
        assert await auth.validate_session(f"{raw}.{'0' * 32}") is None

    async def test_other_secret_rejected(self, kv) -> None:
        token = await SessionAuth(kv, "secret-a").create_session("user-1")
        assert await SessionAuth(kv, "secret-b").validate_session(token) is None

    @pytest.mark.parametrize("token", [None, "", "no-dot", "."])
    async def test_malformed_tokens(self, kv, token) -> None:
        auth = SessionAuth(kv, "secret")
        assert await auth.validate_session(token) is None

    async def test_session_expires(self, kv, clock) -> None:
        auth = SessionAuth(kv, "secret", max_age=60)
        token = await auth.create_session("user-1")
        clock.advance(59)
        assert await auth.validate_session(token) is not None
        clock.advance(1)
        assert await auth.validate_session(token) is None

    async def test_destroy(self, kv) -> None:
        auth = SessionAuth(kv, "secret")
        token = await auth.create_session("user-1")
        await auth.destroy_session(token)
        assert await auth.validate_session(token) is None
        await auth.destroy_session(token)
        await auth.destroy_session(None)

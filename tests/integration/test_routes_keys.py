"""Integration tests for the API key management routes."""

from __future__ import annotations

import pytest
from httpx import AsyncClient

from mcprouter.types import KeyType


@pytest.mark.integration
class TestKeyRoutesAccess:
    async def test_requires_session(self, client: AsyncClient) -> None:
        resp = await client.get("/api/keys")
        assert resp.status_code == 401
        assert resp.json() == {"error": "Unauthorized"}

    async def test_requires_verified_email(self, client, make_user, login) -> None:
        bob = await make_user("bob@example.com", verified=False)
        await login(bob)
        resp = await client.post("/api/keys", json={"name": "cli", "type": "user"})
        assert resp.status_code == 403
        assert resp.json() == {
            "error": "Please verify your email address first",
            "redirect": "/auth/verify-request",
        }

    async def test_tampered_cookie_is_anonymous(self, client, make_user, login) -> None:
        alice = await make_user("alice@example.com")
        await login(alice)
        token = client.cookies.get("session")
        client.cookies.set("session", token[:-1] + ("0" if token[-1] != "0" else "1"))
        resp = await client.get("/api/keys")
        assert resp.status_code == 401


@pytest.mark.integration
class TestKeyRoutes:
    async def test_create_returns_secret_once(self, client, services, make_user, login) -> None:
        alice = await make_user("alice@example.com")
        await login(alice)

        resp = await client.post("/api/keys", json={"name": "laptop", "type": "user"})
        assert resp.status_code == 201
        body = resp.json()
        assert body["name"] == "laptop"
        assert body["type"] == "user"
        assert len(body["key"]) == 64
        assert set(body) == {"id", "name", "type", "createdAt", "updatedAt", "key"}

        listed = await client.get("/api/keys")
        assert listed.status_code == 200
        entries = listed.json()["data"]
        assert [e["id"] for e in entries] == [body["id"]]
        assert "key" not in entries[0]

        record = await services.keys.verify_user_key(body["key"])
        assert record is not None
        assert record.created_by == alice.id

    async def test_server_key_usable_for_session_resolution(
        self, client, services, make_user, login
    ) -> None:
        alice = await make_user("alice@example.com")
        await login(alice)
        server = (await client.post("/api/keys", json={"name": "mcp", "type": "server"})).json()
        user = (await client.post("/api/keys", json={"name": "me", "type": "user"})).json()

        resp = await client.post(
            "/api/auth/mcp/session",
            json={"userKey": user["key"]},
            headers={"x-api-key": server["key"]},
        )
        assert resp.status_code == 200
        assert resp.json()["user"]["id"] == alice.id

    async def test_list_filters_by_type(self, client, make_user, login) -> None:
        alice = await make_user("alice@example.com")
        await login(alice)
        await client.post("/api/keys", json={"name": "u", "type": "user"})
        await client.post("/api/keys", json={"name": "s", "type": "server"})

        users = await client.get("/api/keys")
        servers = await client.get("/api/keys", params={"type": "server"})
        assert [e["name"] for e in users.json()["data"]] == ["u"]
        assert [e["name"] for e in servers.json()["data"]] == ["s"]

    async def test_pagination(self, client, clock, make_user, login) -> None:
        alice = await make_user("alice@example.com")
        await login(alice)
        for name in ("one", "two", "three"):
            await client.post("/api/keys", json={"name": name, "type": "user"})
            clock.advance(1)

        first = (await client.get("/api/keys", params={"limit": 2})).json()
        assert [e["name"] for e in first["data"]] == ["three", "two"]
        assert first["hasMore"] is True
        assert first["nextCursor"]

        second = (
            await client.get("/api/keys", params={"limit": 2, "cursor": first["nextCursor"]})
        ).json()
        assert [e["name"] for e in second["data"]] == ["one"]
        assert second["hasMore"] is False
        assert second["nextCursor"] is None

    async def test_bad_cursor(self, client, make_user, login) -> None:
        alice = await make_user("alice@example.com")
        await login(alice)
        resp = await client.get("/api/keys", params={"cursor": "!!not-a-cursor!!"})
        assert resp.status_code == 400
        assert resp.json() == {"error": "Invalid pagination cursor"}

    async def test_name_too_long(self, client, make_user, login) -> None:
        alice = await make_user("alice@example.com")
        await login(alice)
        resp = await client.post("/api/keys", json={"name": "x" * 101, "type": "user"})
        assert resp.status_code == 400
        assert resp.json()["error"] == "Invalid request body"

    async def test_unknown_type(self, client, make_user, login) -> None:
        alice = await make_user("alice@example.com")
        await login(alice)
        resp = await client.post("/api/keys", json={"name": "x", "type": "admin"})
        assert resp.status_code == 400

    async def test_delete_own_key(self, client, services, make_user, login) -> None:
        alice = await make_user("alice@example.com")
        await login(alice)
        created = await services.keys.create_key("old", KeyType.USER, alice.id)

        resp = await client.delete(f"/api/keys/{created.record.id}")
        assert resp.status_code == 200
        assert resp.json() == {"deleted": True, "id": created.record.id}
        assert await services.keys.verify_user_key(created.raw_key) is None

    async def test_cannot_delete_someone_elses_key(
        self, client, services, make_user, login
    ) -> None:
        alice = await make_user("alice@example.com")
        mallory = await make_user("mallory@example.com")
        created = await services.keys.create_key("alice", KeyType.USER, alice.id)
        await login(mallory)

        resp = await client.delete(f"/api/keys/{created.record.id}")
        assert resp.status_code == 404
        assert resp.json() == {"error": "Key not found or access denied"}
        assert await services.keys.verify_user_key(created.raw_key) is not None

"""Short-lived challenge storage for WebAuthn ceremonies.

A ceremony's "begin" and "complete" calls may land on different
processes, so challenge state lives in the shared key-value store under
a server-generated session id and expires after a fixed TTL.
"""

from __future__ import annotations

import secrets
import time
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, Field

from mcprouter.config.settings import CHALLENGE_TTL_SECONDS
from mcprouter.types import RegistrationMode

if TYPE_CHECKING:
    from mcprouter.storage.kv import KeyValueStore

REG_PREFIX = "webauthn:reg:"
AUTH_PREFIX = "webauthn:auth:"


def new_session_id() -> str:
    """High-entropy ceremony correlator; never accepted from the client."""
    return secrets.token_urlsafe(32)


def _now_ms() -> int:
    return int(time.time() * 1000)


class RegistrationChallenge(BaseModel):
    challenge: str  # base64url
    options: dict[str, Any]
    mode: RegistrationMode
    user_id: str  # provisional id (signup) or the caller's id (add-passkey)
    email: str | None = None  # signup only
    passkey_name: str | None = None
    timestamp: int = Field(default_factory=_now_ms)


class AuthenticationChallenge(BaseModel):
    challenge: str  # base64url
    options: dict[str, Any]
    timestamp: int = Field(default_factory=_now_ms)


class ChallengeStore:
    """Stores WebAuthn challenges with TTL expiry.

    ``claim_*`` retrieves and deletes in one atomic step so concurrent
    completions of the same ceremony cannot both succeed.
    """

    def __init__(self, kv: KeyValueStore, ttl_seconds: int = CHALLENGE_TTL_SECONDS) -> None:
        self._kv = kv
        self._ttl = ttl_seconds

    # Registration

    async def store_registration_challenge(
        self, session_id: str, payload: RegistrationChallenge
    ) -> None:
        await self._kv.set(REG_PREFIX + session_id, payload.model_dump(mode="json"), self._ttl)

    async def get_registration_challenge(self, session_id: str) -> RegistrationChallenge | None:
        data = await self._kv.get(REG_PREFIX + session_id)
        return RegistrationChallenge.model_validate(data) if data is not None else None

    async def claim_registration_challenge(
        self, session_id: str
    ) -> RegistrationChallenge | None:
        data = await self._kv.pop(REG_PREFIX + session_id)
        return RegistrationChallenge.model_validate(data) if data is not None else None

    async def delete_registration_challenge(self, session_id: str) -> None:
        await self._kv.delete(REG_PREFIX + session_id)

    # Authentication

    async def store_authentication_challenge(
        self, session_id: str, payload: AuthenticationChallenge
    ) -> None:
        await self._kv.set(AUTH_PREFIX + session_id, payload.model_dump(mode="json"), self._ttl)

    async def get_authentication_challenge(
        self, session_id: str
    ) -> AuthenticationChallenge | None:
        data = await self._kv.get(AUTH_PREFIX + session_id)
        return AuthenticationChallenge.model_validate(data) if data is not None else None

    async def claim_authentication_challenge(
        self, session_id: str
    ) -> AuthenticationChallenge | None:
        data = await self._kv.pop(AUTH_PREFIX + session_id)
        return AuthenticationChallenge.model_validate(data) if data is not None else None

    async def delete_authentication_challenge(self, session_id: str) -> None:
        await self._kv.delete(AUTH_PREFIX + session_id)

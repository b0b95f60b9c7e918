"""Cookie-based application sessions backed by the key-value store."""

from __future__ import annotations

import hashlib
import hmac
import secrets
from typing import TYPE_CHECKING

import structlog
from fastapi import Depends, HTTPException, Request, Response
from pydantic import BaseModel

from mcprouter.auth.identity import Caller
from mcprouter.exceptions import EmailNotVerified
from mcprouter.web.dependencies import Services, get_services

if TYPE_CHECKING:
    from mcprouter.storage.kv import KeyValueStore

logger = structlog.get_logger(__name__)

SESSION_COOKIE = "session"
SESSION_PREFIX = "session:"
VERIFY_REQUEST_PATH = "/auth/verify-request"


class SessionData(BaseModel):
    user_id: str


class SessionAuth:
    """Signed opaque session tokens.

    The token handed to the browser is ``<random>.<hmac>``; the signature
    is checked before the store is consulted, and the store entry's TTL
    bounds the session lifetime.
    """

    def __init__(self, kv: KeyValueStore, secret_key: str, max_age: int = 86400) -> None:
        self._kv = kv
        self._secret = secret_key.encode()
        self._max_age = max_age

    @property
    def max_age(self) -> int:
        return self._max_age

    async def create_session(self, user_id: str) -> str:
        """Create a new session and return the token."""
        token = secrets.token_urlsafe(32)
        signed_token = f"{token}.{self._sign(token)}"
        await self._kv.set(
            SESSION_PREFIX + token,
            SessionData(user_id=user_id).model_dump(),
            self._max_age,
        )
        logger.info("session_created", user_id=user_id)
        return signed_token

    async def validate_session(self, signed_token: str | None) -> SessionData | None:
        """Validate a session token and return its data."""
        token = self._verify(signed_token)
        if token is None:
            return None
        data = await self._kv.get(SESSION_PREFIX + token)
        return SessionData.model_validate(data) if data is not None else None

    async def destroy_session(self, signed_token: str | None) -> None:
        token = self._verify(signed_token)
        if token is None:
            return
        await self._kv.delete(SESSION_PREFIX + token)
        logger.info("session_destroyed")

    def _verify(self, signed_token: str | None) -> str | None:
        if not signed_token or "." not in signed_token:
            return None
        token, signature = signed_token.rsplit(".", 1)
        if not hmac.compare_digest(signature, self._sign(token)):
            return None
        return token

    def _sign(self, data: str) -> str:
        """Create HMAC signature for a token."""
        return hmac.new(self._secret, data.encode(), hashlib.sha256).hexdigest()[:32]


def set_session_cookie(response: Response, token: str, services: Services) -> None:
    response.set_cookie(
        key=SESSION_COOKIE,
        value=token,
        httponly=True,
        secure=not services.settings.debug,
        samesite="lax",
        max_age=services.sessions.max_age,
    )


async def get_caller(
    request: Request, services: Services = Depends(get_services)
) -> Caller | None:
    """Resolve the session cookie to a caller, or None when anonymous."""
    session = await services.sessions.validate_session(request.cookies.get(SESSION_COOKIE))
    if session is None:
        return None
    user = await services.users.get_by_id(session.user_id)
    if user is None:
        return None
    caller = Caller.from_user(user)
    structlog.contextvars.bind_contextvars(user_id=caller.user_id)
    return caller


async def require_auth(caller: Caller | None = Depends(get_caller)) -> Caller:
    """FastAPI dependency that requires an application session."""
    if caller is None:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return caller


async def require_verified_user(caller: Caller = Depends(require_auth)) -> Caller:
    """Gate full access on a verified email address."""
    if caller.is_unverified:
        raise EmailNotVerified
    return caller

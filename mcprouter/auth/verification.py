"""Email verification tokens and the sign-up / sign-in / resend flows.

Per email address there is at most one live token (a new issuance
replaces the previous one) and a token is consumed by a successful
verification. The key-value TTL is only a backstop; the token's own
``expires`` is authoritative and is checked explicitly.
"""

from __future__ import annotations

import hmac
import math
import secrets
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import TYPE_CHECKING
from urllib.parse import quote

import structlog
from pydantic import BaseModel

from mcprouter.exceptions import (
    AccountAlreadyExists,
    AccountNotFound,
    EmailAlreadyVerified,
    EmailNotVerified,
    InvalidVerificationToken,
    ResendCooldownActive,
    VerificationNotAuthenticated,
    VerificationTokenExpired,
    VerificationUserNotFound,
)
from mcprouter.models.database import _utc_now

if TYPE_CHECKING:
    from mcprouter.config.settings import AuthConfig
    from mcprouter.email.sender import EmailSender
    from mcprouter.models.database import User
    from mcprouter.storage.kv import KeyValueStore
    from mcprouter.storage.repositories.users import DatabaseUserRepository

logger = structlog.get_logger(__name__)

TOKEN_PREFIX = "verify:email:"


def generate_verification_token() -> str:
    return secrets.token_hex(32)


def generate_token_expiry(minutes: int, now: datetime | None = None) -> datetime:
    return (now or _utc_now()) + timedelta(minutes=minutes)


def is_token_expired(expires: datetime, now: datetime | None = None) -> bool:
    return (now or _utc_now()) > expires


class VerificationToken(BaseModel):
    token: str
    email: str
    expires: datetime
    timestamp: datetime


class VerificationTokenStore:
    def __init__(
        self,
        kv: KeyValueStore,
        backstop_ttl_seconds: int,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._kv = kv
        self._ttl = backstop_ttl_seconds
        self._clock = clock

    async def create_verification_token(self, email: str, token: str, expires: datetime) -> None:
        record = VerificationToken(
            token=token, email=email, expires=expires, timestamp=self._clock()
        )
        await self._kv.set(TOKEN_PREFIX + email, record.model_dump(mode="json"), self._ttl)

    async def get_verification_token(self, email: str, token: str) -> VerificationToken | None:
        """Return the stored token only if it equals ``token``."""
        data = await self._kv.get(TOKEN_PREFIX + email)
        if data is None:
            return None
        record = VerificationToken.model_validate(data)
        if not hmac.compare_digest(record.token, token):
            return None
        return record

    async def delete_verification_token(self, email: str, token: str | None = None) -> None:
        """Delete the token; with ``token`` given, only when it still matches."""
        if token is not None and await self.get_verification_token(email, token) is None:
            return
        await self._kv.delete(TOKEN_PREFIX + email)


class EmailVerificationService:
    """Issues and consumes verification links for email-based accounts."""

    def __init__(
        self,
        users: DatabaseUserRepository,
        tokens: VerificationTokenStore,
        sender: EmailSender,
        config: AuthConfig,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._users = users
        self._tokens = tokens
        self._sender = sender
        self._config = config
        self._clock = clock

    async def sign_up_with_email(self, email: str) -> None:
        user = await self._users.get_by_email(email)
        if user is not None and user.email_verified is not None:
            raise AccountAlreadyExists
        if user is None:
            user = await self._users.create(email=email)
        await self._issue(user)

    async def sign_in_with_email(self, email: str) -> None:
        user = await self._users.get_by_email(email)
        if user is None:
            raise AccountNotFound
        if user.email_verified is None:
            raise EmailNotVerified
        await self._issue(user)

    async def resend_verification_email(self, caller_email: str | None) -> None:
        if not caller_email:
            raise VerificationNotAuthenticated
        user = await self._users.get_by_email(caller_email)
        if user is None:
            raise VerificationUserNotFound
        if user.email_verified is not None:
            raise EmailAlreadyVerified
        await self._issue(user)

    async def verify_email_token(self, email: str, token: str) -> User:
        record = await self._tokens.get_verification_token(email, token)
        if record is None:
            raise InvalidVerificationToken

        if is_token_expired(record.expires, now=self._clock()):
            await self._tokens.delete_verification_token(email, token)
            raise VerificationTokenExpired

        user = await self._users.get_by_email(email)
        if user is None:
            raise VerificationUserNotFound

        if user.email_verified is None:
            await self._users.mark_email_verified(email, when=self._clock())
        await self._tokens.delete_verification_token(email, token)
        logger.info("email_token_verified", user_id=user.id)

        refreshed = await self._users.get_by_id(user.id)
        return refreshed or user

    async def send_verification_email(self, user: User) -> None:
        """Issue a link for a freshly registered, still unverified user."""
        if user.email_verified is not None:
            raise EmailAlreadyVerified
        await self._issue(user)

    async def check_email_verification_status(self, email: str) -> bool:
        user = await self._users.get_by_email(email)
        return user is not None and user.email_verified is not None

    async def _issue(self, user: User) -> None:
        email = user.email
        if not email:
            raise VerificationUserNotFound
        now = self._clock()
        cooldown = timedelta(seconds=self._config.resend_cooldown_seconds)
        if user.last_verification_email_sent is not None:
            elapsed = now - user.last_verification_email_sent
            if elapsed < cooldown:
                remaining = math.ceil((cooldown - elapsed).total_seconds())
                raise ResendCooldownActive(remaining)

        token = generate_verification_token()
        expires = generate_token_expiry(self._config.token_expiry_minutes, now=now)
        url = f"{self._config.app_url}/auth/verify?email={quote(email, safe='')}&token={token}"
        # The live link stays valid until a replacement has actually been delivered
        await self._sender.send(email, url)
        await self._tokens.create_verification_token(email, token, expires)
        await self._users.set_last_verification_email_sent(user.id, now)
        logger.info("verification_email_issued", user_id=user.id)

"""FastAPI dependency injection and shared state."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Any

import structlog
from fastapi import Request

from mcprouter.auth.challenge_store import ChallengeStore
from mcprouter.auth.passkey_service import PasskeyService
from mcprouter.auth.verification import EmailVerificationService, VerificationTokenStore
from mcprouter.email.sender import EmailSender, LoggingEmailSender, ResendEmailSender
from mcprouter.models.database import _utc_now
from mcprouter.storage.kv import InMemoryKeyValueStore, KeyValueStore, RedisKeyValueStore
from mcprouter.storage.repositories.authenticators import DatabaseAuthenticatorRepository
from mcprouter.storage.repositories.keys import DatabaseKeyRepository
from mcprouter.storage.repositories.users import DatabaseUserRepository

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine

    from mcprouter.config.settings import AuthConfig, Settings
    from mcprouter.web.auth.session import SessionAuth

logger = structlog.get_logger(__name__)


@dataclass
class Services:
    """Everything the routes need, built once per application."""

    settings: Settings
    config: AuthConfig
    engine: AsyncEngine
    kv: KeyValueStore
    users: DatabaseUserRepository
    authenticators: DatabaseAuthenticatorRepository
    keys: DatabaseKeyRepository
    challenges: ChallengeStore
    passkeys: PasskeyService
    verification: EmailVerificationService
    sessions: SessionAuth
    email_sender: EmailSender


def _create_kv(settings: Settings) -> KeyValueStore:
    """Create the appropriate ephemeral store based on settings."""
    if settings.kv_backend == "redis":
        logger.info("kv_backend_selected", backend="redis")
        return RedisKeyValueStore.from_url(settings.redis_url)
    logger.info("kv_backend_selected", backend="memory")
    return InMemoryKeyValueStore()


def _create_email_sender(settings: Settings) -> EmailSender:
    if settings.resend_api_key:
        return ResendEmailSender(settings.resend_api_key, settings.email_from)
    return LoggingEmailSender()


def build_services(
    settings: Settings,
    engine: Any = None,
    kv: KeyValueStore | None = None,
    email_sender: EmailSender | None = None,
    clock: Callable[[], datetime] = _utc_now,
) -> Services:
    """Wire repositories and flows from settings.

    ``engine``, ``kv``, ``email_sender`` and ``clock`` override the
    settings-derived defaults (tests pass in-memory versions).
    """
    from mcprouter.web.auth.session import SessionAuth

    if engine is None:
        from mcprouter.storage.database import get_engine

        engine = get_engine()
    kv = kv if kv is not None else _create_kv(settings)
    email_sender = email_sender if email_sender is not None else _create_email_sender(settings)
    config = settings.auth_config()

    users = DatabaseUserRepository(engine)
    authenticators = DatabaseAuthenticatorRepository(engine)
    challenges = ChallengeStore(kv, ttl_seconds=config.challenge_ttl_seconds)
    tokens = VerificationTokenStore(kv, config.token_backstop_seconds, clock=clock)

    return Services(
        settings=settings,
        config=config,
        engine=engine,
        kv=kv,
        users=users,
        authenticators=authenticators,
        keys=DatabaseKeyRepository(engine, clock=clock),
        challenges=challenges,
        passkeys=PasskeyService(authenticators, users, challenges, config),
        verification=EmailVerificationService(users, tokens, email_sender, config, clock=clock),
        sessions=SessionAuth(kv, settings.secret_key, max_age=config.session_max_age_seconds),
        email_sender=email_sender,
    )


def get_services(request: Request) -> Services:
    return request.app.state.services

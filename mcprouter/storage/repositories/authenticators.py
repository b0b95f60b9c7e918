"""WebAuthn authenticator repository: PostgreSQL-backed."""

from __future__ import annotations

from typing import Any

import structlog
from sqlalchemy import delete, update
from sqlmodel import col, select
from sqlmodel.ext.asyncio.session import AsyncSession

from mcprouter.models.database import Authenticator, User, _utc_now

logger = structlog.get_logger(__name__)


class DatabaseAuthenticatorRepository:
    """PostgreSQL-backed passkey credential store."""

    def __init__(self, engine: Any) -> None:
        self._engine = engine

    async def create(
        self, authenticator: Authenticator, new_user: User | None = None
    ) -> Authenticator:
        """Persist a passkey, together with its owner when ``new_user`` is given.

        Both rows are written in one transaction so a failed credential
        insert never leaves a provisional user behind.
        """
        async with AsyncSession(self._engine) as session:
            if new_user is not None:
                session.add(new_user)
                await session.flush()
            session.add(authenticator)
            await session.commit()
            await session.refresh(authenticator)
            logger.info(
                "authenticator_created",
                user_id=authenticator.user_id,
                new_user=new_user is not None,
            )
            return authenticator

    async def get_by_credential_id(self, credential_id: str) -> Authenticator | None:
        async with AsyncSession(self._engine) as session:
            stmt = select(Authenticator).where(col(Authenticator.credential_id) == credential_id)
            result = await session.execute(stmt)
            return result.scalars().first()

    async def list_for_user(self, user_id: str) -> list[Authenticator]:
        async with AsyncSession(self._engine) as session:
            stmt = (
                select(Authenticator)
                .where(col(Authenticator.user_id) == user_id)
                .order_by(col(Authenticator.created_at))
            )
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def list_for_email(self, email: str) -> list[Authenticator]:
        """Return the passkeys registered to the user owning ``email``."""
        async with AsyncSession(self._engine) as session:
            stmt = (
                select(Authenticator)
                .join(User, col(User.id) == col(Authenticator.user_id))
                .where(col(User.email) == email)
            )
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def update_counter(self, credential_id: str, new_counter: int) -> None:
        async with AsyncSession(self._engine) as session:
            stmt = (
                update(Authenticator)
                .where(col(Authenticator.credential_id) == credential_id)
                .values(counter=new_counter, last_used_at=_utc_now())
            )
            await session.execute(stmt)
            await session.commit()

    async def delete(self, credential_id: str, user_id: str) -> bool:
        """Delete a passkey only if it belongs to ``user_id``."""
        async with AsyncSession(self._engine) as session:
            stmt = delete(Authenticator).where(
                col(Authenticator.credential_id) == credential_id,
                col(Authenticator.user_id) == user_id,
            )
            result = await session.execute(stmt)
            await session.commit()
            deleted = bool(result.rowcount)
            if deleted:
                logger.info("authenticator_deleted", user_id=user_id)
            return deleted

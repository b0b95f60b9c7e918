"""User repository, PostgreSQL-backed."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import structlog
from sqlalchemy import update
from sqlmodel import col, select
from sqlmodel.ext.asyncio.session import AsyncSession

from mcprouter.models.database import User, _utc_now
from mcprouter.types import UserRole

if TYPE_CHECKING:
    from datetime import datetime

logger = structlog.get_logger(__name__)


class DatabaseUserRepository:
    """PostgreSQL-backed user store."""

    def __init__(self, engine: Any) -> None:
        self._engine = engine

    async def create(
        self,
        email: str | None,
        name: str | None = None,
        role: UserRole = UserRole.USER,
        user_id: str | None = None,
    ) -> User:
        async with AsyncSession(self._engine) as session:
            user = User(email=email, name=name, role=role.value)
            if user_id:
                user.id = user_id
            session.add(user)
            await session.commit()
            await session.refresh(user)
            logger.info("user_created", user_id=user.id, role=user.role)
            return user

    async def get_by_id(self, user_id: str) -> User | None:
        async with AsyncSession(self._engine) as session:
            return await session.get(User, user_id)

    async def get_by_email(self, email: str) -> User | None:
        async with AsyncSession(self._engine) as session:
            stmt = select(User).where(col(User.email) == email)
            result = await session.execute(stmt)
            return result.scalars().first()

    async def mark_email_verified(self, email: str, when: datetime | None = None) -> bool:
        """Flag the address as verified and clear the resend cooldown."""
        async with AsyncSession(self._engine) as session:
            stmt = (
                update(User)
                .where(col(User.email) == email)
                .values(email_verified=when or _utc_now(), last_verification_email_sent=None)
            )
            result = await session.execute(stmt)
            await session.commit()
            updated = bool(result.rowcount)
            if updated:
                logger.info("user_email_verified")
            return updated

    async def set_last_verification_email_sent(self, user_id: str, when: datetime) -> None:
        async with AsyncSession(self._engine) as session:
            stmt = (
                update(User)
                .where(col(User.id) == user_id)
                .values(last_verification_email_sent=when)
            )
            await session.execute(stmt)
            await session.commit()

"""API key store: generation, hashing, persistence and lookup.

Server keys are stored as a SHA-256 digest of the secret; user keys are
stored raw and looked up by exact value. Every lookup filters by the
expected key type, so a key of the other type behaves as if it did not
exist.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import secrets
from collections.abc import Callable
from datetime import datetime
from typing import Any

import structlog
from pydantic import BaseModel
from sqlalchemy import delete
from sqlmodel import col, select
from sqlmodel.ext.asyncio.session import AsyncSession

from mcprouter.exceptions import InvalidCursor
from mcprouter.models.database import ApiKey, _utc_now
from mcprouter.types import KeyType

logger = structlog.get_logger(__name__)

DEFAULT_PAGE_SIZE = 20


def generate_random_key() -> str:
    """Return 32 bytes from the CSPRNG, hex-encoded (64 characters)."""
    return secrets.token_hex(32)


def hash_key(raw: str) -> str:
    """SHA-256 hex digest used to store and compare server keys."""
    return hashlib.sha256(raw.encode()).hexdigest()


class KeyRecord(BaseModel):
    """A persisted key without its secret."""

    id: str
    name: str
    type: KeyType
    created_by: str
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_row(cls, row: ApiKey) -> KeyRecord:
        return cls(
            id=row.id,
            name=row.name,
            type=KeyType(row.type),
            created_by=row.created_by,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )


class CreatedKey(BaseModel):
    record: KeyRecord
    raw_key: str  # only ever returned here


class KeyPage(BaseModel):
    data: list[KeyRecord]
    next_cursor: str | None = None
    has_more: bool = False


def encode_cursor(created_at: datetime) -> str:
    return base64.urlsafe_b64encode(created_at.isoformat().encode()).decode().rstrip("=")


def decode_cursor(cursor: str) -> datetime:
    padded = cursor + "=" * (-len(cursor) % 4)
    try:
        return datetime.fromisoformat(base64.urlsafe_b64decode(padded).decode())
    except (binascii.Error, UnicodeDecodeError, ValueError) as exc:
        raise InvalidCursor from exc


class DatabaseKeyRepository:
    """PostgreSQL-backed key store."""

    def __init__(self, engine: Any, clock: Callable[[], datetime] = _utc_now) -> None:
        self._engine = engine
        self._clock = clock

    async def create_key(self, name: str, key_type: KeyType, owner_id: str) -> CreatedKey:
        key_type = KeyType(key_type)
        raw_key = generate_random_key()
        stored = hash_key(raw_key) if key_type is KeyType.SERVER else raw_key
        now = self._clock()

        async with AsyncSession(self._engine) as session:
            row = ApiKey(
                name=name,
                value=stored,
                type=key_type.value,
                created_by=owner_id,
                created_at=now,
                updated_at=now,
            )
            session.add(row)
            await session.commit()
            await session.refresh(row)
            logger.info("key_created", key_id=row.id, type=row.type, owner_id=owner_id)
            return CreatedKey(record=KeyRecord.from_row(row), raw_key=raw_key)

    async def list_keys(
        self,
        owner_id: str,
        key_type: KeyType,
        cursor: str | None = None,
        limit: int = DEFAULT_PAGE_SIZE,
    ) -> KeyPage:
        """Newest-first page of the owner's keys of one type."""
        key_type = KeyType(key_type)
        stmt = select(ApiKey).where(
            col(ApiKey.created_by) == owner_id,
            col(ApiKey.type) == key_type.value,
        )
        if cursor:
            stmt = stmt.where(col(ApiKey.created_at) < decode_cursor(cursor))
        stmt = stmt.order_by(col(ApiKey.created_at).desc()).limit(limit + 1)

        async with AsyncSession(self._engine) as session:
            result = await session.execute(stmt)
            rows = list(result.scalars().all())

        has_more = len(rows) > limit
        rows = rows[:limit]
        next_cursor = encode_cursor(rows[-1].created_at) if has_more and rows else None
        return KeyPage(
            data=[KeyRecord.from_row(r) for r in rows],
            next_cursor=next_cursor,
            has_more=has_more,
        )

    async def delete_key(self, key_id: str, owner_id: str) -> KeyRecord | None:
        """Delete the key if ``owner_id`` owns it.

        Returns None both when the key is missing and when it belongs to
        someone else.
        """
        owned = (col(ApiKey.id) == key_id, col(ApiKey.created_by) == owner_id)
        async with AsyncSession(self._engine) as session:
            result = await session.execute(select(ApiKey).where(*owned))
            row = result.scalars().first()
            if row is None:
                return None
            record = KeyRecord.from_row(row)
            deleted = await session.execute(delete(ApiKey).where(*owned))
            await session.commit()
            if not deleted.rowcount:
                return None
            logger.info("key_deleted", key_id=key_id, owner_id=owner_id)
            return record

    async def verify_server_key(self, raw_presented: str) -> KeyRecord | None:
        return await self._lookup(hash_key(raw_presented), KeyType.SERVER)

    async def verify_user_key(self, raw_presented: str) -> KeyRecord | None:
        return await self._lookup(raw_presented, KeyType.USER)

    async def _lookup(self, stored_value: str, key_type: KeyType) -> KeyRecord | None:
        if not stored_value:
            return None
        async with AsyncSession(self._engine) as session:
            stmt = (
                select(ApiKey)
                .where(col(ApiKey.value) == stored_value, col(ApiKey.type) == key_type.value)
                .limit(1)
            )
            result = await session.execute(stmt)
            row = result.scalars().first()
        if row is None or not hmac.compare_digest(row.value, stored_value):
            return None
        return KeyRecord.from_row(row)

"""Resolve an end user from a server key plus a user key.

Used by trusted MCP servers: the server key authenticates the calling
service, the user key identifies the end user it acts for. The two keys
may belong to different accounts.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from mcprouter.exceptions import (
    InvalidServerKey,
    InvalidUserKey,
    MissingServerKey,
    SessionUserNotFound,
)

if TYPE_CHECKING:
    from mcprouter.models.database import User
    from mcprouter.storage.repositories.keys import DatabaseKeyRepository
    from mcprouter.storage.repositories.users import DatabaseUserRepository

logger = structlog.get_logger(__name__)


async def authenticate_server_key(keys: DatabaseKeyRepository, server_key: str | None) -> str:
    """Return the id of the server key, failing when absent or unknown."""
    if not server_key:
        raise MissingServerKey
    record = await keys.verify_server_key(server_key)
    if record is None:
        logger.warning("mcp_session_invalid_server_key")
        raise InvalidServerKey
    return record.id


async def resolve_user(
    keys: DatabaseKeyRepository,
    users: DatabaseUserRepository,
    user_key: str,
) -> User:
    """Resolve the owner of a user key."""
    record = await keys.verify_user_key(user_key)
    if record is None:
        logger.warning("mcp_session_invalid_user_key")
        raise InvalidUserKey
    user = await users.get_by_id(record.created_by)
    if user is None:
        logger.error("mcp_session_orphaned_user_key", key_id=record.id)
        raise SessionUserNotFound
    return user


async def resolve_mcp_session(
    keys: DatabaseKeyRepository,
    users: DatabaseUserRepository,
    server_key: str | None,
    user_key: str,
) -> User:
    server_key_id = await authenticate_server_key(keys, server_key)
    user = await resolve_user(keys, users, user_key)
    logger.info("mcp_session_resolved", server_key_id=server_key_id, user_id=user.id)
    return user

"""API key management routes."""

from __future__ import annotations

from typing import Any

import structlog
from fastapi import APIRouter, Depends, Query

from mcprouter.auth.identity import Caller
from mcprouter.exceptions import KeyNotFound
from mcprouter.models.api import CreateKeyRequest, KeyResponse
from mcprouter.storage.repositories.keys import DEFAULT_PAGE_SIZE, KeyRecord
from mcprouter.types import KeyType
from mcprouter.web.auth.session import require_verified_user
from mcprouter.web.dependencies import Services, get_services

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/keys", tags=["keys"])


def _serialize(record: KeyRecord) -> dict[str, Any]:
    return KeyResponse(
        id=record.id,
        name=record.name,
        type=record.type,
        created_at=record.created_at,
        updated_at=record.updated_at,
    ).model_dump(by_alias=True, mode="json")


@router.post("", status_code=201)
async def create_key(
    body: CreateKeyRequest,
    caller: Caller = Depends(require_verified_user),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    """Create a key. The raw secret is returned here and never again."""
    created = await services.keys.create_key(body.name, body.type, caller.user_id)
    return {**_serialize(created.record), "key": created.raw_key}


@router.get("")
async def list_keys(
    type: KeyType = Query(default=KeyType.USER),  # noqa: A002
    cursor: str | None = None,
    limit: int = Query(default=DEFAULT_PAGE_SIZE, ge=1, le=100),
    caller: Caller = Depends(require_verified_user),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    page = await services.keys.list_keys(caller.user_id, type, cursor=cursor, limit=limit)
    return {
        "data": [_serialize(r) for r in page.data],
        "nextCursor": page.next_cursor,
        "hasMore": page.has_more,
    }


@router.delete("/{key_id}")
async def delete_key(
    key_id: str,
    caller: Caller = Depends(require_verified_user),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    record = await services.keys.delete_key(key_id, caller.user_id)
    if record is None:
        raise KeyNotFound
    return {"deleted": True, "id": record.id}

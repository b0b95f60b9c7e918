"""Session-resolution endpoint for MCP servers."""

from __future__ import annotations

import json
from typing import Any

import structlog
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from mcprouter.auth.mcp_session import resolve_mcp_session
from mcprouter.exceptions import MissingServerKey
from mcprouter.models.api import McpSessionRequest, UserResponse
from mcprouter.web.dependencies import Services, get_services

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/auth/mcp", tags=["mcp"])

SERVER_KEY_HEADER = "x-api-key"


@router.post("/session", response_model=None)
async def mcp_session(
    request: Request,
    services: Services = Depends(get_services),
) -> dict[str, Any] | JSONResponse:
    """Exchange a server key and a user key for the user's identity.

    The header is checked before the body is parsed, so unauthenticated
    callers learn nothing about body validation.
    """
    server_key = request.headers.get(SERVER_KEY_HEADER)
    if not server_key:
        raise MissingServerKey

    try:
        body = McpSessionRequest.model_validate_json(await request.body())
    except ValidationError as exc:
        return JSONResponse(
            status_code=400,
            content={
                "error": "Invalid request body",
                "details": json.loads(exc.json(include_url=False)),
            },
        )

    user = await resolve_mcp_session(services.keys, services.users, server_key, body.user_key)
    return {"user": UserResponse.from_user(user).model_dump(by_alias=True, mode="json")}

"""Authentication routes: email sign-up and sign-in, verification, sessions, passkeys."""

from __future__ import annotations

from typing import Any

import structlog
from fastapi import APIRouter, Depends, Request, Response

from mcprouter.auth.identity import Caller
from mcprouter.models.api import (
    AuthenticatorResponse,
    EmailRequest,
    UserResponse,
    VerifyEmailRequest,
)
from mcprouter.web.auth.session import (
    SESSION_COOKIE,
    get_caller,
    require_auth,
    set_session_cookie,
)
from mcprouter.web.dependencies import Services, get_services

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])


# ---------------------------------------------------------------------------
# Email sign-up / sign-in
# ---------------------------------------------------------------------------


@router.post("/signup/email")
async def signup_with_email(
    body: EmailRequest,
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    await services.verification.sign_up_with_email(body.email)
    return {"success": True, "message": "Verification email sent"}


@router.post("/signin/email")
async def signin_with_email(
    body: EmailRequest,
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    await services.verification.sign_in_with_email(body.email)
    return {"success": True, "message": "Sign-in link sent"}


# ---------------------------------------------------------------------------
# Verification
# ---------------------------------------------------------------------------


@router.post("/verify")
async def verify_email(
    body: VerifyEmailRequest,
    response: Response,
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    """Consume a verification link and sign the user in."""
    user = await services.verification.verify_email_token(body.email, body.token)
    token = await services.sessions.create_session(user.id)
    set_session_cookie(response, token, services)
    return {
        "success": True,
        "user": UserResponse.from_user(user).model_dump(by_alias=True, mode="json"),
    }


@router.post("/verification/resend")
async def resend_verification(
    caller: Caller = Depends(require_auth),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    await services.verification.resend_verification_email(caller.email)
    return {"success": True, "message": "Verification email sent"}


@router.get("/verification/status")
async def verification_status(
    caller: Caller = Depends(require_auth),
    services: Services = Depends(get_services),
) -> dict[str, bool]:
    if not caller.email:
        return {"emailVerified": False}
    verified = await services.verification.check_email_verification_status(caller.email)
    return {"emailVerified": verified}


# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------


@router.get("/session")
async def current_session(
    caller: Caller | None = Depends(get_caller),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    if caller is None:
        return {"user": None}
    user = await services.users.get_by_id(caller.user_id)
    if user is None:
        return {"user": None}
    return {"user": UserResponse.from_user(user).model_dump(by_alias=True, mode="json")}


@router.post("/logout")
async def logout(
    request: Request,
    response: Response,
    services: Services = Depends(get_services),
) -> dict[str, str]:
    """Destroy the current session."""
    await services.sessions.destroy_session(request.cookies.get(SESSION_COOKIE))
    response.delete_cookie(SESSION_COOKIE)
    return {"status": "logged_out"}


# ---------------------------------------------------------------------------
# Passkey management
# ---------------------------------------------------------------------------


@router.get("/authenticators")
async def list_authenticators(
    caller: Caller = Depends(require_auth),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    rows = await services.passkeys.list_passkeys(caller)
    return {
        "data": [
            AuthenticatorResponse.from_row(r).model_dump(by_alias=True, mode="json") for r in rows
        ]
    }


@router.delete("/authenticators/{credential_id}")
async def delete_authenticator(
    credential_id: str,
    caller: Caller = Depends(require_auth),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    await services.passkeys.delete_passkey(caller, credential_id)
    logger.info("passkey_deleted", user_id=caller.user_id)
    return {"deleted": True}

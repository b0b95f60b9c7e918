"""Passkey (WebAuthn) registration and authentication routes."""

from __future__ import annotations

from typing import Any

import structlog
from fastapi import APIRouter, Depends, Response

from mcprouter.auth.identity import Caller
from mcprouter.email.sender import EmailDeliveryError
from mcprouter.models.api import (
    AuthenticationBeginRequest,
    CeremonyCompleteRequest,
    RegistrationBeginRequest,
    UserResponse,
)
from mcprouter.web.auth.session import VERIFY_REQUEST_PATH, get_caller, set_session_cookie
from mcprouter.web.dependencies import Services, get_services

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/webauthn", tags=["webauthn"])


@router.post("/registration/begin")
async def registration_begin(
    body: RegistrationBeginRequest,
    caller: Caller | None = Depends(get_caller),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    return await services.passkeys.begin_registration(
        mode=body.mode or "",
        caller=caller,
        email=body.email,
        passkey_name=body.passkey_name,
    )


@router.post("/registration/complete")
async def registration_complete(
    body: CeremonyCompleteRequest,
    response: Response,
    caller: Caller | None = Depends(get_caller),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    """Verify a new passkey.

    A signup completion creates the (unverified) account, signs it in and
    sends the verification email. An add-passkey completion only attaches
    the passkey to the signed-in account.
    """
    result = await services.passkeys.complete_registration(
        credential=body.credential,
        session_id=body.session_id,
        caller=caller,
    )

    if not result.user_created:
        return {"verified": True, "message": "Passkey added successfully"}

    token = await services.sessions.create_session(result.user.id)
    set_session_cookie(response, token, services)

    email_sent = True
    try:
        await services.verification.send_verification_email(result.user)
    except EmailDeliveryError:
        # Account exists either way; the user can resend from the pending page
        email_sent = False
        logger.warning("signup_verification_email_failed", user_id=result.user.id)

    return {
        "verified": True,
        "message": "Registration successful. Please verify your email address.",
        "emailVerified": False,
        "emailSent": email_sent,
        "redirect": VERIFY_REQUEST_PATH,
    }


@router.post("/authentication/begin")
async def authentication_begin(
    body: AuthenticationBeginRequest | None = None,
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    return await services.passkeys.begin_authentication(email=body.email if body else None)


@router.post("/authentication/complete")
async def authentication_complete(
    body: CeremonyCompleteRequest,
    response: Response,
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    """Verify an assertion and open an application session.

    Users whose email is not yet verified get a session but are pointed
    at the verification-pending page; routes that need a verified account
    reject them until then.
    """
    result = await services.passkeys.complete_authentication(
        credential=body.credential,
        session_id=body.session_id,
    )
    token = await services.sessions.create_session(result.user.id)
    set_session_cookie(response, token, services)

    payload: dict[str, Any] = {
        "verified": True,
        "user": UserResponse.from_user(result.user).model_dump(by_alias=True, mode="json"),
        "emailVerified": not result.user.is_unverified,
    }
    if result.user.is_unverified:
        payload["redirect"] = VERIFY_REQUEST_PATH
    logger.info("user_logged_in_passkey", user_id=result.user.id)
    return payload

"""WebAuthn passkey service: registration and authentication ceremonies."""

from __future__ import annotations

import binascii
import json
import uuid
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import structlog
from sqlalchemy.exc import IntegrityError
from webauthn import (
    generate_authentication_options,
    generate_registration_options,
    options_to_json,
    verify_authentication_response,
    verify_registration_response,
)
from webauthn.helpers import base64url_to_bytes, bytes_to_base64url
from webauthn.helpers.exceptions import WebAuthnException
from webauthn.helpers.structs import (
    AttestationConveyancePreference,
    AuthenticatorAttachment,
    AuthenticatorSelectionCriteria,
    AuthenticatorTransport,
    PublicKeyCredentialDescriptor,
    ResidentKeyRequirement,
    UserVerificationRequirement,
)

from mcprouter.auth.challenge_store import (
    AuthenticationChallenge,
    ChallengeStore,
    RegistrationChallenge,
    new_session_id,
)
from mcprouter.exceptions import (
    AuthenticationInvalidSession,
    AuthenticationMissingFields,
    AuthenticationVerificationFailed,
    AuthenticatorNotFound,
    InvalidRegistrationMode,
    PasskeyNotFound,
    RegistrationAlreadyExists,
    RegistrationEmailRequired,
    RegistrationInvalidSession,
    RegistrationMissingFields,
    RegistrationUnauthorized,
    RegistrationVerificationFailed,
)
from mcprouter.models.database import Authenticator, User
from mcprouter.types import RegistrationMode

if TYPE_CHECKING:
    from mcprouter.auth.identity import Caller
    from mcprouter.config.settings import AuthConfig
    from mcprouter.storage.repositories.authenticators import DatabaseAuthenticatorRepository
    from mcprouter.storage.repositories.users import DatabaseUserRepository

logger = structlog.get_logger(__name__)

Credential = dict[str, Any] | str


@dataclass(frozen=True, slots=True)
class RegistrationResult:
    user: User
    authenticator: Authenticator
    user_created: bool


@dataclass(frozen=True, slots=True)
class AuthenticationResult:
    user: User
    authenticator: Authenticator


class PasskeyService:
    """Orchestrates WebAuthn registration and authentication ceremonies."""

    def __init__(
        self,
        credential_repo: DatabaseAuthenticatorRepository,
        user_repo: DatabaseUserRepository,
        challenges: ChallengeStore,
        config: AuthConfig,
    ) -> None:
        self._credential_repo = credential_repo
        self._user_repo = user_repo
        self._challenges = challenges
        self._config = config

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    async def begin_registration(
        self,
        mode: str,
        caller: Caller | None,
        email: str | None = None,
        passkey_name: str | None = None,
    ) -> dict[str, Any]:
        """Generate creation options for a new signup or an extra passkey.

        Returns the JSON-serializable PublicKeyCredentialCreationOptions
        plus the ``sessionId`` the client echoes back on completion.
        """
        try:
            registration_mode = RegistrationMode(mode)
        except ValueError as exc:
            raise InvalidRegistrationMode from exc

        exclude_credentials: list[PublicKeyCredentialDescriptor] = []
        if registration_mode is RegistrationMode.ADD_PASSKEY:
            if caller is None:
                raise RegistrationUnauthorized
            user_id = caller.user_id
            pending_email = None
            display = caller.email or passkey_name or "User"
            existing = await self._credential_repo.list_for_user(user_id)
            exclude_credentials = [_descriptor(c) for c in existing]
        else:
            if not email:
                raise RegistrationEmailRequired
            # Unverified accounts too; a passkey joins an existing account only via add-passkey
            if await self._user_repo.get_by_email(email) is not None:
                raise RegistrationAlreadyExists
            user_id = str(uuid.uuid4())
            pending_email = email
            display = email

        options = generate_registration_options(
            rp_id=self._config.rp_id,
            rp_name=self._config.rp_name,
            user_id=user_id.encode(),
            user_name=display,
            user_display_name=display,
            attestation=AttestationConveyancePreference.NONE,
            authenticator_selection=AuthenticatorSelectionCriteria(
                authenticator_attachment=AuthenticatorAttachment.PLATFORM,
                resident_key=ResidentKeyRequirement.PREFERRED,
                user_verification=UserVerificationRequirement.PREFERRED,
            ),
            exclude_credentials=exclude_credentials,
        )

        session_id = new_session_id()
        options_json = json.loads(options_to_json(options))
        await self._challenges.store_registration_challenge(
            session_id,
            RegistrationChallenge(
                challenge=bytes_to_base64url(options.challenge),
                options=options_json,
                mode=registration_mode,
                user_id=user_id,
                email=pending_email,
                passkey_name=passkey_name,
            ),
        )
        logger.info("passkey_registration_started", mode=registration_mode.value)
        return {"options": options_json, "sessionId": session_id}

    async def complete_registration(
        self,
        credential: Credential | None,
        session_id: str | None,
        caller: Caller | None,
    ) -> RegistrationResult:
        """Verify the attestation and persist the new passkey.

        Signup and add-passkey share this path. Signup creates the user
        recorded at begin (unverified); add-passkey only accepts the
        session user that began the ceremony.
        """
        if not credential or not session_id:
            raise RegistrationMissingFields

        pending = await self._challenges.get_registration_challenge(session_id)
        if pending is None:
            raise RegistrationInvalidSession
        if pending.mode is RegistrationMode.ADD_PASSKEY and (
            caller is None or caller.user_id != pending.user_id
        ):
            raise RegistrationUnauthorized

        # Single use: whoever claims first owns the ceremony
        claimed = await self._challenges.claim_registration_challenge(session_id)
        if claimed is None:
            raise RegistrationInvalidSession

        try:
            verified = verify_registration_response(
                credential=credential,
                expected_challenge=base64url_to_bytes(claimed.challenge),
                expected_rp_id=self._config.rp_id,
                expected_origin=self._config.origin,
                require_user_verification=False,
            )
        except (WebAuthnException, ValueError, KeyError, TypeError) as exc:
            logger.warning("passkey_registration_rejected", error=str(exc))
            raise RegistrationVerificationFailed from exc

        new_user: User | None = None
        if claimed.mode is RegistrationMode.SIGNUP:
            if not claimed.email:
                raise RegistrationInvalidSession
            if await self._user_repo.get_by_email(claimed.email) is not None:
                raise RegistrationAlreadyExists
            new_user = User(id=claimed.user_id, email=claimed.email)
            user_id = claimed.user_id
        else:
            user_id = claimed.user_id

        authenticator = Authenticator(
            user_id=user_id,
            credential_id=bytes_to_base64url(verified.credential_id),
            credential_public_key=bytes_to_base64url(verified.credential_public_key),
            counter=verified.sign_count,
            credential_device_type=str(
                getattr(verified.credential_device_type, "value", verified.credential_device_type)
            ),
            credential_backed_up=bool(verified.credential_backed_up),
            transports=_credential_transports(credential),
            name=claimed.passkey_name or "default",
        )
        try:
            await self._credential_repo.create(authenticator, new_user=new_user)
        except IntegrityError as exc:
            logger.warning("passkey_registration_conflict", user_id=user_id)
            raise RegistrationAlreadyExists("Passkey is already registered") from exc

        user = await self._user_repo.get_by_id(user_id)
        if user is None:
            raise RegistrationUnauthorized
        logger.info("passkey_registered", user_id=user_id, mode=claimed.mode.value)
        return RegistrationResult(
            user=user,
            authenticator=authenticator,
            user_created=new_user is not None,
        )

    # ------------------------------------------------------------------
    # Authentication
    # ------------------------------------------------------------------

    async def begin_authentication(self, email: str | None = None) -> dict[str, Any]:
        """Generate request options.

        With an email, ``allowCredentials`` is scoped to that user's
        passkeys. Without one, any discoverable credential is accepted.
        """
        allow_credentials: list[PublicKeyCredentialDescriptor] | None = None
        if email:
            creds = await self._credential_repo.list_for_email(email)
            allow_credentials = [_descriptor(c) for c in creds]

        options = generate_authentication_options(
            rp_id=self._config.rp_id,
            allow_credentials=allow_credentials,
            user_verification=UserVerificationRequirement.PREFERRED,
        )

        session_id = new_session_id()
        options_json = json.loads(options_to_json(options))
        await self._challenges.store_authentication_challenge(
            session_id,
            AuthenticationChallenge(
                challenge=bytes_to_base64url(options.challenge),
                options=options_json,
            ),
        )
        return {"options": options_json, "sessionId": session_id}

    async def complete_authentication(
        self,
        credential: Credential | None,
        session_id: str | None,
    ) -> AuthenticationResult:
        """Verify the assertion, advance the signature counter, resolve the user."""
        if not credential or not session_id:
            raise AuthenticationMissingFields

        claimed = await self._challenges.claim_authentication_challenge(session_id)
        if claimed is None:
            raise AuthenticationInvalidSession

        credential_id = _credential_id(credential)
        if credential_id is None:
            raise AuthenticationVerificationFailed
        stored = await self._credential_repo.get_by_credential_id(credential_id)
        if stored is None:
            raise AuthenticatorNotFound

        try:
            verified = verify_authentication_response(
                credential=credential,
                expected_challenge=base64url_to_bytes(claimed.challenge),
                expected_rp_id=self._config.rp_id,
                expected_origin=self._config.origin,
                credential_public_key=base64url_to_bytes(stored.credential_public_key),
                credential_current_sign_count=stored.counter,
                require_user_verification=False,
            )
        except (WebAuthnException, ValueError, KeyError, TypeError) as exc:
            logger.warning("passkey_auth_rejected", user_id=stored.user_id, error=str(exc))
            raise AuthenticationVerificationFailed from exc

        # Update counter for clone detection
        await self._credential_repo.update_counter(stored.credential_id, verified.new_sign_count)

        user = await self._user_repo.get_by_id(stored.user_id)
        if user is None:
            raise AuthenticatorNotFound
        logger.info("passkey_authenticated", user_id=user.id)
        return AuthenticationResult(user=user, authenticator=stored)

    # ------------------------------------------------------------------
    # Management
    # ------------------------------------------------------------------

    async def list_passkeys(self, caller: Caller) -> list[Authenticator]:
        return await self._credential_repo.list_for_user(caller.user_id)

    async def delete_passkey(self, caller: Caller, credential_id: str) -> None:
        if not await self._credential_repo.delete(credential_id, caller.user_id):
            raise PasskeyNotFound


def _descriptor(authenticator: Authenticator) -> PublicKeyCredentialDescriptor:
    return PublicKeyCredentialDescriptor(
        id=base64url_to_bytes(authenticator.credential_id),
        transports=_parse_transports(authenticator.transports),
    )


def _parse_transports(transports: str | None) -> list[AuthenticatorTransport] | None:
    """Parse comma-separated transport names, skipping unknown ones."""
    if not transports:
        return None
    result: list[AuthenticatorTransport] = []
    for t in transports.split(","):
        try:
            result.append(AuthenticatorTransport(t.strip()))
        except ValueError:
            continue
    return result or None


def _as_dict(credential: Credential) -> dict[str, Any] | None:
    if isinstance(credential, dict):
        return credential
    try:
        data = json.loads(credential)
    except ValueError:
        return None
    return data if isinstance(data, dict) else None


def _credential_transports(credential: Credential) -> str | None:
    data = _as_dict(credential)
    if data is None:
        return None
    response = data.get("response")
    transports = response.get("transports") if isinstance(response, dict) else None
    if not transports or not isinstance(transports, list):
        return None
    return ",".join(str(t) for t in transports)


def _credential_id(credential: Credential) -> str | None:
    """Canonical (unpadded base64url) form of the credential's raw id."""
    data = _as_dict(credential)
    if data is None:
        return None
    raw_id = data.get("rawId") or data.get("id")
    if not isinstance(raw_id, str) or not raw_id:
        return None
    try:
        return bytes_to_base64url(base64url_to_bytes(raw_id))
    except (binascii.Error, ValueError):
        return None

"""API request/response schemas for FastAPI endpoints."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from mcprouter.models.database import Authenticator, User
from mcprouter.types import KeyType


class CamelModel(BaseModel):
    """Accepts and emits camelCase field names on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _as_utc(value: datetime | None) -> datetime | None:
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=UTC)


# ---------------------------------------------------------------------------
# WebAuthn
# ---------------------------------------------------------------------------


class RegistrationBeginRequest(CamelModel):
    mode: str | None = None
    email: str | None = None
    passkey_name: str | None = Field(default=None, max_length=100)


class CeremonyCompleteRequest(CamelModel):
    credential: dict[str, Any] | str | None = None
    session_id: str | None = None


class AuthenticationBeginRequest(CamelModel):
    email: str | None = None


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class UserResponse(CamelModel):
    id: str
    name: str | None
    email: str | None
    role: str
    email_verified: datetime | None  # null means not verified

    @classmethod
    def from_user(cls, user: User) -> UserResponse:
        return cls(
            id=user.id,
            name=user.name,
            email=user.email,
            role=user.role,
            email_verified=_as_utc(user.email_verified),
        )


class McpSessionRequest(CamelModel):
    user_key: str = Field(min_length=1)


class AuthenticatorResponse(CamelModel):
    credential_id: str
    name: str
    credential_device_type: str
    credential_backed_up: bool
    transports: list[str]
    created_at: datetime
    last_used_at: datetime | None

    @classmethod
    def from_row(cls, row: Authenticator) -> AuthenticatorResponse:
        return cls(
            credential_id=row.credential_id,
            name=row.name,
            credential_device_type=row.credential_device_type,
            credential_backed_up=row.credential_backed_up,
            transports=row.transports.split(",") if row.transports else [],
            created_at=_as_utc(row.created_at),
            last_used_at=_as_utc(row.last_used_at),
        )


# ---------------------------------------------------------------------------
# Email verification
# ---------------------------------------------------------------------------


class EmailRequest(BaseModel):
    email: str = Field(min_length=3, max_length=320, pattern=r"^[^@\s]+@[^@\s]+$")


class VerifyEmailRequest(BaseModel):
    email: str = Field(min_length=1)
    token: str = Field(min_length=1)


# ---------------------------------------------------------------------------
# Keys
# ---------------------------------------------------------------------------


class CreateKeyRequest(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    type: KeyType


class KeyResponse(CamelModel):
    id: str
    name: str
    type: KeyType
    created_at: datetime
    updated_at: datetime

"""SQLModel database table models."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime

from sqlalchemy import UniqueConstraint
from sqlmodel import Field, SQLModel

from mcprouter.types import KeyType, UserRole


def _utc_now() -> datetime:
    """Return current UTC time as naive datetime for TIMESTAMP WITHOUT TIME ZONE columns."""
    return datetime.now(UTC).replace(tzinfo=None)


def _new_uuid() -> str:
    return str(uuid.uuid4())


class User(SQLModel, table=True):
    __tablename__ = "users"

    id: str = Field(default_factory=_new_uuid, primary_key=True)
    name: str | None = None
    email: str | None = Field(default=None, index=True)
    email_verified: datetime | None = None  # None = unverified
    image: str | None = None
    role: str = Field(default=UserRole.USER.value)  # admin | user
    last_verification_email_sent: datetime | None = None

    @property
    def is_unverified(self) -> bool:
        return self.email is not None and self.email_verified is None


class Authenticator(SQLModel, table=True):
    __tablename__ = "authenticators"
    __table_args__ = (UniqueConstraint("credential_id", name="uq_authenticators_credential_id"),)

    # Composite key (user_id, credential_id); credential_id is also globally unique
    user_id: str = Field(foreign_key="users.id", primary_key=True, index=True)
    credential_id: str = Field(primary_key=True)  # base64url
    provider_account_id: str = Field(default_factory=_new_uuid)
    credential_public_key: str  # base64url
    counter: int = Field(default=0)
    credential_device_type: str = Field(default="single_device")
    credential_backed_up: bool = Field(default=False)
    transports: str | None = None  # comma-separated AuthenticatorTransport values
    name: str = Field(default="default")
    created_at: datetime = Field(default_factory=_utc_now)
    last_used_at: datetime | None = None


class ApiKey(SQLModel, table=True):
    __tablename__ = "api_keys"

    id: str = Field(default_factory=_new_uuid, primary_key=True)
    name: str
    # server keys: sha256 hex digest of the secret; user keys: the raw secret
    value: str = Field(index=True)
    type: str = Field(index=True)  # user | server
    created_by: str = Field(foreign_key="users.id", index=True)
    created_at: datetime = Field(default_factory=_utc_now, index=True)
    updated_at: datetime = Field(default_factory=_utc_now)

    @property
    def key_type(self) -> KeyType:
        return KeyType(self.type)

"""Resolved caller identity passed explicitly into auth flows."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from mcprouter.models.database import User


@dataclass(frozen=True, slots=True)
class Caller:
    """Immutable identity of an authenticated application session."""

    user_id: str
    email: str | None
    role: str  # admin | user
    email_verified: bool

    @classmethod
    def from_user(cls, user: User) -> Caller:
        return cls(
            user_id=user.id,
            email=user.email,
            role=user.role,
            email_verified=user.email_verified is not None,
        )

    @property
    def is_unverified(self) -> bool:
        return self.email is not None and not self.email_verified

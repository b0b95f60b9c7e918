"""Every error the flows raise maps to a definite HTTP status."""

from __future__ import annotations

import pytest

from mcprouter import exceptions
from mcprouter.email.sender import EmailDeliveryError
from mcprouter.exceptions import MCPRouterError

# Families and infrastructure bases that are never raised for a client mistake
_SERVER_SIDE = {
    exceptions.MCPRouterError,
    exceptions.StorageError,
    exceptions.ConfigError,
    exceptions.RegistrationError,
    exceptions.AuthenticationError,
    exceptions.EmailVerificationError,
    exceptions.SessionResolutionError,
    exceptions.KeyStoreError,
}


def _all_subclasses(cls: type) -> set[type]:
    found = set()
    for sub in cls.__subclasses__():
        found.add(sub)
        found |= _all_subclasses(sub)
    return found


@pytest.mark.unit
class TestErrorStatusMapping:
    def test_every_client_error_declares_a_4xx_status(self) -> None:
        for cls in _all_subclasses(MCPRouterError) - _SERVER_SIDE - {EmailDeliveryError}:
            assert 400 <= cls.status_code < 500, cls.__name__

    def test_infrastructure_errors_are_5xx(self) -> None:
        assert exceptions.StorageError().status_code == 500
        assert EmailDeliveryError().status_code == 502

    @pytest.mark.parametrize(
        ("error", "status", "message"),
        [
            (exceptions.MissingServerKey, 401, "Server key is required in x-api-key header"),
            (exceptions.InvalidServerKey, 401, "Invalid server key"),
            (exceptions.InvalidUserKey, 401, "Invalid user key"),
            (exceptions.SessionUserNotFound, 401, "User not found"),
            (exceptions.RegistrationInvalidSession, 400, "Invalid or expired session"),
            (
                exceptions.RegistrationUnauthorized,
                401,
                "Authentication required for adding passkey",
            ),
            (exceptions.KeyNotFound, 404, "Key not found or access denied"),
            (exceptions.EmailNotVerified, 403, "Please verify your email address first"),
        ],
    )
    def test_messages(self, error: type[MCPRouterError], status: int, message: str) -> None:
        exc = error()
        assert exc.status_code == status
        assert exc.message == message

    def test_cooldown_message(self) -> None:
        exc = exceptions.ResendCooldownActive(42)
        assert exc.status_code == 429
        assert exc.message == "Please wait 42 seconds before requesting another email"

    def test_custom_message_overrides_default(self) -> None:
        exc = exceptions.RegistrationAlreadyExists("Passkey is already registered")
        assert exc.message == "Passkey is already registered"
        assert exc.status_code == 400

    def test_families(self) -> None:
        assert issubclass(exceptions.InvalidRegistrationMode, exceptions.RegistrationError)
        assert issubclass(exceptions.AuthenticatorNotFound, exceptions.AuthenticationError)
        assert issubclass(exceptions.InvalidUserKey, exceptions.SessionResolutionError)
        assert issubclass(exceptions.VerificationTokenExpired, exceptions.EmailVerificationError)

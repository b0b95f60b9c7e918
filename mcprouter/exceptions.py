"""Exception hierarchy for MCP Router.

Every concrete error carries the HTTP status the web layer answers with,
so the mapping lives next to the error instead of in each route.
"""

from __future__ import annotations


class MCPRouterError(Exception):
    """Base exception for all MCP Router errors."""

    status_code: int = 500
    default_message: str = "Internal server error"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)

    @property
    def message(self) -> str:
        return str(self)


class StorageError(MCPRouterError):
    """Raised when a backing store cannot be reached or fails."""


class ConfigError(MCPRouterError):
    """Raised when configuration is invalid."""


# ---------------------------------------------------------------------------
# Passkey registration
# ---------------------------------------------------------------------------


class RegistrationError(MCPRouterError):
    """Base for passkey registration failures."""


class InvalidRegistrationMode(RegistrationError):
    status_code = 400
    default_message = "Invalid mode. Must be 'signup' or 'add-passkey'"


class RegistrationEmailRequired(RegistrationError):
    status_code = 400
    default_message = "Email is required for signup"


class RegistrationAlreadyExists(RegistrationError):
    status_code = 400
    default_message = "User already exists with this email"


class RegistrationUnauthorized(RegistrationError):
    status_code = 401
    default_message = "Authentication required for adding passkey"


class RegistrationMissingFields(RegistrationError):
    status_code = 400
    default_message = "Missing credential or sessionId"


class RegistrationInvalidSession(RegistrationError):
    status_code = 400
    default_message = "Invalid or expired session"


class RegistrationVerificationFailed(RegistrationError):
    status_code = 400
    default_message = "Failed to verify credential"


# ---------------------------------------------------------------------------
# Passkey authentication
# ---------------------------------------------------------------------------


class AuthenticationError(MCPRouterError):
    """Base for passkey authentication failures."""


class AuthenticationMissingFields(AuthenticationError):
    status_code = 400
    default_message = "Missing credential or sessionId"


class AuthenticationInvalidSession(AuthenticationError):
    status_code = 400
    default_message = "Invalid or expired session"


class AuthenticatorNotFound(AuthenticationError):
    status_code = 401
    default_message = "Authenticator not found"


class AuthenticationVerificationFailed(AuthenticationError):
    status_code = 401
    default_message = "Failed to verify credential"


class PasskeyNotFound(MCPRouterError):
    status_code = 404
    default_message = "Passkey not found or access denied"


# ---------------------------------------------------------------------------
# Email verification
# ---------------------------------------------------------------------------


class EmailVerificationError(MCPRouterError):
    """Base for email sign-up, sign-in and verification failures."""


class VerificationNotAuthenticated(EmailVerificationError):
    status_code = 401
    default_message = "User does not have an email"


class VerificationUserNotFound(EmailVerificationError):
    status_code = 404
    default_message = "User not found"


class AccountAlreadyExists(EmailVerificationError):
    status_code = 400
    default_message = "An account with this email already exists. Please sign in instead."


class AccountNotFound(EmailVerificationError):
    status_code = 404
    default_message = "No account found with this email address"


class EmailNotVerified(EmailVerificationError):
    status_code = 403
    default_message = "Please verify your email address first"


class EmailAlreadyVerified(EmailVerificationError):
    status_code = 400
    default_message = "Email is already verified"


class ResendCooldownActive(EmailVerificationError):
    status_code = 429

    def __init__(self, remaining_seconds: int) -> None:
        self.remaining_seconds = remaining_seconds
        super().__init__(
            f"Please wait {remaining_seconds} seconds before requesting another email"
        )


class InvalidVerificationToken(EmailVerificationError):
    status_code = 400
    default_message = "Invalid or expired verification token"


class VerificationTokenExpired(EmailVerificationError):
    status_code = 400
    default_message = "Verification token has expired"


# ---------------------------------------------------------------------------
# MCP session resolution
# ---------------------------------------------------------------------------


class SessionResolutionError(MCPRouterError):
    """Base for server-key / user-key exchange failures."""


class MissingServerKey(SessionResolutionError):
    status_code = 401
    default_message = "Server key is required in x-api-key header"


class InvalidServerKey(SessionResolutionError):
    status_code = 401
    default_message = "Invalid server key"


class InvalidUserKey(SessionResolutionError):
    status_code = 401
    default_message = "Invalid user key"


class SessionUserNotFound(SessionResolutionError):
    status_code = 401
    default_message = "User not found"


# ---------------------------------------------------------------------------
# Key management
# ---------------------------------------------------------------------------


class KeyStoreError(MCPRouterError):
    """Base for API key management failures."""


class KeyNotFound(KeyStoreError):
    status_code = 404
    default_message = "Key not found or access denied"


class InvalidCursor(KeyStoreError):
    status_code = 400
    default_message = "Invalid pagination cursor"

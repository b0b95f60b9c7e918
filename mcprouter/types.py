"""Enums and type aliases for MCP Router."""

from enum import StrEnum


class KeyType(StrEnum):
    USER = "user"
    SERVER = "server"


class UserRole(StrEnum):
    ADMIN = "admin"
    USER = "user"


class RegistrationMode(StrEnum):
    SIGNUP = "signup"
    ADD_PASSKEY = "add-passkey"

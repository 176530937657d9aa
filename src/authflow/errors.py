"""Uniform error types raised across the identity adapter and the flow."""

from __future__ import annotations

from enum import StrEnum


class ErrorKind(StrEnum):
    CONFIGURATION = "configuration"
    NETWORK = "network"
    UNAUTHORIZED = "unauthorized"
    NOT_FOUND = "not_found"
    INVALID_RESPONSE = "invalid_response"
    SERVER = "server"
    FAILED = "failed"


class AuthError(Exception):
    """The only error shape that leaves the identity adapter.

    ``message`` is always safe to show to the user.
    """

    def __init__(self, message: str, kind: ErrorKind = ErrorKind.FAILED) -> None:
        super().__init__(message)
        self.message = message
        self.kind = kind

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.message!r}, kind={self.kind.value!r})"


class ConfigurationError(AuthError):
    """Missing or unusable backend configuration. Raised at construction."""

    def __init__(self, message: str) -> None:
        super().__init__(message, ErrorKind.CONFIGURATION)

"""Typed errors raised by the auth services and mapped to HTTP responses in main.py."""


class AuthServiceError(Exception):
    """Base class for client-visible auth errors."""

    status_code = 500

    def __init__(self, message: str = "An error occurred") -> None:
        self.message = message
        super().__init__(message)


class Unauthenticated(AuthServiceError):
    """Missing, invalid or expired token; unknown or deactivated account."""

    status_code = 401


class Forbidden(AuthServiceError):
    """Authenticated, but the role, permission, ownership or company scope does not allow it."""

    status_code = 403


class ValidationError(AuthServiceError):
    """Malformed input, duplicate email, or an invalid role selection."""

    status_code = 400


class NotFound(AuthServiceError):
    """Referenced account, role assignment or token does not exist."""

    status_code = 404


class RoleStoreUnavailable(Exception):
    """
    The users_role table is missing or unreachable.

    Internal only: callers on the legacy-fallback paths treat it as "no special roles".
    """

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)

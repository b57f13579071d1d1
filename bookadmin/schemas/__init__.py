"""Pydantic request/response schemas."""

from bookadmin.schemas.auth import (
    AccountOut,
    ActingPrincipal,
    LoginResponse,
    SessionClaims,
    TokenResponse,
)
from bookadmin.schemas.health import HealthResponse
from bookadmin.schemas.roles import (
    ImplicitUserRole,
    PersistedRole,
    RoleAssignment,
    RoleOption,
    SelectedRole,
)

__all__ = [
    "AccountOut",
    "ActingPrincipal",
    "HealthResponse",
    "ImplicitUserRole",
    "LoginResponse",
    "PersistedRole",
    "RoleAssignment",
    "RoleOption",
    "SelectedRole",
    "SessionClaims",
    "TokenResponse",
]

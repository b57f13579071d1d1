"""FastAPI dependencies: DB-bound Role Store, acting principal, and guard dependencies."""

import json
from typing import Annotated, Any

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from bookadmin.core.config import settings
from bookadmin.core.database import engine, get_db
from bookadmin.schemas.auth import ActingPrincipal
from bookadmin.services.authenticator import authenticate, authenticate_optional
from bookadmin.services.guards import (
    require_ownership_or_admin,
    require_permission,
    require_role,
    require_same_company,
)
from bookadmin.services.role_store import (
    RoleStore,
    RoleStoreMode,
    build_role_store,
    resolve_role_store_mode,
)

security = HTTPBearer(auto_error=False)


def get_role_store_mode(request: Request) -> RoleStoreMode:
    """Mode decided at startup; resolved once here if the lifespan did not run."""
    mode = getattr(request.app.state, "role_store_mode", None)
    if mode is None:
        mode = resolve_role_store_mode(engine, settings.ROLE_STORE_MODE)
        request.app.state.role_store_mode = mode
    return mode


def get_role_store(
    request: Request,
    db: Annotated[Session, Depends(get_db)],
) -> RoleStore:
    return build_role_store(db, get_role_store_mode(request))


def _bearer(credentials: HTTPAuthorizationCredentials | None) -> str | None:
    return credentials.credentials if credentials is not None else None


def get_current_principal(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
    db: Annotated[Session, Depends(get_db)],
    store: Annotated[RoleStore, Depends(get_role_store)],
) -> ActingPrincipal:
    """Dependency: require a valid Bearer session token. Raises Unauthenticated (401)."""
    return authenticate(db, store, _bearer(credentials))


def get_optional_principal(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
    db: Annotated[Session, Depends(get_db)],
    store: Annotated[RoleStore, Depends(get_role_store)],
) -> ActingPrincipal | None:
    """Dependency: the principal if a usable token was sent, else None. Never rejects."""
    return authenticate_optional(db, store, _bearer(credentials))


async def request_fields(request: Request) -> dict[str, Any]:
    """
    Request values the ownership/company guards look at.
    Path parameters win over query parameters, which win over JSON body fields.
    """
    fields: dict[str, Any] = {}
    body = await request.body()
    if body:
        try:
            payload = json.loads(body)
        except ValueError:
            payload = None
        if isinstance(payload, dict):
            fields.update(payload)
    fields.update(request.query_params)
    fields.update(request.path_params)
    return fields


class RequireRole:
    """Dependency: principal at max_level or more privileged."""

    def __init__(self, max_level: int) -> None:
        self.max_level = max_level

    def __call__(
        self,
        principal: Annotated[ActingPrincipal, Depends(get_current_principal)],
        store: Annotated[RoleStore, Depends(get_role_store)],
    ) -> ActingPrincipal:
        return require_role(principal, self.max_level, store)


class RequirePermission:
    """Dependency: principal holds the named permission."""

    def __init__(self, permission: str) -> None:
        self.permission = permission

    def __call__(
        self,
        principal: Annotated[ActingPrincipal, Depends(get_current_principal)],
        store: Annotated[RoleStore, Depends(get_role_store)],
    ) -> ActingPrincipal:
        return require_permission(principal, self.permission, store)


class RequireOwnershipOrAdmin:
    """Dependency: owner/admin, or the request's `field` equals the principal id."""

    def __init__(self, field: str = "userId") -> None:
        self.field = field

    def __call__(
        self,
        principal: Annotated[ActingPrincipal, Depends(get_current_principal)],
        store: Annotated[RoleStore, Depends(get_role_store)],
        fields: Annotated[dict[str, Any], Depends(request_fields)],
    ) -> ActingPrincipal:
        return require_ownership_or_admin(principal, fields, self.field, store)


class RequireSameCompany:
    """Dependency: system admin, or the request's `field` equals the principal's company."""

    def __init__(self, field: str = "companyId") -> None:
        self.field = field

    def __call__(
        self,
        principal: Annotated[ActingPrincipal, Depends(get_current_principal)],
        store: Annotated[RoleStore, Depends(get_role_store)],
        fields: Annotated[dict[str, Any], Depends(request_fields)],
    ) -> ActingPrincipal:
        return require_same_company(principal, fields, self.field, store)

"""
Authorization guards: predicates over the acting principal and request fields.

Each guard returns the principal when access is allowed and raises
Unauthenticated (no principal) or Forbidden otherwise. The only mutation is
filling in principal.role_level when the token did not carry one.
"""

from collections.abc import Mapping
from typing import Any

from bookadmin.core.exceptions import Forbidden, RoleStoreUnavailable, Unauthenticated
from bookadmin.core.roles import RoleLevel, is_at_least, permissions_for
from bookadmin.schemas.auth import ActingPrincipal
from bookadmin.services.role_store import RoleStore


def require_authenticated(principal: ActingPrincipal | None) -> ActingPrincipal:
    if principal is None:
        raise Unauthenticated("Authentication required")
    return principal


def resolve_role_level(principal: ActingPrincipal, store: RoleStore | None = None) -> RoleLevel:
    """principal.role_level, else principal.role, else the Role Store's current role, else USER."""
    if principal.role_level is not None:
        return principal.role_level
    if principal.role is not None:
        level = principal.role
    elif store is not None:
        try:
            level = store.get_current_role(principal.id)
        except RoleStoreUnavailable:
            level = RoleLevel.USER
    else:
        level = RoleLevel.USER
    principal.role_level = level
    if principal.role is None:
        principal.role = level
    return level


def require_role(
    principal: ActingPrincipal | None, max_level: int, store: RoleStore | None = None
) -> ActingPrincipal:
    """Pass iff the principal's level is max_level or more privileged."""
    principal = require_authenticated(principal)
    if not is_at_least(resolve_role_level(principal, store), max_level):
        raise Forbidden("Insufficient permissions")
    return principal


def require_permission(
    principal: ActingPrincipal | None, permission: str, store: RoleStore | None = None
) -> ActingPrincipal:
    return require_role(principal, permissions_for(permission), store)


def require_ownership_or_admin(
    principal: ActingPrincipal | None,
    fields: Mapping[str, Any],
    field: str = "userId",
    store: RoleStore | None = None,
) -> ActingPrincipal:
    """Company owners and system admins pass; anyone else only when fields[field] is their own id."""
    principal = require_authenticated(principal)
    if is_at_least(resolve_role_level(principal, store), RoleLevel.COMPANY_OWNER):
        return principal
    value = fields.get(field)
    if value is None or str(value) != principal.id:
        raise Forbidden("Access denied - not your resource")
    return principal


def require_same_company(
    principal: ActingPrincipal | None,
    fields: Mapping[str, Any],
    field: str = "companyId",
    store: RoleStore | None = None,
) -> ActingPrincipal:
    """System admins pass; others need a company, and fields[field] must be that company."""
    principal = require_authenticated(principal)
    if resolve_role_level(principal, store) == RoleLevel.SYSTEM_ADMIN:
        return principal
    if not principal.company_id:
        raise Forbidden("Company access required")
    value = fields.get(field)
    if value is None or str(value) != principal.company_id:
        raise Forbidden("Access denied - different company")
    return principal

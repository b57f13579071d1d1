"""
Request Authenticator: session token -> acting principal for one request.

Steps: verify the token, load the account, reject deactivated accounts, then
resolve company and role. Role resolution prefers the token's role claim (the
role picked at login), then its roleId, then the Role Store, then the legacy
users.role column, and never ends without a role: USER is the floor. Role Store
failures during company/role resolution fall through to USER instead of failing
the request.
"""

import logging

import jwt
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.orm import Session

from bookadmin.core.exceptions import RoleStoreUnavailable, Unauthenticated
from bookadmin.core.roles import RoleLevel
from bookadmin.core.security import decode_session_token
from bookadmin.models.user import Account
from bookadmin.schemas.auth import ActingPrincipal, SessionClaims
from bookadmin.schemas.roles import PersistedRole
from bookadmin.services.accounts import find_account_by_id
from bookadmin.services.role_store import RoleStore

logger = logging.getLogger(__name__)


def decode_claims(token: str | None) -> SessionClaims:
    """Verify signature and expiry; Unauthenticated distinguishes expired from invalid."""
    if not token:
        raise Unauthenticated("Access token required")
    try:
        payload = decode_session_token(token)
    except jwt.ExpiredSignatureError:
        raise Unauthenticated("Token expired")
    except jwt.PyJWTError:
        raise Unauthenticated("Invalid token")
    try:
        return SessionClaims.model_validate(payload)
    except PydanticValidationError:
        raise Unauthenticated("Invalid token payload")


def _owned_active_role(
    store: RoleStore, role_id: str | None, account: Account
) -> PersistedRole | None:
    if not role_id:
        return None
    assignment = store.find_by_id(role_id)
    if assignment is None or assignment.user_id != account.id or not assignment.is_active:
        return None
    return assignment


def _legacy_level(account: Account) -> RoleLevel | None:
    if account.role is None:
        return None
    try:
        return RoleLevel(account.role)
    except ValueError:
        return None


def _resolve_company(
    store: RoleStore, claims: SessionClaims, selected: PersistedRole | None, account: Account
) -> str | None:
    if selected is not None:
        return selected.company_id
    if claims.company_id:
        return claims.company_id
    if not store.is_normalized:
        return account.company_id
    return store.get_default_role(account.id).company_id


def _resolve_role(
    store: RoleStore,
    claims: SessionClaims,
    selected: PersistedRole | None,
    account: Account,
    company_id: str | None,
) -> tuple[RoleLevel, str | None]:
    """Effective role and the company it applies to."""
    if claims.role is not None:
        return claims.role, company_id
    if claims.role_id:
        if selected is not None:
            return selected.role, selected.company_id or company_id
        return RoleLevel.USER, company_id
    legacy = _legacy_level(account)
    if legacy is None:
        return store.get_current_role(account.id, company_id), company_id
    return legacy, company_id


def build_principal(db: Session, store: RoleStore, claims: SessionClaims) -> ActingPrincipal:
    """Load the account behind verified claims and attach the resolved role."""
    account = find_account_by_id(db, claims.user_id)
    if account is None:
        raise Unauthenticated("Invalid token - user not found")
    if not account.is_active:
        raise Unauthenticated("Account is deactivated")

    company_id: str | None = None
    role: RoleLevel = RoleLevel.USER
    role_id: str | None = None
    try:
        selected = _owned_active_role(store, claims.role_id, account)
        role_id = selected.id if selected is not None else None
        company_id = _resolve_company(store, claims, selected, account)
        role, company_id = _resolve_role(store, claims, selected, account, company_id)
    except RoleStoreUnavailable as e:
        logger.warning("Role store unavailable for user %s; using USER: %s", account.id, e.message)
        if claims.role is not None:
            role = claims.role
            company_id = claims.company_id
        else:
            role = RoleLevel.USER

    return ActingPrincipal(
        id=account.id,
        email=account.email,
        first_name=account.first_name or "",
        last_name=account.last_name or "",
        is_active=account.is_active,
        is_verified=account.is_verified,
        role=role,
        role_level=role,
        role_id=role_id,
        company_id=company_id,
        impersonated_by=claims.impersonated_by,
        is_impersonating=claims.is_impersonating,
    )


def authenticate(db: Session, store: RoleStore, token: str | None) -> ActingPrincipal:
    """Resolve the acting principal for a bearer token; raises Unauthenticated."""
    claims = decode_claims(token)
    return build_principal(db, store, claims)


def authenticate_optional(
    db: Session, store: RoleStore, token: str | None
) -> ActingPrincipal | None:
    """Same as authenticate, but a missing/bad token or unusable account yields None."""
    if not token:
        return None
    try:
        return authenticate(db, store, token)
    except Unauthenticated:
        return None

"""
Session Issuer: turns a completed access decision into a signed session token.

Login is two-step for anyone holding an elevated role: the first call checks
the password and returns the role options (always including plain USER) plus a
short-lived selection ticket; complete_login exchanges ticket + chosen role for
the session token. Accounts with no elevated role get their token immediately.
"""

import logging

import jwt
from sqlalchemy.orm import Session

from bookadmin.core.config import Settings, get_settings
from bookadmin.core.exceptions import (
    NotFound,
    RoleStoreUnavailable,
    Unauthenticated,
    ValidationError,
)
from bookadmin.core.roles import RoleLevel, parse_role, role_name
from bookadmin.core.security import (
    create_selection_token,
    create_session_token,
    decode_selection_token,
    hash_password,
    verify_password,
)
from bookadmin.models.base import utcnow
from bookadmin.models.user import Account
from bookadmin.schemas.auth import (
    AccountOut,
    ActingPrincipal,
    ImpersonationResponse,
    LoginResponse,
    OriginalAdmin,
    RegisterRequest,
    RegisterResponse,
    TokenResponse,
)
from bookadmin.schemas.roles import ImplicitUserRole, PersistedRole, RoleOption, SelectedRole
from bookadmin.services.accounts import (
    claim_account,
    create_account,
    find_account_by_email,
    find_account_by_id,
)
from bookadmin.services.guards import require_role
from bookadmin.services.role_store import RoleStore

logger = logging.getLogger(__name__)

USER_SELECTION = SelectedRole(id=None, role=RoleLevel.USER, company_id=None)


def issue_session_token(
    account_id: str,
    email: str,
    selected: SelectedRole,
    impersonated_by: str | None = None,
) -> str:
    return create_session_token(
        user_id=account_id,
        email=email,
        role=selected.role,
        role_id=selected.id,
        company_id=selected.company_id,
        impersonated_by=impersonated_by,
    )


def _selection_from(assignment: PersistedRole | ImplicitUserRole) -> SelectedRole:
    return SelectedRole(id=assignment.id, role=assignment.role, company_id=assignment.company_id)


def _legacy_selection(account: Account) -> SelectedRole:
    """Role from the pre-migration users.role column, or USER."""
    if account.role is None:
        return USER_SELECTION
    try:
        level = RoleLevel(account.role)
    except ValueError:
        return USER_SELECTION
    return SelectedRole(id=None, role=level, company_id=account.company_id)


def _default_selection(store: RoleStore, account: Account) -> SelectedRole:
    if not store.is_normalized:
        return _legacy_selection(account)
    return _selection_from(store.get_default_role(account.id))


def _role_options(roles: list[PersistedRole]) -> list[RoleOption]:
    """Elevated roles followed by the plain USER option (id None)."""
    options = [RoleOption.from_assignment(r) for r in roles]
    options.append(
        RoleOption(
            id=None,
            role=RoleLevel.USER,
            role_name=role_name(RoleLevel.USER),
            company_id=None,
            is_default=not any(r.is_default for r in roles),
        )
    )
    return options


def _load_elevated_roles(store: RoleStore, account: Account) -> list[PersistedRole] | None:
    """Active elevated roles, or None when this deployment has no usable users_role table."""
    if not store.is_normalized:
        return None
    try:
        return [r for r in store.find_active_by_user(account.id) if r.role != RoleLevel.USER]
    except RoleStoreUnavailable:
        return None


def _resolve_selection(store: RoleStore, account: Account, role_id: str | None) -> SelectedRole:
    """Validate a chosen role_id for account; None (or "") selects USER."""
    if not role_id:
        return USER_SELECTION
    try:
        assignment = store.find_by_id(role_id)
    except RoleStoreUnavailable:
        assignment = None
    if assignment is None:
        raise ValidationError("Invalid role selection - role not found")
    if assignment.user_id != account.id:
        raise ValidationError("Invalid role selection - role does not belong to user")
    if not assignment.is_active:
        raise ValidationError("Invalid role selection - role is not active")
    return _selection_from(assignment)


def validate_password_length(password: str, settings: Settings | None = None) -> None:
    settings = settings or get_settings()
    if not (settings.PASSWORD_MIN_LEN <= len(password) <= settings.PASSWORD_MAX_LEN):
        raise ValidationError(
            f"Password must be {settings.PASSWORD_MIN_LEN}-{settings.PASSWORD_MAX_LEN} characters."
        )


def register(
    db: Session,
    store: RoleStore,
    body: RegisterRequest,
    settings: Settings | None = None,
) -> RegisterResponse:
    """
    Create an account (or claim a pre-created passwordless one) and sign it in.

    A requested elevated role becomes the account's default role assignment;
    USER is never stored.
    """
    settings = settings or get_settings()
    validate_password_length(body.password, settings)
    level = parse_role(body.role) if settings.ALLOW_ELEVATED_SIGNUP else RoleLevel.USER

    existing = find_account_by_email(db, body.email)
    if existing is not None:
        if existing.password_hash:
            raise ValidationError("Email already exists")
        account = claim_account(
            db, existing, hash_password(body.password), body.first_name, body.last_name
        )
    else:
        account = create_account(
            db,
            email=body.email,
            password_hash=hash_password(body.password),
            first_name=body.first_name,
            last_name=body.last_name,
            role=level,
            legacy_role_column=not store.is_normalized,
        )
        if level != RoleLevel.USER and store.is_normalized:
            try:
                store.create(account.id, level, company_id=None, is_active=True, is_default=True)
            except RoleStoreUnavailable:
                logger.warning(
                    "users_role unavailable; role %s for new account %s not stored",
                    int(level),
                    account.id,
                )

    selected = _default_selection(store, account)
    token = issue_session_token(account.id, account.email, selected)
    return RegisterResponse(
        access_token=token,
        selected_role=selected,
        user=AccountOut.model_validate(account),
    )


def login(db: Session, store: RoleStore, email: str, password: str) -> LoginResponse:
    """Check credentials; return a token, or the role options when a role must be picked."""
    account = find_account_by_email(db, email)
    if account is None:
        raise Unauthenticated("Invalid email or password")
    if not account.is_active:
        raise Unauthenticated("Account is deactivated")
    if not verify_password(password, account.password_hash):
        raise Unauthenticated("Invalid email or password")

    account.last_login_at = utcnow()
    db.commit()
    db.refresh(account)
    user = AccountOut.model_validate(account)

    roles = _load_elevated_roles(store, account)
    if roles is None:
        selected = _legacy_selection(account)
    elif not roles:
        selected = _selection_from(store.get_default_role(account.id))
    else:
        logger.info("Login for %s requires role selection (%d roles)", account.id, len(roles))
        return LoginResponse(
            user=user,
            requires_role_selection=True,
            role_options=_role_options(roles),
            selection_token=create_selection_token(account.id),
        )

    return LoginResponse(
        user=user,
        access_token=issue_session_token(account.id, account.email, selected),
        selected_role=selected,
    )


def complete_login(
    db: Session,
    store: RoleStore,
    email: str,
    role_id: str | None,
    selection_token: str,
) -> LoginResponse:
    """Second login step: issue a token for the chosen role (None = USER)."""
    try:
        claims = decode_selection_token(selection_token)
    except jwt.ExpiredSignatureError:
        raise Unauthenticated("Role selection expired; log in again")
    except jwt.PyJWTError:
        raise Unauthenticated("Invalid role selection token")

    account = find_account_by_email(db, email)
    if account is None or not account.is_active or account.id != claims.get("userId"):
        raise Unauthenticated("Invalid credentials")

    selected = _resolve_selection(store, account, role_id)
    return LoginResponse(
        user=AccountOut.model_validate(account),
        access_token=issue_session_token(account.id, account.email, selected),
        selected_role=selected,
    )


def refresh(store: RoleStore, principal: ActingPrincipal) -> TokenResponse:
    """Re-issue the principal's session with its role re-read from the Role Store."""
    if principal.role_id is None and principal.role in (None, RoleLevel.USER):
        selected = USER_SELECTION
    elif not store.is_normalized:
        selected = SelectedRole(
            id=None, role=principal.role or RoleLevel.USER, company_id=principal.company_id
        )
    else:
        try:
            assignment = store.find_by_id(principal.role_id) if principal.role_id else None
            if (
                assignment is None
                or assignment.user_id != principal.id
                or not assignment.is_active
            ):
                assignment = store.get_current_assignment(principal.id, principal.company_id)
            selected = _selection_from(assignment)
        except RoleStoreUnavailable:
            selected = USER_SELECTION

    token = issue_session_token(
        principal.id, principal.email, selected, impersonated_by=principal.impersonated_by
    )
    return TokenResponse(access_token=token, selected_role=selected)


def _impersonation_target(db: Session, target_user_id: str) -> Account:
    target = find_account_by_id(db, target_user_id)
    if target is None:
        raise NotFound("User not found")
    if not target.is_active:
        raise ValidationError("Cannot impersonate inactive user")
    return target


def _original_admin(admin: ActingPrincipal) -> OriginalAdmin:
    return OriginalAdmin(id=admin.id, email=admin.email, name=admin.full_name)


def impersonate(
    db: Session, store: RoleStore, admin: ActingPrincipal | None, target_user_id: str
) -> ImpersonationResponse:
    """System admin acts as another account; same role-selection rules as login."""
    admin = require_role(admin, RoleLevel.SYSTEM_ADMIN, store)
    target = _impersonation_target(db, target_user_id)
    user = AccountOut.model_validate(target)

    roles = _load_elevated_roles(store, target)
    if roles:
        return ImpersonationResponse(
            user=user,
            original_admin=_original_admin(admin),
            requires_role_selection=True,
            role_options=_role_options(roles),
        )

    if roles is None:
        selected = _legacy_selection(target)
    else:
        selected = _selection_from(store.get_default_role(target.id))
    logger.info("Admin %s impersonating %s", admin.id, target.id)
    return ImpersonationResponse(
        user=user,
        original_admin=_original_admin(admin),
        access_token=issue_session_token(
            target.id, target.email, selected, impersonated_by=admin.id
        ),
        selected_role=selected,
    )


def complete_impersonation(
    db: Session,
    store: RoleStore,
    admin: ActingPrincipal | None,
    target_user_id: str,
    role_id: str | None,
) -> ImpersonationResponse:
    admin = require_role(admin, RoleLevel.SYSTEM_ADMIN, store)
    target = _impersonation_target(db, target_user_id)
    selected = _resolve_selection(store, target, role_id)
    logger.info("Admin %s impersonating %s as role %s", admin.id, target.id, int(selected.role))
    return ImpersonationResponse(
        user=AccountOut.model_validate(target),
        original_admin=_original_admin(admin),
        access_token=issue_session_token(
            target.id, target.email, selected, impersonated_by=admin.id
        ),
        selected_role=selected,
    )

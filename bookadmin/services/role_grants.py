"""
Granting elevated roles.

System admins may grant any elevated role in any scope. Company owners may
only hire staff into their own company. A grant addressed to an email with no
account pre-creates a passwordless account and returns its setup email.
"""

import logging

from sqlalchemy.orm import Session

from bookadmin.core.config import Settings
from bookadmin.core.exceptions import Forbidden, NotFound, ValidationError
from bookadmin.core.roles import RoleLevel
from bookadmin.models.user import Account
from bookadmin.schemas.auth import ActingPrincipal
from bookadmin.schemas.roles import GrantRoleRequest, PersistedRole
from bookadmin.services.accounts import create_account, find_account_by_email, find_account_by_id
from bookadmin.services.auth_tokens import invite_account
from bookadmin.services.email import OutgoingEmail
from bookadmin.services.guards import require_same_company, resolve_role_level
from bookadmin.services.role_store import RoleStore

logger = logging.getLogger(__name__)


def _check_grant_scope(
    principal: ActingPrincipal, store: RoleStore, body: GrantRoleRequest
) -> None:
    if resolve_role_level(principal, store) == RoleLevel.SYSTEM_ADMIN:
        return
    if body.role != RoleLevel.STAFF_MEMBER:
        raise Forbidden("Company owners may only grant the Staff Member role")
    require_same_company(principal, {"company_id": body.company_id}, "company_id", store)


def _grant_target(db: Session, body: GrantRoleRequest) -> tuple[Account, bool]:
    """The account to grant to, and whether it was pre-created for this grant."""
    if body.user_id:
        account = find_account_by_id(db, body.user_id)
        if account is None:
            raise NotFound("User not found")
        return account, False
    if not body.email:
        raise ValidationError("user_id or email is required")
    account = find_account_by_email(db, body.email)
    if account is not None:
        return account, False
    account = create_account(
        db,
        email=body.email,
        password_hash=None,
        first_name=body.first_name,
        last_name=body.last_name,
    )
    logger.info("Pre-created account %s for role grant", account.id)
    return account, True


def grant_role(
    db: Session,
    store: RoleStore,
    principal: ActingPrincipal,
    body: GrantRoleRequest,
    settings: Settings,
) -> tuple[PersistedRole, OutgoingEmail | None]:
    """Store the grant; returns the new assignment and, for a pre-created account, its setup email."""
    if not store.is_normalized:
        raise ValidationError("Role assignments are not enabled for this deployment")
    _check_grant_scope(principal, store, body)

    account, pre_created = _grant_target(db, body)
    if not pre_created and store.has_role(account.id, body.role, body.company_id):
        raise ValidationError("User already has this role")

    assignment = store.create(
        account.id,
        body.role,
        company_id=body.company_id,
        is_active=True,
        is_default=body.is_default,
    )
    if assignment is None:
        raise ValidationError("Role could not be stored")
    logger.info(
        "Account %s granted role %s (company=%s) by %s",
        account.id,
        int(body.role),
        body.company_id,
        principal.id,
    )

    invitation = invite_account(db, account, settings) if pre_created else None
    return assignment, invitation

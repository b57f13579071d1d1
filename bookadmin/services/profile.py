"""Self-service account changes: profile fields and password."""

import logging

from sqlalchemy.orm import Session

from bookadmin.core.config import Settings
from bookadmin.core.exceptions import NotFound, ValidationError
from bookadmin.core.security import hash_password, verify_password
from bookadmin.models.base import utcnow
from bookadmin.models.user import Account
from bookadmin.schemas.auth import ChangePasswordRequest, UpdateProfileRequest
from bookadmin.services.accounts import find_account_by_email, find_account_by_id, normalize_email
from bookadmin.services.session_issuer import validate_password_length

logger = logging.getLogger(__name__)


def _own_account(db: Session, account_id: str) -> Account:
    account = find_account_by_id(db, account_id)
    if account is None:
        raise NotFound("User not found")
    return account


def update_profile(db: Session, account_id: str, body: UpdateProfileRequest) -> Account:
    """Apply the fields the caller sent. A new email must not belong to another account."""
    account = _own_account(db, account_id)
    changes = body.model_dump(exclude_unset=True, exclude_none=True)

    email = changes.pop("email", None)
    if email is not None:
        email = normalize_email(email)
        if email != account.email:
            holder = find_account_by_email(db, email)
            if holder is not None and holder.id != account.id:
                raise ValidationError("Email already in use")
            account.email = email

    for key in ("first_name", "last_name", "phone"):
        if key in changes:
            setattr(account, key, changes[key].strip())
    if "preferences" in changes:
        account.preferences = {**(account.preferences or {}), **changes["preferences"]}

    account.updated_at = utcnow()
    db.commit()
    db.refresh(account)
    logger.info("Profile updated for account %s (fields=%s)", account.id, sorted(body.model_fields_set))
    return account


def change_password(
    db: Session, account_id: str, body: ChangePasswordRequest, settings: Settings
) -> Account:
    account = _own_account(db, account_id)
    if account.password_hash is None:
        raise ValidationError("Account has no password yet; use the account setup link")
    if not verify_password(body.current_password, account.password_hash):
        raise ValidationError("Current password is incorrect")
    if body.new_password != body.confirm_password:
        raise ValidationError("Passwords do not match")
    validate_password_length(body.new_password, settings)

    account.password_hash = hash_password(body.new_password)
    account.updated_at = utcnow()
    db.commit()
    db.refresh(account)
    logger.info("Password changed for account %s", account.id)
    return account

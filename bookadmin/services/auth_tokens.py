"""
Single-use account tokens: password reset (1h), account setup (24h), email verification (24h).

Issuing a token invalidates the account's earlier unused tokens of the same
purpose. A token is accepted once, and only before it expires.
"""

import logging
from datetime import timedelta
from typing import TYPE_CHECKING

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from bookadmin.core.exceptions import NotFound
from bookadmin.core.security import generate_single_use_token, hash_password
from bookadmin.models import Account, AuthenticationToken, TokenPurpose
from bookadmin.models.base import utcnow
from bookadmin.services.accounts import find_account_by_email, find_account_by_id
from bookadmin.services.email import (
    OutgoingEmail,
    account_setup_email,
    email_verification_email,
    password_reset_email,
)
from bookadmin.services.session_issuer import validate_password_length

if TYPE_CHECKING:
    from bookadmin.core.config import Settings

logger = logging.getLogger(__name__)


def _lifetime(purpose: TokenPurpose, settings: "Settings") -> timedelta:
    hours = {
        TokenPurpose.PASSWORD_RESET: settings.PASSWORD_RESET_EXPIRE_HOURS,
        TokenPurpose.ACCOUNT_SETUP: settings.ACCOUNT_SETUP_EXPIRE_HOURS,
        TokenPurpose.EMAIL_VERIFICATION: settings.EMAIL_VERIFICATION_EXPIRE_HOURS,
    }[purpose]
    return timedelta(hours=hours)


def issue_token(
    db: Session, account: Account, purpose: TokenPurpose, settings: "Settings"
) -> str:
    """Create a fresh token for account, marking its unused tokens of this purpose as used."""
    db.query(AuthenticationToken).filter(
        AuthenticationToken.user_id == account.id,
        AuthenticationToken.purpose == purpose.value,
        AuthenticationToken.is_used.is_(False),
    ).update({AuthenticationToken.is_used: True}, synchronize_session=False)
    token = generate_single_use_token()
    db.add(
        AuthenticationToken(
            user_id=account.id,
            token=token,
            purpose=purpose.value,
            expires_at=utcnow() + _lifetime(purpose, settings),
        )
    )
    db.commit()
    return token


def find_valid_token(
    db: Session, token: str, purposes: tuple[TokenPurpose, ...]
) -> AuthenticationToken | None:
    return (
        db.query(AuthenticationToken)
        .filter(
            AuthenticationToken.token == token,
            AuthenticationToken.purpose.in_([p.value for p in purposes]),
            AuthenticationToken.is_used.is_(False),
            AuthenticationToken.expires_at > utcnow(),
        )
        .order_by(AuthenticationToken.created_at.desc())
        .first()
    )


def forgot_password(db: Session, email: str, settings: "Settings") -> OutgoingEmail | None:
    """
    Prepare a reset email if the account exists. Returns None otherwise.

    Callers report the same generic success either way, so nothing here may
    reveal whether the email is registered; storage errors are logged, not raised.
    """
    try:
        account = find_account_by_email(db, email)
        if account is None or not account.is_active:
            return None
        token = issue_token(db, account, TokenPurpose.PASSWORD_RESET, settings)
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Could not issue password reset token")
        return None
    return password_reset_email(account.email, token, account.full_name, settings)


def invite_account(db: Session, account: Account, settings: "Settings") -> OutgoingEmail:
    """Account-setup email for a pre-created account that has no password yet."""
    token = issue_token(db, account, TokenPurpose.ACCOUNT_SETUP, settings)
    return account_setup_email(account.email, token, account.full_name, settings)


def reset_password(db: Session, token: str, new_password: str, settings: "Settings") -> Account:
    """Set a new password from a reset or account-setup token and consume the token."""
    validate_password_length(new_password, settings)
    record = find_valid_token(
        db, token, (TokenPurpose.PASSWORD_RESET, TokenPurpose.ACCOUNT_SETUP)
    )
    if record is None:
        raise NotFound("Invalid or expired token")
    account = find_account_by_id(db, record.user_id)
    if account is None:
        raise NotFound("User not found")

    account.password_hash = hash_password(new_password)
    if record.purpose == TokenPurpose.ACCOUNT_SETUP.value:
        account.is_verified = True
    record.is_used = True
    db.commit()
    db.refresh(account)
    logger.info("Password reset for account %s", account.id)
    return account


def request_email_verification(
    db: Session, account: Account, settings: "Settings"
) -> OutgoingEmail | None:
    """Verification email for an unverified account; None if it is already verified."""
    if account.is_verified:
        return None
    token = issue_token(db, account, TokenPurpose.EMAIL_VERIFICATION, settings)
    return email_verification_email(account.email, token, account.full_name, settings)


def verify_email(db: Session, token: str) -> Account:
    record = find_valid_token(db, token, (TokenPurpose.EMAIL_VERIFICATION,))
    if record is None:
        raise NotFound("Invalid or expired token")
    account = find_account_by_id(db, record.user_id)
    if account is None:
        raise NotFound("User not found")
    account.is_verified = True
    record.is_used = True
    db.commit()
    db.refresh(account)
    return account


def purge_spent_tokens(session: Session, settings: "Settings") -> int:
    """
    Delete tokens that are used or expired. Returns the number deleted.
    Idempotent: safe to run repeatedly.
    """
    if not settings.TOKEN_CLEANUP_ENABLED:
        logger.info("Token cleanup is disabled (TOKEN_CLEANUP_ENABLED=false); skipping.")
        return 0

    now = utcnow()
    deleted_count = (
        session.query(AuthenticationToken)
        .filter(
            or_(
                AuthenticationToken.is_used.is_(True),
                AuthenticationToken.expires_at < now,
            )
        )
        .delete(synchronize_session=False)
    )
    session.commit()

    if deleted_count > 0:
        logger.info("Token cleanup: cutoff=%s, tokens_deleted=%s", now.isoformat(), deleted_count)
    return deleted_count

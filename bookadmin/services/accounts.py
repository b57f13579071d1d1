"""Account lookup and creation."""

import logging

from sqlalchemy.orm import Session

from bookadmin.core.roles import RoleLevel, default_account_state
from bookadmin.models.user import Account

logger = logging.getLogger(__name__)


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def normalize_email(email: str) -> str:
    return email.strip().lower()


def find_account_by_id(db: Session, user_id: str) -> Account | None:
    return db.query(Account).filter(Account.id == user_id).first()


def find_account_by_email(db: Session, email: str) -> Account | None:
    """
    Exact match first; then accounts stored as local+<timestamp>@domain by
    older sign-ups, which still answer to local@domain.
    """
    email = normalize_email(email)
    account = db.query(Account).filter(Account.email == email).first()
    if account is not None or "@" not in email:
        return account
    local_part, _, domain = email.rpartition("@")
    pattern = f"{_escape_like(local_part)}+%@{_escape_like(domain)}"
    return (
        db.query(Account)
        .filter(Account.email.like(pattern, escape="\\"))
        .order_by(Account.created_at.asc())
        .first()
    )


def create_account(
    db: Session,
    email: str,
    password_hash: str | None,
    first_name: str,
    last_name: str,
    role: int = RoleLevel.USER,
    legacy_role_column: bool = False,
) -> Account:
    """
    Insert a new account with the baseline state for role.

    The legacy users.role column is only written when the deployment still
    runs without users_role (legacy_role_column=True).
    """
    state = default_account_state(role)
    account = Account(
        email=normalize_email(email),
        password_hash=password_hash,
        first_name=first_name.strip(),
        last_name=last_name.strip(),
        is_active=state["is_active"],
        is_verified=state["is_verified"],
        preferences=state["preferences"],
        role=int(state["role"]) if legacy_role_column else None,
    )
    db.add(account)
    db.commit()
    db.refresh(account)
    logger.info("Created account %s", account.id)
    return account


def claim_account(
    db: Session, account: Account, password_hash: str, first_name: str, last_name: str
) -> Account:
    """Finish a pre-created (passwordless) account: set password and names, mark verified and active."""
    account.password_hash = password_hash
    account.first_name = first_name.strip()
    account.last_name = last_name.strip()
    account.is_verified = True
    account.is_active = True
    db.commit()
    db.refresh(account)
    logger.info("Account %s claimed", account.id)
    return account

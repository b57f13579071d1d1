"""Account administration routes."""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from bookadmin.api.deps import RequireOwnershipOrAdmin, RequirePermission
from bookadmin.core.database import get_db
from bookadmin.core.exceptions import NotFound, ValidationError
from bookadmin.schemas.auth import AccountOut, AccountStatusRequest, ActingPrincipal
from bookadmin.services.accounts import find_account_by_id

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/{user_id}", response_model=AccountOut)
def get_user(
    user_id: str,
    _principal: Annotated[ActingPrincipal, Depends(RequireOwnershipOrAdmin("user_id"))],
    db: Annotated[Session, Depends(get_db)],
) -> AccountOut:
    account = find_account_by_id(db, user_id)
    if account is None:
        raise NotFound("User not found")
    return AccountOut.model_validate(account)


@router.patch("/{user_id}/status", response_model=AccountOut)
def set_user_status(
    user_id: str,
    body: AccountStatusRequest,
    admin: Annotated[ActingPrincipal, Depends(RequirePermission("manage_system"))],
    db: Annotated[Session, Depends(get_db)],
) -> AccountOut:
    """Activate or deactivate an account (system admin only). Deactivated accounts cannot log in."""
    if user_id == admin.id and not body.is_active:
        raise ValidationError("Cannot deactivate your own account")
    account = find_account_by_id(db, user_id)
    if account is None:
        raise NotFound("User not found")
    account.is_active = body.is_active
    db.commit()
    db.refresh(account)
    logger.info("Account %s set active=%s by %s", account.id, account.is_active, admin.id)
    return AccountOut.model_validate(account)

"""Auth routes: registration, two-step login, token refresh/verify, profile, impersonation, password and email flows."""

import logging
from typing import Annotated

from fastapi import APIRouter, BackgroundTasks, Depends, status
from sqlalchemy.orm import Session

from bookadmin.api.deps import get_current_principal, get_optional_principal, get_role_store
from bookadmin.core.config import get_settings
from bookadmin.core.database import get_db
from bookadmin.core.exceptions import NotFound
from bookadmin.schemas.auth import (
    AccountOut,
    ActingPrincipal,
    ChangePasswordRequest,
    CompleteImpersonationRequest,
    CompleteLoginRequest,
    ForgotPasswordRequest,
    ImpersonationResponse,
    LoginRequest,
    LoginResponse,
    MessageResponse,
    RegisterRequest,
    RegisterResponse,
    ResetPasswordRequest,
    TokenResponse,
    UpdateProfileRequest,
    VerifyEmailRequest,
    VerifyResponse,
)
from bookadmin.services import auth_tokens, profile, session_issuer
from bookadmin.services.accounts import find_account_by_id
from bookadmin.services.email import send_email
from bookadmin.services.role_store import RoleStore

logger = logging.getLogger(__name__)

router = APIRouter()

FORGOT_PASSWORD_MESSAGE = "If an account exists for that email, a reset link has been sent."


@router.post("/register", response_model=RegisterResponse, status_code=status.HTTP_201_CREATED)
def register(
    body: RegisterRequest,
    background_tasks: BackgroundTasks,
    db: Annotated[Session, Depends(get_db)],
    store: Annotated[RoleStore, Depends(get_role_store)],
) -> RegisterResponse:
    """
    Create an account and sign it in.
    An elevated `role` becomes the account's default role; a verification email is queued.
    """
    settings = get_settings()
    response = session_issuer.register(db, store, body, settings)
    account = find_account_by_id(db, response.user.id)
    if account is not None:
        message = auth_tokens.request_email_verification(db, account, settings)
        if message is not None:
            background_tasks.add_task(send_email, message, settings)
    return response


@router.post("/login", response_model=LoginResponse)
def login(
    body: LoginRequest,
    db: Annotated[Session, Depends(get_db)],
    store: Annotated[RoleStore, Depends(get_role_store)],
) -> LoginResponse:
    """
    Check email and password.
    Returns a token directly, or `requires_role_selection` with role options and a selection_token.
    """
    return session_issuer.login(db, store, body.email, body.password)


@router.post("/login/complete", response_model=LoginResponse)
def complete_login(
    body: CompleteLoginRequest,
    db: Annotated[Session, Depends(get_db)],
    store: Annotated[RoleStore, Depends(get_role_store)],
) -> LoginResponse:
    """Exchange the selection_token and a chosen role_id (null for USER) for a session token."""
    return session_issuer.complete_login(
        db, store, body.email, body.role_id, body.selection_token
    )


@router.post("/refresh", response_model=TokenResponse)
def refresh(
    principal: Annotated[ActingPrincipal, Depends(get_current_principal)],
    store: Annotated[RoleStore, Depends(get_role_store)],
) -> TokenResponse:
    return session_issuer.refresh(store, principal)


@router.get("/verify", response_model=VerifyResponse)
def verify(
    principal: Annotated[ActingPrincipal, Depends(get_current_principal)],
) -> VerifyResponse:
    return VerifyResponse(valid=True, user=principal)


@router.get("/me", response_model=ActingPrincipal)
def me(
    principal: Annotated[ActingPrincipal, Depends(get_current_principal)],
) -> ActingPrincipal:
    return principal


@router.put("/me", response_model=AccountOut)
def update_me(
    body: UpdateProfileRequest,
    principal: Annotated[ActingPrincipal, Depends(get_current_principal)],
    db: Annotated[Session, Depends(get_db)],
) -> AccountOut:
    """Update the caller's own profile. Changing email to one already registered is rejected."""
    return AccountOut.model_validate(profile.update_profile(db, principal.id, body))


@router.put("/change-password", response_model=MessageResponse)
def change_password(
    body: ChangePasswordRequest,
    principal: Annotated[ActingPrincipal, Depends(get_current_principal)],
    db: Annotated[Session, Depends(get_db)],
) -> MessageResponse:
    profile.change_password(db, principal.id, body, get_settings())
    return MessageResponse(message="Password changed successfully")


@router.post("/logout", response_model=MessageResponse)
def logout(
    principal: Annotated[ActingPrincipal | None, Depends(get_optional_principal)],
) -> MessageResponse:
    """Sessions are stateless; the client discards its token."""
    if principal is not None:
        logger.info("Logout for account %s", principal.id)
    return MessageResponse(message="Logged out")


@router.post("/impersonate/{user_id}", response_model=ImpersonationResponse)
def impersonate(
    user_id: str,
    principal: Annotated[ActingPrincipal, Depends(get_current_principal)],
    db: Annotated[Session, Depends(get_db)],
    store: Annotated[RoleStore, Depends(get_role_store)],
) -> ImpersonationResponse:
    """System admin only: start acting as another account."""
    return session_issuer.impersonate(db, store, principal, user_id)


@router.post("/impersonate/{user_id}/complete", response_model=ImpersonationResponse)
def complete_impersonation(
    user_id: str,
    body: CompleteImpersonationRequest,
    principal: Annotated[ActingPrincipal, Depends(get_current_principal)],
    db: Annotated[Session, Depends(get_db)],
    store: Annotated[RoleStore, Depends(get_role_store)],
) -> ImpersonationResponse:
    return session_issuer.complete_impersonation(db, store, principal, user_id, body.role_id)


@router.post("/forgot-password", response_model=MessageResponse)
def forgot_password(
    body: ForgotPasswordRequest,
    background_tasks: BackgroundTasks,
    db: Annotated[Session, Depends(get_db)],
) -> MessageResponse:
    """Always answers the same way, whether or not the email is registered."""
    settings = get_settings()
    message = auth_tokens.forgot_password(db, body.email, settings)
    if message is not None:
        background_tasks.add_task(send_email, message, settings)
    return MessageResponse(message=FORGOT_PASSWORD_MESSAGE)


@router.post("/reset-password", response_model=MessageResponse)
def reset_password(
    body: ResetPasswordRequest,
    db: Annotated[Session, Depends(get_db)],
) -> MessageResponse:
    """Accepts password-reset and account-setup tokens."""
    auth_tokens.reset_password(db, body.token, body.new_password, get_settings())
    return MessageResponse(message="Password has been reset")


@router.post("/verify-email", response_model=MessageResponse)
def verify_email(
    body: VerifyEmailRequest,
    db: Annotated[Session, Depends(get_db)],
) -> MessageResponse:
    auth_tokens.verify_email(db, body.token)
    return MessageResponse(message="Email verified")


@router.post("/verify-email/request", response_model=MessageResponse)
def request_email_verification(
    background_tasks: BackgroundTasks,
    principal: Annotated[ActingPrincipal, Depends(get_current_principal)],
    db: Annotated[Session, Depends(get_db)],
) -> MessageResponse:
    settings = get_settings()
    account = find_account_by_id(db, principal.id)
    if account is None:
        raise NotFound("User not found")
    message = auth_tokens.request_email_verification(db, account, settings)
    if message is None:
        return MessageResponse(message="Email already verified")
    background_tasks.add_task(send_email, message, settings)
    return MessageResponse(message="Verification email sent")

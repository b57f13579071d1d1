"""Role assignment routes: list, grant, set default, update, revoke."""

from typing import Annotated

from fastapi import APIRouter, BackgroundTasks, Depends, status
from sqlalchemy.orm import Session

from bookadmin.api.deps import (
    RequireOwnershipOrAdmin,
    RequirePermission,
    RequireRole,
    get_current_principal,
    get_role_store,
)
from bookadmin.core.config import get_settings
from bookadmin.core.database import get_db
from bookadmin.core.exceptions import NotFound, RoleStoreUnavailable
from bookadmin.core.roles import RoleLevel
from bookadmin.schemas.auth import ActingPrincipal, MessageResponse
from bookadmin.schemas.roles import (
    GrantRoleRequest,
    ImplicitUserRole,
    PersistedRole,
    RoleListResponse,
    UpdateRoleRequest,
)
from bookadmin.services.email import send_email
from bookadmin.services.guards import require_ownership_or_admin
from bookadmin.services.role_grants import grant_role
from bookadmin.services.role_store import RoleStore

router = APIRouter()


def _role_list(store: RoleStore, user_id: str, include_inactive: bool) -> RoleListResponse:
    try:
        roles = store.find_by_user(user_id, include_inactive=include_inactive)
    except RoleStoreUnavailable:
        # No readable users_role: the user holds no special roles.
        return RoleListResponse(roles=[], default_role=ImplicitUserRole(user_id=user_id).model_dump())
    return RoleListResponse(
        roles=roles,
        default_role=store.get_default_role(user_id).model_dump(),
    )


@router.get("/me", response_model=RoleListResponse)
def my_roles(
    principal: Annotated[ActingPrincipal, Depends(get_current_principal)],
    store: Annotated[RoleStore, Depends(get_role_store)],
) -> RoleListResponse:
    """Active role assignments of the caller and the role they log in with by default."""
    return _role_list(store, principal.id, include_inactive=False)


@router.get("/users/{user_id}", response_model=RoleListResponse)
def user_roles(
    user_id: str,
    _principal: Annotated[ActingPrincipal, Depends(RequireOwnershipOrAdmin("user_id"))],
    store: Annotated[RoleStore, Depends(get_role_store)],
) -> RoleListResponse:
    """All of a user's assignments, inactive included (self, company owners, system admins)."""
    return _role_list(store, user_id, include_inactive=True)


@router.post("", response_model=PersistedRole, status_code=status.HTTP_201_CREATED)
def create_role(
    body: GrantRoleRequest,
    background_tasks: BackgroundTasks,
    principal: Annotated[ActingPrincipal, Depends(RequirePermission("manage_staff"))],
    db: Annotated[Session, Depends(get_db)],
    store: Annotated[RoleStore, Depends(get_role_store)],
) -> PersistedRole:
    """
    Grant an elevated role to an existing account (user_id) or to an email.
    Unknown emails get a pre-created account and an account-setup email.
    """
    settings = get_settings()
    assignment, invitation = grant_role(db, store, principal, body, settings)
    if invitation is not None:
        background_tasks.add_task(send_email, invitation, settings)
    return assignment


@router.put("/{role_id}/default", response_model=PersistedRole)
def set_default_role(
    role_id: str,
    principal: Annotated[ActingPrincipal, Depends(get_current_principal)],
    store: Annotated[RoleStore, Depends(get_role_store)],
) -> PersistedRole:
    try:
        assignment = store.find_by_id(role_id)
        if assignment is None:
            raise NotFound("Role not found")
        require_ownership_or_admin(principal, {"user_id": assignment.user_id}, "user_id", store)
        updated = store.set_default(assignment.user_id, role_id)
    except RoleStoreUnavailable:
        # Without users_role there are no stored roles to select.
        raise NotFound("Role not found")
    if updated is None:
        raise NotFound("Role not found")
    return updated


@router.patch("/{role_id}", response_model=PersistedRole)
def update_role(
    role_id: str,
    body: UpdateRoleRequest,
    _admin: Annotated[ActingPrincipal, Depends(RequireRole(RoleLevel.SYSTEM_ADMIN))],
    store: Annotated[RoleStore, Depends(get_role_store)],
) -> PersistedRole:
    # company_id may be cleared with null; other fields ignore null.
    fields = {
        key: value
        for key, value in body.model_dump(exclude_unset=True).items()
        if value is not None or key == "company_id"
    }
    updated = store.update(role_id, **fields)
    if updated is None:
        raise NotFound("Role not found")
    return updated


@router.delete("/{role_id}", response_model=MessageResponse)
def delete_role(
    role_id: str,
    _admin: Annotated[ActingPrincipal, Depends(RequireRole(RoleLevel.SYSTEM_ADMIN))],
    store: Annotated[RoleStore, Depends(get_role_store)],
) -> MessageResponse:
    if not store.delete(role_id):
        raise NotFound("Role not found")
    return MessageResponse(message="Role deleted")

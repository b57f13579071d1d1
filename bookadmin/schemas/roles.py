"""Role assignment views: persisted rows vs the implicit USER fallback, and role-management payloads."""

from datetime import datetime
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator

from bookadmin.core.roles import RoleLevel, role_name


class PersistedRole(BaseModel):
    """A users_role row. Only this variant has an id that can be updated or deleted."""

    model_config = ConfigDict(from_attributes=True, frozen=True)

    kind: Literal["persisted"] = "persisted"
    id: str
    user_id: str
    role: RoleLevel
    company_id: str | None = None
    is_active: bool = True
    is_default: bool = False
    created_at: datetime | None = None
    updated_at: datetime | None = None


class ImplicitUserRole(BaseModel):
    """The USER level every account holds without a stored row."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["implicit"] = "implicit"
    user_id: str
    role: RoleLevel = RoleLevel.USER
    company_id: None = None
    is_active: bool = True
    is_default: bool = True

    @property
    def id(self) -> None:
        return None


RoleAssignment = Annotated[PersistedRole | ImplicitUserRole, Field(discriminator="kind")]


class RoleOption(BaseModel):
    """One selectable role offered by login or impersonation; id is None for USER."""

    id: str | None = Field(..., description="Role assignment id, or null for USER")
    role: RoleLevel
    role_name: str
    company_id: str | None = None
    is_default: bool = False

    @classmethod
    def from_assignment(cls, assignment: PersistedRole | ImplicitUserRole) -> "RoleOption":
        return cls(
            id=assignment.id,
            role=assignment.role,
            role_name=role_name(assignment.role),
            company_id=assignment.company_id,
            is_default=assignment.is_default,
        )


class SelectedRole(BaseModel):
    """Role baked into an issued session token."""

    id: str | None = None
    role: RoleLevel
    company_id: str | None = None


class GrantRoleRequest(BaseModel):
    """Grant an elevated role to an existing account (user_id) or to an email, pre-creating the account."""

    user_id: str | None = Field(default=None, max_length=36)
    email: EmailStr | None = None
    first_name: str = Field(default="", max_length=100)
    last_name: str = Field(default="", max_length=100)
    role: RoleLevel
    company_id: str | None = Field(default=None, max_length=36)
    is_default: bool = False

    @field_validator("role")
    @classmethod
    def validate_elevated(cls, v: RoleLevel) -> RoleLevel:
        if v == RoleLevel.USER:
            raise ValueError("USER is implicit and cannot be granted")
        return v

    @model_validator(mode="after")
    def validate_company_scope(self) -> "GrantRoleRequest":
        # Only SYSTEM_ADMIN is global; every other elevated role belongs to a company.
        if self.role != RoleLevel.SYSTEM_ADMIN and not self.company_id:
            raise ValueError("company_id is required unless role is SYSTEM_ADMIN")
        return self


class UpdateRoleRequest(BaseModel):
    """Fields of a role assignment that may be changed."""

    role: RoleLevel | None = None
    company_id: str | None = Field(default=None, max_length=36)
    is_active: bool | None = None
    is_default: bool | None = None


class RoleListResponse(BaseModel):
    """A user's stored role assignments plus the role they log in with by default."""

    roles: list[PersistedRole]
    default_role: RoleAssignment

"""Request/response schemas for auth endpoints, session claims, and the acting principal."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from bookadmin.core.roles import RoleLevel
from bookadmin.schemas.roles import RoleOption, SelectedRole


class RegisterRequest(BaseModel):
    """Sign-up payload. role may be an int 0-3 or a display name; anything else means USER."""

    email: EmailStr
    password: str = Field(..., min_length=1, max_length=128, description="Password")
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    role: int | str | None = Field(default=None, description="Requested role")


class LoginRequest(BaseModel):
    """Credentials for login."""

    email: EmailStr
    password: str = Field(..., min_length=1, max_length=128, description="Password")


class CompleteLoginRequest(BaseModel):
    """Second login step: the chosen role (null for USER) and the ticket from the first step."""

    email: EmailStr
    role_id: str | None = Field(default=None, description="Role assignment id, or null for USER")
    selection_token: str = Field(..., min_length=1, description="Ticket returned by login")


class CompleteImpersonationRequest(BaseModel):
    role_id: str | None = Field(default=None, description="Role assignment id, or null for USER")


class ForgotPasswordRequest(BaseModel):
    email: EmailStr


class ResetPasswordRequest(BaseModel):
    token: str = Field(..., min_length=1, max_length=128)
    new_password: str = Field(..., min_length=1, max_length=128)


class VerifyEmailRequest(BaseModel):
    token: str = Field(..., min_length=1, max_length=128)


class AccountOut(BaseModel):
    """Account as returned to clients (no password hash, no legacy role columns)."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    email: str
    first_name: str
    last_name: str
    full_name: str
    is_active: bool
    is_verified: bool
    preferences: dict | None = None
    last_login_at: datetime | None = None
    created_at: datetime | None = None


class UpdateProfileRequest(BaseModel):
    """Profile fields the account holder may change; omitted fields stay as they are."""

    first_name: str | None = Field(default=None, min_length=1, max_length=100)
    last_name: str | None = Field(default=None, min_length=1, max_length=100)
    phone: str | None = Field(default=None, max_length=50)
    email: EmailStr | None = None
    preferences: dict | None = None


class ChangePasswordRequest(BaseModel):
    current_password: str = Field(..., min_length=1, max_length=128)
    new_password: str = Field(..., min_length=1, max_length=128)
    confirm_password: str = Field(..., min_length=1, max_length=128)


class AccountStatusRequest(BaseModel):
    is_active: bool


class SessionClaims(BaseModel):
    """Claim set carried inside a session JWT (camelCase on the wire)."""

    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(..., alias="userId", min_length=1)
    email: str | None = None
    role: RoleLevel | None = None
    role_id: str | None = Field(default=None, alias="roleId")
    company_id: str | None = Field(default=None, alias="companyId")
    impersonated_by: str | None = Field(default=None, alias="impersonatedBy")
    is_impersonating: bool = Field(default=False, alias="isImpersonating")
    iat: int | None = None
    exp: int | None = None


class ActingPrincipal(BaseModel):
    """The account behind a request plus the role resolved for this request."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    email: str
    first_name: str = ""
    last_name: str = ""
    is_active: bool = True
    is_verified: bool = False
    role: RoleLevel | None = None
    role_level: RoleLevel | None = None
    role_id: str | None = None
    company_id: str | None = None
    impersonated_by: str | None = None
    is_impersonating: bool = False

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class TokenResponse(BaseModel):
    """Session token plus the role it was issued for."""

    access_token: str = Field(..., description="Session JWT")
    token_type: str = Field(default="bearer", description="Token type")
    selected_role: SelectedRole


class RegisterResponse(TokenResponse):
    user: AccountOut


class LoginResponse(BaseModel):
    """
    Either a token (no elevated roles) or the role options to choose from.

    When requires_role_selection is true, access_token is null and the client
    must call /auth/login/complete with one of role_options and selection_token.
    """

    user: AccountOut
    requires_role_selection: bool = False
    access_token: str | None = None
    token_type: str = "bearer"
    selected_role: SelectedRole | None = None
    role_options: list[RoleOption] = Field(default_factory=list)
    selection_token: str | None = None


class OriginalAdmin(BaseModel):
    id: str
    email: str
    name: str


class ImpersonationResponse(BaseModel):
    """Like LoginResponse, for a system admin acting as another account."""

    user: AccountOut
    original_admin: OriginalAdmin
    requires_role_selection: bool = False
    access_token: str | None = None
    token_type: str = "bearer"
    selected_role: SelectedRole | None = None
    role_options: list[RoleOption] = Field(default_factory=list)


class VerifyResponse(BaseModel):
    valid: bool = True
    user: ActingPrincipal


class MessageResponse(BaseModel):
    message: str

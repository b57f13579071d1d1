"""SQLAlchemy ORM models."""

from bookadmin.models.auth_token import AuthenticationToken, TokenPurpose
from bookadmin.models.base import Base
from bookadmin.models.user import Account
from bookadmin.models.user_role import USER_ROLE_TABLE, UserRoleAssignment

__all__ = [
    "Account",
    "AuthenticationToken",
    "Base",
    "TokenPurpose",
    "USER_ROLE_TABLE",
    "UserRoleAssignment",
]

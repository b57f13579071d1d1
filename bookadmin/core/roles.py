"""Role hierarchy, permission table, and baseline account state. Pure definitions, no I/O."""

from enum import IntEnum
from typing import Any


class RoleLevel(IntEnum):
    """Privilege tiers; a lower number is more privileged."""

    SYSTEM_ADMIN = 0
    COMPANY_OWNER = 1
    STAFF_MEMBER = 2
    USER = 3


# Levels that may be stored as role assignments. USER is implicit for every account.
ELEVATED_ROLES = (RoleLevel.SYSTEM_ADMIN, RoleLevel.COMPANY_OWNER, RoleLevel.STAFF_MEMBER)

ROLE_NAMES: dict[RoleLevel, str] = {
    RoleLevel.SYSTEM_ADMIN: "System Admin",
    RoleLevel.COMPANY_OWNER: "Company Owner",
    RoleLevel.STAFF_MEMBER: "Staff Member",
    RoleLevel.USER: "User",
}

# Named permission -> least privileged level still allowed to use it.
PERMISSION_MIN_LEVEL: dict[str, RoleLevel] = {
    "manage_system": RoleLevel.SYSTEM_ADMIN,
    "manage_company": RoleLevel.COMPANY_OWNER,
    "manage_staff": RoleLevel.COMPANY_OWNER,
    "view_analytics": RoleLevel.COMPANY_OWNER,
    "manage_services": RoleLevel.COMPANY_OWNER,
    "view_reports": RoleLevel.COMPANY_OWNER,
    "manage_appointments": RoleLevel.STAFF_MEMBER,
    "process_payments": RoleLevel.STAFF_MEMBER,
    "view_client_info": RoleLevel.STAFF_MEMBER,
    "update_appointments": RoleLevel.STAFF_MEMBER,
    "view_schedule": RoleLevel.STAFF_MEMBER,
    "book_appointments": RoleLevel.USER,
    "view_history": RoleLevel.USER,
    "manage_profile": RoleLevel.USER,
    "view_services": RoleLevel.USER,
}

# Permissions listed per role for display; "*" means every permission.
PERMISSIONS_BY_ROLE: dict[RoleLevel, tuple[str, ...]] = {
    RoleLevel.SYSTEM_ADMIN: ("*",),
    RoleLevel.COMPANY_OWNER: (
        "manage_company",
        "manage_staff",
        "view_analytics",
        "manage_appointments",
        "manage_services",
        "view_reports",
    ),
    RoleLevel.STAFF_MEMBER: (
        "manage_appointments",
        "view_client_info",
        "process_payments",
        "update_appointments",
        "view_schedule",
    ),
    RoleLevel.USER: (
        "book_appointments",
        "view_history",
        "manage_profile",
        "view_services",
    ),
}

DEFAULT_PREFERENCES: dict[str, Any] = {
    "theme": "system",
    "notifications": True,
    "language": "en",
}

# Accepted display names for role input (lowercased).
_ROLE_ALIASES: dict[str, RoleLevel] = {
    "super admin": RoleLevel.SYSTEM_ADMIN,
    "system admin": RoleLevel.SYSTEM_ADMIN,
    "company owner": RoleLevel.COMPANY_OWNER,
    "staff member": RoleLevel.STAFF_MEMBER,
    "user": RoleLevel.USER,
}


def permissions_for(permission: str) -> RoleLevel:
    """
    Return the minimum role level required for a named permission.

    Unknown names map to USER, so a misspelled permission grants ordinary
    logged-in access and never anything elevated.
    """
    return PERMISSION_MIN_LEVEL.get(permission, RoleLevel.USER)


def is_at_least(level: int, required: int) -> bool:
    """True if level is as privileged as required or more (level <= required)."""
    return level <= required


def role_name(level: int) -> str:
    try:
        return ROLE_NAMES[RoleLevel(level)]
    except ValueError:
        return ROLE_NAMES[RoleLevel.USER]


def parse_role(value: int | str | None) -> RoleLevel:
    """Coerce a requested role (int, numeric string or display name) to a RoleLevel; USER if unrecognised."""
    if value is None or isinstance(value, bool):
        return RoleLevel.USER
    if isinstance(value, int):
        try:
            return RoleLevel(value)
        except ValueError:
            return RoleLevel.USER
    s = value.strip().lower()
    if s.isdigit():
        return parse_role(int(s))
    return _ROLE_ALIASES.get(s, RoleLevel.USER)


def default_account_state(role: int = RoleLevel.USER) -> dict[str, Any]:
    """Baseline fields for a newly created account at the given role."""
    return {
        "role": RoleLevel(role),
        "is_active": True,
        "is_verified": False,
        "preferences": dict(DEFAULT_PREFERENCES),
    }

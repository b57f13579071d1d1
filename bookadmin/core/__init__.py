"""Core app configuration, database, and role definitions."""

from bookadmin.core.config import get_settings, settings
from bookadmin.core.database import get_db
from bookadmin.core.roles import RoleLevel

__all__ = ["get_settings", "settings", "get_db", "RoleLevel"]

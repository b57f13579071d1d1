"""
Role Store: per-user, per-company role assignments with default-role semantics.

Two backends share one interface. SqlRoleStore reads and writes the users_role
table; LegacyRoleStore serves deployments that have not run that migration yet
and reports "no special roles" for everyone. Which one a deployment uses is
decided once at startup (resolve_role_store_mode), never per call.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any, Literal

from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import OperationalError, ProgrammingError
from sqlalchemy.orm import Session

from bookadmin.core.database import table_exists
from bookadmin.core.exceptions import RoleStoreUnavailable, ValidationError
from bookadmin.core.roles import RoleLevel
from bookadmin.models.base import utcnow
from bookadmin.models.user_role import USER_ROLE_TABLE, UserRoleAssignment
from bookadmin.schemas.roles import ImplicitUserRole, PersistedRole

logger = logging.getLogger(__name__)

RoleStoreMode = Literal["normalized", "legacy"]

_UPDATABLE_FIELDS = ("role", "company_id", "is_active", "is_default")


class RoleStore(ABC):
    """Interface shared by both backends."""

    is_normalized: bool = False

    @abstractmethod
    def create(
        self,
        user_id: str,
        role: int,
        company_id: str | None = None,
        is_active: bool = True,
        is_default: bool = False,
    ) -> PersistedRole | None:
        """Persist an elevated role. Returns None (and stores nothing) for USER."""

    @abstractmethod
    def find_by_id(self, role_id: str) -> PersistedRole | None: ...

    @abstractmethod
    def find_by_user(self, user_id: str, include_inactive: bool = False) -> list[PersistedRole]:
        """Assignments for a user, never USER rows, default first then oldest first."""

    @abstractmethod
    def find_by_user_and_company(self, user_id: str, company_id: str) -> list[PersistedRole]: ...

    @abstractmethod
    def get_default_role(self, user_id: str) -> PersistedRole | ImplicitUserRole:
        """The active default assignment, or the implicit USER role. Never raises."""

    @abstractmethod
    def has_role(self, user_id: str, role: int, company_id: str | None = None) -> bool: ...

    @abstractmethod
    def set_default(self, user_id: str, role_id: str) -> PersistedRole | None:
        """Make role_id the user's only default. None if it is not one of the user's assignments."""

    @abstractmethod
    def update(self, role_id: str, **fields: Any) -> PersistedRole | None: ...

    @abstractmethod
    def delete(self, role_id: str) -> bool: ...

    def find_active_by_user(self, user_id: str) -> list[PersistedRole]:
        return self.find_by_user(user_id, include_inactive=False)

    def get_current_assignment(
        self, user_id: str, company_id: str | None = None
    ) -> PersistedRole | ImplicitUserRole:
        """Assignment within company_id if the user has one there, else the default role, else USER."""
        if company_id:
            scoped = self.find_by_user_and_company(user_id, company_id)
            if scoped:
                return scoped[0]
        return self.get_default_role(user_id)

    def get_current_role(self, user_id: str, company_id: str | None = None) -> RoleLevel:
        return self.get_current_assignment(user_id, company_id).role


class SqlRoleStore(RoleStore):
    """Role Store backed by the users_role table."""

    is_normalized = True

    def __init__(self, db: Session) -> None:
        self.db = db

    @contextmanager
    def _guarded(self, operation: str) -> Iterator[None]:
        """Roll back on any error; report a missing or unreachable users_role table as RoleStoreUnavailable."""
        try:
            yield
        except (OperationalError, ProgrammingError) as e:
            self.db.rollback()
            logger.warning("Role store %s failed; users_role unavailable: %s", operation, e)
            raise RoleStoreUnavailable(f"users_role unavailable during {operation}") from e
        except Exception:
            self.db.rollback()
            raise

    def _active_query(self, user_id: str):
        return self.db.query(UserRoleAssignment).filter(
            UserRoleAssignment.user_id == user_id,
            UserRoleAssignment.role != RoleLevel.USER,
            UserRoleAssignment.is_active.is_(True),
        )

    @staticmethod
    def _ordered(query):
        return query.order_by(
            UserRoleAssignment.is_default.desc(),
            UserRoleAssignment.created_at.asc(),
        )

    def _lock_user_rows(self, user_id: str) -> list[UserRoleAssignment]:
        # Concurrent default changes for one user serialise on these row locks.
        return (
            self.db.query(UserRoleAssignment)
            .filter(UserRoleAssignment.user_id == user_id)
            .with_for_update()
            .all()
        )

    def _clear_defaults(self, user_id: str) -> None:
        self.db.query(UserRoleAssignment).filter(
            UserRoleAssignment.user_id == user_id,
            UserRoleAssignment.is_default.is_(True),
        ).update(
            {UserRoleAssignment.is_default: False, UserRoleAssignment.updated_at: utcnow()},
            synchronize_session="fetch",
        )

    def create(
        self,
        user_id: str,
        role: int,
        company_id: str | None = None,
        is_active: bool = True,
        is_default: bool = False,
    ) -> PersistedRole | None:
        level = RoleLevel(role)
        if level == RoleLevel.USER:
            logger.warning("Skipping USER role creation for user %s; USER is implicit", user_id)
            return None
        with self._guarded("create"):
            if is_default:
                self._lock_user_rows(user_id)
                self._clear_defaults(user_id)
            row = UserRoleAssignment(
                user_id=user_id,
                role=int(level),
                company_id=company_id or None,
                is_active=is_active,
                is_default=is_default,
            )
            self.db.add(row)
            self.db.commit()
            self.db.refresh(row)
            return PersistedRole.model_validate(row)

    def find_by_id(self, role_id: str) -> PersistedRole | None:
        with self._guarded("find_by_id"):
            row = (
                self.db.query(UserRoleAssignment)
                .filter(UserRoleAssignment.id == role_id)
                .first()
            )
            return PersistedRole.model_validate(row) if row is not None else None

    def find_by_user(self, user_id: str, include_inactive: bool = False) -> list[PersistedRole]:
        with self._guarded("find_by_user"):
            if include_inactive:
                query = self.db.query(UserRoleAssignment).filter(
                    UserRoleAssignment.user_id == user_id,
                    UserRoleAssignment.role != RoleLevel.USER,
                )
            else:
                query = self._active_query(user_id)
            return [PersistedRole.model_validate(r) for r in self._ordered(query).all()]

    def find_by_user_and_company(self, user_id: str, company_id: str) -> list[PersistedRole]:
        with self._guarded("find_by_user_and_company"):
            query = self._active_query(user_id).filter(
                UserRoleAssignment.company_id == company_id
            )
            return [PersistedRole.model_validate(r) for r in self._ordered(query).all()]

    def get_default_role(self, user_id: str) -> PersistedRole | ImplicitUserRole:
        try:
            with self._guarded("get_default_role"):
                row = (
                    self._active_query(user_id)
                    .filter(UserRoleAssignment.is_default.is_(True))
                    .order_by(UserRoleAssignment.created_at.asc())
                    .first()
                )
        except RoleStoreUnavailable:
            return ImplicitUserRole(user_id=user_id)
        if row is None:
            return ImplicitUserRole(user_id=user_id)
        return PersistedRole.model_validate(row)

    def has_role(self, user_id: str, role: int, company_id: str | None = None) -> bool:
        with self._guarded("has_role"):
            query = self._active_query(user_id).filter(UserRoleAssignment.role == int(role))
            if company_id is not None:
                query = query.filter(UserRoleAssignment.company_id == company_id)
            else:
                query = query.filter(UserRoleAssignment.company_id.is_(None))
            return query.first() is not None

    def set_default(self, user_id: str, role_id: str) -> PersistedRole | None:
        with self._guarded("set_default"):
            rows = self._lock_user_rows(user_id)
            target = next((r for r in rows if r.id == role_id), None)
            if target is None:
                self.db.rollback()
                return None
            if not target.is_active:
                raise ValidationError("Cannot make an inactive role the default")
            self._clear_defaults(user_id)
            target.is_default = True
            target.updated_at = utcnow()
            self.db.commit()
            self.db.refresh(target)
            return PersistedRole.model_validate(target)

    def update(self, role_id: str, **fields: Any) -> PersistedRole | None:
        unknown = set(fields) - set(_UPDATABLE_FIELDS)
        if unknown:
            raise ValidationError(f"Cannot update role fields: {', '.join(sorted(unknown))}")
        if not fields:
            raise ValidationError("No valid fields to update")
        if "role" in fields and RoleLevel(fields["role"]) == RoleLevel.USER:
            raise ValidationError("USER is implicit and cannot be stored as a role")
        with self._guarded("update"):
            row = (
                self.db.query(UserRoleAssignment)
                .filter(UserRoleAssignment.id == role_id)
                .with_for_update()
                .first()
            )
            if row is None:
                self.db.rollback()
                return None
            if "role" in fields or "company_id" in fields:
                level = RoleLevel(fields.get("role", row.role))
                company_id = fields["company_id"] if "company_id" in fields else row.company_id
                if level != RoleLevel.SYSTEM_ADMIN and not company_id:
                    raise ValidationError("company_id is required for company-scoped roles")
            if fields.get("is_default"):
                self._lock_user_rows(row.user_id)
                self._clear_defaults(row.user_id)
            for key, value in fields.items():
                setattr(row, key, int(value) if key == "role" else value)
            row.updated_at = utcnow()
            self.db.commit()
            self.db.refresh(row)
            return PersistedRole.model_validate(row)

    def delete(self, role_id: str) -> bool:
        with self._guarded("delete"):
            deleted = (
                self.db.query(UserRoleAssignment)
                .filter(UserRoleAssignment.id == role_id)
                .delete(synchronize_session=False)
            )
            self.db.commit()
            return deleted > 0


class LegacyRoleStore(RoleStore):
    """Pre-migration deployments: no users_role table, so no account holds a special role here."""

    is_normalized = False

    def create(
        self,
        user_id: str,
        role: int,
        company_id: str | None = None,
        is_active: bool = True,
        is_default: bool = False,
    ) -> PersistedRole | None:
        logger.warning(
            "users_role not enabled; role %s for user %s not stored", int(role), user_id
        )
        return None

    def find_by_id(self, role_id: str) -> PersistedRole | None:
        return None

    def find_by_user(self, user_id: str, include_inactive: bool = False) -> list[PersistedRole]:
        return []

    def find_by_user_and_company(self, user_id: str, company_id: str) -> list[PersistedRole]:
        return []

    def get_default_role(self, user_id: str) -> PersistedRole | ImplicitUserRole:
        return ImplicitUserRole(user_id=user_id)

    def has_role(self, user_id: str, role: int, company_id: str | None = None) -> bool:
        return False

    def set_default(self, user_id: str, role_id: str) -> PersistedRole | None:
        return None

    def update(self, role_id: str, **fields: Any) -> PersistedRole | None:
        return None

    def delete(self, role_id: str) -> bool:
        return False


def resolve_role_store_mode(
    bind: Engine | Connection, configured: Literal["auto", "normalized", "legacy"]
) -> RoleStoreMode:
    """Decide the backend for this deployment; "auto" checks whether users_role exists."""
    if configured == "auto":
        mode: RoleStoreMode = "normalized" if table_exists(bind, USER_ROLE_TABLE) else "legacy"
    else:
        mode = configured
    logger.info("Role store mode: %s (configured=%s)", mode, configured)
    return mode


def build_role_store(db: Session, mode: RoleStoreMode) -> RoleStore:
    if mode == "normalized":
        return SqlRoleStore(db)
    return LegacyRoleStore()

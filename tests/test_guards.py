"""Unit tests for the authorization guards."""

import unittest
from unittest.mock import MagicMock

from bookadmin.core.exceptions import Forbidden, RoleStoreUnavailable, Unauthenticated
from bookadmin.core.roles import RoleLevel
from bookadmin.schemas.auth import ActingPrincipal
from bookadmin.services.guards import (
    require_authenticated,
    require_ownership_or_admin,
    require_permission,
    require_role,
    require_same_company,
    resolve_role_level,
)


def principal(role: RoleLevel | None, user_id: str = "u1", company_id: str | None = None) -> ActingPrincipal:
    return ActingPrincipal(
        id=user_id, email=f"{user_id}@example.com", role=role, role_level=role, company_id=company_id
    )


class TestRequireRole(unittest.TestCase):
    def test_no_principal(self) -> None:
        with self.assertRaises(Unauthenticated):
            require_authenticated(None)
        with self.assertRaises(Unauthenticated):
            require_role(None, RoleLevel.USER)

    def test_monotone_in_level(self) -> None:
        """A principal passing a requirement passes every less strict one."""
        for level in RoleLevel:
            for required in RoleLevel:
                p = principal(level)
                if level <= required:
                    self.assertIs(require_role(p, required), p)
                else:
                    with self.assertRaises(Forbidden):
                        require_role(p, required)

    def test_forbidden_message(self) -> None:
        with self.assertRaises(Forbidden) as ctx:
            require_role(principal(RoleLevel.USER), RoleLevel.STAFF_MEMBER)
        self.assertEqual(ctx.exception.message, "Insufficient permissions")


class TestRequirePermission(unittest.TestCase):
    def test_staff_cannot_manage_staff(self) -> None:
        with self.assertRaises(Forbidden):
            require_permission(principal(RoleLevel.STAFF_MEMBER), "manage_staff")

    def test_manage_company_needs_owner(self) -> None:
        with self.assertRaises(Forbidden):
            require_permission(principal(RoleLevel.STAFF_MEMBER), "manage_company")
        p = principal(RoleLevel.COMPANY_OWNER)
        self.assertIs(require_permission(p, "manage_company"), p)

    def test_owner_can_view_reports(self) -> None:
        p = principal(RoleLevel.COMPANY_OWNER)
        self.assertIs(require_permission(p, "view_reports"), p)

    def test_unknown_permission_needs_only_login(self) -> None:
        p = principal(RoleLevel.USER)
        self.assertIs(require_permission(p, "no_such_permission"), p)


class TestResolveRoleLevel(unittest.TestCase):
    def test_backfills_from_store(self) -> None:
        p = ActingPrincipal(id="u1", email="u1@example.com")
        store = MagicMock()
        store.get_current_role.return_value = RoleLevel.COMPANY_OWNER
        self.assertEqual(resolve_role_level(p, store), RoleLevel.COMPANY_OWNER)
        self.assertEqual(p.role_level, RoleLevel.COMPANY_OWNER)
        self.assertEqual(p.role, RoleLevel.COMPANY_OWNER)
        store.get_current_role.assert_called_once_with("u1")

    def test_store_failure_is_user(self) -> None:
        p = ActingPrincipal(id="u1", email="u1@example.com")
        store = MagicMock()
        store.get_current_role.side_effect = RoleStoreUnavailable("users_role unavailable")
        self.assertEqual(resolve_role_level(p, store), RoleLevel.USER)

    def test_role_used_when_level_missing(self) -> None:
        p = ActingPrincipal(id="u1", email="u1@example.com", role=RoleLevel.STAFF_MEMBER)
        store = MagicMock()
        self.assertEqual(resolve_role_level(p, store), RoleLevel.STAFF_MEMBER)
        store.get_current_role.assert_not_called()

    def test_no_store_is_user(self) -> None:
        p = ActingPrincipal(id="u1", email="u1@example.com")
        self.assertEqual(resolve_role_level(p), RoleLevel.USER)


class TestRequireOwnershipOrAdmin(unittest.TestCase):
    def test_own_resource(self) -> None:
        p = principal(RoleLevel.USER, "u1")
        self.assertIs(require_ownership_or_admin(p, {"userId": "u1"}), p)

    def test_someone_elses_resource(self) -> None:
        with self.assertRaises(Forbidden) as ctx:
            require_ownership_or_admin(principal(RoleLevel.STAFF_MEMBER, "u1"), {"userId": "u2"})
        self.assertEqual(ctx.exception.message, "Access denied - not your resource")

    def test_missing_field_is_denied(self) -> None:
        with self.assertRaises(Forbidden):
            require_ownership_or_admin(principal(RoleLevel.USER, "u1"), {})

    def test_owner_and_admin_pass(self) -> None:
        for level in (RoleLevel.SYSTEM_ADMIN, RoleLevel.COMPANY_OWNER):
            p = principal(level, "u1")
            self.assertIs(require_ownership_or_admin(p, {"userId": "u2"}), p)

    def test_custom_field(self) -> None:
        p = principal(RoleLevel.USER, "u1")
        self.assertIs(require_ownership_or_admin(p, {"user_id": "u1"}, field="user_id"), p)


class TestRequireSameCompany(unittest.TestCase):
    def test_same_company(self) -> None:
        p = principal(RoleLevel.STAFF_MEMBER, company_id="c1")
        self.assertIs(require_same_company(p, {"companyId": "c1"}), p)

    def test_other_company(self) -> None:
        with self.assertRaises(Forbidden) as ctx:
            require_same_company(principal(RoleLevel.COMPANY_OWNER, company_id="c1"), {"companyId": "c2"})
        self.assertEqual(ctx.exception.message, "Access denied - different company")

    def test_no_company(self) -> None:
        with self.assertRaises(Forbidden) as ctx:
            require_same_company(principal(RoleLevel.COMPANY_OWNER), {"companyId": "c1"})
        self.assertEqual(ctx.exception.message, "Company access required")

    def test_missing_field_is_denied(self) -> None:
        with self.assertRaises(Forbidden):
            require_same_company(principal(RoleLevel.STAFF_MEMBER, company_id="c1"), {})

    def test_system_admin_passes_any_company(self) -> None:
        p = principal(RoleLevel.SYSTEM_ADMIN)
        self.assertIs(require_same_company(p, {"companyId": "c9"}), p)


if __name__ == "__main__":
    unittest.main()

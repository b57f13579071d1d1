"""Tests for the Role Store backends against an in-memory SQLite database."""

import unittest
from unittest.mock import MagicMock, patch

from sqlalchemy import text

from auth_fixtures import add_account, add_role, make_session
from bookadmin.core.exceptions import RoleStoreUnavailable, ValidationError
from bookadmin.core.roles import RoleLevel
from bookadmin.models import UserRoleAssignment
from bookadmin.schemas.roles import ImplicitUserRole, PersistedRole
from bookadmin.services.role_store import (
    LegacyRoleStore,
    SqlRoleStore,
    build_role_store,
    resolve_role_store_mode,
)


class SqlRoleStoreTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.db = make_session()
        self.store = SqlRoleStore(self.db)
        self.user = add_account(self.db, "owner@example.com")

    def tearDown(self) -> None:
        self.db.close()

    def _defaults(self) -> list[UserRoleAssignment]:
        return (
            self.db.query(UserRoleAssignment)
            .filter(
                UserRoleAssignment.user_id == self.user.id,
                UserRoleAssignment.is_default.is_(True),
            )
            .all()
        )


class TestCreate(SqlRoleStoreTestCase):
    def test_user_role_is_never_stored(self) -> None:
        with self.assertLogs("bookadmin.services.role_store", level="WARNING"):
            result = self.store.create(self.user.id, RoleLevel.USER)
        self.assertIsNone(result)
        self.assertEqual(self.db.query(UserRoleAssignment).count(), 0)

    def test_create_returns_persisted_role(self) -> None:
        role = self.store.create(self.user.id, RoleLevel.COMPANY_OWNER, company_id="c1")
        self.assertIsInstance(role, PersistedRole)
        self.assertEqual(role.kind, "persisted")
        self.assertEqual(role.role, RoleLevel.COMPANY_OWNER)
        self.assertEqual(role.company_id, "c1")
        self.assertTrue(role.is_active)
        self.assertFalse(role.is_default)

    def test_new_default_clears_previous_default(self) -> None:
        first = self.store.create(self.user.id, RoleLevel.COMPANY_OWNER, "c1", is_default=True)
        second = self.store.create(self.user.id, RoleLevel.STAFF_MEMBER, "c2", is_default=True)
        defaults = self._defaults()
        self.assertEqual([r.id for r in defaults], [second.id])
        self.assertFalse(self.store.find_by_id(first.id).is_default)


class TestQueries(SqlRoleStoreTestCase):
    def test_find_by_user_default_first_and_excludes_inactive(self) -> None:
        older = add_role(self.db, self.user.id, RoleLevel.STAFF_MEMBER, "c1")
        default = add_role(self.db, self.user.id, RoleLevel.COMPANY_OWNER, "c2", is_default=True)
        inactive = add_role(self.db, self.user.id, RoleLevel.STAFF_MEMBER, "c3", is_active=False)

        active = self.store.find_by_user(self.user.id)
        self.assertEqual([r.id for r in active], [default.id, older.id])

        everything = self.store.find_by_user(self.user.id, include_inactive=True)
        self.assertIn(inactive.id, [r.id for r in everything])

    def test_find_by_user_and_company(self) -> None:
        add_role(self.db, self.user.id, RoleLevel.COMPANY_OWNER, "c1")
        add_role(self.db, self.user.id, RoleLevel.STAFF_MEMBER, "c2")
        roles = self.store.find_by_user_and_company(self.user.id, "c2")
        self.assertEqual([r.role for r in roles], [RoleLevel.STAFF_MEMBER])

    def test_get_default_role_without_rows_is_implicit_user(self) -> None:
        default = self.store.get_default_role(self.user.id)
        self.assertIsInstance(default, ImplicitUserRole)
        self.assertEqual(default.kind, "implicit")
        self.assertEqual(default.role, RoleLevel.USER)
        self.assertIsNone(default.id)
        self.assertIsNone(default.company_id)
        self.assertTrue(default.is_default)

    def test_get_default_role_ignores_inactive_default(self) -> None:
        add_role(self.db, self.user.id, RoleLevel.COMPANY_OWNER, "c1", is_default=True, is_active=False)
        self.assertIsInstance(self.store.get_default_role(self.user.id), ImplicitUserRole)

    def test_get_current_role_prefers_company_scope(self) -> None:
        add_role(self.db, self.user.id, RoleLevel.COMPANY_OWNER, "c1", is_default=True)
        add_role(self.db, self.user.id, RoleLevel.STAFF_MEMBER, "c2")
        self.assertEqual(self.store.get_current_role(self.user.id, "c2"), RoleLevel.STAFF_MEMBER)
        self.assertEqual(self.store.get_current_role(self.user.id, "c9"), RoleLevel.COMPANY_OWNER)
        self.assertEqual(self.store.get_current_role(self.user.id), RoleLevel.COMPANY_OWNER)

    def test_get_current_role_falls_back_to_user(self) -> None:
        add_role(self.db, self.user.id, RoleLevel.STAFF_MEMBER, "c2")
        self.assertEqual(self.store.get_current_role(self.user.id), RoleLevel.USER)

    def test_has_role(self) -> None:
        add_role(self.db, self.user.id, RoleLevel.STAFF_MEMBER, "c1")
        self.assertTrue(self.store.has_role(self.user.id, RoleLevel.STAFF_MEMBER, "c1"))
        self.assertFalse(self.store.has_role(self.user.id, RoleLevel.STAFF_MEMBER, "c2"))
        self.assertFalse(self.store.has_role(self.user.id, RoleLevel.STAFF_MEMBER))


class TestSetDefault(SqlRoleStoreTestCase):
    def test_exactly_one_default_after_set_default(self) -> None:
        a = add_role(self.db, self.user.id, RoleLevel.COMPANY_OWNER, "c1", is_default=True)
        b = add_role(self.db, self.user.id, RoleLevel.STAFF_MEMBER, "c2")
        result = self.store.set_default(self.user.id, b.id)
        self.assertEqual(result.id, b.id)
        self.assertTrue(result.is_default)
        self.assertEqual([r.id for r in self._defaults()], [b.id])
        self.assertEqual(self.store.get_default_role(self.user.id).id, b.id)
        self.assertNotEqual(a.id, b.id)

    def test_role_of_another_user_is_not_found(self) -> None:
        other = add_account(self.db, "other@example.com")
        theirs = add_role(self.db, other.id, RoleLevel.STAFF_MEMBER, "c1")
        mine = add_role(self.db, self.user.id, RoleLevel.STAFF_MEMBER, "c1", is_default=True)
        self.assertIsNone(self.store.set_default(self.user.id, theirs.id))
        self.assertEqual([r.id for r in self._defaults()], [mine.id])

    def test_inactive_role_cannot_become_default(self) -> None:
        mine = add_role(self.db, self.user.id, RoleLevel.STAFF_MEMBER, "c1", is_default=True)
        inactive = add_role(self.db, self.user.id, RoleLevel.STAFF_MEMBER, "c2", is_active=False)
        with self.assertRaises(ValidationError):
            self.store.set_default(self.user.id, inactive.id)
        self.assertEqual([r.id for r in self._defaults()], [mine.id])


class TestUpdateAndDelete(SqlRoleStoreTestCase):
    def test_update_fields(self) -> None:
        row = add_role(self.db, self.user.id, RoleLevel.STAFF_MEMBER, "c1")
        updated = self.store.update(row.id, role=RoleLevel.COMPANY_OWNER, is_active=False)
        self.assertEqual(updated.role, RoleLevel.COMPANY_OWNER)
        self.assertFalse(updated.is_active)
        self.assertIsNotNone(updated.updated_at)

    def test_update_cannot_write_user(self) -> None:
        row = add_role(self.db, self.user.id, RoleLevel.STAFF_MEMBER, "c1")
        with self.assertRaises(ValidationError):
            self.store.update(row.id, role=RoleLevel.USER)

    def test_update_rejects_unknown_fields(self) -> None:
        row = add_role(self.db, self.user.id, RoleLevel.STAFF_MEMBER, "c1")
        with self.assertRaises(ValidationError):
            self.store.update(row.id, user_id="someone-else")

    def test_update_missing_row(self) -> None:
        self.assertIsNone(self.store.update("missing", is_active=False))

    def test_delete(self) -> None:
        role_id = add_role(self.db, self.user.id, RoleLevel.STAFF_MEMBER, "c1").id
        self.assertTrue(self.store.delete(role_id))
        self.assertFalse(self.store.delete(role_id))
        self.assertIsNone(self.store.find_by_id(role_id))

    def test_update_keeps_company_scope(self) -> None:
        row = add_role(self.db, self.user.id, RoleLevel.STAFF_MEMBER, "c1")
        with self.assertRaises(ValidationError):
            self.store.update(row.id, company_id=None)
        self.assertEqual(self.store.find_by_id(row.id).company_id, "c1")

    def test_update_to_admin_may_drop_company(self) -> None:
        row = add_role(self.db, self.user.id, RoleLevel.STAFF_MEMBER, "c1")
        updated = self.store.update(row.id, role=RoleLevel.SYSTEM_ADMIN, company_id=None)
        self.assertEqual(updated.role, RoleLevel.SYSTEM_ADMIN)
        self.assertIsNone(updated.company_id)

    def test_admin_cannot_be_demoted_without_company(self) -> None:
        row = add_role(self.db, self.user.id, RoleLevel.SYSTEM_ADMIN)
        with self.assertRaises(ValidationError):
            self.store.update(row.id, role=RoleLevel.COMPANY_OWNER)
        updated = self.store.update(row.id, role=RoleLevel.COMPANY_OWNER, company_id="c1")
        self.assertEqual(updated.company_id, "c1")

    def test_update_to_default_clears_previous_default(self) -> None:
        first = add_role(self.db, self.user.id, RoleLevel.COMPANY_OWNER, "c1", is_default=True)
        second = add_role(self.db, self.user.id, RoleLevel.STAFF_MEMBER, "c2")
        self.store.update(second.id, is_default=True)
        self.assertEqual([r.id for r in self._defaults()], [second.id])
        self.assertFalse(self.store.find_by_id(first.id).is_default)


class TestDefaultLocking(unittest.TestCase):
    """Every write that moves the default locks the user's rows first."""

    def setUp(self) -> None:
        self.db = MagicMock()
        self.store = SqlRoleStore(self.db)
        self.locked = self.db.query.return_value.filter.return_value.with_for_update.return_value
        self.locked.all.return_value = []

    def test_create_default_locks_user_rows(self) -> None:
        with patch("bookadmin.services.role_store.PersistedRole"):
            self.store.create("u1", RoleLevel.STAFF_MEMBER, "c1", is_default=True)
        self.locked.all.assert_called_once_with()

    def test_create_non_default_takes_no_lock(self) -> None:
        with patch("bookadmin.services.role_store.PersistedRole"):
            self.store.create("u1", RoleLevel.STAFF_MEMBER, "c1")
        self.db.query.return_value.filter.return_value.with_for_update.assert_not_called()

    def test_update_default_locks_user_rows(self) -> None:
        row = MagicMock(user_id="u1", role=int(RoleLevel.STAFF_MEMBER), company_id="c1")
        self.locked.first.return_value = row
        with patch("bookadmin.services.role_store.PersistedRole"):
            self.store.update("r1", is_default=True)
        self.locked.all.assert_called_once_with()
        self.assertTrue(row.is_default)


class TestMissingTable(unittest.TestCase):
    """A normalized store whose users_role table is gone degrades to implicit USER."""

    def setUp(self) -> None:
        self.db = make_session(with_user_roles=False)
        self.store = SqlRoleStore(self.db)
        self.user = add_account(self.db, "someone@example.com")

    def tearDown(self) -> None:
        self.db.close()

    def test_reads_raise_role_store_unavailable(self) -> None:
        with self.assertRaises(RoleStoreUnavailable):
            self.store.find_by_user(self.user.id)

    def test_default_role_is_implicit_user(self) -> None:
        with self.assertLogs("bookadmin.services.role_store", level="WARNING"):
            default = self.store.get_default_role(self.user.id)
        self.assertIsInstance(default, ImplicitUserRole)

    def test_session_still_usable_after_failure(self) -> None:
        with self.assertRaises(RoleStoreUnavailable):
            self.store.find_by_id("anything")
        self.assertEqual(self.db.execute(text("SELECT 1")).scalar(), 1)


class TestLegacyRoleStore(unittest.TestCase):
    def test_reports_no_special_roles(self) -> None:
        store = LegacyRoleStore()
        self.assertFalse(store.is_normalized)
        self.assertEqual(store.find_by_user("u1"), [])
        self.assertEqual(store.find_by_user_and_company("u1", "c1"), [])
        self.assertIsNone(store.find_by_id("r1"))
        self.assertFalse(store.has_role("u1", RoleLevel.SYSTEM_ADMIN))
        self.assertIsNone(store.set_default("u1", "r1"))
        self.assertFalse(store.delete("r1"))
        self.assertEqual(store.get_current_role("u1", "c1"), RoleLevel.USER)
        self.assertIsInstance(store.get_default_role("u1"), ImplicitUserRole)

    def test_create_logs_and_stores_nothing(self) -> None:
        with self.assertLogs("bookadmin.services.role_store", level="WARNING"):
            self.assertIsNone(LegacyRoleStore().create("u1", RoleLevel.COMPANY_OWNER))


class TestRoleStoreMode(unittest.TestCase):
    def test_auto_detects_table(self) -> None:
        with_table = make_session()
        without_table = make_session(with_user_roles=False)
        try:
            self.assertEqual(resolve_role_store_mode(with_table.get_bind(), "auto"), "normalized")
            self.assertEqual(resolve_role_store_mode(without_table.get_bind(), "auto"), "legacy")
        finally:
            with_table.close()
            without_table.close()

    def test_explicit_mode_skips_table_check(self) -> None:
        db = make_session(with_user_roles=False)
        try:
            self.assertEqual(resolve_role_store_mode(db.get_bind(), "normalized"), "normalized")
            self.assertIsInstance(build_role_store(db, "normalized"), SqlRoleStore)
            self.assertIsInstance(build_role_store(db, "legacy"), LegacyRoleStore)
        finally:
            db.close()


if __name__ == "__main__":
    unittest.main()

"""Tests for turning a session token into the acting principal."""

import unittest
from datetime import timedelta
from unittest.mock import MagicMock

from auth_fixtures import add_account, add_role, make_session
from bookadmin.core.exceptions import RoleStoreUnavailable, Unauthenticated
from bookadmin.core.roles import RoleLevel
from bookadmin.core.security import create_selection_token, create_session_token
from bookadmin.schemas.auth import SessionClaims
from bookadmin.services.authenticator import (
    authenticate,
    authenticate_optional,
    build_principal,
    decode_claims,
)
from bookadmin.services.role_store import LegacyRoleStore, SqlRoleStore


class TestDecodeClaims(unittest.TestCase):
    def test_missing_token(self) -> None:
        with self.assertRaises(Unauthenticated) as ctx:
            decode_claims(None)
        self.assertEqual(ctx.exception.message, "Access token required")

    def test_expired_token(self) -> None:
        token = create_session_token("u1", "a@example.com", RoleLevel.USER, expires_delta=timedelta(seconds=-5))
        with self.assertRaises(Unauthenticated) as ctx:
            decode_claims(token)
        self.assertEqual(ctx.exception.message, "Token expired")

    def test_garbage_and_selection_tickets_are_invalid(self) -> None:
        for token in ("garbage", create_selection_token("u1")):
            with self.assertRaises(Unauthenticated) as ctx:
                decode_claims(token)
            self.assertEqual(ctx.exception.message, "Invalid token")

    def test_camel_case_claims(self) -> None:
        token = create_session_token(
            "u1", "a@example.com", RoleLevel.STAFF_MEMBER, role_id="r1", company_id="c1"
        )
        claims = decode_claims(token)
        self.assertEqual(claims.user_id, "u1")
        self.assertEqual(claims.role, RoleLevel.STAFF_MEMBER)
        self.assertEqual(claims.role_id, "r1")
        self.assertEqual(claims.company_id, "c1")
        self.assertFalse(claims.is_impersonating)


class AuthenticatorTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.db = make_session()
        self.store = SqlRoleStore(self.db)
        self.account = add_account(self.db, "person@example.com")

    def tearDown(self) -> None:
        self.db.close()


class TestAuthenticate(AuthenticatorTestCase):
    def test_role_claim_is_authoritative(self) -> None:
        add_role(self.db, self.account.id, RoleLevel.COMPANY_OWNER, "c1", is_default=True)
        token = create_session_token(self.account.id, self.account.email, RoleLevel.USER)
        principal = authenticate(self.db, self.store, token)
        self.assertEqual(principal.role, RoleLevel.USER)
        self.assertEqual(principal.role_level, RoleLevel.USER)

    def test_selected_role_and_company(self) -> None:
        staff = add_role(self.db, self.account.id, RoleLevel.STAFF_MEMBER, "c2")
        token = create_session_token(
            self.account.id, self.account.email, RoleLevel.STAFF_MEMBER, staff.id, "c2"
        )
        principal = authenticate(self.db, self.store, token)
        self.assertEqual(principal.role, RoleLevel.STAFF_MEMBER)
        self.assertEqual(principal.role_id, staff.id)
        self.assertEqual(principal.company_id, "c2")

    def test_role_id_without_role_claim(self) -> None:
        owner = add_role(self.db, self.account.id, RoleLevel.COMPANY_OWNER, "c1")
        claims = SessionClaims(userId=self.account.id, roleId=owner.id)
        principal = build_principal(self.db, self.store, claims)
        self.assertEqual(principal.role, RoleLevel.COMPANY_OWNER)
        self.assertEqual(principal.company_id, "c1")

    def test_stale_role_id_without_role_claim_is_user(self) -> None:
        other = add_account(self.db, "other@example.com")
        theirs = add_role(self.db, other.id, RoleLevel.SYSTEM_ADMIN)
        claims = SessionClaims(userId=self.account.id, roleId=theirs.id, companyId="c5")
        principal = build_principal(self.db, self.store, claims)
        self.assertEqual(principal.role, RoleLevel.USER)
        self.assertIsNone(principal.role_id)
        self.assertEqual(principal.company_id, "c5")

    def test_no_role_information_uses_store(self) -> None:
        add_role(self.db, self.account.id, RoleLevel.COMPANY_OWNER, "c1", is_default=True)
        principal = build_principal(self.db, self.store, SessionClaims(userId=self.account.id))
        self.assertEqual(principal.role, RoleLevel.COMPANY_OWNER)
        self.assertEqual(principal.company_id, "c1")

    def test_no_role_information_and_no_roles_is_user(self) -> None:
        principal = build_principal(self.db, self.store, SessionClaims(userId=self.account.id))
        self.assertEqual(principal.role, RoleLevel.USER)
        self.assertIsNone(principal.company_id)

    def test_legacy_role_column(self) -> None:
        legacy = add_account(self.db, "legacy@example.com", role=RoleLevel.STAFF_MEMBER, company_id="c3")
        principal = build_principal(self.db, LegacyRoleStore(), SessionClaims(userId=legacy.id))
        self.assertEqual(principal.role, RoleLevel.STAFF_MEMBER)
        self.assertEqual(principal.company_id, "c3")

    def test_impersonation_claims(self) -> None:
        token = create_session_token(
            self.account.id, self.account.email, RoleLevel.USER, impersonated_by="admin-1"
        )
        principal = authenticate(self.db, self.store, token)
        self.assertEqual(principal.impersonated_by, "admin-1")
        self.assertTrue(principal.is_impersonating)

    def test_unknown_user(self) -> None:
        token = create_session_token("no-such-user", "x@example.com", RoleLevel.USER)
        with self.assertRaises(Unauthenticated) as ctx:
            authenticate(self.db, self.store, token)
        self.assertEqual(ctx.exception.message, "Invalid token - user not found")

    def test_deactivated_account(self) -> None:
        gone = add_account(self.db, "gone@example.com", is_active=False)
        token = create_session_token(gone.id, gone.email, RoleLevel.USER)
        with self.assertRaises(Unauthenticated) as ctx:
            authenticate(self.db, self.store, token)
        self.assertEqual(ctx.exception.message, "Account is deactivated")


class TestRoleStoreFailure(AuthenticatorTestCase):
    def _failing_store(self) -> MagicMock:
        store = MagicMock(spec=SqlRoleStore)
        store.is_normalized = True
        store.find_by_id.side_effect = RoleStoreUnavailable("users_role unavailable")
        store.get_default_role.side_effect = RoleStoreUnavailable("users_role unavailable")
        store.get_current_role.side_effect = RoleStoreUnavailable("users_role unavailable")
        return store

    def test_falls_back_to_user(self) -> None:
        claims = SessionClaims(userId=self.account.id, roleId="r1")
        with self.assertLogs("bookadmin.services.authenticator", level="WARNING"):
            principal = build_principal(self.db, self._failing_store(), claims)
        self.assertEqual(principal.role, RoleLevel.USER)

    def test_keeps_role_claim(self) -> None:
        claims = SessionClaims(
            userId=self.account.id, role=RoleLevel.STAFF_MEMBER, roleId="r1", companyId="c1"
        )
        with self.assertLogs("bookadmin.services.authenticator", level="WARNING"):
            principal = build_principal(self.db, self._failing_store(), claims)
        self.assertEqual(principal.role, RoleLevel.STAFF_MEMBER)
        self.assertEqual(principal.company_id, "c1")


class TestAuthenticateOptional(AuthenticatorTestCase):
    def test_returns_none_instead_of_raising(self) -> None:
        self.assertIsNone(authenticate_optional(self.db, self.store, None))
        self.assertIsNone(authenticate_optional(self.db, self.store, "garbage"))

    def test_returns_principal_for_valid_token(self) -> None:
        token = create_session_token(self.account.id, self.account.email, RoleLevel.USER)
        principal = authenticate_optional(self.db, self.store, token)
        self.assertEqual(principal.id, self.account.id)


if __name__ == "__main__":
    unittest.main()

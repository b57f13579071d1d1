"""
Create an account (e.g. the first system admin). Run from project root:
  python -m bookadmin.scripts.create_user EMAIL PASSWORD FIRST_NAME LAST_NAME [--role N] [--company-id ID]
Example:
  python -m bookadmin.scripts.create_user admin@example.com your-secure-password Ada Admin --role 0
"""
import argparse
import sys

from bookadmin.core.config import get_settings
from bookadmin.core.database import SessionLocal, engine
from bookadmin.core.exceptions import RoleStoreUnavailable
from bookadmin.core.roles import ROLE_NAMES, RoleLevel
from bookadmin.core.security import hash_password
from bookadmin.services.accounts import create_account, find_account_by_email
from bookadmin.services.role_store import build_role_store, resolve_role_store_mode


def main() -> int:
    parser = argparse.ArgumentParser(description="Create a BookAdmin account from the command line.")
    parser.add_argument("email", help="Email address (login name)")
    parser.add_argument("password", help="Password")
    parser.add_argument("first_name")
    parser.add_argument("last_name")
    parser.add_argument(
        "--role",
        type=int,
        default=int(RoleLevel.USER),
        choices=[int(level) for level in RoleLevel],
        help="0=System Admin, 1=Company Owner, 2=Staff Member, 3=User (default)",
    )
    parser.add_argument("--company-id", default=None, help="Company scope for the role")
    args = parser.parse_args()

    settings = get_settings()
    email = args.email.strip()
    if "@" not in email or len(email) > 255:
        print("Invalid email address.", file=sys.stderr)
        return 1
    if not (settings.PASSWORD_MIN_LEN <= len(args.password) <= settings.PASSWORD_MAX_LEN):
        print(
            f"Password must be {settings.PASSWORD_MIN_LEN}-{settings.PASSWORD_MAX_LEN} characters.",
            file=sys.stderr,
        )
        return 1

    level = RoleLevel(args.role)
    mode = resolve_role_store_mode(engine, settings.ROLE_STORE_MODE)
    db = SessionLocal()
    try:
        if find_account_by_email(db, email) is not None:
            print(f"Account '{email}' already exists.", file=sys.stderr)
            return 1
        store = build_role_store(db, mode)
        account = create_account(
            db,
            email=email,
            password_hash=hash_password(args.password),
            first_name=args.first_name,
            last_name=args.last_name,
            role=level,
            legacy_role_column=not store.is_normalized,
        )
        if not store.is_normalized and args.company_id:
            account.company_id = args.company_id
            db.commit()
        if level != RoleLevel.USER and store.is_normalized:
            try:
                store.create(account.id, level, company_id=args.company_id, is_default=True)
            except RoleStoreUnavailable:
                print("users_role unavailable; account created without its role.", file=sys.stderr)
                return 1
        print(f"Created account '{account.email}' ({account.id}) with role '{ROLE_NAMES[level]}'.")
        return 0
    finally:
        db.close()


if __name__ == "__main__":
    sys.exit(main())

#!/usr/bin/env python3
"""
Gatehouse admin CLI -- bootstrap accounts and roles without the web UI.

Roles can only be changed here: nothing in the web UI grants ADMIN, so the
first administrator is created from a shell on the server.

Usage:
  python main.py create-user --email ada@example.com --name Ada --role ADMIN
  python main.py set-role ada@example.com MANAGER
  python main.py list-users
  python main.py revoke-sessions ada@example.com

Environment variables:
  DATABASE_URL  Connection string (default: local SQLite file gatehouse.db)
  SECRET_KEY    Required unless DEBUG=true (see core/config.py)
"""

import argparse
import getpass
import sys
from typing import Optional

from sqlalchemy.exc import IntegrityError

from auth.models import Role, User
from auth.store import UserStore
from auth.tokens import hash_password
from core.config import get_settings

_ROLES = [r.value for r in Role]


def create_user(store: UserStore, email: str, name: str, role: str, password: Optional[str]) -> int:
    """Create a user and return its ID. Raises IntegrityError on a duplicate email."""
    return store.create_user(
        User(
            email=email,
            name=name,
            role=role,
            hashed_password=hash_password(password) if password else None,
        )
    )


def set_role(store: UserStore, email: str, role: str) -> bool:
    user = store.get_by_email(email)
    if user is None:
        return False
    return store.update_user(user.id, role=role)


def _prompt_password() -> Optional[str]:
    password = getpass.getpass("Password (blank for passwordless): ")
    if not password:
        return None
    if getpass.getpass("Confirm password: ") != password:
        print("  [!] Passwords do not match.")
        sys.exit(1)
    if len(password) < 8:
        print("  [!] Password must be at least 8 characters.")
        sys.exit(1)
    return password


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        prog="gatehouse",
        description="Manage Gatehouse users and roles.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py create-user --email ada@example.com --name Ada --role ADMIN
  python main.py set-role ada@example.com MANAGER
  DATABASE_URL=postgresql+psycopg://user:pw@host/db python main.py list-users
        """,
    )
    sub = parser.add_subparsers(dest="command", required=True)

    p_create = sub.add_parser("create-user", help="Create a user (prompts for a password)")
    p_create.add_argument("--email", required=True)
    p_create.add_argument("--name", default="")
    p_create.add_argument("--role", choices=_ROLES, default=Role.USER.value)
    p_create.add_argument(
        "--no-password",
        action="store_true",
        help="Create a passwordless user (OAuth / magic link only)",
    )

    p_role = sub.add_parser("set-role", help="Change a user's role")
    p_role.add_argument("email")
    p_role.add_argument("role", choices=_ROLES)

    sub.add_parser("list-users", help="Print every user with their role")

    p_revoke = sub.add_parser("revoke-sessions", help="Sign a user out everywhere")
    p_revoke.add_argument("email")

    args = parser.parse_args(argv)

    store = UserStore(get_settings().database_url)
    try:
        if args.command == "create-user":
            password = None if args.no_password else _prompt_password()
            try:
                user_id = create_user(store, args.email, args.name, args.role, password)
            except IntegrityError:
                print(f"  [!] A user with email '{args.email}' already exists.")
                return 1
            print(f"  Created user {user_id} ({args.email}, {args.role}).")

        elif args.command == "set-role":
            if not set_role(store, args.email, args.role):
                print(f"  [!] No user with email '{args.email}'.")
                return 1
            print(f"  {args.email} is now {args.role}.")

        elif args.command == "list-users":
            for u in store.list_users():
                print(f"  {u.id:>5}  {u.role:<8} {u.email}  {u.name}")

        elif args.command == "revoke-sessions":
            user = store.get_by_email(args.email)
            if user is None:
                print(f"  [!] No user with email '{args.email}'.")
                return 1
            removed = store.delete_user_sessions(user.id)
            print(f"  Revoked {removed} session(s) for {args.email}.")
    finally:
        store.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())

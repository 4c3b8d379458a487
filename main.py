#!/usr/bin/env python3
"""
Vaultroom -- collaborative research vaults with live updates.

Usage:
  python main.py serve
  python main.py serve --host 0.0.0.0 --port 8000
  python main.py serve --reload
  python main.py create-user ada@example.com "Ada Lovelace"
  python main.py seed

Environment variables:
  SECRET_KEY     Required unless DEBUG=true. At least 32 characters.
  DEBUG          true to auto-generate a SECRET_KEY for local development.
  DATABASE_URL   SQLAlchemy URL. Defaults to vaultroom.db in the project root.
"""

import argparse
import getpass
import sys

from sqlalchemy.exc import IntegrityError

from auth.models import User
from auth.store import UserStore
from auth.tokens import hash_password
from vaults.store import VaultStore

# (email, name, password) -- printed at the end of `seed`, never used outside development.
_DEMO_USERS = [
    ("owner@demo.com", "Demo Owner", "owner123"),
    ("contributor@demo.com", "Demo Contributor", "contributor123"),
    ("viewer@demo.com", "Demo Viewer", "viewer123"),
]
_DEMO_VAULTS = ["Research Papers", "Project Documentation"]


def _serve(args: argparse.Namespace) -> int:
    import uvicorn

    uvicorn.run("asgi:app", host=args.host, port=args.port, reload=args.reload)
    return 0


def _create_user(args: argparse.Namespace) -> int:
    password = getpass.getpass("Password: ")
    if len(password) < 6:
        print("  [!] Password must be at least 6 characters.")
        return 1
    if password != getpass.getpass("Confirm password: "):
        print("  [!] Passwords do not match.")
        return 1

    store = UserStore()
    try:
        user_id = store.create_user(
            User(email=args.email.strip().lower(), name=args.name.strip(), hashed_password=hash_password(password))
        )
    except IntegrityError:
        print(f"  [!] A user with email {args.email} already exists.")
        return 1
    finally:
        store.close()
    print(f"  Created user {args.email} ({user_id})")
    return 0


def seed(user_store: UserStore, vault_store: VaultStore) -> dict[str, str]:
    """Create demo users, two vaults owned by the demo owner, and memberships.

    Safe to run repeatedly: existing users, vaults and memberships are left
    alone. Returns {email: user_id} for the demo users.
    """
    ids: dict[str, str] = {}
    for email, name, password in _DEMO_USERS:
        existing = user_store.get_by_email(email)
        if existing is not None:
            ids[email] = existing.id
            print(f"  = {email} already exists")
            continue
        ids[email] = user_store.create_user(User(email=email, name=name, hashed_password=hash_password(password)))
        print(f"  + Created demo user {email}")

    owner_id = ids["owner@demo.com"]
    owned = {s.vault.name: s.vault for s in vault_store.list_vaults_for_user(owner_id) if s.role == "owner"}
    for vault_name in _DEMO_VAULTS:
        if vault_name in owned:
            print(f'  = Vault "{vault_name}" already exists')
            continue
        owned[vault_name] = vault_store.create_vault(vault_name, owner_id=owner_id, actor_name="Demo Owner")
        print(f'  + Created demo vault "{vault_name}"')

    first = owned[_DEMO_VAULTS[0]]
    for email, role in (("contributor@demo.com", "contributor"), ("viewer@demo.com", "viewer")):
        if vault_store.get_membership(ids[email], first.id) is None:
            vault_store.add_member(ids[email], first.id, role)
            print(f'  + {email} is now {role} of "{first.name}"')
    return ids


def _seed(args: argparse.Namespace) -> int:
    user_store = UserStore()
    vault_store = VaultStore()
    try:
        print("\nSeeding demo data...")
        seed(user_store, vault_store)
    finally:
        vault_store.close()
        user_store.close()
    print("\nDemo data seeded.")
    for email, _, password in _DEMO_USERS:
        print(f"  {email} / {password}")
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="vaultroom",
        description="Vaultroom -- collaborative research vaults.",
        epilog=__doc__,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the API and WebSocket server with uvicorn")
    serve.add_argument("--host", default="127.0.0.1", help="Bind address (default: 127.0.0.1)")
    serve.add_argument("--port", type=int, default=8000, help="Bind port (default: 8000)")
    serve.add_argument("--reload", action="store_true", help="Reload on code changes (development only)")
    serve.set_defaults(func=_serve)

    create = sub.add_parser("create-user", help="Create an account; prompts for the password")
    create.add_argument("email")
    create.add_argument("name")
    create.set_defaults(func=_create_user)

    seed_cmd = sub.add_parser("seed", help="Create demo users and vaults (idempotent)")
    seed_cmd.set_defaults(func=_seed)

    args = parser.parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())

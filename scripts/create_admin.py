#!/usr/bin/env python3
"""Bootstrap an admin account for VerseNest.

Public registration only creates reader and writer accounts; the first admin
is seeded with this script. Further admins can be promoted through the admin
API.

Usage:
    python scripts/create_admin.py --email admin@example.com --full-name "Site Admin"
    ADMIN_PASSWORD=... python scripts/create_admin.py --email admin@example.com

The password is read from ADMIN_PASSWORD or prompted for, never passed on
the command line.
"""

import argparse
import asyncio
import getpass
import os
import sys

from versenest.core import async_session_maker
from versenest.core.errors import AppError
from versenest.models.user import Role
from versenest.services.credential_store import CredentialStore
from versenest.services.session_manager import SessionManager


async def create_admin(email: str, password: str, full_name: str, force: bool) -> int:
    async with async_session_maker() as db:
        if not force and await CredentialStore(db).admin_exists():
            print("ERROR: an admin account already exists (use --force to add another).")
            return 1
        manager = SessionManager(db)
        try:
            result = await manager.register(
                email, password, Role.ADMIN, full_name, allow_admin=True
            )
        except AppError as e:
            print(f"ERROR: {e.message}")
            if e.details:
                for detail in e.details:
                    print(f"  - {detail}")
            return 1
        # The bootstrap session is not needed; end it right away
        await manager.logout_all(result.user.id)
        print(f"Created admin {result.user.email} ({result.user.id})")
        return 0


def main():
    parser = argparse.ArgumentParser(description="Create a VerseNest admin account")
    parser.add_argument("--email", required=True, help="Admin email address")
    parser.add_argument("--full-name", default="Administrator", help="Display name")
    parser.add_argument(
        "--force",
        action="store_true",
        help="Create the account even if an admin already exists",
    )
    args = parser.parse_args()

    password = os.environ.get("ADMIN_PASSWORD")
    if not password:
        password = getpass.getpass("Admin password: ")
        if password != getpass.getpass("Confirm password: "):
            print("ERROR: passwords do not match.")
            sys.exit(1)

    sys.exit(asyncio.run(create_admin(args.email, password, args.full_name, args.force)))


if __name__ == "__main__":
    main()

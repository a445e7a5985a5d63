#!/usr/bin/env python3
"""
Admin Management Utility

Registration always creates plain users, so admins are provisioned here:
- Promote a registered user to admin
- Demote an admin back to user
- List current admins

Changing a role rotates the user's signing secrets, so sessions opened
under the previous role must log in again.
"""

import asyncio
import sys
from pathlib import Path

# Add project root to Python path
project_root = Path(__file__).parent
sys.path.insert(0, str(project_root))

import structlog
from motor.motor_asyncio import AsyncIOMotorClient

from session.directory import UserDirectory
from session.models import UserRole
from session.tokens import generate_credentials
from utilities.config import config
from utilities.logger import setup_logging

logger = structlog.get_logger(__name__)


async def set_user_role(directory: UserDirectory, email: str, role: UserRole) -> bool:
    """
    Change a user's role and rotate their credentials.

    Returns:
        True if a user with the email exists
    """
    user = await directory.set_role(email, role, generate_credentials())
    if not user:
        print(f"❌ No user registered with {email}")
        return False

    logger.info("User role changed", user_id=user.id, email=email, role=role.value)
    print(f"✅ {email} is now {role.value} (id: {user.id})")
    print("ℹ️  Existing sessions for this user were revoked")
    return True


async def list_admins(directory: UserDirectory) -> int:
    """List all admins and return how many there are."""
    print("\n" + "="*80)
    print("📋 ADMINS")
    print("="*80)

    admins = await directory.list_by_role(UserRole.ADMIN)
    if not admins:
        print("❌ No admins found")
        return 0

    for i, admin in enumerate(admins, 1):
        print(f"{i:3d}. {admin.get('email')} ({admin.get('name')})")
        print(f"     ID: {admin['_id']}")
        print(f"     Created: {admin.get('created_at')}")
    return len(admins)


async def main():
    """Main function."""
    if len(sys.argv) < 2:
        print("Usage: python manage_admins.py [promote|demote|list] [email]")
        print()
        print("Commands:")
        print("  promote  - Grant the admin role to a registered user")
        print("  demote   - Return an admin to the user role")
        print("  list     - List all admins")
        print()
        print("Examples:")
        print("  python manage_admins.py promote admin@example.com")
        print("  python manage_admins.py list")
        sys.exit(1)

    command = sys.argv[1].lower()

    setup_logging(
        log_level=config.log_level,
        log_format=config.log_format,
        log_file=config.log_file,
        debug=config.debug
    )

    if command in ("promote", "demote") and len(sys.argv) < 3:
        print(f"❌ Error: email required for {command} command")
        print(f"Usage: python manage_admins.py {command} <email>")
        sys.exit(1)

    if command not in ("promote", "demote", "list"):
        print(f"❌ Unknown command: {command}")
        print("Available commands: promote, demote, list")
        sys.exit(1)

    client = AsyncIOMotorClient(config.mongodb_url)
    try:
        directory = UserDirectory(client[config.mongodb_database], config.users_collection)

        if command == "promote":
            ok = await set_user_role(directory, sys.argv[2], UserRole.ADMIN)
        elif command == "demote":
            ok = await set_user_role(directory, sys.argv[2], UserRole.USER)
        else:
            await list_admins(directory)
            ok = True
    finally:
        client.close()

    if not ok:
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())

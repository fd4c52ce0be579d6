"""
Seed Admin User

Creates the initial admin account for the RTB Assets system.
Run this script once to set up the admin account.

Credentials come from the environment:
    SEED_ADMIN_EMAIL      (default: the first admin notification address)
    SEED_ADMIN_PASSWORD   (default: the configured default password)
    SEED_ADMIN_FIRST_NAME / SEED_ADMIN_LAST_NAME

Usage:
    cd apps/api
    python scripts/seed_admin.py
"""

import asyncio
import os
import sys
from pathlib import Path

# Add the src directory to the path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from sqlalchemy import select

from rtb_assets.core.config import settings
from rtb_assets.core.database import async_session_maker, engine
from rtb_assets.core.security import hash_password
from rtb_assets.modules.schools.models import School  # noqa: F401 - resolves User.school
from rtb_assets.modules.users.models import User, UserRole


async def seed_admin() -> None:
    """Create the admin user if it doesn't exist."""
    admins = settings.admin_notification_list
    email = os.environ.get("SEED_ADMIN_EMAIL") or (admins[0] if admins else "admin@rtb.gov.rw")
    password = os.environ.get("SEED_ADMIN_PASSWORD") or settings.default_password
    first_name = os.environ.get("SEED_ADMIN_FIRST_NAME", "RTB")
    last_name = os.environ.get("SEED_ADMIN_LAST_NAME", "Administrator")

    async with async_session_maker() as db:
        result = await db.execute(select(User).where(User.email == email.lower()))
        existing_user = result.scalar_one_or_none()

        if existing_user:
            print(f"Admin already exists: {existing_user.email}")
            print(f"  ID: {existing_user.id}")
            print(f"  Role: {existing_user.role.value}")
            return

        admin_user = User(
            email=email.lower(),
            password_hash=hash_password(password),
            first_name=first_name,
            last_name=last_name,
            role=UserRole.ADMIN,
            is_active=True,
        )

        db.add(admin_user)
        await db.commit()
        await db.refresh(admin_user)

        print("Admin created successfully!")
        print(f"  Email: {admin_user.email}")
        print(f"  Name: {admin_user.full_name}")
        print(f"  ID: {admin_user.id}")
        if password == settings.default_password:
            print("  Password: the configured default password, change it after first login")

    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(seed_admin())

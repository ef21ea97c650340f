"""
Seed an admin user for the admin panel.

Reads ADMIN_EMAIL, ADMIN_PASSWORD and (optionally) ADMIN_NAME from the
environment. Requires DATABASE_URL. Existing users are left untouched.

Run from the backend/ directory:
    ADMIN_EMAIL=admin@example.com ADMIN_PASSWORD=... python scripts/seed_admin.py
"""
import asyncio
import os
import sys

# Add backend/ to path so we can import config
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
from database import async_session, init_db  # noqa: E402
from domain.errors import ConflictError  # noqa: E402
from services import auth_service  # noqa: E402


async def seed() -> int:
    email = os.environ.get("ADMIN_EMAIL", "")
    password = os.environ.get("ADMIN_PASSWORD", "")
    name = os.environ.get("ADMIN_NAME") or "Admin"

    if not email or not password:
        print("❌ ADMIN_EMAIL and ADMIN_PASSWORD must be set")
        return 1
    if async_session is None:
        print("❌ DATABASE_URL is not set; admin users need the relational store")
        return 1

    if not await init_db():
        print("❌ Database unreachable, check DATABASE_URL")
        return 1
    async with async_session() as db:
        try:
            user = await auth_service.create_admin_user(db, email=email, password=password, name=name)
        except ConflictError:
            print(f"✅ Admin user already exists: {email.strip().lower()}. Nothing to do.")
            return 0

    print(f"✅ Admin user created: {user.email} (id {user.id})")
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(seed()))

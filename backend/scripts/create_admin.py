"""
Create (or promote) a back-office admin account.

Run from the backend/ directory:
    python scripts/create_admin.py --email ops@radeo.in --name "Ops Desk"

The password is read from --password or prompted for interactively.
"""
import argparse
import asyncio
import getpass
import os
import sys

# Add backend/ to path so we can import config
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy import select

from database import async_session, init_db
from db_models import User
from domain.enums import UserRole
from services import auth_service, settings_service


async def create_admin(email: str, name: str, password: str) -> None:
    await init_db()

    async with async_session() as db:
        await settings_service.ensure_defaults(db)

        existing = (
            await db.execute(select(User).where(User.email == email.strip().lower()))
        ).scalar_one_or_none()
        if existing:
            existing.role = UserRole.ADMIN.value
            existing.is_blocked = False
            await db.commit()
            print(f"✅ Promoted existing user {existing.email} (id={existing.id}) to admin")
            return

        user = await auth_service.register_user(
            db, email=email, password=password, name=name, role=UserRole.ADMIN.value,
        )
        await db.commit()
        print(f"✅ Created admin {user.email} (id={user.id})")


def main():
    parser = argparse.ArgumentParser(description="Create a Radeo back-office admin")
    parser.add_argument("--email", required=True)
    parser.add_argument("--name", default="Admin")
    parser.add_argument("--password", help="omit to be prompted")
    args = parser.parse_args()

    password = args.password or getpass.getpass("Password: ")
    asyncio.run(create_admin(args.email, args.name, password))


if __name__ == "__main__":
    main()

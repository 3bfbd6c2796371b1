"""
Create (or leave untouched) the initial SUPERADMIN account.

    python -m library_backend.seed

Credentials come from SEED_SUPERADMIN_EMAIL / SEED_SUPERADMIN_PASSWORD.
"""
import asyncio
import os

from sqlalchemy import select

from library_backend.auth import hash_password
from library_backend.database import SessionLocal, init_db
from library_backend.models.user import User, Role

SUPERADMIN_EMAIL = os.getenv("SEED_SUPERADMIN_EMAIL", "superadmin@example.com")
SUPERADMIN_PASSWORD = os.getenv("SEED_SUPERADMIN_PASSWORD", "SuperAdmin123!")


async def seed_superadmin(session_factory=SessionLocal) -> User:
    async with session_factory() as db:
        user = (await db.execute(select(User).where(User.email == SUPERADMIN_EMAIL))).scalar_one_or_none()
        if user is not None:
            return user

        user = User(
            name="Super Admin",
            email=SUPERADMIN_EMAIL,
            password=hash_password(SUPERADMIN_PASSWORD),
            phone="08123456789",
            role=Role.SUPERADMIN,
            is_verified=True,
        )
        db.add(user)
        await db.commit()
        await db.refresh(user)
        return user


async def main():
    await init_db()
    user = await seed_superadmin()
    print(f"Superadmin ready: id={user.id} email={user.email}")


if __name__ == "__main__":
    asyncio.run(main())

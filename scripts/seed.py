"""Bootstrap a database: tables, a verified superadmin and starter categories."""
import argparse
import asyncio
import logging

from sqlalchemy import select

from app.database import Base, async_session, engine
from app.models import Category, Role, User
from app.security import generate_opaque_token, hash_password

logger = logging.getLogger("seed")

CATEGORIES = ["technology", "science", "politics", "sports", "health",
              "business", "entertainment", "travel", "food", "education"]


async def seed(admin_email: str, admin_username: str, admin_password: str, reset: bool = False) -> None:
    async with engine.begin() as conn:
        if reset:
            await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    async with async_session() as session:
        existing = await session.execute(select(User).where(User.email == admin_email.lower()))
        admin = existing.scalar_one_or_none()
        if admin is None:
            admin = User(
                email=admin_email.lower(),
                username=admin_username,
                password_hash=hash_password(admin_password),
                verification_id=generate_opaque_token(),
            )
            session.add(admin)
            logger.info("Created superadmin %s", admin_email)
        admin.role = Role.SUPERADMIN
        admin.is_verified = True

        result = await session.execute(select(Category.name))
        present = set(result.scalars().all())
        missing = [name for name in CATEGORIES if name not in present]
        session.add_all(Category(name=name) for name in missing)
        logger.info("Added %d categories", len(missing))

        await session.commit()


def main():
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(message)s")
    parser = argparse.ArgumentParser(description="Seed the blog database")
    parser.add_argument("--admin-email", required=True)
    parser.add_argument("--admin-username", default="superadmin")
    parser.add_argument("--admin-password", required=True)
    parser.add_argument("--reset", action="store_true", help="Drop all tables first")
    args = parser.parse_args()

    async def run() -> None:
        try:
            await seed(args.admin_email, args.admin_username, args.admin_password, reset=args.reset)
        finally:
            await engine.dispose()

    asyncio.run(run())


if __name__ == "__main__":
    main()

"""
Seed a verified demo account.

    python -m database.seed
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone

from auth.password import hash_password
from database.store import Store

logger = logging.getLogger(__name__)

DEMO_EMAIL = "demo@example.com"
DEMO_USERNAME = "demo"
DEMO_PASSWORD = "P@ssw0rd!"
DEMO_NAME = "Demo User"


async def seed_demo_user(store: Store) -> bool:
    """Create the demo user unless it already exists. Returns True if created."""
    async with store.transaction() as tx:
        if await tx.users.get_by_email(DEMO_EMAIL) is not None:
            logger.info("Seed: demo user already exists")
            return False

        user = await tx.users.create(
            email=DEMO_EMAIL,
            username=DEMO_USERNAME,
            password=hash_password(DEMO_PASSWORD),
        )
        await tx.users.mark_email_verified(user, datetime.now(timezone.utc))
        await tx.profiles.create(user, name=DEMO_NAME)

    logger.info("Seed: created demo user %s (%s)", user.email, user.id)
    return True


async def main() -> None:
    from database.session import async_session_factory, create_tables, engine
    from database.store import SqlAlchemyStore

    await create_tables()
    try:
        await seed_demo_user(SqlAlchemyStore(async_session_factory))
    finally:
        await engine.dispose()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s  %(levelname)-8s  %(name)s — %(message)s")
    asyncio.run(main())

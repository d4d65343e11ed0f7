import argparse
import asyncio
import sys

import accounts, crud
from config import Settings
from database import build_engine, build_session_factory, create_db_and_tables
from logging_config import get_logger

logger = get_logger(__name__)


async def seed_default_user(settings: Settings) -> int:
    if not settings.DEFAULT_USER_ID or not settings.DEFAULT_USER_PASSWORD:
        logger.error("DEFAULT_USER_ID and DEFAULT_USER_PASSWORD must be set")
        return 1
    engine = build_engine(settings.DATABASE_URL)
    try:
        await create_db_and_tables(engine)
        async with build_session_factory(engine)() as session:
            user = await accounts.seed_default_user(session, settings.DEFAULT_USER_ID, settings.DEFAULT_USER_PASSWORD)
        if user is None:
            logger.info("To reset the password, delete the user first or use the change-password endpoint")
    finally:
        await engine.dispose()
    return 0


async def delete_default_user(settings: Settings) -> int:
    if not settings.DEFAULT_USER_ID:
        logger.error("DEFAULT_USER_ID must be set")
        return 1
    engine = build_engine(settings.DATABASE_URL)
    try:
        async with build_session_factory(engine)() as session:
            deleted = await crud.delete_user_by_login(session, settings.DEFAULT_USER_ID)
    finally:
        await engine.dispose()
    if deleted:
        logger.info(f"User '{settings.DEFAULT_USER_ID}' deleted")
    else:
        logger.info(f"User '{settings.DEFAULT_USER_ID}' not found in database")
    return 0


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Create or remove the default admin user.")
    parser.add_argument("action", nargs="?", choices=["seed", "delete"], default="seed")
    args = parser.parse_args(argv)
    settings = Settings()
    if args.action == "delete":
        return asyncio.run(delete_default_user(settings))
    return asyncio.run(seed_default_user(settings))


if __name__ == "__main__":
    sys.exit(main())

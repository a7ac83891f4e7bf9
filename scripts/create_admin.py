import asyncio
import logging
import os

from app.config import Settings
from app.database import create_engine, create_session_maker, create_tables, wait_for_database
from app.services.accounts import ensure_admin


# Admin data
ADMIN_USERNAME = os.getenv("ADMIN_USERNAME", "admin")
ADMIN_PASSWORD = os.getenv("ADMIN_PASSWORD", "admin007")


async def create_admin():
    settings = Settings()
    engine = create_engine(settings)
    try:
        await wait_for_database(engine, settings.db_connect_retries, settings.db_connect_delay)
        if settings.db_create_tables:
            await create_tables(engine)

        created = await ensure_admin(
            create_session_maker(engine), ADMIN_USERNAME, ADMIN_PASSWORD, settings.bcrypt_rounds
        )
        if created:
            print(f"Admin user created: {ADMIN_USERNAME}")
        else:
            print("Admin user already exists")
    finally:
        await engine.dispose()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    asyncio.run(create_admin())

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker

from app.auth import hash_password
from app.models.users import User
from app.utils import normalize_username

logger = logging.getLogger(__name__)


async def ensure_admin(
        session_maker: async_sessionmaker,
        username: str,
        password: str,
        bcrypt_rounds: int = 12,
) -> bool:
    """
    Creates the admin account unless a user with that username exists.
    Returns True when a new admin was created.
    """
    username = normalize_username(username)

    async with session_maker() as session:
        existing = await session.scalar(select(User).where(User.username == username))
        if existing:
            if existing.role != "admin":
                logger.warning("User %s exists but is not an admin; leaving it unchanged", username)
            return False

        admin = User(
            username=username,
            hashed_password=hash_password(password, bcrypt_rounds),
            role="admin",
        )
        session.add(admin)
        await session.commit()

    logger.info("Admin user created: %s", username)
    return True

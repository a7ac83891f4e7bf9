from typing import AsyncGenerator

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import Settings
from app.services.assets import AssetStorage


async def get_async_db(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """
    Yields a session from the application's pool and closes it after the request
    """
    async with request.app.state.session_maker() as session:
        yield session


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_assets(request: Request) -> AssetStorage:
    return request.app.state.assets

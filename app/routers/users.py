from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth import ensure_self_or_admin, get_current_user
from app.depends import get_assets, get_async_db
from app.models.books import Book as BookModel
from app.models.users import User as UserModel
from app.schemas.activity import Message
from app.schemas.catalog import Book as BookSchema
from app.schemas.users import Profile
from app.services.assets import AssetStorage, safe_delete
from app.utils import normalize_username

router = APIRouter(tags=["users"])


async def get_user_or_404(db: AsyncSession, username: str) -> UserModel:
    user = await db.scalar(
        select(UserModel).where(UserModel.username == normalize_username(username))
    )
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return user


@router.post("/favorite/{book_id}", response_model=Message)
async def set_favorite(
        book_id: int,
        current_user: UserModel = Depends(get_current_user),
        db: AsyncSession = Depends(get_async_db),
):
    """
    Makes a book the current user's favorite, replacing any previous one
    """
    book = await db.get(BookModel, book_id)
    if not book:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Book not found")

    current_user.favorite_book_id = book_id
    await db.commit()

    return Message(message="Book added to favorites")


@router.delete("/favorite", response_model=Message)
async def clear_favorite(
        current_user: UserModel = Depends(get_current_user),
        db: AsyncSession = Depends(get_async_db),
):
    """
    Removes the current user's favorite book
    """
    current_user.favorite_book_id = None
    await db.commit()

    return Message(message="Favorite cleared")


@router.get("/users/favorite", response_model=BookSchema | None)
async def get_favorite(
        username: str = Query(..., min_length=1),
        db: AsyncSession = Depends(get_async_db),
):
    """
    Returns the favorite book of a user, or null when none is set
    """
    user = await get_user_or_404(db, username)
    if user.favorite_book_id is None:
        return None

    return await db.scalar(
        select(BookModel).where(BookModel.id == user.favorite_book_id)
    )


@router.get("/get-profile", response_model=Profile)
async def get_profile(
        username: str | None = Query(None, description="Defaults to the current user"),
        current_user: UserModel = Depends(get_current_user),
        db: AsyncSession = Depends(get_async_db),
):
    """
    Returns a user's profile. Users may view their own, admins anyone's.
    """
    username = normalize_username(username) if username else current_user.username
    ensure_self_or_admin(current_user, username)

    return await get_user_or_404(db, username)


@router.post("/update-profile", response_model=Profile)
async def update_profile(
        username: str | None = Form(None),
        description: str | None = Form(None),
        profile_image: UploadFile | None = File(None),
        current_user: UserModel = Depends(get_current_user),
        db: AsyncSession = Depends(get_async_db),
        assets: AssetStorage = Depends(get_assets),
):
    """
    Updates the description and/or profile image of a user
    """
    username = normalize_username(username) if username else current_user.username
    ensure_self_or_admin(current_user, username)

    user = await get_user_or_404(db, username)

    if description is not None:
        user.description = description.strip()

    old_image = None
    if profile_image is not None and profile_image.filename:
        old_image = user.profile_image
        user.profile_image = await assets.upload(profile_image, "profiles")

    await db.commit()
    await safe_delete(assets, old_image)

    return user

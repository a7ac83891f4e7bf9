from fastapi import APIRouter, Depends, File, HTTPException, Query, Request, UploadFile, status
from sqlalchemy import func, select
from sqlalchemy.orm import selectinload
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth import get_current_admin
from app.depends import get_assets, get_async_db
from app.forms import parse_payload
from app.models.authors import Author as AuthorModel
from app.models.books import Book as BookModel
from app.models.users import User as UserModel
from app.schemas.activity import Message
from app.schemas.catalog import (
    Author as AuthorSchema,
    AuthorCreate,
    AuthorDetail,
    AuthorUpdate,
    Book as BookSchema,
    ImageUpdated,
    Total,
)
from app.services.assets import AssetStorage, safe_delete
from app.utils import like_pattern, title_case

router = APIRouter(
    prefix="/authors",
    tags=["authors"],
)


def _apply_search(stmt, search: str | None):
    if not search or not search.strip():
        return stmt
    return stmt.where(AuthorModel.name.ilike(like_pattern(search), escape="\\"))


async def get_author_or_404(db: AsyncSession, author_id: int) -> AuthorModel:
    author = await db.scalar(
        select(AuthorModel)
        .where(AuthorModel.id == author_id)
        .execution_options(populate_existing=True)
    )
    if not author:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Author not found"
        )
    return author


@router.get("", response_model=list[AuthorSchema])
async def list_authors(
        limit: int = Query(20, ge=1, le=100),
        offset: int = Query(0, ge=0),
        search: str | None = Query(None, description="Substring of the author name"),
        db: AsyncSession = Depends(get_async_db),
):
    """
    Returns a page of authors, newest first
    """
    result = await db.scalars(
        _apply_search(select(AuthorModel), search)
        .order_by(AuthorModel.id.desc())
        .limit(limit)
        .offset(offset)
    )
    return result.all()


@router.get("/count", response_model=Total)
async def count_authors(
        search: str | None = Query(None, description="Substring of the author name"),
        db: AsyncSession = Depends(get_async_db),
):
    """
    Returns the number of authors matching the same filter as the list endpoint
    """
    total = await db.scalar(
        _apply_search(select(func.count(AuthorModel.id)), search)
    )
    return Total(total=total or 0)


@router.get("/{author_id}", response_model=AuthorDetail)
async def get_author(author_id: int, db: AsyncSession = Depends(get_async_db)):
    """
    Returns an author together with their books
    """
    author = await db.scalar(
        select(AuthorModel)
        .where(AuthorModel.id == author_id)
        .options(selectinload(AuthorModel.books))
    )
    if not author:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Author not found"
        )

    return AuthorDetail(
        id=author.id,
        name=author.name,
        biography=author.biography,
        photo=author.photo,
        books=[BookSchema.model_validate(book) for book in sorted(author.books, key=lambda b: b.id, reverse=True)],
    )


@router.post("", response_model=AuthorSchema, status_code=status.HTTP_201_CREATED)
async def create_author(
        request: Request,
        admin: UserModel = Depends(get_current_admin),
        db: AsyncSession = Depends(get_async_db),
        assets: AssetStorage = Depends(get_assets),
):
    """
    Create an author from JSON, or from a multipart form with an optional author_image
    """
    data, image = await parse_payload(request, AuthorCreate, "author_image")

    author = AuthorModel(
        name=title_case(data.name),
        biography=data.biography,
        photo=await assets.upload(image, "authors") if image else None,
    )
    db.add(author)
    await db.commit()
    await db.refresh(author)

    return author


@router.put("/{author_id}", response_model=AuthorSchema)
async def update_author(
        author_id: int,
        request: Request,
        admin: UserModel = Depends(get_current_admin),
        db: AsyncSession = Depends(get_async_db),
        assets: AssetStorage = Depends(get_assets),
):
    """
    Partially update an author; only supplied fields are written
    """
    data, image = await parse_payload(request, AuthorUpdate, "author_image")
    author = await get_author_or_404(db, author_id)

    if data.name is not None:
        author.name = title_case(data.name)

    if "biography" in data.model_fields_set:
        author.biography = data.biography

    old_photo = None
    if image:
        old_photo = author.photo
        author.photo = await assets.upload(image, "authors")

    await db.commit()
    await safe_delete(assets, old_photo)

    return author


@router.delete("/{author_id}", response_model=Message)
async def delete_author(
        author_id: int,
        admin: UserModel = Depends(get_current_admin),
        db: AsyncSession = Depends(get_async_db),
        assets: AssetStorage = Depends(get_assets),
):
    """
    Deletes an author who has no books
    """
    author = await get_author_or_404(db, author_id)

    book_count = await db.scalar(
        select(func.count(BookModel.id)).where(BookModel.author_id == author_id)
    )
    if book_count:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Cannot delete author: {book_count} book(s) still reference this author"
        )

    photo = author.photo
    await db.delete(author)
    await db.commit()

    await safe_delete(assets, photo)

    return Message(message="Author deleted")


@router.post("/{author_id}/update", response_model=ImageUpdated)
async def update_author_image(
        author_id: int,
        author_image: UploadFile = File(...),
        admin: UserModel = Depends(get_current_admin),
        db: AsyncSession = Depends(get_async_db),
        assets: AssetStorage = Depends(get_assets),
):
    """
    Replaces the image of an author
    """
    author = await get_author_or_404(db, author_id)

    old_photo = author.photo
    author.photo = await assets.upload(author_image, "authors")
    await db.commit()

    await safe_delete(assets, old_photo)

    return ImageUpdated(photo=author.photo)

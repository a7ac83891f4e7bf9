from fastapi import APIRouter, Depends, File, HTTPException, Query, Request, UploadFile, status
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth import get_current_admin
from app.depends import get_assets, get_async_db
from app.forms import parse_payload
from app.models.authors import Author as AuthorModel
from app.models.books import Book as BookModel
from app.models.users import User as UserModel
from app.schemas.activity import Message
from app.schemas.catalog import (
    Book as BookSchema,
    BookCreate,
    BookCreated,
    BookUpdate,
    ImageUpdated,
    Total,
)
from app.services.assets import AssetStorage, safe_delete
from app.utils import like_pattern, title_case

router = APIRouter(
    prefix="/books",
    tags=["books"],
)


def _apply_search(stmt, search: str | None):
    if not search or not search.strip():
        return stmt
    pattern = like_pattern(search)
    return stmt.join(AuthorModel, BookModel.author_id == AuthorModel.id).where(
        or_(
            BookModel.title.ilike(pattern, escape="\\"),
            AuthorModel.name.ilike(pattern, escape="\\"),
        )
    )


async def fetch_book(db: AsyncSession, book_id: int) -> BookModel | None:
    """
    Loads a book with its author, refreshing any stale copy in the session
    """
    return await db.scalar(
        select(BookModel)
        .where(BookModel.id == book_id)
        .execution_options(populate_existing=True)
    )


async def get_book_or_404(db: AsyncSession, book_id: int) -> BookModel:
    book = await fetch_book(db, book_id)
    if not book:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Book not found"
        )
    return book


async def find_or_create_author(db: AsyncSession, name: str) -> tuple[AuthorModel, bool]:
    """
    Looks an author up by normalized name, so case never matters, creating it when missing.
    Returns the author and whether it was created.
    """
    name = title_case(name)
    author = await db.scalar(
        select(AuthorModel)
        .where(AuthorModel.name == name)
        .order_by(AuthorModel.id)
        .limit(1)
    )
    if author:
        return author, False

    author = AuthorModel(name=name)
    db.add(author)
    await db.flush()
    return author, True


async def _resolve_author(db: AsyncSession, author_id: int | None, author_name: str | None) -> tuple[int, bool]:
    """
    Returns the author id to store on a book; an explicit author_id wins over author_name
    """
    if author_id is None:
        author, created = await find_or_create_author(db, author_name)
        return author.id, created

    author = await db.get(AuthorModel, author_id)
    if not author:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Author not found"
        )
    return author.id, False


@router.get("", response_model=list[BookSchema])
async def list_books(
        limit: int = Query(20, ge=1, le=100),
        offset: int = Query(0, ge=0),
        search: str | None = Query(None, description="Substring of the title or author name"),
        db: AsyncSession = Depends(get_async_db),
):
    """
    Returns a page of books, newest first
    """
    stmt = _apply_search(select(BookModel), search)
    result = await db.scalars(
        stmt.order_by(BookModel.id.desc()).limit(limit).offset(offset)
    )
    return result.all()


@router.get("/count", response_model=Total)
async def count_books(
        search: str | None = Query(None, description="Substring of the title or author name"),
        db: AsyncSession = Depends(get_async_db),
):
    """
    Returns the number of books matching the same filter as the list endpoint
    """
    stmt = _apply_search(select(func.count(BookModel.id)).select_from(BookModel), search)
    total = await db.scalar(stmt)
    return Total(total=total or 0)


@router.get("/{book_id}", response_model=BookSchema)
async def get_book(book_id: int, db: AsyncSession = Depends(get_async_db)):
    """
    Returns a single book with its author name
    """
    return await get_book_or_404(db, book_id)


@router.post("", response_model=BookCreated, status_code=status.HTTP_201_CREATED)
async def create_book(
        request: Request,
        admin: UserModel = Depends(get_current_admin),
        db: AsyncSession = Depends(get_async_db),
        assets: AssetStorage = Depends(get_assets),
):
    """
    Create a book from JSON, or from a multipart form with an optional book_image.
    An unknown author_name creates the author.
    """
    data, image = await parse_payload(request, BookCreate, "book_image")

    author_id, author_created = await _resolve_author(db, data.author_id, data.author_name)

    photo = await assets.upload(image, "books") if image else None

    book = BookModel(
        title=title_case(data.title),
        author_id=author_id,
        description=data.description,
        photo=photo,
    )
    db.add(book)
    await db.commit()

    return BookCreated(
        book=BookSchema.model_validate(await get_book_or_404(db, book.id)),
        author_created=author_created,
    )


@router.put("/{book_id}", response_model=BookSchema)
async def update_book(
        book_id: int,
        request: Request,
        admin: UserModel = Depends(get_current_admin),
        db: AsyncSession = Depends(get_async_db),
        assets: AssetStorage = Depends(get_assets),
):
    """
    Partially update a book; only supplied fields are written
    """
    data, image = await parse_payload(request, BookUpdate, "book_image")
    book = await get_book_or_404(db, book_id)

    if data.author_name or data.author_id is not None:
        book.author_id, _ = await _resolve_author(db, data.author_id, data.author_name)

    if data.title is not None:
        book.title = title_case(data.title)

    if "description" in data.model_fields_set:
        book.description = data.description

    old_photo = None
    if image:
        old_photo = book.photo
        book.photo = await assets.upload(image, "books")

    await db.commit()
    await safe_delete(assets, old_photo)

    return await get_book_or_404(db, book_id)


@router.delete("/{book_id}", response_model=Message)
async def delete_book(
        book_id: int,
        admin: UserModel = Depends(get_current_admin),
        db: AsyncSession = Depends(get_async_db),
        assets: AssetStorage = Depends(get_assets),
):
    """
    Deletes a book together with its loans and reviews; favorites pointing at it are cleared
    """
    book = await get_book_or_404(db, book_id)
    photo = book.photo

    await db.delete(book)
    await db.commit()

    await safe_delete(assets, photo)

    return Message(message="Book deleted")


@router.post("/{book_id}/update", response_model=ImageUpdated)
async def update_book_image(
        book_id: int,
        book_image: UploadFile = File(...),
        admin: UserModel = Depends(get_current_admin),
        db: AsyncSession = Depends(get_async_db),
        assets: AssetStorage = Depends(get_assets),
):
    """
    Replaces the cover image of a book
    """
    book = await get_book_or_404(db, book_id)

    old_photo = book.photo
    book.photo = await assets.upload(book_image, "books")
    await db.commit()

    await safe_delete(assets, old_photo)

    return ImageUpdated(photo=book.photo)

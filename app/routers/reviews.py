from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth import get_current_user
from app.depends import get_async_db
from app.models.books import Book as BookModel
from app.models.loans import utcnow
from app.models.reviews import Review as ReviewModel
from app.models.users import User as UserModel
from app.schemas.activity import Message, Review as ReviewSchema, ReviewCreate

router = APIRouter(
    prefix="/reviews",
    tags=["reviews"],
)


async def fetch_review(db: AsyncSession, review_id: int) -> ReviewModel | None:
    return await db.scalar(
        select(ReviewModel)
        .where(ReviewModel.id == review_id)
        .execution_options(populate_existing=True)
    )


async def find_review(db: AsyncSession, user_id: int, book_id: int) -> ReviewModel | None:
    return await db.scalar(
        select(ReviewModel)
        .where(ReviewModel.user_id == user_id, ReviewModel.book_id == book_id)
        .with_for_update(of=ReviewModel)
    )


@router.get("", response_model=list[ReviewSchema])
async def list_reviews(
        book_id: int | None = Query(None, gt=0, description="Only reviews of this book"),
        db: AsyncSession = Depends(get_async_db),
):
    """
    Returns all reviews with reviewer and book title, newest first
    """
    stmt = select(ReviewModel)
    if book_id is not None:
        stmt = stmt.where(ReviewModel.book_id == book_id)

    result = await db.scalars(
        stmt.order_by(ReviewModel.created_at.desc(), ReviewModel.id.desc())
    )
    return result.all()


@router.post("", response_model=ReviewSchema, status_code=status.HTTP_201_CREATED)
async def submit_review(
        data: ReviewCreate,
        response: Response,
        current_user: UserModel = Depends(get_current_user),
        db: AsyncSession = Depends(get_async_db),
):
    """
    Reviews a book. A user keeps a single review per book:
    submitting again replaces the rating and comment (200), the first submission creates it (201).
    """
    book = await db.get(BookModel, data.book_id)
    if not book:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Book not found"
        )

    user_id = current_user.id
    review = await find_review(db, user_id, data.book_id)
    if review is None:
        review = ReviewModel(
            user_id=user_id,
            book_id=data.book_id,
            rating=data.rating,
            comment=data.comment,
        )
        db.add(review)
        try:
            await db.commit()
        except IntegrityError:
            # A concurrent submission created it first; update that one instead
            await db.rollback()
            review = await find_review(db, user_id, data.book_id)
            if review is None:
                raise
        else:
            return await fetch_review(db, review.id)

    review.rating = data.rating
    review.comment = data.comment
    review.created_at = utcnow()
    await db.commit()

    response.status_code = status.HTTP_200_OK
    return await fetch_review(db, review.id)


@router.delete("/{review_id}", response_model=Message)
async def delete_review(
        review_id: int,
        current_user: UserModel = Depends(get_current_user),
        db: AsyncSession = Depends(get_async_db),
):
    """
    Deletes a review; allowed for its author and for admins
    """
    review = await db.get(ReviewModel, review_id)
    if not review:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Review not found"
        )

    if review.user_id != current_user.id and current_user.role != "admin":
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Not enough permissions"
        )

    await db.delete(review)
    await db.commit()

    return Message(message="Review deleted")

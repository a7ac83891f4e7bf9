from datetime import datetime, timezone
from typing import Literal

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth import ensure_self_or_admin, get_current_user
from app.depends import get_async_db
from app.models.books import Book as BookModel
from app.models.loans import LOAN_ACTIVE, LOAN_RETURNED, Loan as LoanModel
from app.models.users import User as UserModel
from app.schemas.activity import Loan as LoanSchema
from app.utils import normalize_username

router = APIRouter(tags=["loans"])


def _already_rented() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_409_CONFLICT,
        detail="Book already rented by you"
    )


async def fetch_loan(db: AsyncSession, loan_id: int) -> LoanModel | None:
    return await db.scalar(
        select(LoanModel)
        .where(LoanModel.id == loan_id)
        .execution_options(populate_existing=True)
    )


async def find_active_loan(db: AsyncSession, user_id: int, book_id: int) -> int | None:
    return await db.scalar(
        select(LoanModel.id).where(
            LoanModel.user_id == user_id,
            LoanModel.book_id == book_id,
            LoanModel.status == LOAN_ACTIVE,
        )
    )


@router.post("/rent/{book_id}", response_model=LoanSchema, status_code=status.HTTP_201_CREATED)
async def rent_book(
        book_id: int,
        current_user: UserModel = Depends(get_current_user),
        db: AsyncSession = Depends(get_async_db),
):
    """
    Rents a book for the current user.
    Fails with 409 while the user already has an active loan for the same book.
    """
    book = await db.get(BookModel, book_id)
    if not book:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Book not found"
        )

    # Lock the borrower's row so concurrent rentals by the same user run one at a time
    await db.execute(
        select(UserModel.id)
        .where(UserModel.id == current_user.id)
        .with_for_update()
    )

    if await find_active_loan(db, current_user.id, book_id):
        raise _already_rented()

    loan = LoanModel(user_id=current_user.id, book_id=book_id, status=LOAN_ACTIVE)
    db.add(loan)
    try:
        await db.commit()
    except IntegrityError:
        # The partial unique index caught a concurrent duplicate
        await db.rollback()
        raise _already_rented()

    return await fetch_loan(db, loan.id)


@router.post("/return/{loan_id}", response_model=LoanSchema)
async def return_book(
        loan_id: int,
        current_user: UserModel = Depends(get_current_user),
        db: AsyncSession = Depends(get_async_db),
):
    """
    Marks a loan as returned. Only the borrower or an admin may return it.
    """
    loan = await db.scalar(
        select(LoanModel)
        .where(LoanModel.id == loan_id)
        .with_for_update(of=LoanModel)
    )
    if not loan:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Loan not found"
        )

    if loan.user_id != current_user.id and current_user.role != "admin":
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You can only return your own loans"
        )

    if loan.status == LOAN_RETURNED:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Loan already returned"
        )

    loan.status = LOAN_RETURNED
    loan.return_date = datetime.now(timezone.utc)
    await db.commit()

    return await fetch_loan(db, loan_id)


@router.get("/loans", response_model=list[LoanSchema])
async def list_loans(
        username: str | None = Query(None, description="Borrower; defaults to the current user"),
        loan_status: Literal["active", "returned", "all"] = Query("active", alias="status"),
        current_user: UserModel = Depends(get_current_user),
        db: AsyncSession = Depends(get_async_db),
):
    """
    Returns a user's loans joined with book details, newest first
    """
    username = normalize_username(username) if username else current_user.username
    ensure_self_or_admin(current_user, username)

    user = await db.scalar(select(UserModel).where(UserModel.username == username))
    if not user:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User not found"
        )

    stmt = select(LoanModel).where(LoanModel.user_id == user.id)
    if loan_status != "all":
        stmt = stmt.where(LoanModel.status == loan_status)

    result = await db.scalars(
        stmt.order_by(LoanModel.loan_date.desc(), LoanModel.id.desc())
    )
    return result.all()

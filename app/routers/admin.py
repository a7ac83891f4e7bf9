from typing import Literal

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models import Loan as LoanModel, User as UserModel
from app.models.loans import LOAN_ACTIVE
from app.schemas.admin import UserOut, UpdateUserRole
from app.depends import get_async_db
from app.auth import get_current_admin


router = APIRouter(
    prefix="/admin",
    tags=["admin"],
)


def _users_with_loan_counts():
    active_loans = (
        select(func.count(LoanModel.id))
        .where(LoanModel.user_id == UserModel.id, LoanModel.status == LOAN_ACTIVE)
        .correlate(UserModel)
        .scalar_subquery()
    )
    return select(UserModel, active_loans.label("active_loans"))


def _to_user_out(user: UserModel, active_loans: int) -> UserOut:
    return UserOut(
        id=user.id,
        username=user.username,
        role=user.role,
        favorite_book_id=user.favorite_book_id,
        created_at=user.created_at,
        active_loans=active_loans or 0,
    )


async def _get_user_or_404(db: AsyncSession, user_id: int) -> tuple[UserModel, int]:
    row = (await db.execute(
        _users_with_loan_counts()
        .where(UserModel.id == user_id)
    )).first()

    if not row:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User not found"
        )

    return row[0], row[1]


@router.get("/users", response_model=list[UserOut])
async def get_users(
        role: Literal["user", "admin"] | None = Query(None, description="Only users with this role"),
        admin: UserModel = Depends(get_current_admin),
        db: AsyncSession = Depends(get_async_db),
):
    """
    Returns all users with their number of books currently rented
    """
    stmt = _users_with_loan_counts()
    if role is not None:
        stmt = stmt.where(UserModel.role == role)

    result = await db.execute(stmt.order_by(UserModel.id))
    return [_to_user_out(user, active_loans) for user, active_loans in result.all()]


@router.get("/users/{user_id}", response_model=UserOut)
async def get_user(
        user_id: int,
        admin: UserModel = Depends(get_current_admin),
        db: AsyncSession = Depends(get_async_db),
):
    """
    Returns a specific user by user_id
    """
    return _to_user_out(*await _get_user_or_404(db, user_id))


@router.patch("/users/{user_id}", response_model=UserOut)
async def update_user(
        user_id: int,
        data: UpdateUserRole,
        admin: UserModel = Depends(get_current_admin),
        db: AsyncSession = Depends(get_async_db),
):
    """
    Promotes a user to admin or demotes an admin to user
    """
    user, active_loans = await _get_user_or_404(db, user_id)

    if user.id == admin.id and data.role != "admin":
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Admins cannot demote themselves"
        )

    user.role = data.role
    await db.commit()

    return _to_user_out(user, active_loans)


@router.delete("/users/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_user(
        user_id: int,
        admin: UserModel = Depends(get_current_admin),
        db: AsyncSession = Depends(get_async_db),
):
    """
    Deletes an account; its loans and reviews go with it
    """
    user, _ = await _get_user_or_404(db, user_id)

    if user.id == admin.id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Admins cannot delete their own account"
        )

    await db.delete(user)
    await db.commit()

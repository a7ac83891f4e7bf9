from datetime import datetime, timezone

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Index, Integer, String, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base

LOAN_ACTIVE = "active"
LOAN_RETURNED = "returned"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Loan(Base):
    """
    A book checked out by a user.
    Returning a loan keeps the row and flips its status, so history stays queryable.
    """
    __tablename__ = "loans"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
    book_id: Mapped[int] = mapped_column(ForeignKey("books.id", ondelete="CASCADE"), index=True, nullable=False)
    loan_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    return_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    status: Mapped[str] = mapped_column(String(16), default=LOAN_ACTIVE, nullable=False)

    book: Mapped["Book"] = relationship(lazy="joined")  # noqa: F821

    __table_args__ = (
        CheckConstraint("status IN ('active', 'returned')", name="ck_loan_status"),
        # One active loan per (user, book); returned loans are unrestricted
        Index(
            "uq_loan_active_user_book",
            "user_id",
            "book_id",
            unique=True,
            postgresql_where=text("status = 'active'"),
            sqlite_where=text("status = 'active'"),
        ),
    )

    @property
    def title(self) -> str | None:
        return self.book.title if self.book else None

    @property
    def photo(self) -> str | None:
        return self.book.photo if self.book else None

    @property
    def description(self) -> str | None:
        return self.book.description if self.book else None

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field, ConfigDict


class Loan(BaseModel):
    """
    A loan joined with the metadata of the rented book
    """
    id: int = Field(description="ID of the loan")
    book_id: int = Field(description="ID of the book")
    user_id: int = Field(description="ID of the borrower")
    loan_date: datetime = Field(description="When the book was rented")
    return_date: datetime | None = Field(None, description="When the book was returned")
    status: Literal["active", "returned"] = Field(description="Loan status")
    title: str | None = Field(None, description="Book title")
    photo: str | None = Field(None, description="Book cover")
    description: str | None = Field(None, description="Book description")

    model_config = ConfigDict(from_attributes=True)


class ReviewCreate(BaseModel):
    """
    Schema for submitting a review; resubmitting replaces the previous one
    """
    book_id: int = Field(..., gt=0, description="ID of the reviewed book")
    rating: int = Field(..., ge=1, le=5, description="Rating from 1 to 5")
    comment: str | None = Field(None, description="Review comment")


class Review(BaseModel):
    """
    A review joined with the reviewer and the reviewed book
    """
    id: int = Field(description="ID of the review")
    book_id: int = Field(description="ID of the book")
    user_id: int = Field(description="ID of the author of the review")
    rating: int = Field(description="Rating from 1 to 5")
    comment: str | None = Field(None, description="Review comment")
    created_at: datetime = Field(description="Last submitted at")
    username: str | None = Field(None, description="Username of the reviewer")
    book_title: str | None = Field(None, description="Title of the book")

    model_config = ConfigDict(from_attributes=True)


class Message(BaseModel):
    """
    Confirmation returned by actions without a resource body
    """
    message: str = Field(description="Human-readable outcome")

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field


class UserOut(BaseModel):
    """
    A user as seen by administrators
    """
    id: int = Field(description="ID of the user")
    username: str = Field(description="Username of the user")
    role: str = Field(description="Role of the user")
    favorite_book_id: int | None = Field(None, description="ID of the favorite book")
    active_loans: int = Field(0, description="Books the user currently has rented")
    created_at: datetime | None = Field(None, title="Created at")


class UpdateUserRole(BaseModel):
    role: Literal['user', 'admin'] = Field(..., description="New role of the user")

from datetime import datetime

from pydantic import BaseModel, Field, ConfigDict, field_validator, model_validator


def strip_or_none(value):
    """
    Trims strings and turns blank ones into None
    """
    if isinstance(value, str):
        value = value.strip()
        return value or None
    return value


class AuthorCreate(BaseModel):
    """
    Schema for creating an author
    """
    name: str = Field(..., min_length=1, max_length=255, description="Display name")
    biography: str | None = Field(None, description="Free-text biography")

    @field_validator("name", mode="before")
    @classmethod
    def strip_name(cls, value):
        return value.strip() if isinstance(value, str) else value


class AuthorUpdate(BaseModel):
    """
    Partial update of an author; only supplied fields are written
    """
    name: str | None = Field(None, min_length=1, max_length=255, description="Display name")
    biography: str | None = Field(None, description="Free-text biography")

    @field_validator("name", mode="before")
    @classmethod
    def strip_name(cls, value):
        return strip_or_none(value)


class Author(BaseModel):
    """
    Schema representing an author
    """
    id: int = Field(description="ID of the author")
    name: str = Field(description="Display name")
    biography: str | None = Field(None, description="Biography")
    photo: str | None = Field(None, description="Asset reference of the author image")

    model_config = ConfigDict(from_attributes=True)


class BookCreate(BaseModel):
    """
    Schema for creating a book.
    Either an existing author_id or an author_name (looked up or created) is required.
    """
    title: str = Field(..., min_length=1, max_length=255, description="Book title")
    author_id: int | None = Field(None, gt=0, description="ID of an existing author")
    author_name: str | None = Field(None, max_length=255, description="Author name to look up or create")
    description: str | None = Field(None, description="Book description")

    @field_validator("title", mode="before")
    @classmethod
    def strip_title(cls, value):
        return value.strip() if isinstance(value, str) else value

    @field_validator("author_id", "author_name", mode="before")
    @classmethod
    def blank_to_none(cls, value):
        return strip_or_none(value)

    @model_validator(mode="after")
    def require_author(self):
        if self.author_id is None and not self.author_name:
            raise ValueError("Author ID or author name is required")
        return self


class BookUpdate(BaseModel):
    """
    Partial update of a book; only supplied fields are written
    """
    title: str | None = Field(None, min_length=1, max_length=255, description="Book title")
    author_id: int | None = Field(None, gt=0, description="ID of an existing author")
    author_name: str | None = Field(None, max_length=255, description="Author name to look up or create")
    description: str | None = Field(None, description="Book description")

    @field_validator("title", "author_id", "author_name", mode="before")
    @classmethod
    def blank_to_none(cls, value):
        return strip_or_none(value)


class Book(BaseModel):
    """
    Schema representing a book together with its author name
    """
    id: int = Field(description="ID of the book")
    title: str = Field(description="Book title")
    author_id: int = Field(description="ID of the author")
    author_name: str | None = Field(None, description="Name of the author")
    description: str | None = Field(None, description="Book description")
    photo: str | None = Field(None, description="Asset reference of the cover image")
    created_at: datetime | None = Field(None, description="Created at")

    model_config = ConfigDict(from_attributes=True)


class BookCreated(BaseModel):
    """
    Result of creating a book, telling whether its author was created too
    """
    book: Book
    author_created: bool = Field(description="True when the author was created for this book")


class AuthorDetail(Author):
    """
    An author with all of their books, newest first
    """
    books: list[Book] = Field(default_factory=list, description="Books by this author")


class Total(BaseModel):
    """
    Number of records matching a filter
    """
    total: int = Field(description="Number of matching records")


class ImageUpdated(BaseModel):
    """
    Asset reference of a newly stored image
    """
    photo: str = Field(description="Asset reference of the new image")

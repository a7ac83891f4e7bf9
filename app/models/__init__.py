from app.models.users import User
from app.models.authors import Author
from app.models.books import Book
from app.models.loans import Loan
from app.models.reviews import Review

__all__ = ["User", "Author", "Book", "Loan", "Review"]

"""
Library Lending Models.

Pydantic models returned by the repositories and the coordinator:
- Book: a catalog title with its copy counts
- Loan: one lending of one copy to one user
- User: an account with a USER or ADMIN role
"""

from .book import Book
from .loan import BorrowedBook, Loan, LoanState
from .user import User, UserRole

__all__ = [
    "Book",
    "BorrowedBook",
    "Loan",
    "LoanState",
    "User",
    "UserRole",
]

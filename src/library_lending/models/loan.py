"""
Loan models for the Library Lending server.

A loan is created by a successful borrow and closed by a successful return.
Per (user, book) pair the lifecycle is::

    NONE --borrow--> ACTIVE --return--> NONE

Closed loans stay behind as audit history.
"""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator


class LoanState(str, Enum):
    """State of a (user, book) pair."""

    NONE = "none"
    ACTIVE = "active"


class Loan(BaseModel):
    """
    Represents a single lending of one copy of a book to one user.

    ``return_date`` is None while the loan is outstanding.
    """

    model_config = ConfigDict(from_attributes=True)

    id: str = Field(
        ...,
        description="Unique identifier for the loan record",
        pattern=r"^loan_[a-zA-Z0-9]{6,}$",
        examples=["loan_8c1e2f3a4b5d"],
    )

    user_id: str = Field(
        ...,
        description="ID of the user who borrowed the book",
        pattern=r"^user_[a-zA-Z0-9_]{6,}$",
    )

    book_id: str = Field(
        ...,
        description="ID of the borrowed book",
        pattern=r"^book_[a-zA-Z0-9_]{6,}$",
    )

    borrow_date: datetime = Field(
        default_factory=datetime.now,
        description="When the copy was lent out",
    )

    return_date: datetime | None = Field(
        None,
        description="When the copy came back; None while the loan is active",
    )

    @model_validator(mode="after")
    def validate_dates(self) -> "Loan":
        if self.return_date and self.return_date < self.borrow_date:
            raise ValueError("Return date cannot be before borrow date")
        return self

    @property
    def is_active(self) -> bool:
        return self.return_date is None

    @property
    def state(self) -> LoanState:
        return LoanState.ACTIVE if self.is_active else LoanState.NONE


class BorrowedBook(BaseModel):
    """An active loan joined with the title it lends, for "my books" listings."""

    loan_id: str
    book_id: str
    title: str
    author: str
    genre: str
    cover_image_url: str = ""
    borrow_date: datetime

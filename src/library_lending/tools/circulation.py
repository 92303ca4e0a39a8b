"""
Circulation tools for the Library Lending server.

1. borrow_book: lend a copy to a user
2. return_book: take a copy back
3. my_borrowed_books: list a user's outstanding loans

The caller's identity comes from the transport's token validation, which
happens before these handlers run. Handlers validate input, call the
lending coordinator and translate its outcome; they never raise.
"""

import logging
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from ..database.exceptions import NotFoundError, RepositoryException, TransientStoreError
from ..lending.coordinator import get_coordinator
from ..lending.outcomes import LendingErrorKind
from .responses import error_response, invalid_input, outcome_response, text_response

logger = logging.getLogger(__name__)


class LendingInput(BaseModel):
    """Input schema for borrow_book and return_book."""

    user_id: str = Field(
        ...,
        description="ID of the user borrowing or returning the book",
        pattern=r"^user_[a-zA-Z0-9_]{6,}$",
        examples=["user_5d6e7f8a9b0c"],
    )

    book_id: str = Field(
        ...,
        description="ID of the book",
        pattern=r"^book_[a-zA-Z0-9_]{6,}$",
        examples=["book_3f2a9c1d4e5b"],
    )


class BorrowedBooksInput(BaseModel):
    """Input schema for my_borrowed_books."""

    user_id: str = Field(
        ...,
        description="ID of the user whose loans to list",
        pattern=r"^user_[a-zA-Z0-9_]{6,}$",
    )


async def borrow_book_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    """Handler for the borrow_book tool."""
    try:
        params = LendingInput.model_validate(arguments)
    except ValidationError as e:
        logger.warning("Invalid borrow parameters: %s", e)
        return invalid_input(f"Invalid borrow parameters: {e}")

    outcome = get_coordinator().borrow(params.user_id, params.book_id)
    return outcome_response(outcome)


async def return_book_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    """Handler for the return_book tool."""
    try:
        params = LendingInput.model_validate(arguments)
    except ValidationError as e:
        logger.warning("Invalid return parameters: %s", e)
        return invalid_input(f"Invalid return parameters: {e}")

    outcome = get_coordinator().return_book(params.user_id, params.book_id)
    return outcome_response(outcome)


async def my_borrowed_books_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    """Handler for the my_borrowed_books tool."""
    try:
        params = BorrowedBooksInput.model_validate(arguments)
    except ValidationError as e:
        return invalid_input(f"Invalid parameters: {e}")

    try:
        borrowed = get_coordinator().borrowed_books(params.user_id)
    except NotFoundError as e:
        return error_response(str(e), LendingErrorKind.NOT_FOUND.value)
    except TransientStoreError as e:
        logger.warning("Listing borrowed books failed: %s", e)
        return error_response(str(e), LendingErrorKind.TRANSIENT.value, retryable=True)
    except RepositoryException as e:
        logger.exception("Listing borrowed books failed")
        return error_response(str(e), LendingErrorKind.TRANSIENT.value, retryable=True)

    return text_response(
        f"User {params.user_id} has {len(borrowed)} book(s) on loan",
        {"borrowed_books": [item.model_dump(mode="json") for item in borrowed]},
    )


borrow_book = {
    "name": "borrow_book",
    "description": (
        "Borrow a book for a user. Fails if the user already holds this book "
        "or if every copy is on loan."
    ),
    "inputSchema": LendingInput.model_json_schema(),
    "handler": borrow_book_handler,
}

return_book = {
    "name": "return_book",
    "description": "Return a book the user currently holds, freeing the copy for others.",
    "inputSchema": LendingInput.model_json_schema(),
    "handler": return_book_handler,
}

my_borrowed_books = {
    "name": "my_borrowed_books",
    "description": "List the books a user currently has on loan, with borrow dates.",
    "inputSchema": BorrowedBooksInput.model_json_schema(),
    "handler": my_borrowed_books_handler,
}

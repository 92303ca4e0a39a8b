"""
Catalog tools for the Library Lending server.

1. browse_catalog: search titles with their availability (any caller)
2. adjust_total_copies: change how many copies a title has (admins)
3. delete_book: remove a title that has nothing on loan (admins)
4. reconcile_inventory: re-derive borrowed counts from loan records (admins)

The admin capability check happens here, before the coordinator is called;
the lending core itself does not look at roles.
"""

import logging
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from ..database.book_repository import BookRepository, BookSearchParams
from ..database.exceptions import RepositoryException
from ..database.repository import PaginationParams
from ..database.session import get_session
from ..database.user_repository import UserRepository
from ..lending.coordinator import get_coordinator
from ..lending.outcomes import LendingErrorKind
from .responses import (
    error_response,
    invalid_input,
    outcome_response,
    permission_denied,
    text_response,
)

logger = logging.getLogger(__name__)

USER_ID_PATTERN = r"^user_[a-zA-Z0-9_]{6,}$"
BOOK_ID_PATTERN = r"^book_[a-zA-Z0-9_]{6,}$"


class BrowseCatalogInput(BaseModel):
    """Input schema for browse_catalog."""

    query: str | None = Field(
        default=None,
        description="Text matched against title and author",
        max_length=200,
    )
    genre: str | None = Field(default=None, description="Exact genre filter")
    available_only: bool = Field(default=False, description="Only titles with a free copy")
    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=20, ge=1, le=100)


class AdjustTotalCopiesInput(BaseModel):
    """Input schema for adjust_total_copies."""

    acting_user_id: str = Field(..., pattern=USER_ID_PATTERN)
    book_id: str = Field(..., pattern=BOOK_ID_PATTERN)
    total_copies: int = Field(..., description="New total number of copies")


class DeleteBookInput(BaseModel):
    """Input schema for delete_book."""

    acting_user_id: str = Field(..., pattern=USER_ID_PATTERN)
    book_id: str = Field(..., pattern=BOOK_ID_PATTERN)


class ReconcileInventoryInput(BaseModel):
    """Input schema for reconcile_inventory."""

    acting_user_id: str = Field(..., pattern=USER_ID_PATTERN)
    book_id: str | None = Field(
        default=None,
        pattern=BOOK_ID_PATTERN,
        description="Book to check; every book when omitted",
    )


def _is_admin(user_id: str) -> bool:
    with get_session() as session:
        return UserRepository(session).is_admin(user_id)


async def browse_catalog_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    """Handler for the browse_catalog tool."""
    try:
        params = BrowseCatalogInput.model_validate(arguments)
    except ValidationError as e:
        return invalid_input(f"Invalid search parameters: {e}")

    try:
        with get_session() as session:
            result = BookRepository(session).search(
                BookSearchParams(
                    query=params.query,
                    genre=params.genre,
                    available_only=params.available_only,
                ),
                PaginationParams(page=params.page, page_size=params.page_size),
            )
    except RepositoryException as e:
        logger.warning("Catalog search failed: %s", e)
        return error_response(str(e), LendingErrorKind.TRANSIENT.value, retryable=True)

    books = [
        {**book.model_dump(mode="json"), "available_copies": book.available_copies}
        for book in result.items
    ]
    return text_response(
        f"Found {result.total} book(s)",
        {
            "books": books,
            "pagination": {
                "page": result.page,
                "page_size": result.page_size,
                "total": result.total,
                "total_pages": result.total_pages,
                "has_next": result.has_next,
            },
        },
    )


async def adjust_total_copies_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    """Handler for the adjust_total_copies tool."""
    try:
        params = AdjustTotalCopiesInput.model_validate(arguments)
    except ValidationError as e:
        return invalid_input(f"Invalid parameters: {e}")

    try:
        if not _is_admin(params.acting_user_id):
            return permission_denied(params.acting_user_id)
    except RepositoryException as e:
        return error_response(str(e), LendingErrorKind.TRANSIENT.value, retryable=True)

    outcome = get_coordinator().adjust_total_copies(params.book_id, params.total_copies)
    return outcome_response(outcome)


async def delete_book_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    """Handler for the delete_book tool."""
    try:
        params = DeleteBookInput.model_validate(arguments)
    except ValidationError as e:
        return invalid_input(f"Invalid parameters: {e}")

    try:
        if not _is_admin(params.acting_user_id):
            return permission_denied(params.acting_user_id)
    except RepositoryException as e:
        return error_response(str(e), LendingErrorKind.TRANSIENT.value, retryable=True)

    outcome = get_coordinator().delete_book(params.book_id)
    return outcome_response(outcome)


async def reconcile_inventory_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    """Handler for the reconcile_inventory tool."""
    try:
        params = ReconcileInventoryInput.model_validate(arguments)
    except ValidationError as e:
        return invalid_input(f"Invalid parameters: {e}")

    try:
        if not _is_admin(params.acting_user_id):
            return permission_denied(params.acting_user_id)
    except RepositoryException as e:
        return error_response(str(e), LendingErrorKind.TRANSIENT.value, retryable=True)

    reports = get_coordinator().reconcile(params.book_id)
    corrected = sum(1 for report in reports if report.corrected)
    return text_response(
        f"Checked {len(reports)} book(s), corrected {corrected}",
        {"reports": [report.model_dump(mode="json") for report in reports]},
    )


browse_catalog = {
    "name": "browse_catalog",
    "description": "Search the catalog by title/author text and genre, showing available copies.",
    "inputSchema": BrowseCatalogInput.model_json_schema(),
    "handler": browse_catalog_handler,
}

adjust_total_copies = {
    "name": "adjust_total_copies",
    "description": (
        "Admin only. Set the total number of copies of a book. Refused if the new "
        "total is below the number of copies currently on loan."
    ),
    "inputSchema": AdjustTotalCopiesInput.model_json_schema(),
    "handler": adjust_total_copies_handler,
}

delete_book = {
    "name": "delete_book",
    "description": (
        "Admin only. Remove a book and its loan history. Refused while any copy is on loan."
    ),
    "inputSchema": DeleteBookInput.model_json_schema(),
    "handler": delete_book_handler,
}

reconcile_inventory = {
    "name": "reconcile_inventory",
    "description": (
        "Admin only. Recount active loans and repair cached borrowed counts that have drifted."
    ),
    "inputSchema": ReconcileInventoryInput.model_json_schema(),
    "handler": reconcile_inventory_handler,
}

"""
Typed results returned by the lending coordinator.

The coordinator never raises past its boundary. Every call produces a
``LendingOutcome`` and the request layer decides how to present it.
"""

from enum import Enum

from pydantic import BaseModel, Field

from ..models.book import Book
from ..models.loan import Loan


class LendingErrorKind(str, Enum):
    """Failure classification.

    NOT_FOUND and CONFLICT are final for the request. TRANSIENT may be
    retried. INVARIANT_VIOLATION means stored data contradicted the model.
    """

    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    INVALID_ARGUMENT = "invalid_argument"
    TRANSIENT = "transient"
    INVARIANT_VIOLATION = "invariant_violation"


class LendingOutcome(BaseModel):
    """Result of one coordinator operation."""

    ok: bool
    operation: str
    message: str = ""
    error: LendingErrorKind | None = None
    loan: Loan | None = None
    book: Book | None = None
    warning: LendingErrorKind | None = Field(
        default=None,
        description="Set when the operation succeeded but found inconsistent data",
    )
    warnings: list[str] = Field(default_factory=list)

    @property
    def retryable(self) -> bool:
        return self.error == LendingErrorKind.TRANSIENT

    @classmethod
    def success(
        cls,
        operation: str,
        message: str,
        loan: Loan | None = None,
        book: Book | None = None,
    ) -> "LendingOutcome":
        return cls(ok=True, operation=operation, message=message, loan=loan, book=book)

    @classmethod
    def failure(
        cls, operation: str, error: LendingErrorKind, message: str
    ) -> "LendingOutcome":
        return cls(ok=False, operation=operation, error=error, message=message)

    def flag(self, kind: LendingErrorKind, message: str) -> "LendingOutcome":
        """Attach a data-integrity warning to a successful outcome."""
        self.warning = kind
        self.warnings.append(message)
        return self


class ReconciliationReport(BaseModel):
    """Comparison of a book's cached borrowed count with its open loans."""

    book_id: str
    cached_count: int
    active_loans: int
    corrected: bool = False
    error: LendingErrorKind | None = None
    message: str = ""

    @property
    def drifted(self) -> bool:
        return self.cached_count != self.active_loans

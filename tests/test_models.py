"""Tests for the Pydantic models."""

from datetime import datetime, timedelta

import pytest
from pydantic import ValidationError

from library_lending.lending import LendingErrorKind, LendingOutcome, ReconciliationReport
from library_lending.models import Book, Loan, LoanState, User, UserRole


class TestBookModel:
    def test_available_copies(self):
        book = Book(
            id="book_gatsby_001",
            title="The Great Gatsby",
            author="F. Scott Fitzgerald",
            genre="Fiction",
            total_copies=3,
            borrowed_count=1,
        )

        assert book.available_copies == 2
        assert book.is_available
        assert not book.can_delete

    def test_fully_borrowed(self):
        book = Book(
            id="book_gatsby_001", title="T", author="A", genre="G", total_copies=1, borrowed_count=1
        )
        assert book.available_copies == 0
        assert not book.is_available

    def test_borrowed_cannot_exceed_total(self):
        with pytest.raises(ValidationError, match="cannot exceed"):
            Book(id="book_gatsby_001", title="T", author="A", genre="G", total_copies=1,
                 borrowed_count=2)

    @pytest.mark.parametrize("book_id", ["gatsby", "book_", "book_ab", "isbn_123456"])
    def test_invalid_id(self, book_id):
        with pytest.raises(ValidationError):
            Book(id=book_id, title="T", author="A", genre="G", total_copies=1)

    def test_negative_copies(self):
        with pytest.raises(ValidationError):
            Book(id="book_gatsby_001", title="T", author="A", genre="G", total_copies=-1)


class TestLoanModel:
    def test_active_loan(self):
        loan = Loan(id="loan_abc123def456", user_id="user_abc123", book_id="book_abc123")

        assert loan.is_active
        assert loan.state == LoanState.ACTIVE

    def test_closed_loan(self):
        borrowed = datetime(2024, 1, 1, 10, 0)
        loan = Loan(
            id="loan_abc123def456",
            user_id="user_abc123",
            book_id="book_abc123",
            borrow_date=borrowed,
            return_date=borrowed + timedelta(days=7),
        )

        assert not loan.is_active
        assert loan.state == LoanState.NONE

    def test_return_before_borrow(self):
        borrowed = datetime(2024, 1, 8)
        with pytest.raises(ValidationError, match="Return date"):
            Loan(
                id="loan_abc123def456",
                user_id="user_abc123",
                book_id="book_abc123",
                borrow_date=borrowed,
                return_date=borrowed - timedelta(days=1),
            )


class TestUserModel:
    def test_email_lowercased(self):
        user = User(id="user_abc123", name="Ada", email="Ada@Example.COM")
        assert user.email == "ada@example.com"
        assert user.role == UserRole.USER
        assert not user.is_admin

    def test_admin(self):
        user = User(id="user_abc123", name="Ada", email="ada@example.com", role="ADMIN")
        assert user.is_admin

    def test_invalid_email(self):
        with pytest.raises(ValidationError):
            User(id="user_abc123", name="Ada", email="not-an-email")


class TestOutcomes:
    def test_success(self):
        outcome = LendingOutcome.success("borrow", "Book borrowed successfully")

        assert outcome.ok
        assert outcome.error is None
        assert not outcome.retryable

    def test_only_transient_failures_are_retryable(self):
        for kind in LendingErrorKind:
            outcome = LendingOutcome.failure("borrow", kind, "failed")
            assert not outcome.ok
            assert outcome.retryable == (kind == LendingErrorKind.TRANSIENT)

    def test_flag_keeps_success(self):
        outcome = LendingOutcome.success("return", "Book returned successfully")
        outcome.flag(LendingErrorKind.INVARIANT_VIOLATION, "count already zero")

        assert outcome.ok
        assert outcome.warning == LendingErrorKind.INVARIANT_VIOLATION
        assert outcome.warnings == ["count already zero"]

    def test_report_drift(self):
        assert ReconciliationReport(book_id="book_abc123", cached_count=2, active_loans=1).drifted
        assert not ReconciliationReport(
            book_id="book_abc123", cached_count=1, active_loans=1
        ).drifted

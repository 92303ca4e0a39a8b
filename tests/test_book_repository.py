"""
Tests for the inventory ledger.

Ledger mutations flush without committing, so each test commits (or
rolls back) explicitly the way the coordinator does.
"""

import pytest
from sqlalchemy import update

from library_lending.database import (
    BookCreateSchema,
    BookRepository,
    ConflictError,
    InvalidArgumentError,
    InvariantViolationError,
    LoanRepository,
    NotFoundError,
    PaginationParams,
)
from library_lending.database.book_repository import BookSearchParams
from library_lending.database.schema import Book as BookDB


@pytest.fixture
def books(test_db_session):
    return BookRepository(test_db_session)


class TestCatalog:
    """Adding and finding titles."""

    def test_create_book(self, books):
        book = books.create(
            BookCreateSchema(title="Dune", author="Frank Herbert", genre="Sci-Fi", total_copies=2)
        )

        assert book.id.startswith("book_")
        assert book.total_copies == 2
        assert book.borrowed_count == 0
        assert book.available_copies == 2
        assert book.is_available is True

    def test_create_rejects_negative_copies(self):
        with pytest.raises(ValueError):
            BookCreateSchema(title="T", author="A", genre="G", total_copies=-1)

    def test_require_missing_book(self, books):
        with pytest.raises(NotFoundError, match="book_missing00 not found"):
            books.require("book_missing00")

    def test_get_all_and_exists(self, books, sample_books):
        assert len(books.get_all()) == len(sample_books)
        page = books.get_all(PaginationParams(page=1, page_size=2), order_by="title")
        assert [book.title for book in page.items] == ["Dune", "Out of Print"]
        assert books.exists(sample_books[0].id)
        assert not books.exists("book_missing00")

    def test_search_by_text(self, books, sample_books):
        result = books.search(BookSearchParams(query="herbert"))
        assert [book.title for book in result.items] == ["Dune"]

    def test_search_by_genre(self, books, sample_books):
        result = books.search(BookSearchParams(genre="History"))
        assert {book.title for book in result.items} == {"Sapiens", "Out of Print"}

    def test_search_available_only(self, books, sample_books):
        result = books.search(BookSearchParams(genre="History", available_only=True))
        assert [book.title for book in result.items] == ["Sapiens"]

    def test_search_pagination(self, books, sample_books):
        result = books.search(BookSearchParams(), PaginationParams(page=2, page_size=3))

        assert result.total == 4
        assert len(result.items) == 1
        assert result.total_pages == 2
        assert result.has_next is False
        assert result.has_previous is True

    def test_invalid_pagination(self, books):
        with pytest.raises(InvalidArgumentError):
            books.search(BookSearchParams(), PaginationParams(page=0))


class TestLedgerCounters:
    """Conditional borrowed-count updates."""

    def test_increment_until_exhausted(self, books, test_db_session, make_book):
        book = make_book(total_copies=2)

        assert books.increment_borrowed(book.id).borrowed_count == 1
        assert books.increment_borrowed(book.id).borrowed_count == 2
        with pytest.raises(ConflictError, match="No copies"):
            books.increment_borrowed(book.id)
        test_db_session.commit()

        assert books.available_copies(book.id) == 0

    def test_increment_zero_copy_book(self, books, make_book):
        book = make_book(total_copies=0)
        with pytest.raises(ConflictError):
            books.increment_borrowed(book.id)

    def test_increment_missing_book(self, books):
        with pytest.raises(NotFoundError):
            books.increment_borrowed("book_missing00")

    def test_decrement(self, books, test_db_session, make_book):
        book = make_book(total_copies=2)
        books.increment_borrowed(book.id)

        assert books.decrement_borrowed(book.id).borrowed_count == 0

    def test_decrement_below_zero_refused(self, books, make_book):
        book = make_book(total_copies=2)
        with pytest.raises(InvariantViolationError):
            books.decrement_borrowed(book.id)
        assert books.require(book.id).borrowed_count == 0

    def test_uncommitted_changes_roll_back(self, books, test_db_session, make_book, read_book):
        book = make_book(total_copies=1)
        books.increment_borrowed(book.id)
        test_db_session.rollback()

        assert read_book(book.id).borrowed_count == 0

    def test_set_borrowed_count(self, books, make_book):
        book = make_book(total_copies=3)
        assert books.set_borrowed_count(book.id, 2).borrowed_count == 2

    def test_set_borrowed_count_above_total(self, books, make_book):
        book = make_book(total_copies=1)
        with pytest.raises(InvariantViolationError):
            books.set_borrowed_count(book.id, 2)


class TestAdjustTotalCopies:
    """Administrative copy-count changes."""

    def test_grow_and_shrink(self, books, make_book):
        book = make_book(total_copies=2)

        assert books.adjust_total_copies(book.id, 5).total_copies == 5
        assert books.adjust_total_copies(book.id, 0).total_copies == 0

    def test_cannot_drop_below_borrowed(self, books, make_book):
        book = make_book(total_copies=3)
        books.increment_borrowed(book.id)
        books.increment_borrowed(book.id)

        with pytest.raises(ConflictError) as exc_info:
            books.adjust_total_copies(book.id, 1)
        assert str(exc_info.value) == (
            "Cannot set total copies (1) less than currently borrowed copies (2)."
        )
        assert books.adjust_total_copies(book.id, 2).available_copies == 0

    def test_negative_total(self, books, make_book):
        book = make_book(total_copies=1)
        with pytest.raises(InvalidArgumentError):
            books.adjust_total_copies(book.id, -1)

    def test_missing_book(self, books):
        with pytest.raises(NotFoundError):
            books.adjust_total_copies("book_missing00", 3)


class TestDeleteBook:
    """Deletion guard."""

    def test_delete_unborrowed_book(self, books, test_db_session, make_book, read_book):
        book = make_book(total_copies=2)

        assert books.delete_book(book.id) == 0
        test_db_session.commit()

        assert read_book(book.id) is None

    def test_delete_removes_closed_history(self, books, test_db_session, make_book, alice):
        book = make_book(total_copies=1)
        loans = LoanRepository(test_db_session)
        loans.open_loan(alice.id, book.id)
        loans.close_loan(alice.id, book.id)
        test_db_session.commit()

        assert books.delete_book(book.id) == 1
        test_db_session.commit()
        assert loans.loan_history(book_id=book.id).total == 0

    def test_delete_borrowed_book_refused(self, books, make_book):
        book = make_book(total_copies=2)
        books.increment_borrowed(book.id)

        with pytest.raises(ConflictError, match="currently borrowed"):
            books.delete_book(book.id)

    def test_delete_refused_with_open_loan_even_if_counter_drifted(
        self, books, test_db_session, make_book, alice
    ):
        book = make_book(total_copies=1)
        LoanRepository(test_db_session).open_loan(alice.id, book.id)
        # Counter says nothing is out, the registry disagrees
        test_db_session.execute(
            update(BookDB).where(BookDB.id == book.id).values(borrowed_count=0)
        )

        with pytest.raises(ConflictError):
            books.delete_book(book.id)

    def test_delete_missing_book(self, books):
        with pytest.raises(NotFoundError):
            books.delete_book("book_missing00")

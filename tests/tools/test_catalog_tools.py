"""
Tests for the catalog tools.

Administrative tools check the acting user's role before touching the
lending core; browsing is open to everyone.
"""

import pytest
from sqlalchemy import text

from library_lending.tools.catalog import (
    adjust_total_copies_handler,
    browse_catalog_handler,
    delete_book_handler,
    reconcile_inventory_handler,
)
from library_lending.tools.circulation import borrow_book_handler


@pytest.fixture(autouse=True)
def server(lending_server):
    return lending_server


class TestBrowseCatalogTool:
    async def test_browse_all(self, sample_books):
        result = await browse_catalog_handler({})

        assert result["data"]["pagination"]["total"] == len(sample_books)
        titles = [book["title"] for book in result["data"]["books"]]
        assert titles == sorted(titles)

    async def test_browse_available_only(self, sample_books):
        result = await browse_catalog_handler({"genre": "History", "available_only": True})

        [book] = result["data"]["books"]
        assert book["title"] == "Sapiens"
        assert book["available_copies"] == 4

    async def test_browse_text_query(self, sample_books):
        result = await browse_catalog_handler({"query": "gatsby"})
        assert [book["title"] for book in result["data"]["books"]] == ["The Great Gatsby"]

    async def test_invalid_page(self):
        result = await browse_catalog_handler({"page": 0})
        assert result["error"]["kind"] == "invalid_argument"


class TestAdjustTotalCopiesTool:
    async def test_admin_adjusts(self, admin, make_book):
        book = make_book(total_copies=1)

        result = await adjust_total_copies_handler(
            {"acting_user_id": admin.id, "book_id": book.id, "total_copies": 5}
        )

        assert not result.get("isError")
        assert result["data"]["book"]["total_copies"] == 5

    async def test_regular_user_forbidden(self, alice, make_book):
        book = make_book(total_copies=1)

        result = await adjust_total_copies_handler(
            {"acting_user_id": alice.id, "book_id": book.id, "total_copies": 5}
        )

        assert result["error"]["kind"] == "forbidden"

    async def test_below_borrowed(self, admin, alice, make_book):
        book = make_book(total_copies=2)
        await borrow_book_handler({"user_id": alice.id, "book_id": book.id})

        result = await adjust_total_copies_handler(
            {"acting_user_id": admin.id, "book_id": book.id, "total_copies": 0}
        )

        assert result["error"]["kind"] == "conflict"
        assert result["content"][0]["text"] == (
            "Cannot set total copies (0) less than currently borrowed copies (1)."
        )


class TestDeleteBookTool:
    async def test_admin_deletes(self, admin, make_book):
        book = make_book(total_copies=1)

        result = await delete_book_handler({"acting_user_id": admin.id, "book_id": book.id})

        assert not result.get("isError")
        catalog = await browse_catalog_handler({})
        assert catalog["data"]["books"] == []

    async def test_borrowed_book_refused(self, admin, alice, single_copy_book):
        await borrow_book_handler({"user_id": alice.id, "book_id": single_copy_book.id})

        result = await delete_book_handler(
            {"acting_user_id": admin.id, "book_id": single_copy_book.id}
        )

        assert result["error"]["kind"] == "conflict"

    async def test_unknown_acting_user_forbidden(self, single_copy_book):
        result = await delete_book_handler(
            {"acting_user_id": "user_missing00", "book_id": single_copy_book.id}
        )
        assert result["error"]["kind"] == "forbidden"


class TestReconcileInventoryTool:
    async def test_repairs_drift(self, server, admin, alice, single_copy_book):
        await borrow_book_handler({"user_id": alice.id, "book_id": single_copy_book.id})
        with server.session_scope() as session:
            session.execute(
                text("UPDATE books SET borrowed_count = 0 WHERE id = :id"),
                {"id": single_copy_book.id},
            )

        result = await reconcile_inventory_handler(
            {"acting_user_id": admin.id, "book_id": single_copy_book.id}
        )

        assert result["content"][0]["text"] == "Checked 1 book(s), corrected 1"
        [report] = result["data"]["reports"]
        assert report["active_loans"] == 1
        assert report["corrected"] is True

    async def test_regular_user_forbidden(self, alice):
        result = await reconcile_inventory_handler({"acting_user_id": alice.id})
        assert result["error"]["kind"] == "forbidden"

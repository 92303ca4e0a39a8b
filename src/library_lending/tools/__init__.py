"""
MCP Tools for the Library Lending server.

Each tool is a dictionary with a name, description, JSON input schema and
async handler. The server registers every entry of ``all_tools``.
"""

from .catalog import adjust_total_copies, browse_catalog, delete_book, reconcile_inventory
from .circulation import borrow_book, my_borrowed_books, return_book

all_tools = [
    browse_catalog,
    borrow_book,
    return_book,
    my_borrowed_books,
    adjust_total_copies,
    delete_book,
    reconcile_inventory,
]

__all__ = [
    "adjust_total_copies",
    "all_tools",
    "borrow_book",
    "browse_catalog",
    "delete_book",
    "my_borrowed_books",
    "reconcile_inventory",
    "return_book",
]

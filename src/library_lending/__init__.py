"""
Library Lending Package.

Borrow/return core of a library-management system, served over MCP.

Key Components:
- models: Pydantic models for books, loans and users
- database: SQLAlchemy schema, sessions, ledger and registry repositories
- lending: the coordinator that keeps ledger and registry consistent
- tools: MCP tools that front the coordinator
- config: Configuration management with Pydantic v2
"""

__version__ = "0.1.0"

from . import database

__all__ = [
    "__version__",
    "database",
]

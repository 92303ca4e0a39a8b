"""Library Lending MCP Server.

Serves the lending core over the Model Context Protocol. Clients discover
the catalog with ``browse_catalog``, lend and take back copies with
``borrow_book``/``return_book``, and administrators maintain copy counts
with the catalog tools.

Startup sequence:
1. Load configuration and configure logging (stderr, stdout is the transport)
2. Initialize observability
3. Create the schema if needed and verify the database
4. Register tools and run the stdio transport
"""

import logging
import signal
import sys
from typing import Any

from fastmcp import FastMCP

from .config import LendingConfig, get_config
from .database.session import get_db_manager
from .lending.coordinator import get_coordinator
from .observability import initialize_observability
from .tools import all_tools

logger = logging.getLogger(__name__)


def configure_logging(config: LendingConfig) -> None:
    """Send log records to stderr, keeping stdout clean for stdio transport."""
    logging.basicConfig(
        level=logging.DEBUG if config.debug else getattr(logging, config.log_level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stderr)],
    )
    if not config.is_development:
        logging.getLogger("fastmcp").setLevel(logging.WARNING)


def create_server(config: LendingConfig | None = None) -> FastMCP:
    """Build the FastMCP server and register every lending tool."""
    config = config or get_config()

    mcp = FastMCP(
        name=config.server_name,
        instructions=(
            "Library Lending MCP Server - borrow and return books with per-title "
            "copy limits. Use browse_catalog to find books, borrow_book and "
            "return_book to lend copies, my_borrowed_books to list a user's loans. "
            "Administrators can adjust copy counts, delete books and reconcile "
            "inventory."
        ),
    )

    for tool in all_tools:
        logger.debug("Registering tool: %s", tool["name"])
        mcp.tool(
            name=tool["name"],
            description=tool["description"],
        )(tool["handler"])

    logger.info("Registered %d tools", len(all_tools))
    return mcp


def prepare_database() -> None:
    """Create missing tables and fail loudly if the store is unreachable."""
    db_manager = get_db_manager()
    db_manager.init_database()
    if not db_manager.verify_connection():
        raise RuntimeError(f"Database at {db_manager.database_url} is not reachable")

    # Repair any borrowed-count drift left by an earlier crash
    for report in get_coordinator().reconcile():
        if report.corrected:
            logger.warning("Startup reconciliation corrected book %s", report.book_id)


def run_stdio_server(mcp: FastMCP, config: LendingConfig) -> None:
    """Run the MCP server using stdio transport."""
    logger.info("Starting %s v%s on stdio transport", config.server_name, config.server_version)

    def signal_handler(signum: int, _frame: Any) -> None:
        logger.info("Received signal %s, initiating shutdown...", signum)
        get_db_manager().close()
        sys.exit(0)

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    try:
        logger.info("MCP Server ready and waiting for connections...")
        mcp.run(transport="stdio")
    except Exception:
        logger.exception("Fatal error in MCP server")
        sys.exit(1)


def main() -> None:
    """Entry point for ``library-lending``."""
    config = get_config()
    configure_logging(config)

    try:
        logger.info("=" * 60)
        logger.info("Library Lending MCP Server")
        logger.info("Version: %s", config.server_version)
        logger.info("Transport: %s", config.transport)
        logger.info("Debug Mode: %s", config.debug)
        logger.info("=" * 60)

        initialize_observability()
        prepare_database()
        mcp = create_server(config)

        if config.transport == "stdio":
            run_stdio_server(mcp, config)
        else:
            logger.error("Unsupported transport: %s", config.transport)
            sys.exit(1)

    except KeyboardInterrupt:
        logger.info("Server stopped by user")
    except Exception:
        logger.exception("Failed to start MCP server")
        sys.exit(1)


if __name__ == "__main__":
    main()

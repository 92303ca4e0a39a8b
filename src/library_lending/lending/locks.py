"""
Per-book critical sections.

Requests touching the same book run one at a time inside this process;
requests on different books do not wait for each other. Waiting is bounded.
"""

import logging
import threading
from collections.abc import Generator
from contextlib import contextmanager

from ..database.exceptions import TransientStoreError

logger = logging.getLogger(__name__)


class LockTimeoutError(TransientStoreError):
    """Raised when a book's lock could not be acquired in time."""


class BookLockRegistry:
    """Hands out one lock per book id, created on first use."""

    def __init__(self, timeout: float = 10.0):
        self.timeout = timeout
        self._locks: dict[str, threading.Lock] = {}
        self._guard = threading.Lock()

    def lock_for(self, book_id: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(book_id)
            if lock is None:
                lock = self._locks[book_id] = threading.Lock()
            return lock

    @contextmanager
    def hold(self, book_id: str) -> Generator[None, None, None]:
        """
        Hold the book's lock for the duration of the block.

        Raises:
            LockTimeoutError: If the lock is still busy after ``timeout`` seconds
        """
        lock = self.lock_for(book_id)
        if not lock.acquire(timeout=self.timeout):
            logger.warning("Timed out after %.1fs waiting for book %s", self.timeout, book_id)
            raise LockTimeoutError(f"Book {book_id} is busy, try again")
        try:
            yield
        finally:
            lock.release()

    def __len__(self) -> int:
        return len(self._locks)

"""
Lending core: the coordinator that keeps the inventory ledger and the loan
registry consistent under concurrent borrow/return requests.
"""

from .coordinator import LendingCoordinator, get_coordinator, reset_coordinator
from .locks import BookLockRegistry, LockTimeoutError
from .outcomes import LendingErrorKind, LendingOutcome, ReconciliationReport

__all__ = [
    "BookLockRegistry",
    "LendingCoordinator",
    "LendingErrorKind",
    "LendingOutcome",
    "LockTimeoutError",
    "ReconciliationReport",
    "get_coordinator",
    "reset_coordinator",
]

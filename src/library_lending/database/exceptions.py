"""
Exceptions raised by the lending data layer.

Repositories raise these; the lending coordinator catches them at its
boundary and turns them into typed outcomes.
"""


class RepositoryException(Exception):
    """Base exception for repository operations."""


class NotFoundError(RepositoryException):
    """Raised when an entity (book, user, active loan) is not found."""


class ConflictError(RepositoryException):
    """Raised when an operation would violate a lending invariant."""


class DuplicateError(ConflictError):
    """Raised when attempting to create a duplicate entity."""


class InvalidArgumentError(RepositoryException):
    """Raised when an argument is outside its legal range."""


class InvariantViolationError(RepositoryException):
    """Raised when stored data contradicts the model's guarantees."""


class TransientStoreError(RepositoryException):
    """Raised when the store is unavailable or timed out. Safe to retry."""

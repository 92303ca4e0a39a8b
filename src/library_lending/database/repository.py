"""
Repository pattern implementation for the Library Lending server.

Repositories keep SQL out of the lending coordinator and the tool layer:

1. **Separation**: the coordinator composes repository calls inside one
   transaction without knowing any SQL
2. **Testability**: each repository can be exercised against a throwaway
   SQLite database
3. **Consistency**: every query goes through ``safe_query``/``safe_commit`` so
   storage failures surface as classified repository exceptions
4. **Serialization**: methods return Pydantic models

The base repository provides the shared read/create operations. Specialized
repositories add the ledger and registry operations.
"""

from abc import ABC, abstractmethod
from typing import Generic, TypeVar
from uuid import UUID, uuid4

from pydantic import BaseModel
from sqlalchemy import asc, desc, func, select
from sqlalchemy.orm import Session

from ..database.schema import Base
from ..database.session import safe_query
from .exceptions import (
    ConflictError,
    DuplicateError,
    InvalidArgumentError,
    InvariantViolationError,
    NotFoundError,
    RepositoryException,
    TransientStoreError,
)

# Type variables for generic repository
ModelType = TypeVar("ModelType", bound=Base)
CreateSchemaType = TypeVar("CreateSchemaType", bound=BaseModel)
ResponseSchemaType = TypeVar("ResponseSchemaType", bound=BaseModel)

__all__ = [
    "BaseRepository",
    "ConflictError",
    "DuplicateError",
    "InvalidArgumentError",
    "InvariantViolationError",
    "NotFoundError",
    "PaginatedResponse",
    "PaginationParams",
    "RepositoryException",
    "TransientStoreError",
]


class PaginationParams(BaseModel):
    """Standard pagination parameters for list operations."""

    page: int = 1
    page_size: int = 20

    @property
    def offset(self) -> int:
        """Calculate offset for SQL queries."""
        return (self.page - 1) * self.page_size

    def validate_params(self) -> None:
        """Validate pagination parameters."""
        if self.page < 1:
            raise InvalidArgumentError("Page must be >= 1")
        if self.page_size < 1 or self.page_size > 100:
            raise InvalidArgumentError("Page size must be between 1 and 100")


class PaginatedResponse(BaseModel, Generic[ResponseSchemaType]):
    """Standard paginated response for list operations."""

    items: list[ResponseSchemaType]
    total: int
    page: int
    page_size: int
    total_pages: int
    has_next: bool
    has_previous: bool

    @classmethod
    def build(
        cls, items: list, total: int, pagination: PaginationParams
    ) -> "PaginatedResponse":
        return cls(
            items=items,
            total=total,
            page=pagination.page,
            page_size=pagination.page_size,
            total_pages=(total + pagination.page_size - 1) // pagination.page_size,
            has_next=pagination.page * pagination.page_size < total,
            has_previous=pagination.page > 1,
        )


class BaseRepository(ABC, Generic[ModelType, CreateSchemaType, ResponseSchemaType]):
    """
    Abstract base repository providing common read and create operations.

    Subclasses name their SQLAlchemy model, their response schema and the
    prefix used for generated identifiers.
    """

    id_prefix: str = ""

    def __init__(self, session: Session):
        """Initialize repository with database session."""
        self.session = session

    @property
    @abstractmethod
    def model_class(self) -> type[ModelType]:
        """Return the SQLAlchemy model class."""

    @property
    @abstractmethod
    def response_schema(self) -> type[ResponseSchemaType]:
        """Return the Pydantic response schema."""

    def _to_response_model(self, db_obj: ModelType) -> ResponseSchemaType:
        """Convert database model to Pydantic response model."""
        return self.response_schema.model_validate(db_obj, from_attributes=True)

    def _generate_id(self) -> str:
        """Generate a prefixed identifier such as ``book_3f2a9c1d4e5b``."""
        return f"{self.id_prefix}_{uuid4().hex[:12]}"

    def _get_db_obj(self, id: UUID | str) -> ModelType | None:
        query = (
            select(self.model_class)
            .where(self.model_class.id == str(id))
            .execution_options(populate_existing=True)
        )
        return safe_query(
            self.session,
            lambda s: s.execute(query).scalar_one_or_none(),
            f"Failed to get {self.model_class.__name__} by ID",
        )

    def get_by_id(self, id: UUID | str) -> ResponseSchemaType | None:
        """
        Get entity by ID.

        Args:
            id: Entity ID (UUID or string)

        Returns:
            Pydantic model or None if not found
        """
        db_obj = self._get_db_obj(id)
        if db_obj is None:
            return None
        return self._to_response_model(db_obj)

    def require(self, id: UUID | str) -> ResponseSchemaType:
        """Get entity by ID or raise NotFoundError."""
        entity = self.get_by_id(id)
        if entity is None:
            raise NotFoundError(f"{self.model_class.__name__} {id} not found")
        return entity

    def get_all(
        self,
        pagination: PaginationParams | None = None,
        order_by: str | None = None,
        order_desc: bool = False,
    ) -> list[ResponseSchemaType] | PaginatedResponse[ResponseSchemaType]:
        """
        Get all entities with optional pagination and sorting.

        Args:
            pagination: Pagination parameters
            order_by: Field name to order by
            order_desc: Whether to order descending

        Returns:
            List of entities or paginated response
        """
        query = select(self.model_class)

        if order_by and hasattr(self.model_class, order_by):
            order_field = getattr(self.model_class, order_by)
            query = query.order_by(desc(order_field) if order_desc else asc(order_field))

        if pagination:
            pagination.validate_params()

            count_query = select(func.count()).select_from(self.model_class)
            total = (
                safe_query(
                    self.session,
                    lambda s: s.execute(count_query).scalar(),
                    "Failed to get total count",
                )
                or 0
            )

            query = query.offset(pagination.offset).limit(pagination.page_size)
            results = safe_query(
                self.session,
                lambda s: s.execute(query).scalars().all(),
                "Failed to get paginated results",
            )

            items = [self._to_response_model(item) for item in results]
            return PaginatedResponse.build(items, total, pagination)

        results = safe_query(
            self.session, lambda s: s.execute(query).scalars().all(), "Failed to get all results"
        )
        return [self._to_response_model(item) for item in results]

    def exists(self, id: UUID | str) -> bool:
        """Check if entity exists by ID."""
        query = (
            select(func.count()).select_from(self.model_class).where(self.model_class.id == str(id))
        )
        count = safe_query(
            self.session, lambda s: s.execute(query).scalar(), "Failed to check existence"
        )
        return count > 0

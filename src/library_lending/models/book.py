"""
Book model for the Library Lending server.

This model is the ledger view of a title: its metadata plus the total and
borrowed copy counts. Metadata is opaque to the lending core; only the
counts take part in its invariants.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, model_validator


class Book(BaseModel):
    """
    Represents a title in the library catalog.

    ``borrowed_count`` always lies between zero and ``total_copies``.
    """

    model_config = ConfigDict(from_attributes=True)

    id: str = Field(
        ...,
        description="Unique identifier for the book",
        pattern=r"^book_[a-zA-Z0-9_]{6,}$",
        examples=["book_3f2a9c1d4e5b", "book_gatsby_001"],
    )

    title: str = Field(
        ...,
        description="The title of the book",
        min_length=1,
        max_length=500,
        examples=["The Great Gatsby", "To Kill a Mockingbird"],
    )

    author: str = Field(
        ...,
        description="Author name as displayed in the catalog",
        min_length=1,
        max_length=200,
    )

    genre: str = Field(
        ...,
        description="Literary genre or category of the book",
        min_length=1,
        max_length=100,
        examples=["Fiction", "Science Fiction", "Biography"],
    )

    cover_image_url: str = Field(
        default="",
        description="Cover image URL, empty when the library has none",
        max_length=500,
    )

    total_copies: int = Field(
        ...,
        description="Total number of copies owned by the library",
        ge=0,
        examples=[0, 1, 3, 10],
    )

    borrowed_count: int = Field(
        default=0,
        description="Number of copies currently out on loan",
        ge=0,
    )

    created_at: datetime | None = None
    updated_at: datetime | None = None

    @model_validator(mode="after")
    def validate_counts(self) -> "Book":
        if self.borrowed_count > self.total_copies:
            raise ValueError(
                f"Borrowed count ({self.borrowed_count}) cannot exceed "
                f"total copies ({self.total_copies})"
            )
        return self

    @property
    def available_copies(self) -> int:
        """Copies that can be borrowed right now."""
        return self.total_copies - self.borrowed_count

    @property
    def is_available(self) -> bool:
        return self.available_copies > 0

    @property
    def can_delete(self) -> bool:
        """A title may only be removed while no copy is on loan."""
        return self.borrowed_count == 0

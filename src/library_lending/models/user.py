"""
User model for the Library Lending server.

Users borrow books. Administrators may additionally adjust copy counts and
remove titles; that capability check happens at the request boundary, the
lending core itself does not look at roles.
"""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator


class UserRole(str, Enum):
    """Account role."""

    USER = "USER"
    ADMIN = "ADMIN"


class User(BaseModel):
    """Represents a library account."""

    model_config = ConfigDict(from_attributes=True)

    id: str = Field(
        ...,
        description="Unique identifier for the user",
        pattern=r"^user_[a-zA-Z0-9_]{6,}$",
        examples=["user_5d6e7f8a9b0c"],
    )

    name: str = Field(
        ...,
        description="Display name",
        min_length=1,
        max_length=200,
    )

    email: EmailStr = Field(
        ...,
        description="Login email, unique across accounts",
    )

    role: UserRole = Field(
        default=UserRole.USER,
        description="USER for regular members, ADMIN for library staff",
    )

    created_at: datetime | None = None

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return v.lower()

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

"""
User repository for the Library Lending server.

Account storage only: credentials and sessions are handled outside the
lending core, which needs nothing beyond identity and role.
"""

import logging

from pydantic import BaseModel, EmailStr
from sqlalchemy import func, select

from ..database.schema import User as UserDB
from ..database.schema import UserRoleEnum
from ..database.session import safe_commit, safe_query
from ..models.user import User as UserModel
from ..models.user import UserRole
from .repository import BaseRepository, ConflictError, DuplicateError

logger = logging.getLogger(__name__)


class UserCreateSchema(BaseModel):
    """Schema for registering a user."""

    name: str
    email: EmailStr
    role: UserRole = UserRole.USER


class UserRepository(BaseRepository[UserDB, UserCreateSchema, UserModel]):
    """Repository for user accounts."""

    id_prefix = "user"

    @property
    def model_class(self):
        return UserDB

    @property
    def response_schema(self):
        return UserModel

    def create(self, data: UserCreateSchema) -> UserModel:
        """
        Register a user.

        Raises:
            DuplicateError: If the email is already registered
        """
        email = data.email.lower()
        if self.get_by_email(email) is not None:
            raise DuplicateError(f"User with email {email} already exists")

        db_user = UserDB(
            id=self._generate_id(),
            name=data.name,
            email=email,
            role=UserRoleEnum(data.role.value),
        )
        self.session.add(db_user)
        try:
            safe_commit(self.session, "create user")
        except ConflictError as e:
            raise DuplicateError(f"User with email {email} already exists") from e

        self.session.refresh(db_user)
        logger.info("Registered %s user %s", db_user.role.value, db_user.id)
        return self._to_response_model(db_user)

    def get_by_email(self, email: str) -> UserModel | None:
        query = select(UserDB).where(func.lower(UserDB.email) == email.lower())
        db_user = safe_query(
            self.session,
            lambda s: s.execute(query).scalar_one_or_none(),
            "Failed to get user by email",
        )
        return self._to_response_model(db_user) if db_user else None

    def is_admin(self, user_id: str) -> bool:
        """True only for an existing account with the ADMIN role."""
        user = self.get_by_id(user_id)
        return user is not None and user.is_admin

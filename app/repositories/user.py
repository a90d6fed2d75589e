"""User repository for user-related database operations."""

from typing import Optional
from sqlalchemy.orm import Session

from app.repositories.base import BaseRepository
from app.db.models.user import User
from app.schemas.user import UserCreate


class UserRepository(BaseRepository[User]):
    """Repository for User entity operations."""

    def __init__(self, db: Session, correlation_id: Optional[str] = None):
        super().__init__(db, User, correlation_id)

    def get_by_email(self, email: str) -> Optional[User]:
        """Get user by email address.

        Args:
            email: User's email address

        Returns:
            User instance or None if not found
        """
        result = self.db.query(self.model).filter(self.model.email == email).first()

        self._log_operation("get_by_email", email_domain=email.split("@")[-1], found=result is not None)
        return result

    def email_exists(self, email: str) -> bool:
        query = self.db.query(self.model.id).filter(self.model.email == email)
        result = query.first() is not None
        self._log_operation("email_exists", email_domain=email.split("@")[-1], exists=result)
        return result

    def create_user(self, user_in: UserCreate, hashed_password: str) -> User:
        user_data = user_in.model_dump(exclude={"password"})
        user_data["email"] = user_data["email"].lower().strip()
        user_data["hashed_password"] = hashed_password
        return self.create(user_data)

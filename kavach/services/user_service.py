"""
User repository over the ``users`` table.
"""

from typing import Any, Dict, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from kavach.exceptions import InvalidInput, StorageUnavailable
from kavach.models.user import User


class UserRepository:
    def __init__(self, db: Session):
        self.db = db

    def find_by_id(self, user_id: str) -> Optional[User]:
        if not user_id:
            return None
        try:
            return self.db.get(User, user_id)
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StorageUnavailable("Failed to load user") from e

    def find_by_email(self, email: str) -> Optional[User]:
        try:
            return self.db.query(User).filter(User.email == email).first()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StorageUnavailable("Failed to load user") from e

    def create(
        self,
        email: str,
        name: Optional[str] = None,
        password_hash: Optional[str] = None,
        **fields: Any,
    ) -> User:
        user = User(email=email, name=name, password_hash=password_hash, **fields)
        try:
            self.db.add(user)
            self.db.commit()
            self.db.refresh(user)
        except IntegrityError as e:
            self.db.rollback()
            raise InvalidInput("Email already exists") from e
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StorageUnavailable("Failed to create user") from e
        return user

    def update(self, user: User, data: Dict[str, Any]) -> User:
        """Partial update; only keys present in ``data`` are written."""
        for key, value in data.items():
            if not hasattr(User, key):
                raise ValueError(f"Unknown user field: {key}")
            setattr(user, key, value)
        try:
            self.db.commit()
            self.db.refresh(user)
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StorageUnavailable("Failed to update user") from e
        return user

    def delete(self, user: User) -> None:
        try:
            self.db.delete(user)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StorageUnavailable("Failed to delete user") from e

"""User and customer profile lookups."""

from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from ..models.user import Customer, User
from .base_repository import BaseRepository


class UserRepository(BaseRepository[User]):
    def __init__(self, db: Session):
        super().__init__(db, User)

    def get_by_email(self, email: str) -> Optional[User]:
        query = self._build_query().filter(func.lower(User.email) == email.strip().lower())
        return self._execute_first(query)


class CustomerRepository(BaseRepository[Customer]):
    def __init__(self, db: Session):
        super().__init__(db, Customer)

    def get_by_user_id(self, user_id: str) -> Optional[Customer]:
        return self.find_one_by(user_id=user_id)

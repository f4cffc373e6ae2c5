"""
Customer identity resolution for bookings and checkouts.

A booking may name an existing customer profile, or carry a guest's name
and email. Guests are matched to an existing user by email; otherwise a
password-less user and its customer profile are created on the fly.
"""

import logging
from typing import Optional, Tuple

from sqlalchemy.orm import Session

from ..core.exceptions import NotFoundException, ValidationException
from ..models.user import Customer, User
from ..repositories.factory import RepositoryFactory
from .base import BaseService

logger = logging.getLogger(__name__)


def split_name(full_name: str) -> Tuple[str, str]:
    """First token is the first name, the rest is the last name."""
    parts = full_name.split()
    if not parts:
        return "", ""
    return parts[0], " ".join(parts[1:])


class CustomerService(BaseService):
    def __init__(self, db: Session):
        super().__init__(db)
        self.user_repository = RepositoryFactory.create_user_repository(db)
        self.customer_repository = RepositoryFactory.create_customer_repository(db)

    @BaseService.measure_operation("resolve_customer")
    def resolve_customer(
        self,
        *,
        customer_id: Optional[str] = None,
        name: Optional[str] = None,
        email: Optional[str] = None,
        phone: Optional[str] = None,
    ) -> Customer:
        """
        Return the customer profile for a booking.

        Runs inside the caller's transaction; rows are flushed, not committed.

        Raises:
            NotFoundException: ``customer_id`` given but unknown
            ValidationException: neither an id nor name + email given
        """
        if customer_id:
            customer = self.customer_repository.get_by_id(customer_id)
            if customer is None:
                raise NotFoundException("Customer not found", code="CUSTOMER_NOT_FOUND")
            return customer

        if not name or not email:
            raise ValidationException(
                "Customer ID or customer name and email are required",
                code="CUSTOMER_REQUIRED",
            )

        user = self.user_repository.get_by_email(email)
        if user is None:
            user = self._create_guest_user(name, email, phone)

        customer = self.customer_repository.get_by_user_id(user.id)
        if customer is None:
            customer = self.customer_repository.create(user_id=user.id)
            self.logger.info(f"Created customer profile {customer.id} for user {user.id}")
        return customer

    def _create_guest_user(self, name: str, email: str, phone: Optional[str]) -> User:
        first_name, last_name = split_name(name)
        user = self.user_repository.create(
            email=email.strip().lower(),
            first_name=first_name,
            last_name=last_name,
            phone=phone,
            hashed_password=None,
        )
        self.logger.info(f"Created guest user {user.id} from booking")
        return user

"""Repositories for bookable services and products."""

from typing import Optional

from sqlalchemy.orm import Session

from ..models.catalog import Product, Service
from .base_repository import BaseRepository


class ServiceRepository(BaseRepository[Service]):
    def __init__(self, db: Session):
        super().__init__(db, Service)

    def get_bookable(self, service_id: str) -> Optional[Service]:
        """Active, not soft-deleted service or None."""
        query = self._build_query().filter(
            Service.id == service_id,
            Service.is_active.is_(True),
            Service.deleted_at.is_(None),
        )
        return self._execute_first(query)

    def lock(self, service_id: str) -> Optional[Service]:
        """
        Load the service row with ``SELECT ... FOR UPDATE``.

        Concurrent bookings of the same service queue on this lock until the
        holding transaction commits, so the overlap check and the insert are
        serialized per service.
        """
        return self.get_by_id(service_id, for_update=True)


class ProductRepository(BaseRepository[Product]):
    def __init__(self, db: Session):
        super().__init__(db, Product)

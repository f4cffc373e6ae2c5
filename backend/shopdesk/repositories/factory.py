# backend/shopdesk/repositories/factory.py
"""
Repository Factory for ShopDesk

Provides centralized creation of repository instances so services never
construct repositories directly.
"""

from typing import TYPE_CHECKING

from sqlalchemy.orm import Session

from .base_repository import BaseRepository

# Avoid circular imports
if TYPE_CHECKING:
    from .appointment_repository import AppointmentRepository
    from .catalog_repository import ProductRepository, ServiceRepository
    from .customer_repository import CustomerRepository, UserRepository
    from .email_log_repository import EmailLogRepository
    from .order_repository import OrderItemRepository, OrderRepository
    from .payment_repository import PaymentRepository
    from .webhook_event_repository import WebhookEventRepository


class RepositoryFactory:
    """Factory class for creating repository instances."""

    @staticmethod
    def create_base_repository(db: Session, model) -> BaseRepository:
        """Create a generic base repository for any model."""
        return BaseRepository(db, model)

    @staticmethod
    def create_service_repository(db: Session) -> "ServiceRepository":
        from .catalog_repository import ServiceRepository

        return ServiceRepository(db)

    @staticmethod
    def create_product_repository(db: Session) -> "ProductRepository":
        from .catalog_repository import ProductRepository

        return ProductRepository(db)

    @staticmethod
    def create_appointment_repository(db: Session) -> "AppointmentRepository":
        """Create repository for appointment and conflict queries."""
        from .appointment_repository import AppointmentRepository

        return AppointmentRepository(db)

    @staticmethod
    def create_user_repository(db: Session) -> "UserRepository":
        from .customer_repository import UserRepository

        return UserRepository(db)

    @staticmethod
    def create_customer_repository(db: Session) -> "CustomerRepository":
        from .customer_repository import CustomerRepository

        return CustomerRepository(db)

    @staticmethod
    def create_order_repository(db: Session) -> "OrderRepository":
        from .order_repository import OrderRepository

        return OrderRepository(db)

    @staticmethod
    def create_order_item_repository(db: Session) -> "OrderItemRepository":
        from .order_repository import OrderItemRepository

        return OrderItemRepository(db)

    @staticmethod
    def create_payment_repository(db: Session) -> "PaymentRepository":
        from .payment_repository import PaymentRepository

        return PaymentRepository(db)

    @staticmethod
    def create_email_log_repository(db: Session) -> "EmailLogRepository":
        from .email_log_repository import EmailLogRepository

        return EmailLogRepository(db)

    @staticmethod
    def create_webhook_event_repository(db: Session) -> "WebhookEventRepository":
        from .webhook_event_repository import WebhookEventRepository

        return WebhookEventRepository(db)

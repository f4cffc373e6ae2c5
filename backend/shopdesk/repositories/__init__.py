# backend/shopdesk/repositories/__init__.py
"""
Repository layer for ShopDesk.

Data access lives here; services obtain repositories through
RepositoryFactory and own the transaction boundaries.
"""

from .appointment_repository import AppointmentRepository
from .base_repository import BaseRepository
from .catalog_repository import ProductRepository, ServiceRepository
from .customer_repository import CustomerRepository, UserRepository
from .email_log_repository import EmailLogRepository
from .factory import RepositoryFactory
from .order_repository import OrderItemRepository, OrderRepository
from .payment_repository import PaymentRepository
from .webhook_event_repository import WebhookEventRepository

__all__ = [
    "AppointmentRepository",
    "BaseRepository",
    "CustomerRepository",
    "EmailLogRepository",
    "OrderItemRepository",
    "OrderRepository",
    "PaymentRepository",
    "ProductRepository",
    "RepositoryFactory",
    "ServiceRepository",
    "UserRepository",
    "WebhookEventRepository",
]

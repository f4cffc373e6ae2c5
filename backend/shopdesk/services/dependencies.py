# backend/shopdesk/services/dependencies.py
"""
Dependency injection functions for services.

Each request gets services bound to its own database session.
"""

from fastapi import Depends
from sqlalchemy.orm import Session

from ..database import get_db
from .appointment_service import AppointmentService
from .availability_service import AvailabilityService
from .email import EmailService
from .order_service import OrderService
from .payment_lifecycle_service import PaymentLifecycleService
from .stripe_service import StripeService
from .template_service import TemplateService


def get_template_service() -> TemplateService:
    return TemplateService()


def get_email_service(
    db: Session = Depends(get_db),
    template_service: TemplateService = Depends(get_template_service),
) -> EmailService:
    """
    Usage in routes:
        email_service: EmailService = Depends(get_email_service)
    """
    return EmailService(db, template_service)


def get_availability_service(db: Session = Depends(get_db)) -> AvailabilityService:
    return AvailabilityService(db)


def get_appointment_service(
    db: Session = Depends(get_db),
    email_service: EmailService = Depends(get_email_service),
    availability_service: AvailabilityService = Depends(get_availability_service),
) -> AppointmentService:
    return AppointmentService(
        db, email_service=email_service, availability_service=availability_service
    )


def get_stripe_service(db: Session = Depends(get_db)) -> StripeService:
    return StripeService(db)


def get_order_service(db: Session = Depends(get_db)) -> OrderService:
    return OrderService(db)


def get_payment_lifecycle_service(
    db: Session = Depends(get_db),
    stripe_service: StripeService = Depends(get_stripe_service),
    email_service: EmailService = Depends(get_email_service),
    order_service: OrderService = Depends(get_order_service),
) -> PaymentLifecycleService:
    """
    Dependency injection function for PaymentLifecycleService.

    The appointment service it confirms paid bookings through shares the
    same email service.
    """
    return PaymentLifecycleService(
        db,
        stripe_service=stripe_service,
        email_service=email_service,
        order_service=order_service,
    )

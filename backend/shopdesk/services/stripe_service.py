# backend/shopdesk/services/stripe_service.py
"""
Stripe Service for ShopDesk

Thin adapter over the Stripe API:
- Checkout session creation for cart items (products and services)
- Webhook signature verification
- Refunds

Stripe failures are raised as ExternalProviderException; nothing in this
module writes to the database.
"""

import json
import logging
from typing import Any, Dict, List, Optional

import stripe
from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.enums import CheckoutItemType
from ..core.exceptions import (
    ExternalProviderException,
    NotFoundException,
    ServiceException,
    ValidationException,
)
from ..repositories.factory import RepositoryFactory
from ..schemas.payment import CheckoutItem, CheckoutSessionCreate, CheckoutSessionResponse
from ..utils.money import to_cents
from .base import BaseService

logger = logging.getLogger(__name__)


class StripeService(BaseService):
    """Service layer for Stripe API calls."""

    def __init__(self, db: Session):
        super().__init__(db)
        self.product_repository = RepositoryFactory.create_product_repository(db)
        self.service_repository = RepositoryFactory.create_service_repository(db)
        self.appointment_repository = RepositoryFactory.create_appointment_repository(db)

        self.stripe_configured = settings.stripe_configured
        if self.stripe_configured:
            stripe.api_key = settings.stripe_secret_key.get_secret_value()
            stripe.max_network_retries = 1
        else:
            self.logger.warning("Stripe secret key not configured - Stripe calls will fail")

    def _check_stripe_configured(self) -> None:
        if not self.stripe_configured:
            raise ServiceException("Stripe is not configured", code="STRIPE_NOT_CONFIGURED")

    def _line_item_for(self, item: CheckoutItem) -> Dict[str, Any]:
        if item.type == CheckoutItemType.PRODUCT:
            product = self.product_repository.get_by_id(item.id)
            if product is None or product.deleted_at is not None:
                raise NotFoundException(f"Product {item.id} not found", code="PRODUCT_NOT_FOUND")
            if not product.is_active:
                raise ValidationException(f"Product {product.name} is not available", code="PRODUCT_INACTIVE")
            name, description, price = product.name, product.description, product.price
        else:
            service = self.service_repository.get_by_id(item.id)
            if service is None or service.deleted_at is not None:
                raise NotFoundException(f"Service {item.id} not found", code="SERVICE_NOT_FOUND")
            if not service.is_active:
                raise ValidationException(f"Service {service.name} is not available", code="SERVICE_INACTIVE")
            name, description, price = service.name, service.description, service.price

        product_data: Dict[str, Any] = {"name": name}
        if description:
            product_data["description"] = description[:500]
        return {
            "price_data": {
                "currency": settings.stripe_currency,
                "product_data": product_data,
                "unit_amount": to_cents(price),
            },
            "quantity": item.quantity,
        }

    @staticmethod
    def build_metadata(request: CheckoutSessionCreate) -> Dict[str, str]:
        """
        Session metadata the checkout webhook reads back.

        Stripe metadata values are strings, so the item list is JSON encoded.
        """
        items: List[Dict[str, Any]] = [
            {"type": item.type.value if hasattr(item.type, "value") else item.type, "id": item.id, "quantity": item.quantity}
            for item in request.items
        ]
        return {
            "customerId": request.customer_id or "",
            "appointmentId": request.appointment_id or "",
            "items": json.dumps(items, separators=(",", ":")),
        }

    @BaseService.measure_operation("create_checkout_session")
    def create_checkout_session(self, request: CheckoutSessionCreate) -> CheckoutSessionResponse:
        """
        Create a hosted Stripe Checkout session for the cart.

        Raises:
            NotFoundException: an item or the appointment does not exist
            ValidationException: an item is inactive
            ExternalProviderException: Stripe rejected the request
        """
        line_items = [self._line_item_for(item) for item in request.items]

        if request.appointment_id and self.appointment_repository.get_by_id(request.appointment_id) is None:
            raise NotFoundException("Appointment not found", code="APPOINTMENT_NOT_FOUND")

        self._check_stripe_configured()

        base_url = settings.frontend_url.rstrip("/")
        params: Dict[str, Any] = {
            "payment_method_types": ["card"],
            "line_items": line_items,
            "mode": "payment",
            "success_url": request.success_url
            or f"{base_url}/payment-success?session_id={{CHECKOUT_SESSION_ID}}",
            "cancel_url": request.cancel_url or f"{base_url}/payment-cancel",
            "metadata": self.build_metadata(request),
        }
        if request.customer_email:
            params["customer_email"] = request.customer_email

        try:
            session = stripe.checkout.Session.create(**params)
        except stripe.StripeError as e:
            self.logger.error(f"Stripe error creating checkout session: {str(e)}")
            raise ExternalProviderException(f"Failed to create checkout session: {str(e)}") from e

        self.log_operation("checkout_session_created", session_id=session.id, items=len(line_items))
        return CheckoutSessionResponse(session_id=session.id, url=getattr(session, "url", None))

    def construct_event(self, payload: bytes, signature: Optional[str]) -> Dict[str, Any]:
        """
        Verify a webhook delivery and return the event as a plain dict.

        Raises:
            ValidationException: missing or invalid signature, or unparseable payload
            ServiceException: webhook secret not configured
        """
        if not signature:
            self.logger.warning("Webhook received without signature")
            raise ValidationException("No signature", code="MISSING_SIGNATURE")

        secret = settings.stripe_webhook_secret.get_secret_value()
        if not secret:
            self.logger.error("No webhook secret configured")
            raise ServiceException("Webhook configuration error", code="WEBHOOK_NOT_CONFIGURED")

        try:
            stripe.Webhook.construct_event(payload, signature, secret)
        except stripe.SignatureVerificationError as e:
            self.logger.warning("Invalid webhook signature")
            raise ValidationException("Invalid signature", code="INVALID_SIGNATURE") from e
        except ValueError as e:
            raise ValidationException("Invalid payload", code="INVALID_PAYLOAD") from e

        try:
            event = json.loads(payload)
        except ValueError as e:
            raise ValidationException("Invalid payload", code="INVALID_PAYLOAD") from e
        if not isinstance(event, dict):
            raise ValidationException("Invalid payload", code="INVALID_PAYLOAD")
        return event

    @BaseService.measure_operation("create_refund")
    def create_refund(
        self,
        payment_intent_id: str,
        *,
        amount_cents: Optional[int] = None,
        metadata: Optional[Dict[str, str]] = None,
    ) -> Any:
        """Issue a refund against a payment intent."""
        self._check_stripe_configured()
        params: Dict[str, Any] = {"payment_intent": payment_intent_id}
        if amount_cents is not None:
            params["amount"] = amount_cents
        if metadata:
            params["metadata"] = metadata

        try:
            refund = stripe.Refund.create(**params)
        except stripe.StripeError as e:
            self.logger.error(f"Stripe refund failed for {payment_intent_id}: {str(e)}")
            raise ExternalProviderException(f"Refund failed: {str(e)}") from e

        self.logger.info(f"Stripe refund {getattr(refund, 'id', None)} created for {payment_intent_id}")
        return refund

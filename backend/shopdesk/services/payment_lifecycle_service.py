# backend/shopdesk/services/payment_lifecycle_service.py
"""
Payment Lifecycle Service for ShopDesk

Turns Stripe webhook events into orders, payments and the status cascades
that follow them:
- checkout.session.completed -> order, line items, completed payment,
  paid appointment confirmed
- payment_intent.succeeded / payment_intent.payment_failed
- charge.refunded
- admin refunds

Every webhook delivery is written to the ledger before it is dispatched,
so replays of an already processed event are acknowledged without side
effects.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
import json
import logging
import secrets
import string
import time
from typing import Any, Callable, Dict, List, Mapping, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.enums import (
    PAYMENT_TRANSITIONS,
    CheckoutItemType,
    OrderStatus,
    PaymentStatus,
    can_transition,
)
from ..core.exceptions import (
    InvalidStateException,
    NotFoundException,
    RepositoryException,
    ValidationException,
)
from ..models.order import Order
from ..models.payment import Payment
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories.factory import RepositoryFactory
from ..schemas.payment import PaymentStatsResponse
from ..utils.money import cents_to_decimal
from .appointment_service import AppointmentService
from .base import BaseService
from .email import EmailService
from .order_service import OrderService
from .stripe_service import StripeService
from .webhook_ledger_service import WebhookLedgerService

logger = logging.getLogger(__name__)

WEBHOOK_SOURCE = "stripe"
ORDER_SUFFIX_ALPHABET = string.ascii_uppercase + string.digits


@dataclass
class HandlerResult:
    message: str
    entity_type: Optional[str] = None
    entity_id: Optional[str] = None


def _id_of(value: Any) -> Optional[str]:
    """Stripe fields may hold an id or an expanded object."""
    if value is None:
        return None
    if isinstance(value, Mapping):
        return value.get("id")
    return str(value)


def generate_order_number() -> str:
    suffix = "".join(secrets.choice(ORDER_SUFFIX_ALPHABET) for _ in range(9))
    return f"ORD-{int(time.time() * 1000)}-{suffix}"


class PaymentLifecycleService(BaseService):
    def __init__(
        self,
        db: Session,
        stripe_service: Optional[StripeService] = None,
        email_service: Optional[EmailService] = None,
        ledger: Optional[WebhookLedgerService] = None,
        appointment_service: Optional[AppointmentService] = None,
        order_service: Optional[OrderService] = None,
    ):
        super().__init__(db)
        self.order_repository = RepositoryFactory.create_order_repository(db)
        self.order_item_repository = RepositoryFactory.create_order_item_repository(db)
        self.payment_repository = RepositoryFactory.create_payment_repository(db)
        self.product_repository = RepositoryFactory.create_product_repository(db)
        self.customer_repository = RepositoryFactory.create_customer_repository(db)
        self.appointment_repository = RepositoryFactory.create_appointment_repository(db)

        self.stripe_service = stripe_service or StripeService(db)
        self.email_service = email_service or EmailService(db)
        self.ledger = ledger or WebhookLedgerService(db)
        self.appointment_service = appointment_service or AppointmentService(
            db, email_service=self.email_service
        )
        self.order_service = order_service or OrderService(db)

        self._handlers: Dict[str, Callable[[Dict[str, Any]], HandlerResult]] = {
            "checkout.session.completed": self._on_checkout_completed,
            "payment_intent.succeeded": self._on_payment_succeeded,
            "payment_intent.payment_failed": self._on_payment_failed,
            "charge.refunded": self._on_charge_refunded,
        }

    # ------------------------------------------------------------------
    # Webhook entry point
    # ------------------------------------------------------------------

    @BaseService.measure_operation("handle_webhook_event")
    def handle_webhook_event(self, event: Dict[str, Any]) -> Dict[str, Any]:
        """
        Record and process a verified Stripe event.

        Returns a dict with ``status`` (success, ignored or duplicate),
        ``event_type`` and ``message``. Handler errors are recorded on the
        ledger row and re-raised.
        """
        event_type = event.get("type") or "unknown"
        event_id = event.get("id")

        with self.transaction():
            ledger_event = self.ledger.log_received(
                source=WEBHOOK_SOURCE, event_type=event_type, payload=event, event_id=event_id
            )
        if self.ledger.is_finished(ledger_event):
            self.logger.info(f"Duplicate webhook {event_id} ({event_type}) skipped")
            prometheus_metrics.inc_webhook_event(event_type, "duplicate")
            return {"status": "duplicate", "event_type": event_type, "message": "Event already processed"}

        with self.transaction():
            claimed = self.ledger.mark_processing(ledger_event)
        if not claimed:
            prometheus_metrics.inc_webhook_event(event_type, "duplicate")
            return {"status": "duplicate", "event_type": event_type, "message": "Event is being processed"}

        started = time.monotonic()
        handler = self._handlers.get(event_type)
        if handler is None:
            with self.transaction():
                self.ledger.mark_processed(
                    ledger_event,
                    status="ignored",
                    duration_ms=int((time.monotonic() - started) * 1000),
                )
            self.logger.info(f"Unhandled webhook event type: {event_type}")
            prometheus_metrics.inc_webhook_event(event_type, "ignored")
            return {"status": "ignored", "event_type": event_type, "message": "Event type not handled"}

        data_object = (event.get("data") or {}).get("object") or {}
        try:
            result = handler(data_object)
        except Exception as exc:
            with self.transaction():
                self.ledger.mark_failed(
                    ledger_event,
                    error=str(exc) or exc.__class__.__name__,
                    duration_ms=int((time.monotonic() - started) * 1000),
                )
            prometheus_metrics.inc_webhook_event(event_type, "failed")
            self.logger.error(f"Webhook {event_id} ({event_type}) failed: {str(exc)}")
            raise

        with self.transaction():
            self.ledger.mark_processed(
                ledger_event,
                related_entity_type=result.entity_type,
                related_entity_id=result.entity_id,
                duration_ms=int((time.monotonic() - started) * 1000),
            )
        prometheus_metrics.inc_webhook_event(event_type, "processed")
        return {"status": "success", "event_type": event_type, "message": result.message}

    def _on_checkout_completed(self, session: Dict[str, Any]) -> HandlerResult:
        order = self.handle_checkout_completed(session)
        return HandlerResult(f"Order {order.order_number} recorded", "order", order.id)

    def _on_payment_succeeded(self, intent: Dict[str, Any]) -> HandlerResult:
        payment = self.handle_payment_succeeded(intent)
        if payment is None:
            return HandlerResult("No payment for intent")
        return HandlerResult("Payment completed", "payment", payment.id)

    def _on_payment_failed(self, intent: Dict[str, Any]) -> HandlerResult:
        payment = self.handle_payment_failed(intent)
        if payment is None:
            return HandlerResult("No payment for intent")
        return HandlerResult("Payment marked failed", "payment", payment.id)

    def _on_charge_refunded(self, charge: Dict[str, Any]) -> HandlerResult:
        payment = self.handle_charge_refunded(charge)
        if payment is None:
            return HandlerResult("No payment for charge")
        return HandlerResult("Payment refunded", "payment", payment.id)

    # ------------------------------------------------------------------
    # Checkout
    # ------------------------------------------------------------------

    @staticmethod
    def _parse_items(raw: Optional[str]) -> List[Dict[str, Any]]:
        if not raw:
            return []
        try:
            items = json.loads(raw)
        except ValueError:
            logger.warning("Checkout session carried unparseable item metadata")
            return []
        return [item for item in items if isinstance(item, dict)] if isinstance(items, list) else []

    def _new_order_number(self) -> str:
        for _ in range(5):
            candidate = generate_order_number()
            if not self.order_repository.order_number_exists(candidate):
                return candidate
        return generate_order_number()

    @BaseService.measure_operation("handle_checkout_completed")
    def handle_checkout_completed(self, session: Dict[str, Any]) -> Order:
        """
        Create the order for a completed Checkout session.

        Idempotent on the session id: a replayed or concurrent delivery gets
        the already created order back.
        """
        session_id = session.get("id")
        if not session_id:
            raise ValidationException("Checkout session id missing", code="INVALID_PAYLOAD")

        existing = self.order_repository.get_by_session_id(session_id)
        if existing is not None:
            self.logger.info(f"Order {existing.order_number} already exists for session {session_id}")
            return existing

        metadata = session.get("metadata") or {}
        customer_id = metadata.get("customerId") or None
        appointment_id = metadata.get("appointmentId") or None
        items = self._parse_items(metadata.get("items"))

        total_cents = session.get("amount_total") or 0
        subtotal_cents = session.get("amount_subtotal")
        if subtotal_cents is None:
            subtotal_cents = total_cents
        totals = session.get("total_details") or {}
        currency = (session.get("currency") or settings.stripe_currency).upper()
        payment_intent_id = _id_of(session.get("payment_intent"))

        details = session.get("customer_details") or {}
        session_email = details.get("email") or session.get("customer_email")
        session_name = details.get("name")
        shipping = session.get("shipping_details") or {}

        try:
            with self.transaction():
                customer = None
                if customer_id:
                    customer = self.customer_repository.get_by_id(customer_id, for_update=True)
                    if customer is None:
                        self.logger.warning(f"Checkout customer {customer_id} not found; order left unlinked")
                if appointment_id and self.appointment_repository.get_by_id(appointment_id) is None:
                    self.logger.warning(f"Checkout appointment {appointment_id} not found; order left unlinked")
                    appointment_id = None

                order = self.order_repository.create(
                    order_number=self._new_order_number(),
                    customer_id=customer.id if customer else None,
                    appointment_id=appointment_id,
                    stripe_session_id=session_id,
                    status=OrderStatus.PROCESSING.value,
                    subtotal=cents_to_decimal(subtotal_cents),
                    tax=cents_to_decimal(totals.get("amount_tax") or 0),
                    shipping=cents_to_decimal(totals.get("amount_shipping") or 0),
                    discount=cents_to_decimal(totals.get("amount_discount") or 0),
                    total=cents_to_decimal(total_cents),
                    notes=(
                        f"Stripe session: {session_id}\n"
                        f"Payment intent: {payment_intent_id or 'n/a'}"
                    ),
                    shipping_address=shipping.get("address"),
                    billing_address=details.get("address"),
                )

                for item in items:
                    if item.get("type") != CheckoutItemType.PRODUCT.value:
                        continue
                    product = self.product_repository.get_by_id(str(item.get("id")))
                    if product is None:
                        self.logger.warning(f"Product {item.get('id')} from session {session_id} no longer exists")
                        continue
                    quantity = max(int(item.get("quantity") or 1), 1)
                    self.order_item_repository.create(
                        order_id=order.id,
                        product_id=product.id,
                        product_name=product.name,
                        product_sku=product.sku,
                        price=product.price,
                        quantity=quantity,
                        subtotal=product.price * quantity,
                    )

                payment = self.payment_repository.create(
                    order_id=order.id,
                    appointment_id=appointment_id,
                    amount=order.total,
                    currency=currency,
                    status=PaymentStatus.COMPLETED.value,
                    payment_method="STRIPE",
                    transaction_id=session_id,
                    stripe_payment_intent_id=payment_intent_id,
                    payment_metadata={
                        "stripe_session_id": session_id,
                        "customer_email": session_email,
                        "customer_name": session_name,
                    },
                )

                if appointment_id:
                    self.appointment_service.confirm_after_payment(appointment_id)

                if customer is not None:
                    customer.total_spent = (customer.total_spent or 0) + order.total
                    customer.total_orders = (customer.total_orders or 0) + 1
        except RepositoryException as exc:
            if isinstance(exc.__cause__, IntegrityError):
                existing = self.order_repository.get_by_session_id(session_id)
                if existing is not None:
                    self.logger.info(f"Concurrent delivery already created order for session {session_id}")
                    return existing
            raise

        self.log_operation("order_created", order_id=order.id, order_number=order.order_number)
        order = self.order_repository.get_with_items(order.id) or order
        self._send_order_notifications(order, payment, session_email, session_name)
        return order

    def _send_order_notifications(
        self,
        order: Order,
        payment: Payment,
        fallback_email: Optional[str],
        fallback_name: Optional[str],
    ) -> None:
        recipient = fallback_email
        name = fallback_name or "Customer"
        if order.customer_id:
            customer = self.customer_repository.get_by_id(order.customer_id)
            user = customer.user if customer else None
            if user is not None and user.email:
                recipient = user.email
                name = user.full_name or name
        if not recipient:
            self.logger.warning(f"No email address for order {order.order_number}; skipping notifications")
            return

        try:
            self.email_service.send_order_confirmation(order, recipient, name)
        except Exception as exc:
            self.logger.error(f"Order confirmation for {order.order_number} failed: {str(exc)}")
        try:
            self.email_service.send_payment_receipt(order, payment, recipient, name)
        except Exception as exc:
            self.logger.error(f"Payment receipt for {order.order_number} failed: {str(exc)}")

    # ------------------------------------------------------------------
    # Payment intents and charges
    # ------------------------------------------------------------------

    @BaseService.measure_operation("handle_payment_succeeded")
    def handle_payment_succeeded(self, intent: Dict[str, Any]) -> Optional[Payment]:
        intent_id = intent.get("id")
        if not intent_id:
            return None
        with self.transaction():
            payment = self.payment_repository.get_by_payment_intent(intent_id)
            if payment is None:
                self.logger.info(f"No payment recorded for intent {intent_id}")
                return None
            charge_id = _id_of(intent.get("latest_charge"))
            if charge_id and not payment.stripe_charge_id:
                payment.stripe_charge_id = charge_id
            if can_transition(
                PAYMENT_TRANSITIONS, PaymentStatus, payment.status, PaymentStatus.COMPLETED.value
            ):
                payment.status = PaymentStatus.COMPLETED.value
            elif payment.status != PaymentStatus.COMPLETED.value:
                self.logger.info(f"Payment {payment.id} is {payment.status}; ignoring success event")
            self.payment_repository.flush()
        return payment

    @BaseService.measure_operation("handle_payment_failed")
    def handle_payment_failed(self, intent: Dict[str, Any]) -> Optional[Payment]:
        intent_id = intent.get("id")
        if not intent_id:
            return None
        with self.transaction():
            payment = self.payment_repository.get_by_payment_intent(intent_id)
            if payment is None:
                self.logger.info(f"No payment recorded for failed intent {intent_id}")
                return None
            if not can_transition(
                PAYMENT_TRANSITIONS, PaymentStatus, payment.status, PaymentStatus.FAILED.value
            ):
                self.logger.info(f"Payment {payment.id} is {payment.status}; ignoring failure event")
                return payment
            error = intent.get("last_payment_error") or {}
            payment.status = PaymentStatus.FAILED.value
            payment.failure_reason = error.get("message") or "Payment failed"
            self.order_service.cascade_status(payment.order_id, OrderStatus.CANCELLED)
            self.payment_repository.flush()
        return payment

    @BaseService.measure_operation("handle_charge_refunded")
    def handle_charge_refunded(self, charge: Dict[str, Any]) -> Optional[Payment]:
        """
        Mark the payment for a refunded charge.

        Looks the payment up by charge id, then by the charge's payment
        intent. Partial refunds are logged and leave the payment as is.
        """
        charge_id = charge.get("id")
        intent_id = _id_of(charge.get("payment_intent"))
        with self.transaction():
            payment = self.payment_repository.get_by_charge_id(charge_id) if charge_id else None
            if payment is None and intent_id:
                payment = self.payment_repository.get_by_payment_intent(intent_id)
            if payment is None:
                self.logger.info(f"No payment recorded for refunded charge {charge_id}")
                return None
            if charge.get("refunded") is False:
                self.logger.info(
                    f"Partial refund of {charge.get('amount_refunded')} on charge {charge_id}; payment unchanged"
                )
                return payment
            if payment.status == PaymentStatus.REFUNDED.value:
                return payment
            if not can_transition(
                PAYMENT_TRANSITIONS, PaymentStatus, payment.status, PaymentStatus.REFUNDED.value
            ):
                self.logger.warning(f"Payment {payment.id} is {payment.status}; ignoring refund event")
                return payment
            if charge_id and not payment.stripe_charge_id:
                payment.stripe_charge_id = charge_id
            self._mark_refunded(payment, source="webhook")
        return payment

    def _mark_refunded(self, payment: Payment, *, source: str, reason: Optional[str] = None) -> None:
        payment.status = PaymentStatus.REFUNDED.value
        payment.refunded_at = datetime.now(timezone.utc)
        if reason:
            payment.payment_metadata = {**(payment.payment_metadata or {}), "refund_reason": reason}
        self.order_service.cascade_status(payment.order_id, OrderStatus.REFUNDED)
        self.payment_repository.flush()
        prometheus_metrics.inc_refund(source)

    # ------------------------------------------------------------------
    # Admin operations
    # ------------------------------------------------------------------

    @BaseService.measure_operation("refund_payment")
    def refund_payment(
        self,
        payment_id: Optional[str] = None,
        order_id: Optional[str] = None,
        reason: Optional[str] = None,
    ) -> Payment:
        """
        Refund a completed payment.

        Stripe payments are refunded through Stripe before the local row
        changes. If the commit fails after Stripe accepted the refund, the
        charge.refunded webhook completes the transition.

        Raises:
            NotFoundException: no payment for the given id or order
            InvalidStateException: payment is not COMPLETED
            ExternalProviderException: Stripe rejected the refund
        """
        with self.transaction():
            if payment_id:
                payment = self.payment_repository.get_by_id(payment_id, for_update=True)
            elif order_id:
                payment = self.payment_repository.get_completed_for_order(
                    order_id, for_update=True
                ) or self.payment_repository.latest_for_order(order_id, for_update=True)
            else:
                raise ValidationException("payment_id or order_id is required", code="REFUND_TARGET_REQUIRED")

            if payment is None:
                raise NotFoundException("Payment not found", code="PAYMENT_NOT_FOUND")
            if payment.status == PaymentStatus.REFUNDED.value:
                raise InvalidStateException(
                    "Payment already refunded",
                    current_status=payment.status,
                    target_status=PaymentStatus.REFUNDED.value,
                )
            if payment.status != PaymentStatus.COMPLETED.value:
                raise InvalidStateException(
                    "Only completed payments can be refunded",
                    current_status=payment.status,
                    target_status=PaymentStatus.REFUNDED.value,
                )

            if payment.payment_method == "STRIPE" and payment.stripe_payment_intent_id:
                metadata = {"payment_id": payment.id}
                if reason:
                    metadata["reason"] = reason[:500]
                self.stripe_service.create_refund(payment.stripe_payment_intent_id, metadata=metadata)
            else:
                self.logger.warning(f"Payment {payment.id} has no Stripe intent; refunding locally only")

            self._mark_refunded(payment, source="admin", reason=reason)

        self.log_operation("payment_refunded", payment_id=payment.id, order_id=payment.order_id)
        return payment

    @BaseService.measure_operation("get_payment_stats")
    def get_payment_stats(self) -> PaymentStatsResponse:
        counts = self.payment_repository.count_by_status()
        return PaymentStatsResponse(
            total_revenue=self.payment_repository.sum_amount(PaymentStatus.COMPLETED),
            successful_payments=counts.get(PaymentStatus.COMPLETED.value, 0),
            pending_payments=counts.get(PaymentStatus.PENDING.value, 0),
            failed_payments=counts.get(PaymentStatus.FAILED.value, 0),
            refunded_payments=counts.get(PaymentStatus.REFUNDED.value, 0),
            refunded_amount=self.payment_repository.sum_amount(PaymentStatus.REFUNDED),
        )

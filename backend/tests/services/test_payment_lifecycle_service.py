import json
from decimal import Decimal
from unittest.mock import MagicMock, patch

import pytest
import stripe

from shopdesk.core.enums import AppointmentStatus, EmailType, OrderStatus, PaymentStatus
from shopdesk.core.exceptions import (
    ExternalProviderException,
    InvalidStateException,
    NotFoundException,
    ValidationException,
)
from shopdesk.models.email_log import EmailLog
from shopdesk.models.order import Order, OrderItem
from shopdesk.models.payment import Payment
from shopdesk.models.webhook_event import WebhookEvent
from shopdesk.services.payment_lifecycle_service import (
    PaymentLifecycleService,
    generate_order_number,
)
from tests.helpers.scheduling import at, booking_day


def _session(session_id="cs_test_1", *, items=None, amount_total=4000, metadata=None, **extra):
    meta = {
        "customerId": "",
        "appointmentId": "",
        "items": json.dumps(items if items is not None else [{"type": "product", "id": 7, "quantity": 2}]),
    }
    meta.update(metadata or {})
    session = {
        "id": session_id,
        "object": "checkout.session",
        "amount_total": amount_total,
        "amount_subtotal": amount_total,
        "currency": "usd",
        "payment_intent": "pi_test_1",
        "metadata": meta,
        "customer_details": {"email": "buyer@example.com", "name": "Bea Buyer"},
    }
    session.update(extra)
    return session


def _event(event_id, event_type, data_object):
    return {"id": event_id, "type": event_type, "data": {"object": data_object}}


@pytest.fixture
def lifecycle(db):
    return PaymentLifecycleService(db)


@pytest.fixture
def paid_order(db):
    order = Order(
        order_number="ORD-1700000000000-ABCDEFGHI",
        status=OrderStatus.PROCESSING.value,
        subtotal=Decimal("40.00"),
        total=Decimal("40.00"),
        stripe_session_id="cs_paid",
    )
    db.add(order)
    db.flush()
    payment = Payment(
        order_id=order.id,
        amount=Decimal("40.00"),
        currency="USD",
        status=PaymentStatus.COMPLETED.value,
        payment_method="STRIPE",
        transaction_id="cs_paid",
        stripe_payment_intent_id="pi_paid",
        stripe_charge_id="ch_paid",
    )
    db.add(payment)
    db.commit()
    return order, payment


@pytest.fixture
def pending_payment(db):
    order = Order(
        order_number="ORD-1700000000001-PENDING01",
        status=OrderStatus.PENDING.value,
        subtotal=Decimal("25.00"),
        total=Decimal("25.00"),
    )
    db.add(order)
    db.flush()
    payment = Payment(
        order_id=order.id,
        amount=Decimal("25.00"),
        status=PaymentStatus.PENDING.value,
        stripe_payment_intent_id="pi_pending",
    )
    db.add(payment)
    db.commit()
    return order, payment


def test_order_number_format():
    number = generate_order_number()
    prefix, millis, suffix = number.split("-")
    assert prefix == "ORD"
    assert millis.isdigit()
    assert len(suffix) == 9
    assert suffix == suffix.upper() and suffix.isalnum()


class TestCheckoutCompleted:
    def test_creates_order_item_and_payment(self, db, lifecycle, product):
        order = lifecycle.handle_checkout_completed(_session())

        assert db.query(Order).count() == 1
        assert order.total == Decimal("40.00")
        assert order.status == OrderStatus.PROCESSING.value
        assert order.order_number.startswith("ORD-")

        item = db.query(OrderItem).one()
        assert item.quantity == 2
        assert item.product_id == "7"
        assert item.product_name == "Beard Oil"
        assert item.subtotal == Decimal("40.00")

        payment = db.query(Payment).one()
        assert payment.status == PaymentStatus.COMPLETED.value
        assert payment.amount == Decimal("40.00")
        assert payment.currency == "USD"
        assert payment.stripe_payment_intent_id == "pi_test_1"
        assert payment.order_id == order.id

    def test_duplicate_delivery_is_noop(self, db, lifecycle, product):
        first = lifecycle.handle_checkout_completed(_session())
        second = lifecycle.handle_checkout_completed(_session())

        assert first.id == second.id
        assert db.query(Order).count() == 1
        assert db.query(OrderItem).count() == 1
        assert db.query(Payment).count() == 1

    def test_concurrent_insert_returns_existing_order(self, db, lifecycle, product):
        existing = Order(
            order_number="ORD-1700000000002-RACEWINNR",
            status=OrderStatus.PROCESSING.value,
            subtotal=Decimal("40.00"),
            total=Decimal("40.00"),
            stripe_session_id="cs_race",
        )
        db.add(existing)
        db.commit()
        existing_id = existing.id

        lookup = lifecycle.order_repository.get_by_session_id
        calls = []

        def lookup_after_race(session_id):
            calls.append(session_id)
            return None if len(calls) == 1 else lookup(session_id)

        with patch.object(lifecycle.order_repository, "get_by_session_id", side_effect=lookup_after_race):
            order = lifecycle.handle_checkout_completed(_session("cs_race"))

        assert order.id == existing_id
        assert calls == ["cs_race", "cs_race"]
        assert db.query(Order).count() == 1
        assert db.query(OrderItem).count() == 0
        assert db.query(Payment).count() == 0

    def test_service_items_get_no_order_item(self, db, lifecycle, haircut):
        lifecycle.handle_checkout_completed(
            _session(items=[{"type": "service", "id": haircut.id, "quantity": 1}])
        )
        assert db.query(Order).count() == 1
        assert db.query(OrderItem).count() == 0

    def test_missing_product_is_skipped(self, db, lifecycle):
        order = lifecycle.handle_checkout_completed(_session())
        assert order.items == []
        assert db.query(Payment).count() == 1

    def test_tax_and_shipping_from_total_details(self, db, lifecycle, product):
        order = lifecycle.handle_checkout_completed(
            _session(
                amount_total=4750,
                amount_subtotal=4000,
                total_details={"amount_tax": 250, "amount_shipping": 500, "amount_discount": 0},
            )
        )
        assert order.subtotal == Decimal("40.00")
        assert order.tax == Decimal("2.50")
        assert order.shipping == Decimal("5.00")
        assert order.total == Decimal("47.50")

    def test_confirms_paid_appointment_and_updates_customer(
        self, db, lifecycle, haircut, customer, make_appointment
    ):
        appointment = make_appointment(haircut, at(booking_day(), 10), AppointmentStatus.PENDING)

        order = lifecycle.handle_checkout_completed(
            _session(
                items=[{"type": "service", "id": haircut.id, "quantity": 1}],
                metadata={"customerId": customer.id, "appointmentId": appointment.id},
            )
        )

        db.refresh(appointment)
        db.refresh(customer)
        assert appointment.status == AppointmentStatus.CONFIRMED.value
        assert order.appointment_id == appointment.id
        assert order.customer_id == customer.id
        assert customer.total_orders == 1
        assert customer.total_spent == Decimal("40.00")

    def test_cancelled_appointment_stays_cancelled(self, db, lifecycle, haircut, make_appointment):
        appointment = make_appointment(haircut, at(booking_day(), 10), AppointmentStatus.CANCELLED)

        lifecycle.handle_checkout_completed(_session(metadata={"appointmentId": appointment.id}))

        db.refresh(appointment)
        assert appointment.status == AppointmentStatus.CANCELLED.value
        assert db.query(Order).count() == 1

    def test_sends_confirmation_and_receipt(self, db, lifecycle, product):
        order = lifecycle.handle_checkout_completed(_session())

        logs = db.query(EmailLog).filter(EmailLog.related_order_id == order.id).all()
        assert {log.email_type for log in logs} == {
            EmailType.ORDER_CONFIRMATION.value,
            EmailType.PAYMENT_RECEIPT.value,
        }
        assert all(log.recipient_email == "buyer@example.com" for log in logs)

    def test_email_failure_does_not_undo_order(self, db, product):
        email_service = MagicMock()
        email_service.send_order_confirmation.side_effect = RuntimeError("smtp down")
        lifecycle = PaymentLifecycleService(db, email_service=email_service)

        order = lifecycle.handle_checkout_completed(_session())

        assert db.query(Order).filter(Order.id == order.id).count() == 1
        email_service.send_payment_receipt.assert_called_once()

    def test_missing_session_id(self, lifecycle):
        with pytest.raises(ValidationException):
            lifecycle.handle_checkout_completed({"object": "checkout.session"})


class TestPaymentIntentEvents:
    def test_success_completes_pending_payment(self, db, lifecycle, pending_payment):
        _, payment = pending_payment
        result = lifecycle.handle_payment_succeeded({"id": "pi_pending", "latest_charge": "ch_new"})

        assert result.id == payment.id
        db.refresh(payment)
        assert payment.status == PaymentStatus.COMPLETED.value
        assert payment.stripe_charge_id == "ch_new"

    def test_failure_cascades_to_order(self, db, lifecycle, pending_payment):
        order, payment = pending_payment
        lifecycle.handle_payment_failed(
            {"id": "pi_pending", "last_payment_error": {"message": "Card declined"}}
        )

        db.refresh(payment)
        db.refresh(order)
        assert payment.status == PaymentStatus.FAILED.value
        assert payment.failure_reason == "Card declined"
        assert order.status == OrderStatus.CANCELLED.value
        assert order.cancelled_at is not None

    def test_failure_after_completion_is_ignored(self, db, lifecycle, paid_order):
        order, payment = paid_order
        lifecycle.handle_payment_failed({"id": "pi_paid"})

        db.refresh(payment)
        db.refresh(order)
        assert payment.status == PaymentStatus.COMPLETED.value
        assert order.status == OrderStatus.PROCESSING.value

    def test_failure_after_checkout_completion_is_ignored(self, db, lifecycle, product):
        order = lifecycle.handle_checkout_completed(_session("cs_then_failed"))

        result = lifecycle.handle_payment_failed({"id": "pi_test_1"})

        assert result.status == PaymentStatus.COMPLETED.value
        db.refresh(order)
        assert order.status == OrderStatus.PROCESSING.value

    def test_unknown_intent_is_noop(self, lifecycle):
        assert lifecycle.handle_payment_succeeded({"id": "pi_unknown"}) is None
        assert lifecycle.handle_payment_failed({"id": "pi_unknown"}) is None


class TestChargeRefunded:
    def test_unknown_charge_is_noop(self, db, lifecycle, paid_order):
        order, payment = paid_order

        result = lifecycle.handle_charge_refunded({"id": "ch_unknown", "refunded": True})

        assert result is None
        db.refresh(payment)
        db.refresh(order)
        assert payment.status == PaymentStatus.COMPLETED.value
        assert payment.refunded_at is None
        assert order.status == OrderStatus.PROCESSING.value

    def test_refund_by_charge_id(self, db, lifecycle, paid_order):
        order, payment = paid_order

        lifecycle.handle_charge_refunded({"id": "ch_paid", "refunded": True})

        db.refresh(payment)
        db.refresh(order)
        assert payment.status == PaymentStatus.REFUNDED.value
        assert payment.refunded_at is not None
        assert order.status == OrderStatus.REFUNDED.value

    def test_falls_back_to_payment_intent(self, db, lifecycle, paid_order):
        _, payment = paid_order
        payment.stripe_charge_id = None
        db.commit()

        lifecycle.handle_charge_refunded(
            {"id": "ch_other", "payment_intent": "pi_paid", "refunded": True}
        )

        db.refresh(payment)
        assert payment.status == PaymentStatus.REFUNDED.value
        assert payment.stripe_charge_id == "ch_other"

    def test_partial_refund_leaves_payment(self, db, lifecycle, paid_order):
        _, payment = paid_order
        lifecycle.handle_charge_refunded(
            {"id": "ch_paid", "refunded": False, "amount_refunded": 1000}
        )
        db.refresh(payment)
        assert payment.status == PaymentStatus.COMPLETED.value

    def test_shipped_order_is_not_moved(self, db, lifecycle, paid_order):
        order, payment = paid_order
        order.status = OrderStatus.SHIPPED.value
        db.commit()

        lifecycle.handle_charge_refunded({"id": "ch_paid", "refunded": True})

        db.refresh(payment)
        db.refresh(order)
        assert payment.status == PaymentStatus.REFUNDED.value
        assert order.status == OrderStatus.SHIPPED.value


class TestAdminRefund:
    def test_refund_calls_stripe(self, db, lifecycle, paid_order):
        order, payment = paid_order
        with patch("stripe.Refund.create", return_value=MagicMock(id="re_1")) as refund_create:
            refunded = lifecycle.refund_payment(payment_id=payment.id, reason="Damaged")

        refund_create.assert_called_once()
        assert refund_create.call_args.kwargs["payment_intent"] == "pi_paid"
        assert refunded.status == PaymentStatus.REFUNDED.value
        db.refresh(order)
        assert order.status == OrderStatus.REFUNDED.value

    def test_refund_by_order_id(self, db, lifecycle, paid_order):
        order, payment = paid_order
        with patch("stripe.Refund.create", return_value=MagicMock(id="re_2")):
            refunded = lifecycle.refund_payment(order_id=order.id)
        assert refunded.id == payment.id

    def test_refund_by_order_id_locks_payment(self, db, lifecycle, paid_order):
        order, payment = paid_order
        repository = lifecycle.payment_repository
        with patch.object(
            repository, "get_completed_for_order", wraps=repository.get_completed_for_order
        ) as lookup, patch("stripe.Refund.create", return_value=MagicMock(id="re_lock")):
            lifecycle.refund_payment(order_id=order.id)
        lookup.assert_called_once_with(order.id, for_update=True)

    def test_double_refund_is_invalid_state(self, db, lifecycle, paid_order):
        _, payment = paid_order
        with patch("stripe.Refund.create", return_value=MagicMock(id="re_3")) as refund_create:
            lifecycle.refund_payment(payment_id=payment.id)
            with pytest.raises(InvalidStateException):
                lifecycle.refund_payment(payment_id=payment.id)
        assert refund_create.call_count == 1

    def test_pending_payment_cannot_be_refunded(self, lifecycle, pending_payment):
        _, payment = pending_payment
        with pytest.raises(InvalidStateException):
            lifecycle.refund_payment(payment_id=payment.id)

    def test_local_payment_refunds_without_stripe(self, db, lifecycle, paid_order):
        _, payment = paid_order
        payment.payment_method = "CASH"
        payment.stripe_payment_intent_id = None
        db.commit()

        with patch("stripe.Refund.create") as refund_create:
            refunded = lifecycle.refund_payment(payment_id=payment.id)
        refund_create.assert_not_called()
        assert refunded.status == PaymentStatus.REFUNDED.value

    def test_stripe_error_leaves_payment_completed(self, db, lifecycle, paid_order):
        _, payment = paid_order
        with patch("stripe.Refund.create", side_effect=stripe.StripeError("declined")):
            with pytest.raises(ExternalProviderException):
                lifecycle.refund_payment(payment_id=payment.id)
        db.refresh(payment)
        assert payment.status == PaymentStatus.COMPLETED.value

    def test_unknown_payment(self, lifecycle):
        with pytest.raises(NotFoundException):
            lifecycle.refund_payment(payment_id="01HZZZZZZZZZZZZZZZZZZZZZZZ")


def test_payment_stats(db, lifecycle, paid_order, pending_payment):
    stats = lifecycle.get_payment_stats()
    assert stats.successful_payments == 1
    assert stats.pending_payments == 1
    assert stats.failed_payments == 0
    assert stats.total_revenue == Decimal("40.00")
    assert stats.refunded_amount == Decimal("0")


class TestWebhookLedger:
    def test_event_recorded_and_processed(self, db, lifecycle, product):
        result = lifecycle.handle_webhook_event(
            _event("evt_1", "checkout.session.completed", _session())
        )

        assert result["status"] == "success"
        event = db.query(WebhookEvent).one()
        assert event.status == "processed"
        assert event.source == "stripe"
        assert event.related_entity_type == "order"
        assert event.processing_duration_ms is not None

    def test_redelivered_event_is_skipped(self, db, lifecycle, product):
        event = _event("evt_1", "checkout.session.completed", _session())
        lifecycle.handle_webhook_event(event)
        result = lifecycle.handle_webhook_event(event)

        assert result["status"] == "duplicate"
        assert db.query(Order).count() == 1
        ledger_row = db.query(WebhookEvent).one()
        assert ledger_row.retry_count == 1

    def test_unhandled_type_is_ignored(self, db, lifecycle):
        result = lifecycle.handle_webhook_event(_event("evt_2", "customer.created", {"id": "cus_1"}))

        assert result["status"] == "ignored"
        assert db.query(WebhookEvent).one().status == "ignored"

    def test_handler_failure_marks_event_failed(self, db, lifecycle):
        with pytest.raises(ValidationException):
            lifecycle.handle_webhook_event(_event("evt_3", "checkout.session.completed", {}))

        event = db.query(WebhookEvent).one()
        assert event.status == "failed"
        assert event.processing_error

    def test_failed_event_is_retried_on_redelivery(self, db, lifecycle, product):
        broken = _event("evt_4", "checkout.session.completed", {})
        with pytest.raises(ValidationException):
            lifecycle.handle_webhook_event(broken)

        fixed = _event("evt_4", "checkout.session.completed", _session())
        result = lifecycle.handle_webhook_event(fixed)

        assert result["status"] == "success"
        event = db.query(WebhookEvent).one()
        assert event.status == "processed"
        assert event.retry_count == 1

from decimal import Decimal
from unittest.mock import MagicMock, patch

import pytest

from shopdesk.core.enums import OrderStatus, PaymentStatus
from shopdesk.models.order import Order
from shopdesk.models.payment import Payment


@pytest.fixture
def paid_payment(db):
    order = Order(
        order_number="ORD-1700000000000-ROUTETEST",
        status=OrderStatus.PROCESSING.value,
        subtotal=Decimal("40.00"),
        total=Decimal("40.00"),
    )
    db.add(order)
    db.flush()
    payment = Payment(
        order_id=order.id,
        amount=Decimal("40.00"),
        status=PaymentStatus.COMPLETED.value,
        stripe_payment_intent_id="pi_route",
        stripe_charge_id="ch_route",
    )
    db.add(payment)
    db.commit()
    return payment


class TestCheckoutSessionEndpoint:
    def test_creates_session(self, client, product):
        session = MagicMock(id="cs_route", url="https://checkout.stripe.com/c/cs_route")
        with patch("stripe.checkout.Session.create", return_value=session):
            response = client.post(
                "/api/v1/payments/create-checkout-session",
                json={"items": [{"type": "product", "id": 7, "quantity": 1}]},
            )

        assert response.status_code == 200
        assert response.json() == {"sessionId": "cs_route", "url": "https://checkout.stripe.com/c/cs_route"}

    def test_empty_cart_is_422(self, client):
        response = client.post("/api/v1/payments/create-checkout-session", json={"items": []})
        assert response.status_code == 422

    def test_unknown_item_is_404(self, client):
        response = client.post(
            "/api/v1/payments/create-checkout-session",
            json={"items": [{"type": "service", "id": "nope"}]},
        )
        assert response.status_code == 404


class TestRefundEndpoints:
    def test_refund_requires_admin(self, client, paid_payment):
        response = client.post(f"/api/v1/payments/refund/{paid_payment.id}")
        assert response.status_code == 401

    def test_refund_by_path(self, admin_client, paid_payment):
        with patch("stripe.Refund.create", return_value=MagicMock(id="re_route")):
            response = admin_client.post(
                f"/api/v1/payments/refund/{paid_payment.id}", json={"reason": "Changed mind"}
            )

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["payment"]["status"] == "REFUNDED"
        assert body["payment"]["amount"] == "40.00"

    def test_refund_by_order_body(self, admin_client, paid_payment):
        with patch("stripe.Refund.create", return_value=MagicMock(id="re_route")):
            response = admin_client.post(
                "/api/v1/payments/refund", json={"orderId": paid_payment.order_id}
            )
        assert response.status_code == 200
        assert response.json()["payment"]["id"] == paid_payment.id

    def test_refund_body_needs_target(self, admin_client):
        response = admin_client.post("/api/v1/payments/refund", json={"reason": "x"})
        assert response.status_code == 422

    def test_double_refund_is_422(self, admin_client, paid_payment):
        with patch("stripe.Refund.create", return_value=MagicMock(id="re_route")):
            admin_client.post(f"/api/v1/payments/refund/{paid_payment.id}")
            response = admin_client.post(f"/api/v1/payments/refund/{paid_payment.id}")
        assert response.status_code == 422


def test_payment_stats(admin_client, paid_payment):
    response = admin_client.get("/api/v1/payments/stats")
    assert response.status_code == 200
    body = response.json()
    assert body["successfulPayments"] == 1
    assert body["totalRevenue"] == "40.00"


def test_payment_stats_forbidden_for_staff(staff_client):
    assert staff_client.get("/api/v1/payments/stats").status_code == 403

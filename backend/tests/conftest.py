# backend/tests/conftest.py
"""
Pytest configuration for ShopDesk.

Tests run against an in-memory SQLite database built from the ORM metadata.
Resend is mocked globally so no test can send real email.
"""

import os

# CRITICAL: configure the environment BEFORE any shopdesk imports
os.environ["CI"] = "1"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["ENVIRONMENT"] = "test"
os.environ["IS_TESTING"] = "true"
os.environ["STRIPE_SECRET_KEY"] = "sk_test_shopdesk"
os.environ["STRIPE_WEBHOOK_SECRET"] = "whsec_test_shopdesk"
os.environ["EMAIL_PROVIDER"] = "console"

import unittest.mock

global_resend_mock = unittest.mock.patch("resend.Emails.send")
mocked_send = global_resend_mock.start()
mocked_send.return_value = {"id": "test-email-id"}

from datetime import datetime
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from shopdesk import models  # noqa: F401
from shopdesk.core.enums import AppointmentStatus, RoleName
from shopdesk.database import Base, SessionLocal, engine, get_db
from shopdesk.dependencies.permissions import Principal, get_current_principal
from shopdesk.main import app
from shopdesk.models.appointment import Appointment
from shopdesk.models.catalog import Product, Service
from shopdesk.models.user import Customer, User


@pytest.fixture(scope="function")
def db():
    """Fresh schema and session for each test."""
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()

    yield session

    session.rollback()
    session.close()
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def client(db: Session):
    """Test client sharing the test session; no principal attached."""

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    test_client = TestClient(app)

    yield test_client

    app.dependency_overrides.clear()
    test_client.close()


@pytest.fixture
def admin_client(client: TestClient):
    """Test client whose requests carry an ADMIN principal."""
    app.dependency_overrides[get_current_principal] = lambda: Principal(
        id="admin-user", roles=frozenset({RoleName.ADMIN})
    )
    return client


@pytest.fixture
def staff_client(client: TestClient):
    app.dependency_overrides[get_current_principal] = lambda: Principal(
        id="staff-user", roles=frozenset({RoleName.STAFF})
    )
    return client


@pytest.fixture
def haircut(db: Session) -> Service:
    """60 minute service with a 15 minute buffer, one booking per slot."""
    service = Service(
        name="Haircut",
        slug="haircut",
        price=Decimal("40.00"),
        duration=60,
        buffer_time=15,
        max_bookings_per_slot=1,
        min_advance_booking=0,
        max_advance_booking=30,
        is_active=True,
    )
    db.add(service)
    db.commit()
    return service


@pytest.fixture
def free_consult(db: Session) -> Service:
    service = Service(
        name="Free Consultation",
        slug="free-consultation",
        price=Decimal("0.00"),
        duration=30,
        buffer_time=0,
        max_bookings_per_slot=1,
        is_active=True,
    )
    db.add(service)
    db.commit()
    return service


@pytest.fixture
def product(db: Session) -> Product:
    item = Product(
        id="7",
        name="Beard Oil",
        slug="beard-oil",
        sku="BO-001",
        price=Decimal("20.00"),
        stock=10,
        is_active=True,
    )
    db.add(item)
    db.commit()
    return item


@pytest.fixture
def customer(db: Session) -> Customer:
    user = User(email="jane@example.com", first_name="Jane", last_name="Doe")
    db.add(user)
    db.flush()
    record = Customer(user_id=user.id)
    db.add(record)
    db.commit()
    return record


@pytest.fixture
def make_appointment(db: Session, customer: Customer):
    def _make(service: Service, start: datetime, status: AppointmentStatus = AppointmentStatus.CONFIRMED):
        appointment = Appointment(
            service_id=service.id,
            customer_id=customer.id,
            appointment_date=start,
            duration=service.duration,
            price=service.price,
            status=status.value,
        )
        db.add(appointment)
        db.commit()
        return appointment

    return _make

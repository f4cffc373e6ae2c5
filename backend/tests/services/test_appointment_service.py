from datetime import datetime, timedelta

import pytest

from shopdesk.core.enums import AppointmentStatus, EmailStatus, EmailType
from shopdesk.core.exceptions import (
    BookingConflictException,
    InvalidStateException,
    NotFoundException,
    ValidationException,
)
from shopdesk.models.email_log import EmailLog
from shopdesk.models.user import Customer, User
from shopdesk.schemas.appointment import AppointmentCreate, AppointmentUpdate
from shopdesk.services.appointment_service import AppointmentService
from shopdesk.services.availability_service import AvailabilityService
from tests.helpers.scheduling import at, booking_day


def _request(service, start, **overrides):
    data = {
        "service_id": service.id,
        "appointment_date": start,
        "customer_name": "Sam Carter",
        "customer_email": "sam@example.com",
    }
    data.update(overrides)
    return AppointmentCreate(**data)


class TestCreateAppointment:
    def test_priced_service_books_pending(self, db, haircut):
        appointment = AppointmentService(db).create_appointment(_request(haircut, at(booking_day(), 10)))

        assert appointment.status == AppointmentStatus.PENDING.value
        assert appointment.duration == 60
        assert appointment.price == haircut.price
        assert appointment.confirmed_at is None

    def test_free_service_books_confirmed(self, db, free_consult):
        appointment = AppointmentService(db).create_appointment(
            _request(free_consult, at(booking_day(), 10))
        )
        assert appointment.status == AppointmentStatus.CONFIRMED.value
        assert appointment.confirmed_at is not None

    def test_guest_customer_created_once(self, db, haircut):
        service = AppointmentService(db)
        day = booking_day()
        first = service.create_appointment(_request(haircut, at(day, 9)))
        second = service.create_appointment(
            _request(haircut, at(day, 13), customer_email="SAM@example.com")
        )

        assert first.customer_id == second.customer_id
        assert db.query(User).filter(User.email == "sam@example.com").count() == 1
        customer = db.get(Customer, first.customer_id)
        assert customer.user.first_name == "Sam"
        assert customer.user.last_name == "Carter"

    def test_existing_customer_by_id(self, db, haircut, customer):
        appointment = AppointmentService(db).create_appointment(
            AppointmentCreate(
                service_id=haircut.id,
                appointment_date=at(booking_day(), 11),
                customer_id=customer.id,
            )
        )
        assert appointment.customer_id == customer.id

    def test_unknown_customer_id(self, db, haircut):
        with pytest.raises(NotFoundException):
            AppointmentService(db).create_appointment(
                AppointmentCreate(
                    service_id=haircut.id,
                    appointment_date=at(booking_day(), 11),
                    customer_id="01HZZZZZZZZZZZZZZZZZZZZZZZ",
                )
            )

    def test_customer_details_required(self, db, haircut):
        with pytest.raises(ValidationException) as exc_info:
            AppointmentService(db).create_appointment(
                AppointmentCreate(service_id=haircut.id, appointment_date=at(booking_day(), 11))
            )
        assert exc_info.value.code == "CUSTOMER_REQUIRED"

    def test_confirmation_email_logged(self, db, haircut):
        appointment = AppointmentService(db).create_appointment(_request(haircut, at(booking_day(), 10)))

        log = db.query(EmailLog).filter(EmailLog.related_appointment_id == appointment.id).one()
        assert log.email_type == EmailType.APPOINTMENT_CONFIRMATION.value
        assert log.status == EmailStatus.SENT.value
        assert log.recipient_email == "sam@example.com"
        assert "Haircut" in log.subject

    def test_unknown_service(self, db):
        with pytest.raises(NotFoundException):
            AppointmentService(db).create_appointment(
                AppointmentCreate(
                    service_id="01HZZZZZZZZZZZZZZZZZZZZZZZ",
                    appointment_date=at(booking_day(), 10),
                    customer_name="Sam Carter",
                    customer_email="sam@example.com",
                )
            )


class TestBookingWindow:
    def test_past_start_rejected(self, db, haircut):
        with pytest.raises(ValidationException) as exc_info:
            AppointmentService(db).create_appointment(
                _request(haircut, at(booking_day(-1), 10))
            )
        assert exc_info.value.code == "DATE_IN_PAST"

    def test_min_advance_enforced(self, db, haircut):
        haircut.min_advance_booking = 24 * 10
        db.commit()
        with pytest.raises(ValidationException) as exc_info:
            AppointmentService(db).create_appointment(_request(haircut, at(booking_day(), 10)))
        assert exc_info.value.code == "TOO_SOON"

    def test_max_advance_enforced(self, db, haircut):
        with pytest.raises(ValidationException) as exc_info:
            AppointmentService(db).create_appointment(_request(haircut, at(booking_day(45), 10)))
        assert exc_info.value.code == "TOO_FAR_AHEAD"

    def test_buffered_slot_must_end_before_closing(self, db, haircut):
        with pytest.raises(ValidationException) as exc_info:
            AppointmentService(db).create_appointment(_request(haircut, at(booking_day(), 16)))
        assert exc_info.value.code == "OUTSIDE_BUSINESS_HOURS"

    def test_before_opening_rejected(self, db, haircut):
        with pytest.raises(ValidationException) as exc_info:
            AppointmentService(db).create_appointment(_request(haircut, at(booking_day(), 8)))
        assert exc_info.value.code == "OUTSIDE_BUSINESS_HOURS"


class TestConflicts:
    def test_overlapping_booking_conflicts(self, db, haircut):
        service = AppointmentService(db)
        day = booking_day()
        service.create_appointment(_request(haircut, at(day, 10)))

        with pytest.raises(BookingConflictException) as exc_info:
            service.create_appointment(
                _request(haircut, at(day, 10, 30), customer_email="other@example.com")
            )
        assert exc_info.value.code == "BOOKING_CONFLICT"

    def test_adjacent_booking_allowed(self, db, haircut):
        service = AppointmentService(db)
        day = booking_day()
        service.create_appointment(_request(haircut, at(day, 10)))
        second = service.create_appointment(_request(haircut, at(day, 11)))
        assert second.appointment_date == at(day, 11)

    def test_conflict_leaves_no_partial_rows(self, db, haircut):
        service = AppointmentService(db)
        day = booking_day()
        service.create_appointment(_request(haircut, at(day, 10)))

        with pytest.raises(BookingConflictException):
            service.create_appointment(
                _request(haircut, at(day, 10), customer_name="New Person", customer_email="new@example.com")
            )
        assert db.query(User).filter(User.email == "new@example.com").count() == 0

    def test_cancelled_booking_frees_slot(self, db, haircut):
        day = booking_day()
        service = AppointmentService(db)
        availability = AvailabilityService(db)

        appointment = service.create_appointment(_request(haircut, at(day, 10)))
        slot = next(s for s in availability.compute_availability(haircut.id, day).slots if s.start_time == at(day, 10))
        assert not slot.available

        cancelled = service.cancel_appointment(appointment.id, "Customer called")
        assert cancelled.cancelled_at is not None
        assert cancelled.cancellation_reason == "Customer called"

        slot = next(s for s in availability.compute_availability(haircut.id, day).slots if s.start_time == at(day, 10))
        assert slot.available
        rebooked = service.create_appointment(
            _request(haircut, at(day, 10), customer_email="next@example.com")
        )
        assert rebooked.status == AppointmentStatus.PENDING.value


class TestStatusUpdates:
    def test_pending_to_confirmed(self, db, haircut, make_appointment):
        appointment = make_appointment(haircut, at(booking_day(), 10), AppointmentStatus.PENDING)
        updated = AppointmentService(db).update_status(appointment.id, AppointmentStatus.CONFIRMED)
        assert updated.status == AppointmentStatus.CONFIRMED.value
        assert updated.confirmed_at is not None

    def test_confirmed_to_completed(self, db, haircut, make_appointment):
        appointment = make_appointment(haircut, at(booking_day(), 10))
        updated = AppointmentService(db).update_status(appointment.id, AppointmentStatus.COMPLETED)
        assert updated.status == AppointmentStatus.COMPLETED.value

    @pytest.mark.parametrize(
        "start_status,target",
        [
            (AppointmentStatus.PENDING, AppointmentStatus.COMPLETED),
            (AppointmentStatus.PENDING, AppointmentStatus.NO_SHOW),
            (AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED),
            (AppointmentStatus.NO_SHOW, AppointmentStatus.CONFIRMED),
        ],
    )
    def test_disallowed_transition(self, db, haircut, make_appointment, start_status, target):
        appointment = make_appointment(haircut, at(booking_day(), 10), start_status)
        with pytest.raises(InvalidStateException):
            AppointmentService(db).update_status(appointment.id, target)
        db.refresh(appointment)
        assert appointment.status == start_status.value

    def test_cancelled_is_terminal(self, db, haircut, make_appointment):
        appointment = make_appointment(haircut, at(booking_day(), 10))
        service = AppointmentService(db)
        service.cancel_appointment(appointment.id)
        with pytest.raises(InvalidStateException):
            service.cancel_appointment(appointment.id)

    def test_unknown_appointment(self, db):
        with pytest.raises(NotFoundException):
            AppointmentService(db).update_status("01HZZZZZZZZZZZZZZZZZZZZZZZ", AppointmentStatus.CONFIRMED)

    def test_confirm_after_payment_skips_cancelled(self, db, haircut, make_appointment):
        appointment = make_appointment(haircut, at(booking_day(), 10), AppointmentStatus.PENDING)
        service = AppointmentService(db)
        service.cancel_appointment(appointment.id)

        with service.transaction():
            result = service.confirm_after_payment(appointment.id)
        assert result.status == AppointmentStatus.CANCELLED.value


class TestReschedule:
    def test_moves_to_free_slot(self, db, haircut, make_appointment):
        day = booking_day()
        appointment = make_appointment(haircut, at(day, 10))

        updated = AppointmentService(db).update_appointment(
            appointment.id, AppointmentUpdate(appointment_date=at(day, 14), notes="Moved by phone")
        )

        assert updated.appointment_date == at(day, 14)
        assert updated.notes == "Moved by phone"
        assert updated.status == AppointmentStatus.CONFIRMED.value

    def test_overlapping_own_booking_is_allowed(self, db, haircut, make_appointment):
        day = booking_day()
        appointment = make_appointment(haircut, at(day, 10))

        updated = AppointmentService(db).update_appointment(
            appointment.id, AppointmentUpdate(appointment_date=at(day, 10, 30))
        )
        assert updated.appointment_date == at(day, 10, 30)

    def test_into_taken_slot_conflicts(self, db, haircut, make_appointment):
        day = booking_day()
        make_appointment(haircut, at(day, 14))
        appointment = make_appointment(haircut, at(day, 10))

        with pytest.raises(BookingConflictException):
            AppointmentService(db).update_appointment(
                appointment.id, AppointmentUpdate(appointment_date=at(day, 14, 30), notes="ignored")
            )

        db.refresh(appointment)
        assert appointment.appointment_date == at(day, 10)
        assert appointment.notes is None

    def test_outside_business_hours_rejected(self, db, haircut, make_appointment):
        day = booking_day()
        appointment = make_appointment(haircut, at(day, 10))
        with pytest.raises(ValidationException):
            AppointmentService(db).update_appointment(
                appointment.id, AppointmentUpdate(appointment_date=at(day, 6))
            )

    def test_cancelled_cannot_be_rescheduled(self, db, haircut, make_appointment):
        day = booking_day()
        appointment = make_appointment(haircut, at(day, 10), AppointmentStatus.CANCELLED)
        with pytest.raises(InvalidStateException):
            AppointmentService(db).update_appointment(
                appointment.id, AppointmentUpdate(appointment_date=at(day, 14))
            )

    def test_update_requires_a_change(self):
        with pytest.raises(ValueError):
            AppointmentUpdate()


class TestReminder:
    def test_reminder_goes_to_customer(self, db, haircut, make_appointment):
        appointment = make_appointment(haircut, at(booking_day(1), 14))

        result = AppointmentService(db).send_reminder(appointment.id)

        assert result["success"] is True
        log = db.get(EmailLog, result["log_id"])
        assert log.email_type == EmailType.APPOINTMENT_REMINDER.value
        assert log.recipient_email == "jane@example.com"
        assert log.related_appointment_id == appointment.id

    def test_no_reminder_for_cancelled(self, db, haircut, make_appointment):
        appointment = make_appointment(haircut, at(booking_day(), 10), AppointmentStatus.CANCELLED)
        with pytest.raises(InvalidStateException):
            AppointmentService(db).send_reminder(appointment.id)

    def test_unknown_appointment(self, db):
        with pytest.raises(NotFoundException):
            AppointmentService(db).send_reminder("01HZZZZZZZZZZZZZZZZZZZZZZZ")


def test_aware_datetime_is_stored_as_local_time(db, haircut):
    local = at(booking_day(), 10)
    aware = local.astimezone()
    appointment = AppointmentService(db).create_appointment(_request(haircut, aware))
    assert appointment.appointment_date == local
    assert isinstance(appointment.appointment_date, datetime)
    assert appointment.appointment_date.tzinfo is None
    assert appointment.appointment_date - local == timedelta(0)

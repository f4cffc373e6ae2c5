# backend/shopdesk/services/appointment_service.py
"""
Appointment Service for ShopDesk

Handles booking creation and the admin-driven appointment lifecycle.

Booking runs check-then-insert inside one transaction that first locks the
service row, so concurrent bookings of the same service are serialized at
the database and cannot both pass the capacity check.
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
import logging
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.enums import APPOINTMENT_TRANSITIONS, AppointmentStatus, can_transition, is_terminal
from ..core.exceptions import (
    BookingConflictException,
    InvalidStateException,
    NotFoundException,
    ValidationException,
)
from ..models.appointment import Appointment
from ..models.catalog import Service
from ..models.user import Customer
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories.factory import RepositoryFactory
from ..schemas.appointment import AppointmentCreate, AppointmentUpdate
from .availability_service import AvailabilityService
from .base import BaseService
from .customer_service import CustomerService
from .email import EmailService

logger = logging.getLogger(__name__)


class AppointmentService(BaseService):
    def __init__(
        self,
        db: Session,
        email_service: Optional[EmailService] = None,
        availability_service: Optional[AvailabilityService] = None,
        customer_service: Optional[CustomerService] = None,
    ):
        super().__init__(db)
        self.appointment_repository = RepositoryFactory.create_appointment_repository(db)
        self.service_repository = RepositoryFactory.create_service_repository(db)
        self.email_service = email_service or EmailService(db)
        self.availability_service = availability_service or AvailabilityService(db)
        self.customer_service = customer_service or CustomerService(db)

    def _validate_start(self, service: Service, start: datetime) -> None:
        now = datetime.now()
        if start <= now:
            raise ValidationException("Appointment date must be in the future", code="DATE_IN_PAST")

        min_hours = service.min_advance_booking or 0
        if start < now + timedelta(hours=min_hours):
            raise ValidationException(
                f"Appointments must be booked at least {min_hours} hours in advance",
                code="TOO_SOON",
            )

        max_days = service.max_advance_booking
        if max_days and start > now + timedelta(days=max_days):
            raise ValidationException(
                f"Appointments cannot be booked more than {max_days} days in advance",
                code="TOO_FAR_AHEAD",
            )

        open_at, close_at = AvailabilityService.business_window(start.date())
        buffered_end = start + timedelta(minutes=service.duration + (service.buffer_time or 0))
        if start < open_at or buffered_end > close_at:
            raise ValidationException(
                "Appointment must fall within business hours",
                code="OUTSIDE_BUSINESS_HOURS",
                details={
                    "open": settings.business_open.isoformat(),
                    "close": settings.business_close.isoformat(),
                },
            )

    def _ensure_capacity(self, service: Service, start: datetime, exclude_id: Optional[str] = None) -> None:
        occupied = self.availability_service.check_slot(service, start, exclude_id=exclude_id)
        if occupied >= (service.max_bookings_per_slot or 1):
            prometheus_metrics.inc_booking_conflict()
            self.logger.info(
                f"Booking conflict for service {service.id} at {start.isoformat()} "
                f"({occupied} overlapping)"
            )
            raise BookingConflictException(
                details={"service_id": service.id, "appointment_date": start.isoformat()}
            )

    @BaseService.measure_operation("create_appointment")
    def create_appointment(self, data: AppointmentCreate) -> Appointment:
        """
        Book a service slot.

        Raises:
            ValidationException: missing customer details or an unbookable start
            NotFoundException: unknown service or customer
            BookingConflictException: the slot has no remaining capacity
        """
        if not data.customer_id and not (data.customer_name and data.customer_email):
            raise ValidationException(
                "Customer ID or customer name and email are required",
                code="CUSTOMER_REQUIRED",
            )

        start = data.appointment_date
        with self.transaction():
            service = self.service_repository.lock(data.service_id)
            if service is None or not service.is_bookable:
                raise NotFoundException("Service not found", code="SERVICE_NOT_FOUND")

            self._validate_start(service, start)
            self._ensure_capacity(service, start)

            customer = self.customer_service.resolve_customer(
                customer_id=data.customer_id,
                name=data.customer_name,
                email=data.customer_email,
                phone=data.customer_phone,
            )

            is_free = Decimal(service.price or 0) == Decimal("0")
            status = AppointmentStatus.CONFIRMED if is_free else AppointmentStatus.PENDING
            appointment = self.appointment_repository.create(
                service_id=service.id,
                customer_id=customer.id,
                appointment_date=start,
                duration=service.duration,
                price=service.price,
                status=status.value,
                notes=data.notes,
                confirmed_at=datetime.now(timezone.utc) if is_free else None,
            )

        prometheus_metrics.inc_appointment_created(appointment.status)
        self.log_operation(
            "appointment_created",
            appointment_id=appointment.id,
            service_id=appointment.service_id,
            status=appointment.status,
        )
        self._send_confirmation(appointment, customer, data.customer_name)
        return appointment

    def _send_confirmation(
        self, appointment: Appointment, customer: Customer, fallback_name: Optional[str]
    ) -> None:
        user = customer.user
        if user is None or not user.email:
            return
        try:
            self.email_service.send_appointment_confirmation(
                appointment, user.email, user.full_name or fallback_name or "Customer"
            )
        except Exception as exc:
            self.logger.error(
                f"Failed to send confirmation for appointment {appointment.id}: {str(exc)}"
            )

    def _get_for_update(self, appointment_id: str) -> Appointment:
        appointment = self.appointment_repository.get_by_id(appointment_id, for_update=True)
        if appointment is None:
            raise NotFoundException("Appointment not found", code="APPOINTMENT_NOT_FOUND")
        return appointment

    @staticmethod
    def apply_status(appointment: Appointment, target: AppointmentStatus, reason: Optional[str] = None) -> None:
        """Set status and its timestamps. Caller has already validated the transition."""
        appointment.status = target.value
        now = datetime.now(timezone.utc)
        if target == AppointmentStatus.CANCELLED:
            appointment.cancelled_at = now
            appointment.cancellation_reason = reason
        elif target == AppointmentStatus.CONFIRMED:
            appointment.confirmed_at = now

    def _reschedule(self, appointment: Appointment, start: datetime) -> None:
        if is_terminal(APPOINTMENT_TRANSITIONS, AppointmentStatus, appointment.status):
            raise InvalidStateException(
                f"Cannot reschedule a {appointment.status} appointment",
                current_status=appointment.status,
                code="APPOINTMENT_CLOSED",
            )
        service = self.service_repository.lock(appointment.service_id)
        if service is None or not service.is_bookable:
            raise NotFoundException("Service not found", code="SERVICE_NOT_FOUND")

        self._validate_start(service, start)
        self._ensure_capacity(service, start, exclude_id=appointment.id)
        appointment.appointment_date = start

    @BaseService.measure_operation("update_appointment")
    def update_appointment(self, appointment_id: str, data: AppointmentUpdate) -> Appointment:
        """
        Admin edit: reschedule, notes and status change in one transaction.

        A new start takes the service lock and is re-checked like a new
        booking, with the appointment itself left out of the capacity count.

        Raises:
            NotFoundException: unknown appointment, or its service is gone
            ValidationException: the new start is in the past or outside business hours
            BookingConflictException: the new start has no remaining capacity
            InvalidStateException: rescheduling a closed appointment or a disallowed transition
        """
        target = AppointmentStatus(data.status) if data.status is not None else None
        with self.transaction():
            appointment = self._get_for_update(appointment_id)
            previous_start = appointment.appointment_date

            if data.appointment_date is not None and data.appointment_date != previous_start:
                self._reschedule(appointment, data.appointment_date)

            if data.notes is not None:
                appointment.notes = data.notes

            if target is not None:
                if not can_transition(
                    APPOINTMENT_TRANSITIONS, AppointmentStatus, appointment.status, target.value
                ):
                    raise InvalidStateException(
                        f"Cannot change appointment from {appointment.status} to {target.value}",
                        current_status=appointment.status,
                        target_status=target.value,
                    )
                self.apply_status(appointment, target, data.cancellation_reason)
            self.appointment_repository.flush()

        if appointment.appointment_date != previous_start:
            self.log_operation(
                "appointment_rescheduled",
                appointment_id=appointment.id,
                previous_start=previous_start.isoformat(),
                start=appointment.appointment_date.isoformat(),
            )
        if target is not None:
            self.log_operation("appointment_status_updated", appointment_id=appointment.id, status=target.value)
        return appointment

    def update_status(
        self, appointment_id: str, status: AppointmentStatus, reason: Optional[str] = None
    ) -> Appointment:
        """
        Admin status change.

        Raises:
            NotFoundException: unknown appointment
            InvalidStateException: transition not allowed from the current status
        """
        return self.update_appointment(
            appointment_id, AppointmentUpdate(status=status, cancellation_reason=reason)
        )

    def cancel_appointment(self, appointment_id: str, reason: Optional[str] = None) -> Appointment:
        return self.update_status(appointment_id, AppointmentStatus.CANCELLED, reason)

    @BaseService.measure_operation("send_reminder")
    def send_reminder(self, appointment_id: str) -> Dict[str, Any]:
        """
        Email the customer a reminder for an upcoming appointment.

        Raises:
            NotFoundException: unknown appointment
            InvalidStateException: appointment is cancelled or already closed
            ValidationException: the customer has no email address
        """
        appointment = self.appointment_repository.get_by_id(appointment_id)
        if appointment is None:
            raise NotFoundException("Appointment not found", code="APPOINTMENT_NOT_FOUND")
        if is_terminal(APPOINTMENT_TRANSITIONS, AppointmentStatus, appointment.status):
            raise InvalidStateException(
                f"Cannot send a reminder for a {appointment.status} appointment",
                current_status=appointment.status,
                code="APPOINTMENT_CLOSED",
            )
        user = appointment.customer.user if appointment.customer else None
        if user is None or not user.email:
            raise ValidationException("Customer has no email address", code="NO_RECIPIENT")

        result = self.email_service.send_appointment_reminder(
            appointment, user.email, user.full_name or "Customer"
        )
        self.log_operation("appointment_reminder_sent", appointment_id=appointment.id, success=result["success"])
        return result

    def confirm_after_payment(self, appointment_id: str) -> Optional[Appointment]:
        """
        PENDING -> CONFIRMED from the checkout webhook.

        Runs inside the caller's transaction. Unknown appointments and
        disallowed transitions are logged and skipped.
        """
        appointment = self.appointment_repository.get_by_id(appointment_id, for_update=True)
        if appointment is None:
            self.logger.warning(f"Paid appointment {appointment_id} not found; skipping confirmation")
            return None
        if not can_transition(
            APPOINTMENT_TRANSITIONS, AppointmentStatus, appointment.status, AppointmentStatus.CONFIRMED.value
        ):
            self.logger.info(
                f"Appointment {appointment_id} is {appointment.status}; not confirming after payment"
            )
            return appointment
        self.apply_status(appointment, AppointmentStatus.CONFIRMED)
        return appointment

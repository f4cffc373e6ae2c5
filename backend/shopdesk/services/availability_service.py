# backend/shopdesk/services/availability_service.py
"""
Availability Engine for ShopDesk.

Produces the bookable slots for one service on one day. Candidate starts
are laid out every ``slot_interval_minutes`` from opening time; each slot
spans the service duration and is dropped when duration plus buffer time
would run past closing. A slot's remaining capacity is the service's
``max_bookings_per_slot`` minus the number of non-cancelled appointments
overlapping ``[start, start + duration)``, where each appointment occupies
``[appointment_date, appointment_date + its own duration)``.

Results are recomputed from the database on every call.
"""

from datetime import date, datetime, timedelta
import logging
from typing import Iterable, Iterator, List, Optional, Union

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.exceptions import NotFoundException, ValidationException
from ..models.appointment import Appointment
from ..models.catalog import Service
from ..repositories.factory import RepositoryFactory
from ..schemas.appointment import AvailabilityResponse, TimeSlot
from .base import BaseService

logger = logging.getLogger(__name__)

# Appointments that started up to this long before a window may still overlap it
LOOKBACK = timedelta(days=1)


def count_overlapping(appointments: Iterable[Appointment], start: datetime, end: datetime) -> int:
    """Number of appointments overlapping the half-open interval ``[start, end)``."""
    return sum(1 for appointment in appointments if appointment.overlaps(start, end))


class AvailabilityService(BaseService):
    def __init__(self, db: Session):
        super().__init__(db)
        self.service_repository = RepositoryFactory.create_service_repository(db)
        self.appointment_repository = RepositoryFactory.create_appointment_repository(db)

    @staticmethod
    def parse_day(value: Union[date, str, None]) -> date:
        if isinstance(value, datetime):
            return value.date()
        if isinstance(value, date):
            return value
        if not value:
            raise ValidationException("Date is required", code="DATE_REQUIRED")
        try:
            return date.fromisoformat(value)
        except ValueError as exc:
            raise ValidationException(
                "Invalid date format, expected YYYY-MM-DD", code="INVALID_DATE"
            ) from exc

    @staticmethod
    def business_window(day: date) -> tuple[datetime, datetime]:
        return (
            datetime.combine(day, settings.business_open),
            datetime.combine(day, settings.business_close),
        )

    @staticmethod
    def candidate_starts(day: date) -> Iterator[datetime]:
        """Slot starts from opening time, one per interval, while before closing."""
        open_at, close_at = AvailabilityService.business_window(day)
        step = timedelta(minutes=settings.slot_interval_minutes)
        current = open_at
        while current < close_at:
            yield current
            current += step

    def _get_service(self, service_id: str) -> Service:
        if not service_id:
            raise ValidationException("Service ID is required", code="SERVICE_REQUIRED")
        service = self.service_repository.get_bookable(service_id)
        if service is None:
            raise NotFoundException("Service not found", code="SERVICE_NOT_FOUND")
        return service

    def appointments_around(self, service_id: str, start: datetime, end: datetime) -> List[Appointment]:
        """Non-cancelled appointments that might overlap ``[start, end)``."""
        return self.appointment_repository.get_active_starting_between(service_id, start - LOOKBACK, end)

    @BaseService.measure_operation("compute_availability")
    def compute_availability(self, service_id: str, day: Union[date, str, None]) -> AvailabilityResponse:
        """
        Compute the slot grid for a service on a day.

        Raises:
            ValidationException: missing service id or malformed date
            NotFoundException: service missing, inactive or deleted
        """
        target_day = self.parse_day(day)
        service = self._get_service(service_id)

        open_at, close_at = self.business_window(target_day)
        appointments = [
            appointment
            for appointment in self.appointments_around(service.id, open_at, close_at)
            if appointment.overlaps(open_at, close_at)
        ]

        duration = timedelta(minutes=service.duration)
        buffered = timedelta(minutes=service.duration + (service.buffer_time or 0))
        capacity = service.max_bookings_per_slot or 1

        slots: List[TimeSlot] = []
        for start in self.candidate_starts(target_day):
            if start + buffered > close_at:
                continue
            end = start + duration
            remaining = max(capacity - count_overlapping(appointments, start, end), 0)
            slots.append(
                TimeSlot(
                    start_time=start,
                    end_time=end,
                    available=remaining > 0,
                    remaining_capacity=remaining,
                )
            )

        return AvailabilityResponse(
            date=target_day,
            service_id=service.id,
            service_name=service.name,
            duration=service.duration,
            slots=slots,
        )

    @BaseService.measure_operation("check_slot")
    def check_slot(self, service: Service, start: datetime, exclude_id: Optional[str] = None) -> int:
        """
        Overlapping non-cancelled appointments for ``[start, start + duration)``.

        ``exclude_id`` leaves one appointment out of the count, so a
        reschedule does not collide with its own current booking.
        """
        end = start + timedelta(minutes=service.duration)
        appointments = [
            appointment
            for appointment in self.appointments_around(service.id, start, end)
            if appointment.id != exclude_id
        ]
        return count_overlapping(appointments, start, end)

"""Appointment data access, including the queries behind conflict detection."""

from datetime import datetime
from typing import List

from sqlalchemy.orm import Session

from ..models.appointment import Appointment
from .base_repository import BaseRepository


class AppointmentRepository(BaseRepository[Appointment]):
    def __init__(self, db: Session):
        super().__init__(db, Appointment)

    def get_active_starting_between(
        self, service_id: str, window_start: datetime, window_end: datetime
    ) -> List[Appointment]:
        """
        Non-cancelled appointments for a service whose start falls in
        ``[window_start, window_end)``, ordered by start.

        Callers widen the window backwards by at least the longest possible
        appointment so that bookings starting before the window but running
        into it are included; exact overlap is tested in Python.
        """
        query = (
            self._build_query()
            .filter(
                Appointment.service_id == service_id,
                Appointment.cancelled_at.is_(None),
                Appointment.appointment_date >= window_start,
                Appointment.appointment_date < window_end,
            )
            .order_by(Appointment.appointment_date)
        )
        return self._execute_query(query)

"""Request and response models for availability and appointments."""

from datetime import date as date_type, datetime
from typing import List, Optional

from pydantic import Field, field_validator, model_validator

from ..core.enums import AppointmentStatus
from .base import LocalDateTime, Money, StandardizedModel, StrictRequestModel


class TimeSlot(StandardizedModel):
    start_time: datetime
    end_time: datetime
    available: bool
    remaining_capacity: int = Field(..., ge=0)


class AvailabilityResponse(StandardizedModel):
    date: date_type
    service_id: str
    service_name: str
    duration: int
    slots: List[TimeSlot]


class AppointmentCreate(StrictRequestModel):
    """
    Booking request.

    Either ``customer_id`` or both ``customer_name`` and ``customer_email``
    must be supplied; that rule is enforced by the service so it surfaces
    as a domain validation error.
    """

    service_id: str = Field(..., min_length=1)
    appointment_date: LocalDateTime
    customer_id: Optional[str] = None
    customer_name: Optional[str] = Field(None, max_length=200)
    customer_email: Optional[str] = Field(None, max_length=255)
    customer_phone: Optional[str] = Field(None, max_length=20)
    notes: Optional[str] = Field(None, max_length=2000)

    @field_validator("customer_name", "customer_email", "customer_phone", "notes")
    @classmethod
    def _blank_to_none(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        value = value.strip()
        return value or None


class AppointmentUpdate(StrictRequestModel):
    """
    Admin edit of an appointment.

    ``appointment_date`` reschedules the booking and is re-checked against
    business hours and slot capacity. ``status`` follows the appointment
    lifecycle.
    """

    status: Optional[AppointmentStatus] = None
    appointment_date: Optional[LocalDateTime] = None
    notes: Optional[str] = Field(None, max_length=2000)
    cancellation_reason: Optional[str] = Field(None, max_length=1000)

    @model_validator(mode="after")
    def _has_change(self) -> "AppointmentUpdate":
        if self.status is None and self.appointment_date is None and self.notes is None:
            raise ValueError("status, appointment_date or notes is required")
        return self


class AppointmentCancel(StrictRequestModel):
    reason: Optional[str] = Field(None, max_length=1000)


class ReminderResponse(StandardizedModel):
    success: bool
    log_id: Optional[str] = None
    error: Optional[str] = None


class AppointmentResponse(StandardizedModel):
    id: str
    service_id: str
    customer_id: Optional[str] = None
    appointment_date: datetime
    duration: int
    price: Money
    status: AppointmentStatus
    notes: Optional[str] = None
    cancellation_reason: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    confirmed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

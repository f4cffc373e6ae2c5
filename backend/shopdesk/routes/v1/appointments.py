# backend/shopdesk/routes/v1/appointments.py
"""
Appointment routes for ShopDesk.

Router Endpoints:
    GET /appointments/availability - Slot grid for a service on a day
    POST /appointments - Book a slot
    PATCH /appointments/{appointment_id} - Admin reschedule, notes or status change
    POST /appointments/{appointment_id}/cancel - Admin cancellation
    POST /appointments/{appointment_id}/remind - Admin reminder email
"""

import asyncio
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from ...core.exceptions import DomainException
from ...dependencies.permissions import Principal, require_admin
from ...schemas.appointment import (
    AppointmentCancel,
    AppointmentCreate,
    AppointmentResponse,
    AppointmentUpdate,
    AvailabilityResponse,
    ReminderResponse,
)
from ...services.appointment_service import AppointmentService
from ...services.availability_service import AvailabilityService
from ...services.dependencies import get_appointment_service, get_availability_service
from .common import handle_domain_exception

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/appointments", tags=["appointments"])


@router.get("/availability", response_model=AvailabilityResponse, response_model_by_alias=True)
async def get_availability(
    service_id: Optional[str] = Query(None, alias="serviceId"),
    day: Optional[str] = Query(None, alias="date"),
    availability_service: AvailabilityService = Depends(get_availability_service),
) -> AvailabilityResponse:
    """Every candidate slot of the day with its remaining capacity."""
    try:
        return await asyncio.to_thread(availability_service.compute_availability, service_id, day)
    except DomainException as e:
        handle_domain_exception(e)


@router.post("", response_model=AppointmentResponse, status_code=status.HTTP_201_CREATED)
async def create_appointment(
    data: AppointmentCreate,
    appointment_service: AppointmentService = Depends(get_appointment_service),
) -> AppointmentResponse:
    try:
        appointment = await asyncio.to_thread(appointment_service.create_appointment, data)
        return AppointmentResponse.model_validate(appointment)
    except DomainException as e:
        handle_domain_exception(e)


@router.patch("/{appointment_id}", response_model=AppointmentResponse)
async def update_appointment(
    appointment_id: str,
    data: AppointmentUpdate,
    _: Principal = Depends(require_admin),
    appointment_service: AppointmentService = Depends(get_appointment_service),
) -> AppointmentResponse:
    """
    Reschedule an appointment, edit its notes or move it through its lifecycle.

    Requires: ADMIN role
    """
    try:
        appointment = await asyncio.to_thread(
            appointment_service.update_appointment, appointment_id, data
        )
        return AppointmentResponse.model_validate(appointment)
    except DomainException as e:
        handle_domain_exception(e)


@router.post("/{appointment_id}/cancel", response_model=AppointmentResponse)
async def cancel_appointment(
    appointment_id: str,
    data: Optional[AppointmentCancel] = None,
    _: Principal = Depends(require_admin),
    appointment_service: AppointmentService = Depends(get_appointment_service),
) -> AppointmentResponse:
    """Cancel an appointment, freeing its slot."""
    reason = data.reason if data else None
    try:
        appointment = await asyncio.to_thread(
            appointment_service.cancel_appointment, appointment_id, reason
        )
        return AppointmentResponse.model_validate(appointment)
    except DomainException as e:
        handle_domain_exception(e)


@router.post("/{appointment_id}/remind", response_model=ReminderResponse)
async def send_appointment_reminder(
    appointment_id: str,
    _: Principal = Depends(require_admin),
    appointment_service: AppointmentService = Depends(get_appointment_service),
) -> ReminderResponse:
    try:
        result = await asyncio.to_thread(appointment_service.send_reminder, appointment_id)
        return ReminderResponse(**result)
    except DomainException as e:
        handle_domain_exception(e)

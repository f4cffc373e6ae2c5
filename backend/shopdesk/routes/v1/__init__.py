"""Version 1 API routers, mounted under /api/v1."""

from fastapi import APIRouter

from . import appointments, orders, payments, webhooks

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(appointments.router)
api_router.include_router(payments.router)
api_router.include_router(orders.router)
api_router.include_router(webhooks.router)

"""Order schemas."""

from datetime import datetime
from typing import List, Optional

from pydantic import Field

from ..core.enums import OrderStatus
from .base import Money, StandardizedModel, StrictRequestModel


class OrderUpdate(StrictRequestModel):
    status: Optional[OrderStatus] = None
    notes: Optional[str] = Field(None, max_length=2000)
    tracking_number: Optional[str] = Field(None, max_length=100)


class OrderItemResponse(StandardizedModel):
    id: str
    product_id: Optional[str] = None
    product_name: str
    product_sku: Optional[str] = None
    price: Money
    quantity: int
    subtotal: Money


class OrderResponse(StandardizedModel):
    id: str
    order_number: str
    customer_id: Optional[str] = None
    appointment_id: Optional[str] = None
    status: OrderStatus
    subtotal: Money
    tax: Money
    shipping: Money
    discount: Money
    total: Money
    notes: Optional[str] = None
    tracking_number: Optional[str] = None
    stripe_session_id: Optional[str] = None
    items: List[OrderItemResponse] = []
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

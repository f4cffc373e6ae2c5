"""
Catalog models: categories, bookable services and physical products.

Services carry the scheduling parameters the availability engine reads
(duration, buffer time, per-slot capacity). Products carry the price and
SKU that order line items snapshot at purchase time.
"""

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import Boolean, CheckConstraint, DateTime, ForeignKey, Integer, Numeric, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column, relationship
import ulid

from ..database import Base

if TYPE_CHECKING:
    from .appointment import Appointment


class Category(Base):
    """Grouping for products or services."""

    __tablename__ = "categories"

    __table_args__ = (
        CheckConstraint("type IN ('PRODUCT', 'SERVICE')", name="ck_categories_type"),
    )

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    type: Mapped[str] = mapped_column(String(20), nullable=False, default="PRODUCT")
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), onupdate=func.now())

    def __repr__(self) -> str:
        return f"<Category(slug={self.slug}, type={self.type})>"


class Service(Base):
    """A bookable offering with a fixed duration."""

    __tablename__ = "services"

    __table_args__ = (
        CheckConstraint("duration > 0", name="ck_services_duration_positive"),
        CheckConstraint("buffer_time >= 0", name="ck_services_buffer_non_negative"),
        CheckConstraint("max_bookings_per_slot >= 1", name="ck_services_capacity_positive"),
    )

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    duration: Mapped[int] = mapped_column(Integer, nullable=False, comment="Minutes")
    buffer_time: Mapped[int] = mapped_column(Integer, nullable=False, default=0, comment="Idle minutes after each appointment")
    max_bookings_per_slot: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    min_advance_booking: Mapped[int] = mapped_column(Integer, nullable=False, default=0, comment="Hours")
    max_advance_booking: Mapped[int] = mapped_column(Integer, nullable=False, default=30, comment="Days")
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    category_id: Mapped[Optional[str]] = mapped_column(
        String(26), ForeignKey("categories.id", ondelete="SET NULL"), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), onupdate=func.now())
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    category: Mapped[Optional[Category]] = relationship("Category")
    appointments: Mapped[List["Appointment"]] = relationship("Appointment", back_populates="service")

    @property
    def is_bookable(self) -> bool:
        return bool(self.is_active) and self.deleted_at is None

    def __repr__(self) -> str:
        return f"<Service(name={self.name}, duration={self.duration}, buffer={self.buffer_time})>"


class Product(Base):
    """A purchasable catalog item."""

    __tablename__ = "products"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    sku: Mapped[Optional[str]] = mapped_column(String(100), unique=True, nullable=True)
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    stock: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    track_inventory: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    category_id: Mapped[Optional[str]] = mapped_column(
        String(26), ForeignKey("categories.id", ondelete="SET NULL"), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), onupdate=func.now())
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    category: Mapped[Optional[Category]] = relationship("Category")

    def __repr__(self) -> str:
        return f"<Product(name={self.name}, sku={self.sku}, price={self.price})>"

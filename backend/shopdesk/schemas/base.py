"""
Base schemas with standardized field types for consistent API responses.

Public payloads use camelCase keys (``serviceId``, ``startTime``); models
accept either the alias or the Python field name.
"""

from datetime import datetime
from decimal import Decimal
from typing import Annotated

from pydantic import AfterValidator, BaseModel, ConfigDict, PlainSerializer
from pydantic.alias_generators import to_camel

from ..utils.money import format_money


def to_local_naive(value: datetime) -> datetime:
    """Convert an aware datetime to server-local wall-clock time."""
    if value.tzinfo is not None:
        return value.astimezone().replace(tzinfo=None)
    return value


class StandardizedModel(BaseModel):
    """Base model with standardized JSON encoding"""

    model_config = ConfigDict(
        use_enum_values=True,
        populate_by_name=True,
        alias_generator=to_camel,
        from_attributes=True,
    )


class StrictRequestModel(BaseModel):
    """Request DTO base that forbids unexpected fields."""

    model_config = ConfigDict(
        use_enum_values=True,
        populate_by_name=True,
        alias_generator=to_camel,
        extra="forbid",
    )


# Two-decimal string on the wire ("40.00")
Money = Annotated[Decimal, PlainSerializer(format_money, return_type=str)]

LocalDateTime = Annotated[datetime, AfterValidator(to_local_naive)]

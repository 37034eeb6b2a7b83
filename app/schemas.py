"""
Pydantic Schemas for Request/Response Validation

JSON bodies use camelCase field names (mealName, tableNumber, ...) to match
the front-end; Python code uses snake_case attributes.
"""

import re
from datetime import datetime
from typing import List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


EMAIL_PATTERN = re.compile(r'^[\w\.\+-]+@[\w\.-]+\.\w+$')
ORDER_NUMBER_PATTERN = re.compile(r'^\d+$')


class CamelModel(BaseModel):
    """Base model exposing camelCase aliases."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
    )


def _check_email(v: str) -> str:
    if not EMAIL_PATTERN.match(v):
        raise ValueError('Invalid email format')
    return v


# =============================================================================
# REQUEST SCHEMAS
# =============================================================================

class OrderCreate(CamelModel):
    """Request schema for placing an order."""

    meal_name: str = Field(..., min_length=1, max_length=100, examples=["Soup"])
    side_item: Optional[str] = Field(
        None,
        max_length=100,
        validation_alias=AliasChoices("sideItem", "softDrink", "side_item"),
        serialization_alias="sideItem",
        examples=["Lemonade"],
    )
    quantity: int = Field(..., gt=0, le=99, examples=[2])
    table_number: int = Field(..., ge=1, examples=[5])
    order_number: Optional[str] = Field(
        None,
        max_length=12,
        description="Number obtained from GET /generateOrderNumber",
        examples=["000042"],
    )

    @field_validator('side_item', 'order_number')
    @classmethod
    def empty_to_none(cls, v: Optional[str]) -> Optional[str]:
        return v or None

    @field_validator('order_number')
    @classmethod
    def validate_order_number(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        if not ORDER_NUMBER_PATTERN.match(v):
            raise ValueError('Order number must contain digits only')
        return v


class ContactCreate(CamelModel):
    """Contact form message."""
    name: str = Field(..., min_length=1, max_length=100)
    email: str = Field(..., max_length=255, examples=["jane@example.com"])
    subject: Optional[str] = Field(None, max_length=200)
    message: str = Field(..., min_length=1)

    @field_validator('email')
    @classmethod
    def validate_email(cls, v: str) -> str:
        return _check_email(v)


class ReservationCreate(CamelModel):
    """Table reservation request."""
    firstname: str = Field(..., min_length=1, max_length=100)
    name: Optional[str] = Field(None, max_length=100)
    email: str = Field(..., max_length=255)
    phone: Optional[str] = Field(None, max_length=20)
    date_time: datetime = Field(..., examples=["2026-10-19T19:30:00"])
    guests: int = Field(..., ge=1, le=50)

    @field_validator('email')
    @classmethod
    def validate_email(cls, v: str) -> str:
        return _check_email(v)

    @field_validator('phone')
    @classmethod
    def validate_phone(cls, v: Optional[str]) -> Optional[str]:
        if not v:
            return None
        cleaned = re.sub(r'[^\d]', '', v)
        if len(cleaned) < 6:
            raise ValueError('Phone number must have at least 6 digits')
        return v


class MenuItemCreate(CamelModel):
    """New menu entry."""
    name: str = Field(..., min_length=1, max_length=100)
    description: str = Field(..., min_length=1)
    price: float = Field(..., gt=0)
    image: str = Field(..., min_length=1, max_length=500)


# =============================================================================
# RESPONSE SCHEMAS
# =============================================================================

class MenuItemResponse(CamelModel):
    id: str
    name: str
    description: str
    price: float
    image: str

    model_config = ConfigDict(from_attributes=True)


class OrderResponse(CamelModel):
    """A stored order."""
    id: str
    order_number: str
    meal_name: str
    side_item: Optional[str] = None
    quantity: int
    table_number: int
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class OrderConfirmation(CamelModel):
    """Response after placing an order."""
    success: bool = True
    message: str = "Order created successfully."
    order_number: str
    order: OrderResponse


class OrderNumberResponse(CamelModel):
    order_number: str


class OrderListResponse(CamelModel):
    """Orders of the current business day."""
    total: int
    orders: List[OrderResponse]


class ContactResponse(CamelModel):
    message: str
    contact_id: str


class ReservationResponse(CamelModel):
    message: str
    reservation_id: str


class ErrorResponse(BaseModel):
    """Standard error response."""
    success: bool = False
    error: str
    detail: Optional[str] = None


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    database: str
    sequence_store: str
    scheduler: str
    redis: Optional[str] = None
    last_issued: Optional[int] = None
    next_reset_at: Optional[datetime] = None
    timestamp: datetime

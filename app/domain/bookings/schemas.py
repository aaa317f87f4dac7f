"""Booking domain schemas - Pydantic models for validation"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, field_validator

from ...models import BOOKING_STATUSES, SERVICE_TYPES


def _check_service_type(v):
    if v is not None and v not in SERVICE_TYPES:
        raise ValueError(f"Service type must be one of: {', '.join(SERVICE_TYPES)}")
    return v


def _check_status(v):
    if v is not None and v not in BOOKING_STATUSES:
        raise ValueError(f"Status must be one of: {', '.join(BOOKING_STATUSES)}")
    return v


class BookingCreate(BaseModel):
    clientId: int
    addressId: Optional[int] = None
    scheduledDate: datetime
    duration: int = 120
    serviceType: str = "STANDARD"
    status: str = "PENDING"
    price: float = 0
    assignedCleanerId: Optional[int] = None
    customerNotes: Optional[str] = None
    internalNotes: Optional[str] = None
    applyReferralCredits: bool = False

    @field_validator("serviceType")
    @classmethod
    def validate_service_type(cls, v):
        return _check_service_type(v)

    @field_validator("status")
    @classmethod
    def validate_status(cls, v):
        return _check_status(v)

    @field_validator("duration")
    @classmethod
    def validate_duration(cls, v):
        if v <= 0:
            raise ValueError("Duration must be positive")
        return v

    @field_validator("price")
    @classmethod
    def validate_price(cls, v):
        if v < 0:
            raise ValueError("Price cannot be negative")
        return v


class BookingUpdate(BaseModel):
    scheduledDate: Optional[datetime] = None
    duration: Optional[int] = None
    serviceType: Optional[str] = None
    status: Optional[str] = None
    price: Optional[float] = None
    isPaid: Optional[bool] = None
    paymentMethod: Optional[str] = None
    addressId: Optional[int] = None
    customerNotes: Optional[str] = None
    internalNotes: Optional[str] = None

    @field_validator("serviceType")
    @classmethod
    def validate_service_type(cls, v):
        return _check_service_type(v)

    @field_validator("status")
    @classmethod
    def validate_status(cls, v):
        return _check_status(v)


class AssignCleanerRequest(BaseModel):
    teamMemberId: Optional[int] = None


class BookingResponse(BaseModel):
    id: int
    bookingNumber: str
    clientId: int
    clientName: Optional[str] = None
    addressId: int
    address: Optional[str] = None
    assignedCleanerId: Optional[int] = None
    cleanerName: Optional[str] = None
    scheduledDate: datetime
    duration: int
    serviceType: str
    status: str
    price: float
    isPaid: bool
    customerNotes: Optional[str] = None
    internalNotes: Optional[str] = None
    cleanerNotes: Optional[str] = None
    actualDuration: Optional[int] = None
    completedAt: Optional[datetime] = None
    statusHistory: list[dict] = []

    class Config:
        from_attributes = True


def booking_to_response(booking) -> BookingResponse:
    cleaner = booking.assigned_cleaner
    return BookingResponse(
        id=booking.id,
        bookingNumber=booking.booking_number,
        clientId=booking.client_id,
        clientName=booking.client.name if booking.client else None,
        addressId=booking.address_id,
        address=booking.address.one_line if booking.address else None,
        assignedCleanerId=booking.assigned_cleaner_id,
        cleanerName=cleaner.user.full_name if cleaner and cleaner.user else None,
        scheduledDate=booking.scheduled_date,
        duration=booking.duration,
        serviceType=booking.service_type,
        status=booking.status,
        price=booking.price,
        isPaid=booking.is_paid,
        customerNotes=booking.customer_notes,
        internalNotes=booking.internal_notes,
        cleanerNotes=booking.cleaner_notes,
        actualDuration=booking.actual_duration,
        completedAt=booking.completed_at,
        statusHistory=booking.status_history or [],
    )

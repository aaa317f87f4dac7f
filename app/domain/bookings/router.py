"""Booking router - FastAPI endpoints for owners and admins"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from ...auth import get_manager
from ...database import get_db
from ...models import User
from .schemas import AssignCleanerRequest, BookingCreate, BookingResponse, BookingUpdate, booking_to_response
from .service import BookingService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/bookings", tags=["Bookings"])


def get_booking_service(db: Session = Depends(get_db)) -> BookingService:
    """Dependency injection for BookingService"""
    return BookingService(db)


@router.get("", response_model=list[BookingResponse])
async def get_bookings(
    status: Optional[str] = Query(None),
    date_from: Optional[datetime] = Query(None, alias="from"),
    date_to: Optional[datetime] = Query(None, alias="to"),
    client_id: Optional[int] = Query(None, alias="clientId"),
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    current_user: User = Depends(get_manager),
    service: BookingService = Depends(get_booking_service),
):
    """List bookings, optionally filtered by status, client and a [from, to) date range"""
    bookings = service.get_bookings(
        current_user,
        status=status,
        date_from=date_from,
        date_to=date_to,
        client_id=client_id,
        limit=limit,
        offset=offset,
    )
    return [booking_to_response(b) for b in bookings]


@router.post("", response_model=BookingResponse, status_code=201)
async def create_booking(
    data: BookingCreate,
    request: Request,
    current_user: User = Depends(get_manager),
    service: BookingService = Depends(get_booking_service),
):
    booking = service.create_booking(data, current_user, request)
    return booking_to_response(booking)


@router.get("/{booking_id}", response_model=BookingResponse)
async def get_booking(
    booking_id: int,
    current_user: User = Depends(get_manager),
    service: BookingService = Depends(get_booking_service),
):
    return booking_to_response(service.get_booking(booking_id, current_user))


@router.patch("/{booking_id}", response_model=BookingResponse)
async def update_booking(
    booking_id: int,
    data: BookingUpdate,
    request: Request,
    current_user: User = Depends(get_manager),
    service: BookingService = Depends(get_booking_service),
):
    """Update a booking; a status change is recorded in its history"""
    booking = service.update_booking(booking_id, data, current_user, request)
    return booking_to_response(booking)


@router.post("/{booking_id}/assign", response_model=BookingResponse)
async def assign_cleaner(
    booking_id: int,
    data: AssignCleanerRequest,
    request: Request,
    current_user: User = Depends(get_manager),
    service: BookingService = Depends(get_booking_service),
):
    booking = service.assign_cleaner(booking_id, data.teamMemberId, current_user, request)
    return booking_to_response(booking)


@router.delete("/{booking_id}")
async def delete_booking(
    booking_id: int,
    request: Request,
    current_user: User = Depends(get_manager),
    service: BookingService = Depends(get_booking_service),
):
    service.delete_booking(booking_id, current_user, request)
    return {"success": True, "message": "Booking deleted"}

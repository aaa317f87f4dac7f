"""
Cleaner job routes
What a cleaner sees and does on their assigned jobs: the job list, job detail,
status updates and the on-my-way / clock-in / clock-out / complete actions.
"""

import logging
from datetime import date, datetime, time, timedelta
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ..auth import get_cleaner, get_team_member_for
from ..database import get_db
from ..domain.bookings.repository import BookingRepository
from ..domain.clients.schemas import preferences_to_dict
from ..models import Booking, Company, TeamMember, User
from ..security_utils import sanitize_text
from ..services.booking_status import apply_cleaner_status_change
from ..services.job_actions import VALID_ACTIONS, available_actions, job_timeline, perform_job_action
from ..services.twilio_service import is_sms_configured, send_on_my_way_sms
from ..shared.formatting import get_zone, to_utc_naive
from ..shared.validators import to_e164

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/cleaner/jobs", tags=["Cleaner Jobs"])


class JobUpdateRequest(BaseModel):
    status: Optional[str] = None
    cleanerNotes: Optional[str] = None


class Location(BaseModel):
    lat: float
    lng: float
    accuracy: Optional[float] = None


class JobActionRequest(BaseModel):
    action: Optional[str] = None
    location: Optional[Location] = None
    notes: Optional[str] = None


def _get_assigned_job(db: Session, job_id: int, team_member: TeamMember) -> Booking:
    booking = BookingRepository.get_assigned_booking(db, job_id, team_member)
    if not booking:
        raise HTTPException(status_code=404, detail="Job not found or not assigned to you")
    return booking


def _address_dict(booking: Booking) -> Optional[dict]:
    address = booking.address
    if not address:
        return None
    return {
        "street": address.street,
        "unit": address.unit,
        "city": address.city,
        "state": address.state,
        "zip": address.zip,
        "parkingInfo": address.parking_info,
        "gateCode": address.gate_code,
        "petDetails": address.pet_details,
    }


def _job_summary(booking: Booking) -> dict:
    return {
        "id": booking.id,
        "bookingNumber": booking.booking_number,
        "scheduledDate": booking.scheduled_date.isoformat(),
        "duration": booking.duration,
        "serviceType": booking.service_type,
        "status": booking.status,
        "client": {"name": booking.client.name, "phone": booking.client.phone},
        "address": _address_dict(booking),
        "customerNotes": booking.customer_notes,
        "availableActions": available_actions(booking),
    }


@router.get("")
async def list_jobs(
    day: Optional[date] = Query(None, alias="date"),
    current_user: User = Depends(get_cleaner),
    db: Session = Depends(get_db),
):
    """Jobs assigned to the caller, optionally limited to one local calendar day"""
    team_member = get_team_member_for(db, current_user)

    date_from = date_to = None
    if day:
        company = db.query(Company).filter(Company.id == current_user.company_id).first()
        start = datetime.combine(day, time.min, tzinfo=get_zone(company.timezone))
        date_from = to_utc_naive(start)
        date_to = to_utc_naive(start + timedelta(days=1))

    bookings = BookingRepository.get_assigned_bookings(db, team_member, date_from, date_to)
    return {"success": True, "data": [_job_summary(b) for b in bookings]}


@router.get("/{job_id}")
async def get_job(job_id: int, current_user: User = Depends(get_cleaner), db: Session = Depends(get_db)):
    """Job detail with client preferences and a wage estimate. The job price is not shown."""
    team_member = get_team_member_for(db, current_user)
    booking = _get_assigned_job(db, job_id, team_member)

    hourly_rate = team_member.hourly_rate or 0
    data = _job_summary(booking)
    data.update(
        {
            "internalNotes": booking.internal_notes,
            "cleanerNotes": booking.cleaner_notes,
            "preferences": preferences_to_dict(booking.client.preferences),
            "timeline": job_timeline(booking),
            "wageEstimate": {
                "hourlyRate": hourly_rate,
                "estimatedHours": round(booking.duration / 60, 2),
                "estimatedEarnings": round(hourly_rate * booking.duration / 60, 2),
            },
        }
    )
    return {"success": True, "data": data}


@router.put("/{job_id}")
async def update_job(
    job_id: int,
    data: JobUpdateRequest,
    current_user: User = Depends(get_cleaner),
    db: Session = Depends(get_db),
):
    """Move the job along the cleaner workflow and/or save cleaner notes"""
    if data.status is None and data.cleanerNotes is None:
        raise HTTPException(status_code=400, detail="No valid fields to update")

    team_member = get_team_member_for(db, current_user)
    booking = _get_assigned_job(db, job_id, team_member)

    if data.status is not None:
        try:
            apply_cleaner_status_change(booking, data.status, current_user)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e)) from e
        if data.status == "CLEANER_COMPLETED":
            team_member.total_jobs_completed = (team_member.total_jobs_completed or 0) + 1

    if data.cleanerNotes is not None:
        booking.cleaner_notes = sanitize_text(data.cleanerNotes)

    db.commit()
    db.refresh(booking)
    return {"success": True, "data": _job_summary(booking)}


@router.get("/{job_id}/actions")
async def get_job_actions(job_id: int, current_user: User = Depends(get_cleaner), db: Session = Depends(get_db)):
    team_member = get_team_member_for(db, current_user)
    booking = _get_assigned_job(db, job_id, team_member)
    return {
        "success": True,
        "data": {
            **job_timeline(booking),
            "availableActions": available_actions(booking),
            "statusHistory": booking.status_history or [],
        },
    }


async def _notify_on_my_way(db: Session, booking: Booking, user: User) -> None:
    """Never fails the request: SMS problems are logged only"""
    company = db.query(Company).filter(Company.id == booking.company_id).first()
    phone = to_e164(booking.client.phone)
    if not phone or not is_sms_configured(company):
        return
    try:
        success, error = await send_on_my_way_sms(
            db, company, phone, booking.client.first_name, user.first_name or "Your cleaner", booking.id
        )
        if not success:
            logger.warning(f"⚠️ On-my-way SMS failed for booking {booking.id}: {error}")
    except Exception as e:
        logger.error(f"❌ On-my-way SMS error for booking {booking.id}: {e}")


@router.post("/{job_id}/actions")
async def perform_action(
    job_id: int,
    data: JobActionRequest,
    current_user: User = Depends(get_cleaner),
    db: Session = Depends(get_db),
):
    if not data.action:
        raise HTTPException(
            status_code=400, detail=f"Action is required. Valid actions: {', '.join(VALID_ACTIONS)}"
        )

    team_member = get_team_member_for(db, current_user)
    booking = _get_assigned_job(db, job_id, team_member)
    location = data.location.model_dump() if data.location else None

    try:
        message = perform_job_action(
            db,
            booking,
            team_member,
            current_user,
            data.action,
            location=location,
            notes=sanitize_text(data.notes),
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e

    if data.action == "on-my-way":
        await _notify_on_my_way(db, booking, current_user)

    return {
        "success": True,
        "message": message,
        "action": data.action,
        "data": {
            **job_timeline(booking),
            "availableActions": available_actions(booking),
            "client": {"name": booking.client.name, "phone": booking.client.phone},
            "address": booking.address.one_line if booking.address else None,
        },
        "location": {"recorded": True, **location} if location else {"recorded": False},
    }

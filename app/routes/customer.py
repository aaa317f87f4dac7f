"""
Customer portal
A CLIENT-role login sees and edits only the client record linked to it.
"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, field_validator
from sqlalchemy.orm import Session, joinedload

from ..auth import get_customer
from ..database import get_db
from ..domain.clients.repository import ClientRepository
from ..domain.clients.schemas import (
    PREFERENCE_FIELDS,
    AddressInput,
    PreferencesInput,
    client_to_response,
    preferences_to_dict,
)
from ..models import Address, Booking, Client, TeamMember, User
from ..security_utils import sanitize_text
from ..shared.validators import validate_email, validate_us_phone

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/customer", tags=["Customer Portal"])


class CustomerAddressInput(AddressInput):
    id: Optional[int] = None


class ProfileUpdate(BaseModel):
    firstName: Optional[str] = None
    lastName: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    marketingOptOut: Optional[bool] = None
    addresses: Optional[list[CustomerAddressInput]] = None
    preferences: Optional[PreferencesInput] = None

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v):
        if v:
            return validate_us_phone(v)
        return v

    @field_validator("email")
    @classmethod
    def validate_email_field(cls, v):
        return validate_email(v)


def _get_own_client(db: Session, user: User) -> Client:
    client = ClientRepository.get_client_by_user_id(db, user.id, user.company_id)
    if not client:
        raise HTTPException(status_code=404, detail="Client profile not found")
    return client


def _preference_values(data: PreferencesInput) -> dict:
    return {
        PREFERENCE_FIELDS[key]: sanitize_text(value) if isinstance(value, str) else value
        for key, value in data.model_dump(exclude_unset=True).items()
        if value is not None
    }


@router.get("/profile")
async def get_profile(current_user: User = Depends(get_customer), db: Session = Depends(get_db)):
    client = _get_own_client(db, current_user)
    return {"success": True, "data": client_to_response(client, detailed=True)}


@router.put("/profile")
async def update_profile(
    data: ProfileUpdate, current_user: User = Depends(get_customer), db: Session = Depends(get_db)
):
    """Profile, addresses and preferences are saved together or not at all"""
    client = _get_own_client(db, current_user)

    try:
        if data.firstName:
            client.first_name = data.firstName.strip()
        if data.lastName is not None:
            client.last_name = data.lastName
        if data.email is not None:
            client.email = data.email
        if data.phone is not None:
            client.phone = data.phone
        if data.marketingOptOut is not None:
            client.marketing_opt_out = data.marketingOptOut

        for item in data.addresses or []:
            fields = item.to_model_fields()
            if item.id:
                address = db.query(Address).filter(Address.id == item.id, Address.client_id == client.id).first()
                if not address:
                    raise HTTPException(status_code=404, detail="Address not found")
                for key, value in fields.items():
                    setattr(address, key, value)
            else:
                db.add(Address(client_id=client.id, **fields))

        if data.preferences is not None:
            ClientRepository.upsert_preferences(db, client.id, commit=False, **_preference_values(data.preferences))

        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(client)
    logger.info(f"👤 Customer {current_user.id} updated profile of client {client.id}")
    return {
        "success": True,
        "data": client_to_response(client, detailed=True),
        "message": "Profile updated successfully",
    }


@router.get("/preferences")
async def get_preferences(current_user: User = Depends(get_customer), db: Session = Depends(get_db)):
    client = _get_own_client(db, current_user)
    return {"success": True, "data": preferences_to_dict(client.preferences)}


@router.put("/preferences")
async def update_preferences(
    data: PreferencesInput, current_user: User = Depends(get_customer), db: Session = Depends(get_db)
):
    client = _get_own_client(db, current_user)
    preferences = ClientRepository.upsert_preferences(db, client.id, **_preference_values(data))
    return {"success": True, "data": preferences_to_dict(preferences)}


@router.get("/bookings")
async def list_bookings(
    upcoming: Optional[bool] = Query(None),
    current_user: User = Depends(get_customer),
    db: Session = Depends(get_db),
):
    client = _get_own_client(db, current_user)
    query = (
        db.query(Booking)
        .options(
            joinedload(Booking.address),
            joinedload(Booking.assigned_cleaner).joinedload(TeamMember.user),
        )
        .filter(Booking.client_id == client.id, Booking.company_id == client.company_id)
    )
    now = datetime.utcnow()
    if upcoming is True:
        query = query.filter(Booking.scheduled_date >= now).order_by(Booking.scheduled_date.asc())
    elif upcoming is False:
        query = query.filter(Booking.scheduled_date < now).order_by(Booking.scheduled_date.desc())
    else:
        query = query.order_by(Booking.scheduled_date.desc())

    return {
        "success": True,
        "data": [
            {
                "id": b.id,
                "bookingNumber": b.booking_number,
                "scheduledDate": b.scheduled_date.isoformat(),
                "duration": b.duration,
                "serviceType": b.service_type,
                "status": b.status,
                "price": b.price,
                "isPaid": b.is_paid,
                "address": b.address.one_line if b.address else None,
                "cleanerName": b.assigned_cleaner.user.first_name
                if b.assigned_cleaner and b.assigned_cleaner.user
                else None,
                "customerNotes": b.customer_notes,
            }
            for b in query.all()
        ],
    }

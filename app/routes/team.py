"""Team management - cleaners, their pay rates and time entries"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel, field_validator
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from ..auth import get_manager
from ..database import get_db
from ..models import ROLE_CLEANER, TeamMember, TimeEntry, User
from ..security_utils import generate_random_code, hash_password
from ..services import audit
from ..shared.validators import validate_email, validate_us_phone

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/team", tags=["Team"])


class TeamMemberCreate(BaseModel):
    email: str
    firstName: str
    lastName: Optional[str] = None
    phone: Optional[str] = None
    password: Optional[str] = None
    hourlyRate: Optional[float] = None
    specialties: Optional[list[str]] = None

    @field_validator("email")
    @classmethod
    def validate_email_field(cls, v):
        return validate_email(v)

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v):
        if v:
            return validate_us_phone(v)
        return v

    @field_validator("hourlyRate")
    @classmethod
    def validate_rate(cls, v):
        if v is not None and v < 0:
            raise ValueError("Hourly rate cannot be negative")
        return v


class TeamMemberUpdate(BaseModel):
    firstName: Optional[str] = None
    lastName: Optional[str] = None
    phone: Optional[str] = None
    hourlyRate: Optional[float] = None
    specialties: Optional[list[str]] = None
    isActive: Optional[bool] = None

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v):
        if v:
            return validate_us_phone(v)
        return v


def member_to_dict(member: TeamMember) -> dict:
    user = member.user
    return {
        "id": member.id,
        "userId": user.id,
        "name": user.full_name,
        "firstName": user.first_name,
        "lastName": user.last_name,
        "email": user.email,
        "phone": user.phone,
        "hourlyRate": member.hourly_rate,
        "specialties": member.specialties or [],
        "isActive": member.is_active,
        "totalJobsCompleted": member.total_jobs_completed,
    }


def _get_member(db: Session, member_id: int, company_id: int) -> TeamMember:
    member = (
        db.query(TeamMember)
        .options(joinedload(TeamMember.user))
        .filter(TeamMember.id == member_id, TeamMember.company_id == company_id)
        .first()
    )
    if not member:
        raise HTTPException(status_code=404, detail="Team member not found")
    return member


@router.get("")
async def list_team(
    include_inactive: bool = Query(False, alias="includeInactive"),
    current_user: User = Depends(get_manager),
    db: Session = Depends(get_db),
):
    query = (
        db.query(TeamMember)
        .options(joinedload(TeamMember.user))
        .filter(TeamMember.company_id == current_user.company_id)
    )
    if not include_inactive:
        query = query.filter(TeamMember.is_active.is_(True))
    return {"success": True, "data": [member_to_dict(m) for m in query.order_by(TeamMember.id).all()]}


@router.post("", status_code=201)
async def create_team_member(
    data: TeamMemberCreate,
    request: Request,
    current_user: User = Depends(get_manager),
    db: Session = Depends(get_db),
):
    """Create the cleaner's login and staff profile together"""
    if db.query(User).filter(User.email == data.email).first():
        raise HTTPException(status_code=409, detail="A user with this email already exists")

    try:
        user = User(
            company_id=current_user.company_id,
            email=data.email,
            # Without a password the cleaner signs in after an owner resets it
            password_hash=hash_password(data.password or generate_random_code(16)),
            first_name=data.firstName.strip(),
            last_name=data.lastName,
            phone=data.phone,
            role=ROLE_CLEANER,
        )
        db.add(user)
        db.flush()

        member = TeamMember(
            company_id=current_user.company_id,
            user_id=user.id,
            hourly_rate=data.hourlyRate,
            specialties=data.specialties or [],
        )
        db.add(member)
        db.commit()
    except IntegrityError as e:
        db.rollback()
        raise HTTPException(status_code=409, detail="A user with this email already exists") from e

    db.refresh(member)
    logger.info(f"👤 Team member {member.id} added to company {current_user.company_id}")
    audit.log_activity(
        db,
        current_user.company_id,
        current_user.id,
        audit.TEAM_MEMBER_ADDED,
        f"Added team member {user.full_name}",
        entity_type="team_member",
        entity_id=member.id,
        request=request,
    )
    return {"success": True, "data": member_to_dict(member)}


@router.put("/{member_id}")
async def update_team_member(
    member_id: int,
    data: TeamMemberUpdate,
    request: Request,
    current_user: User = Depends(get_manager),
    db: Session = Depends(get_db),
):
    member = _get_member(db, member_id, current_user.company_id)
    user = member.user

    if data.firstName is not None:
        user.first_name = data.firstName.strip()
    if data.lastName is not None:
        user.last_name = data.lastName
    if data.phone is not None:
        user.phone = data.phone
    if data.hourlyRate is not None:
        member.hourly_rate = data.hourlyRate
    if data.specialties is not None:
        member.specialties = data.specialties
    if data.isActive is not None:
        member.is_active = data.isActive
        user.is_active = data.isActive

    db.commit()
    db.refresh(member)
    audit.log_activity(
        db,
        current_user.company_id,
        current_user.id,
        audit.TEAM_MEMBER_UPDATED,
        f"Updated team member {user.full_name}",
        entity_type="team_member",
        entity_id=member.id,
        request=request,
    )
    return {"success": True, "data": member_to_dict(member)}


@router.delete("/{member_id}")
async def deactivate_team_member(
    member_id: int,
    request: Request,
    current_user: User = Depends(get_manager),
    db: Session = Depends(get_db),
):
    """Deactivate rather than delete: past bookings and time entries keep their cleaner"""
    member = _get_member(db, member_id, current_user.company_id)
    member.is_active = False
    member.user.is_active = False
    db.commit()

    audit.log_activity(
        db,
        current_user.company_id,
        current_user.id,
        audit.TEAM_MEMBER_REMOVED,
        f"Deactivated team member {member.user.full_name}",
        entity_type="team_member",
        entity_id=member.id,
        request=request,
    )
    return {"success": True, "message": "Team member deactivated"}


@router.get("/time-entries")
async def list_time_entries(
    team_member_id: Optional[int] = Query(None, alias="teamMemberId"),
    date_from: Optional[datetime] = Query(None, alias="from"),
    date_to: Optional[datetime] = Query(None, alias="to"),
    current_user: User = Depends(get_manager),
    db: Session = Depends(get_db),
):
    query = db.query(TimeEntry).filter(TimeEntry.company_id == current_user.company_id)
    if team_member_id:
        query = query.filter(TimeEntry.team_member_id == team_member_id)
    if date_from:
        query = query.filter(TimeEntry.clock_in >= date_from)
    if date_to:
        query = query.filter(TimeEntry.clock_in < date_to)

    entries = query.order_by(TimeEntry.clock_in.desc()).limit(500).all()
    return {
        "success": True,
        "data": [
            {
                "id": e.id,
                "teamMemberId": e.team_member_id,
                "bookingId": e.booking_id,
                "clockIn": e.clock_in.isoformat(),
                "clockOut": e.clock_out.isoformat() if e.clock_out else None,
                "totalMinutes": e.total_minutes,
                "notes": e.notes,
            }
            for e in entries
        ],
        "totalMinutes": sum(e.total_minutes or 0 for e in entries),
    }

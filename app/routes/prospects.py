"""
Sales prospects
Cleaning businesses that asked to switch over from the public marketing site,
plus the platform console endpoints used to work the list.
"""

import logging
import math
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, field_validator
from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from ..auth import get_platform_admin
from ..database import get_db
from ..models import Prospect, User
from ..rate_limiter import prospect_rate_limit
from ..security_utils import sanitize_text
from ..shared.validators import validate_email

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/public/prospects", tags=["Prospects"])
platform_router = APIRouter(prefix="/api/platform/prospects", tags=["Platform"])

PROSPECT_STATUSES = ("NEW", "CONTACTED", "QUALIFIED", "CONVERTED", "NOT_INTERESTED")


class ProspectSubmission(BaseModel):
    fullName: str
    businessName: str
    phone: str
    email: str
    area: str
    website: Optional[str] = None
    source: Optional[str] = "SWITCH_PAGE"

    @field_validator("fullName")
    @classmethod
    def validate_full_name(cls, v):
        if len(v.strip()) < 2:
            raise ValueError("Full name is required")
        return v.strip()

    @field_validator("businessName")
    @classmethod
    def validate_business_name(cls, v):
        if len(v.strip()) < 2:
            raise ValueError("Business name is required")
        return v.strip()

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v):
        if len(v.strip()) < 10:
            raise ValueError("Valid phone number is required")
        return v.strip()

    @field_validator("email")
    @classmethod
    def validate_email_field(cls, v):
        return validate_email(v)

    @field_validator("area")
    @classmethod
    def validate_area(cls, v):
        if len(v.strip()) < 2:
            raise ValueError("Service area is required")
        return v.strip()


class ProspectUpdate(BaseModel):
    status: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("status")
    @classmethod
    def validate_status(cls, v):
        if v is not None and v not in PROSPECT_STATUSES:
            raise ValueError(f"Status must be one of: {', '.join(PROSPECT_STATUSES)}")
        return v


def prospect_to_dict(prospect: Prospect) -> dict:
    return {
        "id": prospect.id,
        "fullName": prospect.full_name,
        "businessName": prospect.business_name,
        "phone": prospect.phone,
        "email": prospect.email,
        "area": prospect.area,
        "website": prospect.website,
        "source": prospect.source,
        "status": prospect.status,
        "notes": prospect.notes,
        "lastContactedAt": prospect.last_contacted_at.isoformat() if prospect.last_contacted_at else None,
        "createdAt": prospect.created_at.isoformat() if prospect.created_at else None,
    }


@router.post("", dependencies=[Depends(prospect_rate_limit)])
async def submit_prospect(data: ProspectSubmission, db: Session = Depends(get_db)):
    """Public form. A repeat submission with the same email refreshes the existing lead."""
    prospect = db.query(Prospect).filter(Prospect.email == data.email).first()

    if prospect:
        prospect.full_name = sanitize_text(data.fullName)
        prospect.business_name = sanitize_text(data.businessName)
        prospect.phone = data.phone
        prospect.area = sanitize_text(data.area)
        prospect.website = data.website or prospect.website
        prospect.source = data.source or prospect.source
        db.commit()
        db.refresh(prospect)
        logger.info(f"🔁 Prospect updated: {prospect.email}")
        return {
            "success": True,
            "data": prospect_to_dict(prospect),
            "message": "Thank you! We have updated your information and will be in touch soon.",
        }

    prospect = Prospect(
        full_name=sanitize_text(data.fullName),
        business_name=sanitize_text(data.businessName),
        phone=data.phone,
        email=data.email,
        area=sanitize_text(data.area),
        website=data.website,
        source=data.source or "SWITCH_PAGE",
    )
    db.add(prospect)
    db.commit()
    db.refresh(prospect)
    logger.info(f"🆕 New prospect: {prospect.business_name} ({prospect.email})")
    return {
        "success": True,
        "data": prospect_to_dict(prospect),
        "message": "Thank you! Our team will reach out to you shortly.",
    }


@platform_router.get("")
async def list_prospects(
    search: Optional[str] = Query(None),
    status: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    admin: User = Depends(get_platform_admin),
    db: Session = Depends(get_db),
):
    query = db.query(Prospect)
    if search:
        pattern = f"%{search.lower()}%"
        query = query.filter(
            or_(
                func.lower(Prospect.full_name).like(pattern),
                func.lower(Prospect.business_name).like(pattern),
                func.lower(Prospect.email).like(pattern),
                Prospect.phone.like(pattern),
                func.lower(Prospect.area).like(pattern),
            )
        )
    if status:
        query = query.filter(Prospect.status == status)

    total = query.count()
    prospects = query.order_by(Prospect.created_at.desc(), Prospect.id.desc()).offset((page - 1) * limit).limit(limit).all()
    return {
        "success": True,
        "data": [prospect_to_dict(p) for p in prospects],
        "pagination": {"total": total, "page": page, "limit": limit, "pages": math.ceil(total / limit)},
    }


@platform_router.patch("/{prospect_id}")
async def update_prospect(
    prospect_id: int,
    data: ProspectUpdate,
    admin: User = Depends(get_platform_admin),
    db: Session = Depends(get_db),
):
    prospect = db.query(Prospect).filter(Prospect.id == prospect_id).first()
    if not prospect:
        raise HTTPException(status_code=404, detail="Prospect not found")

    if data.status:
        prospect.status = data.status
        if data.status == "CONTACTED":
            prospect.last_contacted_at = datetime.utcnow()
    if data.notes is not None:
        prospect.notes = sanitize_text(data.notes)

    db.commit()
    db.refresh(prospect)
    logger.info(f"📇 Prospect {prospect.id} updated by {admin.email}: status={prospect.status}")
    return {"success": True, "data": prospect_to_dict(prospect)}

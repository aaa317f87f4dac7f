"""Platform console - cross-tenant administration for platform admins"""

import logging
import math
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, field_validator
from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..auth import get_platform_admin
from ..database import get_db
from ..models import ROLE_OWNER, Booking, Client, Company, User
from ..security_utils import hash_password
from ..shared.formatting import split_name
from ..shared.validators import validate_email, validate_slug

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/platform", tags=["Platform"])


class CompanyOnboardRequest(BaseModel):
    companyName: str
    companySlug: str
    companyEmail: Optional[str] = None
    companyPhone: Optional[str] = None
    ownerName: Optional[str] = None
    ownerEmail: str
    ownerPassword: str
    plan: Optional[str] = None

    @field_validator("companySlug")
    @classmethod
    def validate_slug_field(cls, v):
        return validate_slug(v)

    @field_validator("ownerEmail")
    @classmethod
    def validate_owner_email(cls, v):
        return validate_email(v)

    @field_validator("companyEmail")
    @classmethod
    def validate_company_email(cls, v):
        return validate_email(v)


def _counts_by_company(db: Session, model, company_ids: list[int]) -> dict[int, int]:
    if not company_ids:
        return {}
    rows = (
        db.query(model.company_id, func.count(model.id))
        .filter(model.company_id.in_(company_ids))
        .group_by(model.company_id)
        .all()
    )
    return dict(rows)


def _companies_with_counts(db: Session, companies: list[Company]) -> list[dict]:
    ids = [c.id for c in companies]
    users = _counts_by_company(db, User, ids)
    clients = _counts_by_company(db, Client, ids)
    bookings = _counts_by_company(db, Booking, ids)
    return [
        {
            "id": c.id,
            "name": c.name,
            "slug": c.slug,
            "email": c.email,
            "phone": c.phone,
            "plan": c.plan,
            "subscriptionStatus": c.subscription_status,
            "createdAt": c.created_at.isoformat() if c.created_at else None,
            "counts": {
                "users": users.get(c.id, 0),
                "clients": clients.get(c.id, 0),
                "bookings": bookings.get(c.id, 0),
            },
        }
        for c in companies
    ]


@router.get("/companies")
async def list_companies(
    search: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    admin: User = Depends(get_platform_admin),
    db: Session = Depends(get_db),
):
    query = db.query(Company)
    if search:
        pattern = f"%{search.lower()}%"
        query = query.filter(
            or_(
                func.lower(Company.name).like(pattern),
                func.lower(Company.slug).like(pattern),
                func.lower(Company.email).like(pattern),
            )
        )

    total = query.count()
    companies = query.order_by(Company.created_at.desc(), Company.id.desc()).offset((page - 1) * limit).limit(limit).all()
    return {
        "success": True,
        "data": _companies_with_counts(db, companies),
        "pagination": {"total": total, "page": page, "limit": limit, "pages": math.ceil(total / limit)},
    }


@router.post("/companies", status_code=201)
async def onboard_company(
    data: CompanyOnboardRequest,
    admin: User = Depends(get_platform_admin),
    db: Session = Depends(get_db),
):
    """Create a company with its owner account in one transaction"""
    if not data.companyName.strip() or not data.ownerPassword:
        raise HTTPException(status_code=400, detail="Company name, slug, owner email, and password are required")

    if db.query(Company).filter(Company.slug == data.companySlug).first():
        raise HTTPException(status_code=409, detail="A company with this slug already exists")
    if db.query(User).filter(User.email == data.ownerEmail).first():
        raise HTTPException(status_code=409, detail="A user with this email already exists")

    first_name, last_name = split_name(data.ownerName or data.companyName)
    try:
        company = Company(
            name=data.companyName.strip(),
            slug=data.companySlug,
            email=data.companyEmail,
            phone=data.companyPhone,
            plan=data.plan or "starter",
        )
        db.add(company)
        db.flush()

        owner = User(
            company_id=company.id,
            email=data.ownerEmail,
            password_hash=hash_password(data.ownerPassword),
            first_name=first_name,
            last_name=last_name,
            role=ROLE_OWNER,
        )
        db.add(owner)
        db.commit()
    except IntegrityError as e:
        db.rollback()
        raise HTTPException(status_code=409, detail="Company or owner already exists") from e

    logger.info(f"🏢 Company onboarded by {admin.email}: {company.name} ({company.slug})")
    return {
        "success": True,
        "data": {
            "company": {"id": company.id, "name": company.name, "slug": company.slug},
            "owner": {"id": owner.id, "email": owner.email, "name": owner.full_name},
        },
        "message": f'Company "{company.name}" created with owner account',
    }


@router.get("/stats")
async def platform_stats(admin: User = Depends(get_platform_admin), db: Session = Depends(get_db)):
    recent = db.query(Company).order_by(Company.created_at.desc(), Company.id.desc()).limit(5).all()
    return {
        "success": True,
        "data": {
            "totalCompanies": db.query(Company).count(),
            "totalUsers": db.query(User).count(),
            "totalClients": db.query(Client).count(),
            "totalBookings": db.query(Booking).count(),
            "recentCompanies": _companies_with_counts(db, recent),
        },
    }

import logging
from datetime import datetime, timedelta
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, Response
from pydantic import BaseModel, field_validator
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..auth import get_current_user
from ..config import COOKIE_SECURE, MOBILE_TOKEN_EXPIRE_DAYS, SESSION_COOKIE_NAME, SESSION_MAX_AGE
from ..database import get_db
from ..models import ROLE_OWNER, Company, User
from ..rate_limiter import auth_rate_limit
from ..security_utils import create_jwt_token, create_session_token, hash_password, verify_password
from ..services import audit
from ..shared.formatting import slugify
from ..shared.validators import validate_email, validate_slug, validate_us_phone

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["Authentication"])

MIN_PASSWORD_LENGTH = 8


class LoginRequest(BaseModel):
    email: str
    password: str

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v):
        return v.strip().lower()


class SignupRequest(BaseModel):
    companyName: str
    slug: Optional[str] = None
    email: str
    password: str
    firstName: Optional[str] = None
    lastName: Optional[str] = None
    phone: Optional[str] = None
    timezone: Optional[str] = None

    @field_validator("companyName")
    @classmethod
    def validate_company_name(cls, v):
        if not v or not v.strip():
            raise ValueError("Company name is required")
        return v.strip()

    @field_validator("email")
    @classmethod
    def validate_email_field(cls, v):
        return validate_email(v)

    @field_validator("password")
    @classmethod
    def validate_password(cls, v):
        if len(v) < MIN_PASSWORD_LENGTH:
            raise ValueError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
        return v

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v):
        if v:
            return validate_us_phone(v)
        return v


def user_to_dict(user: User) -> dict:
    return {
        "id": user.id,
        "email": user.email,
        "firstName": user.first_name,
        "lastName": user.last_name,
        "name": user.full_name,
        "phone": user.phone,
        "role": user.role,
        "companyId": user.company_id,
        "companyName": user.company.name if user.company else None,
        "isPlatformAdmin": user.is_platform_admin,
    }


def set_session_cookie(response: Response, user: User) -> None:
    response.set_cookie(
        key=SESSION_COOKIE_NAME,
        value=create_session_token(user.id),
        max_age=SESSION_MAX_AGE,
        httponly=True,
        secure=COOKIE_SECURE,
        samesite="lax",
    )


def _authenticate(db: Session, email: str, password: str) -> User:
    user = db.query(User).filter(User.email == email).first()
    if not user or not verify_password(password, user.password_hash):
        logger.warning(f"🔐 Failed login attempt for {email}")
        raise HTTPException(status_code=401, detail="Invalid email or password")
    if not user.is_active:
        raise HTTPException(status_code=401, detail="Account is deactivated")

    user.last_login_at = datetime.utcnow()
    db.commit()
    return user


@router.post("/login", dependencies=[Depends(auth_rate_limit)])
async def login(data: LoginRequest, request: Request, response: Response, db: Session = Depends(get_db)):
    """Web login: sets the HTTP-only session cookie"""
    user = _authenticate(db, data.email, data.password)
    set_session_cookie(response, user)

    if user.company_id:
        audit.log_activity(db, user.company_id, user.id, audit.LOGIN, f"{user.full_name} signed in", request=request)
    logger.info(f"✅ User logged in: {user.email}")
    return {"success": True, "user": user_to_dict(user)}


@router.post("/mobile-login", dependencies=[Depends(auth_rate_limit)])
async def mobile_login(data: LoginRequest, db: Session = Depends(get_db)):
    """Mobile login: returns a bearer JWT"""
    user = _authenticate(db, data.email, data.password)
    token = create_jwt_token(
        {"sub": str(user.id), "role": user.role},
        expires_delta=timedelta(days=MOBILE_TOKEN_EXPIRE_DAYS),
    )
    logger.info(f"📱 Mobile login: {user.email}")
    return {
        "success": True,
        "token": token,
        "tokenType": "bearer",
        "expiresIn": MOBILE_TOKEN_EXPIRE_DAYS * 86400,
        "user": user_to_dict(user),
    }


@router.post("/logout")
async def logout(request: Request, response: Response, db: Session = Depends(get_db)):
    response.delete_cookie(SESSION_COOKIE_NAME)
    try:
        user = await get_current_user(request, None, db)
    except HTTPException:
        return {"success": True}

    if user.company_id:
        audit.log_activity(db, user.company_id, user.id, audit.LOGOUT, f"{user.full_name} signed out", request=request)
    return {"success": True}


@router.get("/me")
async def me(current_user: User = Depends(get_current_user)):
    return {"user": user_to_dict(current_user)}


@router.post("/signup", status_code=201, dependencies=[Depends(auth_rate_limit)])
async def signup(data: SignupRequest, response: Response, db: Session = Depends(get_db)):
    """Create a company and its owner in one transaction"""
    try:
        slug = validate_slug(data.slug or slugify(data.companyName))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e

    if db.query(User).filter(User.email == data.email).first():
        raise HTTPException(status_code=409, detail="An account with this email already exists")
    if db.query(Company).filter(Company.slug == slug).first():
        raise HTTPException(status_code=409, detail="This company URL is already taken")

    try:
        company = Company(name=data.companyName, slug=slug, email=data.email, phone=data.phone)
        if data.timezone:
            company.timezone = data.timezone
        db.add(company)
        db.flush()

        user = User(
            company_id=company.id,
            email=data.email,
            password_hash=hash_password(data.password),
            first_name=data.firstName,
            last_name=data.lastName,
            phone=data.phone,
            role=ROLE_OWNER,
        )
        db.add(user)
        db.commit()
    except IntegrityError as e:
        db.rollback()
        logger.warning(f"⚠️ Signup conflict for {data.email}: {e}")
        raise HTTPException(status_code=409, detail="Company or account already exists") from e

    db.refresh(user)
    set_session_cookie(response, user)
    logger.info(f"🎉 New company signed up: {company.name} ({company.slug})")
    return {"success": True, "user": user_to_dict(user)}

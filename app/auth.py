import logging
from typing import Optional

from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from .config import SESSION_COOKIE_NAME, SESSION_MAX_AGE
from .database import get_db
from .models import ROLE_ADMIN, ROLE_CLEANER, ROLE_CLIENT, ROLE_OWNER, TeamMember, User
from .security_utils import verify_jwt_token, verify_session_token

logger = logging.getLogger(__name__)

# auto_error=False so that cookie sessions work without an Authorization header
security = HTTPBearer(auto_error=False)


def _resolve_user_id(request: Request, credentials: Optional[HTTPAuthorizationCredentials]) -> Optional[int]:
    """Bearer JWT (mobile) takes precedence over the session cookie (web)"""
    if credentials and credentials.credentials:
        payload = verify_jwt_token(credentials.credentials)
        if not payload:
            raise HTTPException(status_code=401, detail="Invalid or expired token")
        try:
            return int(payload.get("sub"))
        except (TypeError, ValueError) as e:
            raise HTTPException(status_code=401, detail="Invalid token claims") from e

    session_token = request.cookies.get(SESSION_COOKIE_NAME)
    if session_token:
        return verify_session_token(session_token, max_age=SESSION_MAX_AGE)
    return None


async def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db),
) -> User:
    """Get current user from the session cookie or a mobile bearer token"""
    user_id = _resolve_user_id(request, credentials)
    if not user_id:
        raise HTTPException(status_code=401, detail="Not authenticated")

    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        logger.warning(f"⚠️ Session refers to unknown user {user_id}")
        raise HTTPException(status_code=401, detail="Not authenticated")

    if not user.is_active:
        logger.warning(f"⚠️ Inactive user {user.email} attempted access")
        raise HTTPException(status_code=401, detail="Account is deactivated")

    logger.debug(f"✅ User authenticated: {user.email}")
    return user


async def get_company_user(user: User = Depends(get_current_user)) -> User:
    """Any authenticated user that belongs to a company"""
    if not user.company_id:
        raise HTTPException(status_code=403, detail="No company associated with this account")
    return user


def require_roles(*roles: str):
    """
    Build a dependency that admits only users holding one of the given roles.

    Example usage:
        @router.get("/team")
        async def list_team(user: User = Depends(require_roles("OWNER", "ADMIN"))):
            ...
    """

    async def role_checker(user: User = Depends(get_company_user)) -> User:
        if user.role not in roles:
            logger.warning(f"🚫 User {user.email} with role {user.role} denied (needs {roles})")
            raise HTTPException(status_code=403, detail="Forbidden")
        return user

    return role_checker


get_manager = require_roles(ROLE_OWNER, ROLE_ADMIN)
get_cleaner = require_roles(ROLE_CLEANER)
get_customer = require_roles(ROLE_CLIENT)


async def get_platform_admin(user: User = Depends(get_current_user)) -> User:
    if not user.is_platform_admin:
        logger.warning(f"🚫 Non-admin {user.email} attempted platform access")
        raise HTTPException(status_code=403, detail="Forbidden")
    return user


def get_team_member_for(db: Session, user: User) -> TeamMember:
    """The cleaner profile of a CLEANER user, 404 when it has not been set up"""
    team_member = (
        db.query(TeamMember)
        .filter(TeamMember.user_id == user.id, TeamMember.company_id == user.company_id)
        .first()
    )
    if not team_member:
        raise HTTPException(status_code=404, detail="Team member profile not found")
    return team_member

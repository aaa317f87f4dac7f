"""
Activity log
Records who changed what inside a company. Writing an entry must never break
the operation being audited, so failures are logged and swallowed here.
"""

import logging
from typing import Any, Optional

from fastapi import Request
from sqlalchemy.orm import Session

from ..models import AuditLogEntry

logger = logging.getLogger(__name__)

# Auth
LOGIN = "LOGIN"
LOGOUT = "LOGOUT"

# Clients
CLIENT_CREATED = "CLIENT_CREATED"
CLIENT_UPDATED = "CLIENT_UPDATED"
CLIENT_DELETED = "CLIENT_DELETED"
CLIENTS_IMPORTED = "CLIENTS_IMPORTED"

# Bookings
BOOKING_CREATED = "BOOKING_CREATED"
BOOKING_UPDATED = "BOOKING_UPDATED"
BOOKING_CANCELLED = "BOOKING_CANCELLED"
BOOKING_COMPLETED = "BOOKING_COMPLETED"
BOOKING_ASSIGNED = "BOOKING_ASSIGNED"
BOOKING_DELETED = "BOOKING_DELETED"
BOOKINGS_IMPORTED = "BOOKINGS_IMPORTED"

# Team
TEAM_MEMBER_ADDED = "TEAM_MEMBER_ADDED"
TEAM_MEMBER_UPDATED = "TEAM_MEMBER_UPDATED"
TEAM_MEMBER_REMOVED = "TEAM_MEMBER_REMOVED"

# Marketing
CAMPAIGN_CREATED = "CAMPAIGN_CREATED"
CAMPAIGN_UPDATED = "CAMPAIGN_UPDATED"
CAMPAIGN_DELETED = "CAMPAIGN_DELETED"
CAMPAIGN_SENT = "CAMPAIGN_SENT"
REFERRAL_CREDITED = "REFERRAL_CREDITED"

MESSAGE_SENT = "MESSAGE_SENT"
SETTINGS_UPDATED = "SETTINGS_UPDATED"


def _client_ip(request: Request) -> Optional[str]:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


def log_activity(
    db: Session,
    company_id: int,
    user_id: Optional[int],
    action: str,
    description: str,
    entity_type: Optional[str] = None,
    entity_id: Optional[int] = None,
    metadata: Optional[dict[str, Any]] = None,
    request: Optional[Request] = None,
) -> None:
    """Write one audit entry in its own commit"""
    try:
        entry = AuditLogEntry(
            company_id=company_id,
            user_id=user_id,
            action=action,
            description=description,
            entity_type=entity_type,
            entity_id=entity_id,
            details=metadata,
        )
        if request is not None:
            entry.ip_address = _client_ip(request)
            entry.user_agent = (request.headers.get("user-agent") or "")[:500] or None
        db.add(entry)
        db.commit()
    except Exception as e:
        db.rollback()
        logger.error(f"❌ Failed to write audit entry {action} for company {company_id}: {e}")

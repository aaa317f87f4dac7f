import math
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session, joinedload

from ..auth import get_manager
from ..database import get_db
from ..models import AuditLogEntry, User

router = APIRouter(prefix="/api/activity-log", tags=["Activity Log"])


@router.get("")
async def list_activity(
    action: Optional[str] = Query(None),
    entity_type: Optional[str] = Query(None, alias="entityType"),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    current_user: User = Depends(get_manager),
    db: Session = Depends(get_db),
):
    """Newest first, company scoped"""
    query = db.query(AuditLogEntry).filter(AuditLogEntry.company_id == current_user.company_id)
    if action:
        query = query.filter(AuditLogEntry.action == action)
    if entity_type:
        query = query.filter(AuditLogEntry.entity_type == entity_type)

    total = query.count()
    entries = (
        query.options(joinedload(AuditLogEntry.user))
        .order_by(AuditLogEntry.created_at.desc(), AuditLogEntry.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return {
        "success": True,
        "data": [
            {
                "id": e.id,
                "action": e.action,
                "description": e.description,
                "entityType": e.entity_type,
                "entityId": e.entity_id,
                "metadata": e.details,
                "user": {"id": e.user.id, "name": e.user.full_name} if e.user else None,
                "ipAddress": e.ip_address,
                "createdAt": e.created_at.isoformat() if e.created_at else None,
            }
            for e in entries
        ],
        "pagination": {"total": total, "page": page, "limit": limit, "pages": math.ceil(total / limit)},
    }

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..auth import get_company_user
from ..database import get_db
from ..models import User
from ..services.search_service import global_search

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/search", tags=["Search"])


@router.get("/global")
async def search_everything(
    q: str = Query(""),
    type: Optional[str] = Query(None),
    limit: int = Query(20, ge=1, le=100),
    current_user: User = Depends(get_company_user),
    db: Session = Depends(get_db),
):
    results = global_search(db, current_user, q, entity_type=type, limit=limit)
    return {
        "success": True,
        "data": results,
        "meta": {
            "query": q,
            "total": sum(len(v) for v in results.values()),
            "clientsCount": len(results["clients"]),
            "bookingsCount": len(results["bookings"]),
            "teamCount": len(results["team"]),
        },
    }

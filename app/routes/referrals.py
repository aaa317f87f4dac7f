import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ..auth import get_company_user, get_manager
from ..database import get_db
from ..models import Client, User
from ..services import audit
from ..services.referrals import (
    assign_referral_code,
    award_referral_credits,
    referral_stats,
    validate_referral_code,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/referrals", tags=["Referrals"])


class AwardRequest(BaseModel):
    referrerId: int
    refereeId: int


@router.post("/code/{client_id}")
async def generate_code(client_id: int, current_user: User = Depends(get_manager), db: Session = Depends(get_db)):
    """Get the client's referral code, creating one on first use"""
    client = db.query(Client).filter(Client.id == client_id, Client.company_id == current_user.company_id).first()
    if not client:
        raise HTTPException(status_code=404, detail="Client not found")
    try:
        code = assign_referral_code(db, client)
    except ValueError as e:
        raise HTTPException(status_code=500, detail=str(e)) from e
    return {"success": True, "code": code}


@router.get("/validate")
async def validate_code(
    code: str = Query(...),
    current_user: User = Depends(get_company_user),
    db: Session = Depends(get_db),
):
    return validate_referral_code(db, code, current_user.company_id)


@router.post("/award")
async def award_credits(
    data: AwardRequest,
    request: Request,
    current_user: User = Depends(get_manager),
    db: Session = Depends(get_db),
):
    try:
        result = award_referral_credits(db, data.referrerId, data.refereeId, current_user.company_id)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e

    audit.log_activity(
        db,
        current_user.company_id,
        current_user.id,
        audit.REFERRAL_CREDITED,
        f"Referral credits awarded to clients {data.referrerId} and {data.refereeId}",
        entity_type="client",
        entity_id=data.referrerId,
        metadata=result,
        request=request,
    )
    return {"success": True, "data": result}


@router.get("/stats")
async def stats(
    client_id: Optional[int] = Query(None, alias="clientId"),
    current_user: User = Depends(get_manager),
    db: Session = Depends(get_db),
):
    try:
        data = referral_stats(db, current_user.company_id, client_id)
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    return {"success": True, "data": data}

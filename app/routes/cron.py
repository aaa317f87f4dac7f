import logging
import secrets
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException
from sqlalchemy.orm import Session

from ..config import CRON_SECRET
from ..database import get_db
from ..rate_limiter import cron_rate_limit
from ..services.reminder_service import dispatch_reminders

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/cron", tags=["Cron"])


def verify_cron_secret(authorization: Optional[str] = Header(None)) -> None:
    """Authorization: Bearer <CRON_SECRET>"""
    expected = f"Bearer {CRON_SECRET}" if CRON_SECRET else None
    if not expected or not authorization or not secrets.compare_digest(authorization, expected):
        logger.warning("🚫 Rejected cron call with missing or invalid secret")
        raise HTTPException(status_code=401, detail="Unauthorized")


@router.get("/reminders", dependencies=[Depends(verify_cron_secret), Depends(cron_rate_limit)])
async def run_reminders(db: Session = Depends(get_db)):
    """Send all due appointment reminders. Called hourly by an external scheduler."""
    logger.info("⏰ Cron: dispatching reminders")
    result = await dispatch_reminders(db)
    return {"success": True, **result}

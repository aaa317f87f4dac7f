import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Request, UploadFile
from sqlalchemy.orm import Session

from ..auth import get_manager
from ..database import get_db
from ..models import User
from ..rate_limiter import bulk_rate_limit
from ..services import audit
from ..services.csv_import import import_csv

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/import", tags=["Import"])

MAX_CSV_BYTES = 5 * 1024 * 1024


@router.post("/csv", dependencies=[Depends(bulk_rate_limit)])
async def upload_csv(
    request: Request,
    file: Optional[UploadFile] = File(None),
    type: Optional[str] = Form(None),
    current_user: User = Depends(get_manager),
    db: Session = Depends(get_db),
):
    """Import bookings or clients exported from another scheduling tool"""
    if not file or not type:
        raise HTTPException(status_code=400, detail="File and type are required")

    content = await file.read()
    if len(content) > MAX_CSV_BYTES:
        raise HTTPException(status_code=400, detail="File is too large (max 5MB)")

    try:
        text = content.decode("utf-8-sig")
    except UnicodeDecodeError:
        text = content.decode("latin-1")

    logger.info(f"📥 CSV import ({type}) by user {current_user.id}: {file.filename}")
    try:
        result = import_csv(db, current_user, type, text)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e

    if result["imported"]:
        audit.log_activity(
            db,
            current_user.company_id,
            current_user.id,
            audit.BOOKINGS_IMPORTED if type == "bookings" else audit.CLIENTS_IMPORTED,
            f"Imported {result['imported']} {type} from CSV",
            metadata={"filename": file.filename, "errors": result["totalErrors"]},
            request=request,
        )
    return result

"""
Customer feedback
Public endpoints behind the link a customer receives once a job is marked
complete. The feedback token is the only credential; feedback can be left once.
"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.orm import Session, joinedload

from ..database import get_db
from ..models import Booking, TeamMember
from ..rate_limiter import feedback_rate_limit
from ..security_utils import sanitize_text

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/public/feedback", tags=["Feedback"])


class FeedbackSubmission(BaseModel):
    rating: Optional[int] = None
    feedback: Optional[str] = None
    tipAmount: Optional[float] = None


def _get_booking_by_token(db: Session, token: str) -> Booking:
    booking = (
        db.query(Booking)
        .options(
            joinedload(Booking.client),
            joinedload(Booking.company),
            joinedload(Booking.assigned_cleaner).joinedload(TeamMember.user),
        )
        .filter(Booking.feedback_token == token)
        .first()
    )
    if not booking:
        raise HTTPException(status_code=404, detail="Booking not found")
    return booking


def feedback_to_dict(booking: Booking) -> dict:
    cleaner = booking.assigned_cleaner
    return {
        "bookingNumber": booking.booking_number,
        "scheduledDate": booking.scheduled_date.isoformat(),
        "serviceType": booking.service_type,
        "status": booking.status,
        "clientFirstName": booking.client.first_name if booking.client else None,
        "cleanerName": cleaner.user.first_name if cleaner and cleaner.user else None,
        "company": {
            "name": booking.company.name,
            "googleReviewUrl": booking.company.google_review_url,
        },
        "rating": booking.customer_rating,
        "feedback": booking.customer_feedback,
        "tipAmount": booking.tip_amount,
        "feedbackSubmittedAt": booking.feedback_submitted_at.isoformat() if booking.feedback_submitted_at else None,
    }


@router.get("/{token}")
async def get_feedback_booking(token: str, db: Session = Depends(get_db)):
    booking = _get_booking_by_token(db, token)
    return {"success": True, "data": feedback_to_dict(booking)}


@router.post("/{token}", dependencies=[Depends(feedback_rate_limit)])
async def submit_feedback(token: str, data: FeedbackSubmission, db: Session = Depends(get_db)):
    if data.rating is None or data.rating < 1 or data.rating > 5:
        raise HTTPException(status_code=400, detail="Rating must be between 1 and 5")
    if data.tipAmount is not None and data.tipAmount < 0:
        raise HTTPException(status_code=400, detail="Tip amount cannot be negative")

    booking = _get_booking_by_token(db, token)
    if booking.feedback_submitted_at:
        raise HTTPException(status_code=400, detail="Feedback already submitted")

    booking.customer_rating = data.rating
    booking.customer_feedback = sanitize_text(data.feedback) or None
    booking.tip_amount = data.tipAmount or None
    booking.feedback_submitted_at = datetime.utcnow()
    db.commit()
    db.refresh(booking)

    logger.info(f"⭐ Feedback received for booking {booking.booking_number}: {data.rating}/5")
    return {
        "success": True,
        "data": feedback_to_dict(booking),
        "message": "Thank you for your feedback!",
    }

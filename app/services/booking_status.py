"""
Booking status transitions
Cleaners may only move a booking along a fixed adjacency list; owners and admins
may set any known status. Every change is appended to the booking's status history.
"""

import logging
from datetime import datetime
from typing import Optional

from ..models import BOOKING_STATUSES, Booking, User

logger = logging.getLogger(__name__)

# Statuses a cleaner may move a booking to from each status
CLEANER_TRANSITIONS: dict[str, list[str]] = {
    "PENDING": ["CONFIRMED"],
    "CONFIRMED": ["CLEANER_EN_ROUTE", "IN_PROGRESS"],
    "CLEANER_EN_ROUTE": ["IN_PROGRESS"],
    "IN_PROGRESS": ["CLEANER_COMPLETED"],
    "CLEANER_COMPLETED": [],
    "COMPLETED": [],
    "CANCELLED": [],
    "NO_SHOW": [],
    "RESCHEDULED": [],
}

# Statuses that end the working part of a job
FINISHED_STATUSES = ("CLEANER_COMPLETED", "COMPLETED")


def allowed_transitions(status: str) -> list[str]:
    return list(CLEANER_TRANSITIONS.get(status, []))


def elapsed_minutes(start: datetime, end: datetime) -> int:
    """Whole minutes between two timestamps, rounded to nearest"""
    return round((end - start).total_seconds() * 1000 / 60000)


def append_status_history(booking: Booking, entry: dict) -> None:
    # Reassign so the JSON column is flagged dirty
    booking.status_history = [*(booking.status_history or []), entry]


def history_entry(status: str, user: User, now: datetime, **extra) -> dict:
    entry = {
        "status": status,
        "timestamp": now.isoformat(),
        "userId": user.id,
        "userName": user.full_name,
    }
    entry.update({k: v for k, v in extra.items() if v is not None})
    return entry


def apply_cleaner_status_change(
    booking: Booking, new_status: str, user: User, now: Optional[datetime] = None
) -> Booking:
    """
    Move a booking to new_status on behalf of its assigned cleaner.

    Raises:
        ValueError: If new_status is not reachable from the current status
    """
    now = now or datetime.utcnow()
    current = booking.status
    allowed = allowed_transitions(current)

    if new_status not in allowed:
        logger.warning(
            f"🚫 Rejected cleaner transition for booking {booking.id}: {current} → {new_status}"
        )
        raise ValueError(
            f"Invalid status transition from {current} to {new_status}. "
            f"Allowed transitions: {', '.join(allowed) or 'none'}"
        )

    booking.status = new_status
    append_status_history(booking, history_entry(new_status, user, now))

    if new_status == "CLEANER_EN_ROUTE" and not booking.on_my_way_at:
        booking.on_my_way_at = now
    elif new_status == "IN_PROGRESS":
        if not booking.clocked_in_at:
            booking.clocked_in_at = now
        if not booking.arrived_at:
            booking.arrived_at = now
    elif new_status == "CLEANER_COMPLETED":
        booking.completed_at = now
        booking.completed_by_id = user.id
        if booking.clocked_in_at and not booking.clocked_out_at:
            booking.clocked_out_at = now
            booking.actual_duration = elapsed_minutes(booking.clocked_in_at, now)

    logger.info(f"✅ Booking {booking.id} transitioned: {current} → {new_status}")
    return booking


def apply_manager_status_change(
    booking: Booking, new_status: str, user: User, now: Optional[datetime] = None
) -> Booking:
    """Owners and admins may set any known status"""
    if new_status not in BOOKING_STATUSES:
        raise ValueError(f"Unknown booking status: {new_status}")

    now = now or datetime.utcnow()
    if booking.status == new_status:
        return booking

    previous = booking.status
    booking.status = new_status
    append_status_history(booking, history_entry(new_status, user, now))
    if new_status == "COMPLETED" and not booking.completed_at:
        booking.completed_at = now
        booking.completed_by_id = user.id

    logger.info(f"✅ Booking {booking.id} status set by {user.email}: {previous} → {new_status}")
    return booking

"""
Cleaner job actions
on-my-way → arrived → clock-in → clock-out → mark-complete, each guarded by the
timestamps already stored on the booking. Clocking in and out keeps a TimeEntry
row in step with the booking.
"""

import logging
import secrets
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from ..models import Booking, TeamMember, TimeEntry, User
from .booking_status import FINISHED_STATUSES, append_status_history, elapsed_minutes, history_entry

logger = logging.getLogger(__name__)

VALID_ACTIONS = ("on-my-way", "clock-in", "clock-out", "mark-complete", "arrived")

# A job in one of these statuses can no longer be clocked into
CLOCK_IN_BLOCKED_STATUSES = ("COMPLETED", "CLEANER_COMPLETED", "CANCELLED", "NO_SHOW")


def generate_feedback_token(now: datetime) -> str:
    return f"fb_{int(now.timestamp() * 1000)}_{secrets.token_hex(4)}"


def _open_time_entry(db: Session, booking: Booking, team_member: TeamMember) -> Optional[TimeEntry]:
    return (
        db.query(TimeEntry)
        .filter(
            TimeEntry.booking_id == booking.id,
            TimeEntry.team_member_id == team_member.id,
            TimeEntry.clock_out.is_(None),
        )
        .order_by(TimeEntry.clock_in.desc())
        .first()
    )


def _close_time_entry(
    db: Session,
    booking: Booking,
    team_member: TeamMember,
    now: datetime,
    minutes: int,
    location: Optional[dict],
    notes: Optional[str],
) -> TimeEntry:
    entry = _open_time_entry(db, booking, team_member)
    if not entry:
        # Clocked in before time entries were tracked for this job
        entry = TimeEntry(
            company_id=booking.company_id,
            team_member_id=team_member.id,
            booking_id=booking.id,
            clock_in=booking.clocked_in_at,
        )
        db.add(entry)

    entry.clock_out = now
    entry.total_minutes = minutes
    if location:
        entry.clock_out_lat = location.get("lat")
        entry.clock_out_lng = location.get("lng")
    if notes:
        entry.notes = f"{entry.notes}\nClock out: {notes}" if entry.notes else f"Clock out: {notes}"
    return entry


def estimated_earnings(team_member: TeamMember, minutes: int) -> float:
    return round((team_member.hourly_rate or 0) * (minutes / 60), 2)


def available_actions(booking: Booking) -> list[str]:
    """Actions the assigned cleaner can take on the job right now"""
    status = booking.status
    actions = []
    if not booking.on_my_way_at and status not in (
        "IN_PROGRESS",
        "CLEANER_COMPLETED",
        "COMPLETED",
        "CANCELLED",
    ):
        actions.append("on-my-way")
    if booking.on_my_way_at and not booking.arrived_at and not booking.clocked_in_at:
        actions.append("arrived")
    if not booking.clocked_in_at and status not in ("CLEANER_COMPLETED", "COMPLETED", "CANCELLED"):
        actions.append("clock-in")
    if booking.clocked_in_at and not booking.clocked_out_at:
        actions.append("clock-out")
    if booking.clocked_in_at and status not in FINISHED_STATUSES:
        actions.append("mark-complete")
    return actions


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def job_timeline(booking: Booking) -> dict:
    return {
        "id": booking.id,
        "status": booking.status,
        "onMyWayAt": _iso(booking.on_my_way_at),
        "arrivedAt": _iso(booking.arrived_at),
        "clockedInAt": _iso(booking.clocked_in_at),
        "clockedOutAt": _iso(booking.clocked_out_at),
        "completedAt": _iso(booking.completed_at),
        "actualDuration": booking.actual_duration,
    }


def perform_job_action(
    db: Session,
    booking: Booking,
    team_member: TeamMember,
    user: User,
    action: str,
    location: Optional[dict] = None,
    notes: Optional[str] = None,
    now: Optional[datetime] = None,
) -> str:
    """
    Apply a cleaner action to a booking and commit.

    Returns:
        Human readable result message

    Raises:
        ValueError: If the action is unknown or its precondition does not hold
    """
    now = now or datetime.utcnow()

    if action == "on-my-way":
        if booking.on_my_way_at:
            raise ValueError('Already marked as "On My Way" for this job')
        booking.on_my_way_at = now
        booking.status = "CLEANER_EN_ROUTE"
        message = "Client notified that you are on the way"

    elif action == "arrived":
        if booking.arrived_at:
            raise ValueError("Already marked as arrived for this job")
        booking.arrived_at = now
        message = "Arrival recorded"

    elif action == "clock-in":
        if booking.clocked_in_at:
            raise ValueError("Already clocked in to this job")
        if booking.status in CLOCK_IN_BLOCKED_STATUSES:
            raise ValueError(f"Cannot clock in - job status is {booking.status}")
        booking.clocked_in_at = now
        booking.status = "IN_PROGRESS"
        if not booking.arrived_at:
            booking.arrived_at = now
        if not booking.on_my_way_at:
            booking.on_my_way_at = now
        db.add(
            TimeEntry(
                company_id=booking.company_id,
                team_member_id=team_member.id,
                booking_id=booking.id,
                clock_in=now,
                clock_in_lat=location.get("lat") if location else None,
                clock_in_lng=location.get("lng") if location else None,
                notes=notes,
            )
        )
        message = "Clocked in successfully"

    elif action == "clock-out":
        if not booking.clocked_in_at:
            raise ValueError("Must clock in before clocking out")
        if booking.clocked_out_at:
            raise ValueError("Already clocked out from this job")
        minutes = elapsed_minutes(booking.clocked_in_at, now)
        booking.clocked_out_at = now
        booking.actual_duration = minutes
        _close_time_entry(db, booking, team_member, now, minutes, location, notes)
        message = (
            f"Clocked out. Duration: {minutes} minutes. "
            f"Estimated earnings: ${estimated_earnings(team_member, minutes):.2f}"
        )

    elif action == "mark-complete":
        if not booking.clocked_in_at:
            raise ValueError("Must clock in before marking complete")
        if booking.status in FINISHED_STATUSES:
            raise ValueError("Job is already marked as completed")
        booking.status = "CLEANER_COMPLETED"
        booking.completed_at = now
        booking.completed_by_id = user.id
        if not booking.feedback_token:
            booking.feedback_token = generate_feedback_token(now)
        if not booking.clocked_out_at:
            minutes = elapsed_minutes(booking.clocked_in_at, now)
            booking.clocked_out_at = now
            booking.actual_duration = minutes
            _close_time_entry(db, booking, team_member, now, minutes, location, notes)
        team_member.total_jobs_completed = (team_member.total_jobs_completed or 0) + 1
        message = "Job marked as complete"

    else:
        raise ValueError(f"Invalid action: {action}. Valid actions: {', '.join(VALID_ACTIONS)}")

    append_status_history(
        booking,
        history_entry(booking.status, user, now, action=action, location=location, notes=notes),
    )

    try:
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(booking)

    logger.info(f"✅ Job {booking.id}: {action} by team member {team_member.id}")
    return message

"""
Appointment reminder dispatcher
Run hourly (arq cron or the protected HTTP cron endpoint). For every company it
sends customer and cleaner reminders for bookings that start H hours from now,
plus same-day reminders to cleaners around the company's morning reminder time.

A booking whose reminder column is set is never picked up again. Failed sends are
counted and not retried: by the next run the booking has usually left the window.
"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session, joinedload

from ..email_service import is_email_configured, send_reminder_email
from ..models import Booking, Company, TeamMember
from ..shared.formatting import (
    fill_template,
    format_date,
    format_service_type,
    format_time,
    to_local,
    to_utc_naive,
)
from ..shared.validators import to_e164
from .twilio_service import is_sms_configured, send_sms

logger = logging.getLogger(__name__)

CUSTOMER_SMS_TEMPLATE = (
    "Hi {{firstName}}! Reminder: Your cleaning is scheduled for {{date}} at {{time}}. "
    "Address: {{address}}. See you soon! - {{companyName}}"
)
CLEANER_SMS_TEMPLATE = (
    "Hi {{cleanerName}}! Reminder: You have a cleaning scheduled for {{date}} at {{time}}. "
    "Client: {{clientName}}. Address: {{address}}. - {{companyName}}"
)
MORNING_SMS_TEMPLATE = (
    "Good morning {{cleanerName}}! Don't forget: You have a cleaning TODAY at {{time}}. "
    "Client: {{clientName}}. Address: {{address}}. Have a great day! - {{companyName}}"
)


def reminder_window(now: datetime, hours: int) -> tuple[datetime, datetime]:
    """[now + H, now + H + 1h)"""
    start = now + timedelta(hours=hours)
    return start, start + timedelta(hours=1)


def _booking_query(db: Session, company: Company):
    return (
        db.query(Booking)
        .options(
            joinedload(Booking.client),
            joinedload(Booking.address),
            joinedload(Booking.assigned_cleaner).joinedload(TeamMember.user),
        )
        .filter(Booking.company_id == company.id, Booking.status == "CONFIRMED")
    )


def _short_address(booking: Booking) -> str:
    address = booking.address
    if not address:
        return ""
    return f"{address.street or ''}, {address.city or ''}"


def _template_vars(booking: Booking, company: Company) -> dict:
    client = booking.client
    cleaner_user = booking.assigned_cleaner.user if booking.assigned_cleaner else None
    return {
        "firstName": client.first_name or "Customer",
        "clientName": client.name or "Customer",
        "cleanerName": (cleaner_user.first_name if cleaner_user else None) or "Cleaner",
        "date": format_date(booking.scheduled_date, company.timezone),
        "time": format_time(booking.scheduled_date, company.timezone),
        "address": _short_address(booking),
        "companyName": company.name,
    }


async def _send_reminder_sms(
    db: Session, company: Company, booking: Booking, phone: Optional[str], body: str
) -> bool:
    if not phone or not is_sms_configured(company):
        return False
    normalized = to_e164(phone)
    if not normalized:
        logger.warning(f"⚠️ Booking {booking.id}: unusable phone number, skipping SMS")
        return False
    success, error = await send_sms(
        db,
        company,
        normalized,
        body,
        "REMINDER",
        booking_id=booking.id,
        client_id=booking.client_id,
    )
    if not success:
        logger.warning(f"⚠️ Reminder SMS failed for booking {booking.id}: {error}")
    return success


async def _send_reminder_email(company: Company, booking: Booking, to: Optional[str], **content) -> bool:
    if not to or not is_email_configured(company):
        return False
    try:
        await send_reminder_email(company, to, **content)
        return True
    except Exception as e:
        logger.warning(f"⚠️ Reminder email failed for booking {booking.id}: {e}")
        return False


async def send_customer_reminders(db: Session, company: Company, now: datetime) -> dict:
    counts = {"sent": 0, "failed": 0}
    start, end = reminder_window(now, company.customer_reminder_hours)
    bookings = (
        _booking_query(db, company)
        .filter(
            Booking.reminder_sent_at.is_(None),
            Booking.scheduled_date >= start,
            Booking.scheduled_date < end,
        )
        .all()
    )

    for booking in bookings:
        try:
            variables = _template_vars(booking, company)
            client = booking.client
            cleaner_user = booking.assigned_cleaner.user if booking.assigned_cleaner else None

            sms_ok = await _send_reminder_sms(
                db, company, booking, client.phone, fill_template(CUSTOMER_SMS_TEMPLATE, variables)
            )
            email_ok = await _send_reminder_email(
                company,
                booking,
                client.email,
                subject=f"Reminder: Your cleaning appointment {variables['date']}",
                title="Appointment Reminder",
                greeting=f"Hi {variables['firstName']}",
                intro="This is a friendly reminder about your upcoming cleaning appointment.",
                details=[
                    ("Service", format_service_type(booking.service_type)),
                    ("Date", variables["date"]),
                    ("Time", variables["time"]),
                    ("Duration", f"{booking.duration} minutes"),
                    ("Address", variables["address"]),
                    ("Cleaner", cleaner_user.full_name if cleaner_user else None),
                    ("Special instructions", booking.customer_notes),
                ],
                closing=f"We look forward to seeing you! - {company.name}",
            )

            if sms_ok or email_ok:
                booking.reminder_sent_at = now
                db.commit()
                counts["sent"] += 1
            else:
                counts["failed"] += 1
        except Exception as e:
            db.rollback()
            logger.error(f"❌ Failed to send customer reminder for booking {booking.id}: {e}")
            counts["failed"] += 1

    return counts


async def send_cleaner_reminders(db: Session, company: Company, now: datetime) -> dict:
    counts = {"sent": 0, "failed": 0}
    start, end = reminder_window(now, company.cleaner_reminder_hours)
    bookings = (
        _booking_query(db, company)
        .filter(
            Booking.cleaner_reminder_sent_at.is_(None),
            Booking.assigned_cleaner_id.isnot(None),
            Booking.scheduled_date >= start,
            Booking.scheduled_date < end,
        )
        .all()
    )

    for booking in bookings:
        if not booking.assigned_cleaner:
            continue
        try:
            variables = _template_vars(booking, company)
            cleaner_user = booking.assigned_cleaner.user
            address = booking.address

            sms_ok = await _send_reminder_sms(
                db, company, booking, cleaner_user.phone, fill_template(CLEANER_SMS_TEMPLATE, variables)
            )
            email_ok = await _send_reminder_email(
                company,
                booking,
                cleaner_user.email,
                subject=f"Reminder: Cleaning assignment {variables['date']}",
                title="Assignment Reminder",
                greeting=f"Hi {variables['cleanerName']}",
                intro="This is a reminder about your upcoming cleaning assignment.",
                details=[
                    ("Date", variables["date"]),
                    ("Time", variables["time"]),
                    ("Duration", f"{booking.duration} minutes"),
                    ("Client", variables["clientName"]),
                    ("Client Phone", booking.client.phone),
                    ("Address", variables["address"]),
                    ("Gate Code", address.gate_code if address else None),
                    ("Parking", address.parking_info if address else None),
                    ("Pet Info", address.pet_details if address else None),
                    ("Internal Notes", booking.internal_notes),
                ],
                closing=f"Good luck! - {company.name}",
            )

            if sms_ok or email_ok:
                booking.cleaner_reminder_sent_at = now
                db.commit()
                counts["sent"] += 1
            else:
                counts["failed"] += 1
        except Exception as e:
            db.rollback()
            logger.error(f"❌ Failed to send cleaner reminder for booking {booking.id}: {e}")
            counts["failed"] += 1

    return counts


def is_morning_reminder_hour(company: Company, now: datetime) -> bool:
    """True when the company's local hour is within one hour of its morning reminder time"""
    try:
        reminder_hour = int((company.morning_reminder_time or "08:00").split(":")[0])
    except ValueError:
        reminder_hour = 8
    local_hour = to_local(now, company.timezone).hour
    return abs(local_hour - reminder_hour) <= 1


async def send_morning_of_reminders(db: Session, company: Company, now: datetime) -> dict:
    """Same-day reminders to cleaners. Not tracked by a sent column."""
    counts = {"sent": 0, "failed": 0}
    if not is_morning_reminder_hour(company, now):
        return counts

    local_now = to_local(now, company.timezone)
    day_start = local_now.replace(hour=0, minute=0, second=0, microsecond=0)
    day_end = day_start + timedelta(days=1)
    bookings = (
        _booking_query(db, company)
        .filter(
            Booking.assigned_cleaner_id.isnot(None),
            Booking.scheduled_date >= to_utc_naive(day_start),
            Booking.scheduled_date < to_utc_naive(day_end),
        )
        .all()
    )

    for booking in bookings:
        if not booking.assigned_cleaner:
            continue
        try:
            variables = _template_vars(booking, company)
            cleaner_user = booking.assigned_cleaner.user
            address = booking.address

            sms_ok = await _send_reminder_sms(
                db, company, booking, cleaner_user.phone, fill_template(MORNING_SMS_TEMPLATE, variables)
            )
            email_ok = await _send_reminder_email(
                company,
                booking,
                cleaner_user.email,
                subject=f"Today's Cleaning: {variables['time']} - {variables['clientName']}",
                title="Today's Assignment",
                greeting=f"Good morning {variables['cleanerName']}",
                intro="Quick reminder about your cleaning today!",
                details=[
                    ("Time", variables["time"]),
                    ("Client", variables["clientName"]),
                    ("Client Phone", booking.client.phone),
                    ("Address", variables["address"]),
                    ("Duration", f"{booking.duration} minutes"),
                    ("Gate Code", address.gate_code if address else None),
                    ("Parking", address.parking_info if address else None),
                ],
                closing=f"Have a great day! - {company.name}",
            )

            if sms_ok or email_ok:
                counts["sent"] += 1
            else:
                counts["failed"] += 1
        except Exception as e:
            db.rollback()
            logger.error(f"❌ Failed to send morning-of reminder for booking {booking.id}: {e}")
            counts["failed"] += 1

    return counts


async def dispatch_reminders(db: Session, now: Optional[datetime] = None) -> dict:
    """
    Send all due reminders for every company

    Returns:
        dict: {timestamp, results, totalSent, totalFailed}
    """
    now = now or datetime.utcnow()
    results = {
        "customerReminders": {"sent": 0, "failed": 0},
        "cleanerReminders": {"sent": 0, "failed": 0},
        "morningOfReminders": {"sent": 0, "failed": 0},
    }

    for company in db.query(Company).all():
        batches = []
        if company.customer_reminder_enabled:
            batches.append(("customerReminders", await send_customer_reminders(db, company, now)))
        if company.cleaner_reminder_enabled:
            batches.append(("cleanerReminders", await send_cleaner_reminders(db, company, now)))
        if company.morning_reminder_enabled:
            batches.append(("morningOfReminders", await send_morning_of_reminders(db, company, now)))

        for key, counts in batches:
            results[key]["sent"] += counts["sent"]
            results[key]["failed"] += counts["failed"]

    total_sent = sum(r["sent"] for r in results.values())
    total_failed = sum(r["failed"] for r in results.values())
    logger.info(f"⏰ Reminder run complete: sent={total_sent}, failed={total_failed}")

    return {
        "timestamp": now.isoformat(),
        "results": results,
        "totalSent": total_sent,
        "totalFailed": total_failed,
    }

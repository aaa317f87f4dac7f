"""
Marketing campaigns
Draft SMS/email blasts to a filtered slice of a company's clients. Sending
resolves the audience, records one recipient row per client and delivers
sequentially through the company's Twilio/Resend credentials.
"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import exists
from sqlalchemy.orm import Session

from ..email_service import get_sender_email, send_campaign_email
from ..models import Booking, Campaign, CampaignRecipient, Client, Company, Message, User
from ..shared.formatting import fill_template
from ..shared.validators import to_e164
from .twilio_service import send_sms

logger = logging.getLogger(__name__)

CHANNELS = ("SMS", "EMAIL", "BOTH")
SENDABLE_STATUSES = ("DRAFT", "SCHEDULED")


def personalize(text: Optional[str], client: Client, company: Company) -> str:
    if not text:
        return ""
    return fill_template(
        text,
        {"clientName": client.name, "client.name": client.name, "company.name": company.name},
    )


def build_audience(
    db: Session, company_id: int, campaign: Campaign, excluded_ids: Optional[list[int]] = None
) -> list[Client]:
    """
    Clients who have not opted out, match the segment filter, and have the
    contact field the channel needs
    """
    segment = campaign.segment_filter or {}
    query = db.query(Client).filter(
        Client.company_id == company_id,
        Client.marketing_opt_out.is_(False),
    )

    if excluded_ids:
        query = query.filter(Client.id.notin_(excluded_ids))

    no_booking_days = segment.get("noBookingDays")
    if no_booking_days:
        cutoff = datetime.utcnow() - timedelta(days=int(no_booking_days))
        query = query.filter(
            ~exists().where(Booking.client_id == Client.id, Booking.scheduled_date >= cutoff)
        )

    if campaign.channel == "SMS":
        query = query.filter(Client.phone.isnot(None), Client.phone != "")
    elif campaign.channel == "EMAIL":
        query = query.filter(Client.email.isnot(None), Client.email != "")

    clients = query.order_by(Client.first_name.asc(), Client.id.asc()).all()

    # Tags live in a JSON column, so match them here
    wanted_tags = set(segment.get("tags") or [])
    if wanted_tags:
        clients = [c for c in clients if wanted_tags.intersection(c.tags or [])]
    return clients


def opted_out_count(db: Session, company_id: int) -> int:
    return (
        db.query(Client)
        .filter(Client.company_id == company_id, Client.marketing_opt_out.is_(True))
        .count()
    )


def _mark_recipient(db: Session, campaign: Campaign, client: Client, success: bool, error: Optional[str]):
    db.query(CampaignRecipient).filter(
        CampaignRecipient.campaign_id == campaign.id,
        CampaignRecipient.client_id == client.id,
    ).update(
        {
            "status": "SENT" if success else "FAILED",
            "error_message": None if success else error,
            "sent_at": datetime.utcnow(),
        }
    )
    db.commit()


async def _deliver_sms(db: Session, company: Company, client: Client, body: str) -> tuple[bool, Optional[str]]:
    phone = to_e164(client.phone)
    if not phone:
        return False, "Invalid phone number"
    return await send_sms(db, company, phone, body, "MARKETING", client_id=client.id)


async def _deliver_email(
    db: Session, company: Company, client: Client, subject: str, body: str
) -> tuple[bool, Optional[str]]:
    log = Message(
        company_id=company.id,
        client_id=client.id,
        channel="EMAIL",
        type="MARKETING",
        to_address=client.email,
        from_address=get_sender_email(company),
        body=body,
    )
    try:
        response = await send_campaign_email(company, client.email, subject, body)
        log.status = "SENT"
        log.provider_id = response.get("id") if isinstance(response, dict) else None
        error = None
    except Exception as e:
        log.status = "FAILED"
        log.error_message = str(e)
        error = str(e)
    db.add(log)
    db.commit()
    return error is None, error


async def send_campaign(
    db: Session, campaign: Campaign, user: User, excluded_ids: Optional[list[int]] = None
) -> dict:
    """
    Send a DRAFT or SCHEDULED campaign now

    Returns:
        dict: {recipientCount, sentCount, failedCount}

    Raises:
        ValueError: wrong status or empty audience
    """
    if campaign.status not in SENDABLE_STATUSES:
        raise ValueError("Campaign has already been sent or is currently sending")

    recipients = build_audience(db, user.company_id, campaign, excluded_ids)
    if not recipients:
        raise ValueError("No recipients match the campaign filters")

    company = db.query(Company).filter(Company.id == user.company_id).first()
    channel = campaign.channel

    campaign.status = "SENDING"
    campaign.recipient_count = len(recipients)
    existing = {
        r.client_id
        for r in db.query(CampaignRecipient.client_id).filter(CampaignRecipient.campaign_id == campaign.id)
    }
    for client in recipients:
        if client.id not in existing:
            db.add(CampaignRecipient(campaign_id=campaign.id, client_id=client.id, channel=channel))
    db.commit()
    logger.info(f"📣 Sending campaign {campaign.id} to {len(recipients)} recipients via {channel}")

    sent_count = 0
    failed_count = 0
    try:
        for client in recipients:
            body = personalize(campaign.body, client, company)
            outcome: Optional[tuple[bool, Optional[str]]] = None

            if channel in ("SMS", "BOTH") and client.phone:
                outcome = await _deliver_sms(db, company, client, body)
                if outcome[0]:
                    sent_count += 1
                else:
                    failed_count += 1

            if channel in ("EMAIL", "BOTH") and client.email:
                subject = personalize(campaign.subject, client, company) or company.name
                outcome = await _deliver_email(db, company, client, subject, body)
                if outcome[0]:
                    sent_count += 1
                else:
                    failed_count += 1

            if outcome is not None:
                _mark_recipient(db, campaign, client, *outcome)

        campaign.status = "SENT"
        campaign.sent_count = sent_count
        campaign.failed_count = failed_count
        campaign.sent_at = datetime.utcnow()
        db.commit()
    except Exception as e:
        db.rollback()
        logger.error(f"❌ Campaign {campaign.id} send failed: {e}")
        campaign.status = "FAILED"
        db.commit()
        raise

    logger.info(f"✅ Campaign {campaign.id} sent: sent={sent_count}, failed={failed_count}")
    return {"recipientCount": len(recipients), "sentCount": sent_count, "failedCount": failed_count}

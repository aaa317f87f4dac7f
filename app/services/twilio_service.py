"""
Twilio SMS Service
Sends SMS through the Twilio REST API using each company's own credentials
"""

import logging
from typing import Optional

import httpx
from sqlalchemy.orm import Session

from ..config import TWILIO_ACCOUNT_SID, TWILIO_AUTH_TOKEN, TWILIO_PHONE_NUMBER
from ..models import Company, Message
from ..security_utils import decrypt_credential

logger = logging.getLogger(__name__)

TWILIO_API_BASE = "https://api.twilio.com/2010-04-01"


def get_twilio_credentials(company: Company) -> Optional[tuple[str, str, str]]:
    """
    Resolve (account_sid, auth_token, from_number) for a company.
    Falls back to the platform account when the company has none configured.
    """
    if company.twilio_account_sid and company.twilio_auth_token and company.twilio_phone_number:
        try:
            auth_token = decrypt_credential(company.twilio_auth_token)
        except ValueError as e:
            logger.error(f"Failed to decrypt Twilio credentials for company {company.id}: {e}")
            return None
        return company.twilio_account_sid, auth_token, company.twilio_phone_number

    if TWILIO_ACCOUNT_SID and TWILIO_AUTH_TOKEN and TWILIO_PHONE_NUMBER:
        return TWILIO_ACCOUNT_SID, TWILIO_AUTH_TOKEN, TWILIO_PHONE_NUMBER
    return None


def is_sms_configured(company: Company) -> bool:
    return get_twilio_credentials(company) is not None


def _log_message(db: Session, company: Company, **fields) -> None:
    db.add(Message(company_id=company.id, channel="SMS", **fields))
    db.commit()


async def send_sms(
    db: Session,
    company: Company,
    to_phone: str,
    message_body: str,
    message_type: str,
    booking_id: Optional[int] = None,
    client_id: Optional[int] = None,
) -> tuple[bool, Optional[str]]:
    """
    Send SMS via Twilio and record the attempt in the message log

    Args:
        db: Database session
        company: Sending company (provides credentials and From number)
        to_phone: Recipient phone number in E.164 format
        message_body: SMS message content
        message_type: REMINDER, ON_MY_WAY, MARKETING, ...
        booking_id: Optional related booking
        client_id: Optional related client

    Returns:
        Tuple of (success: bool, error_message: Optional[str])
    """
    if not to_phone:
        return False, "No phone number provided"

    if not to_phone.startswith("+"):
        logger.warning(f"Phone number not in E.164 format: {to_phone}")
        return False, "Phone number must be in E.164 format (e.g., +1234567890)"

    credentials = get_twilio_credentials(company)
    if not credentials:
        logger.debug(f"No Twilio credentials for company {company.id}")
        return False, "SMS not configured"

    account_sid, auth_token, from_number = credentials
    log_fields = {
        "booking_id": booking_id,
        "client_id": client_id,
        "type": message_type,
        "to_address": to_phone,
        "from_address": from_number,
        "body": message_body,
    }

    try:
        logger.info(f"📱 Sending SMS: type={message_type}, to={to_phone}, company={company.id}")
        async with httpx.AsyncClient() as client:
            response = await client.post(
                f"{TWILIO_API_BASE}/Accounts/{account_sid}/Messages.json",
                auth=(account_sid, auth_token),
                data={"To": to_phone, "From": from_number, "Body": message_body},
                timeout=10.0,
            )

        if response.status_code in (200, 201):
            message_sid = response.json().get("sid")
            _log_message(db, company, status="SENT", provider_id=message_sid, **log_fields)
            logger.info(f"✅ SMS sent: {message_type} to {to_phone} (SID: {message_sid})")
            return True, None

        try:
            error_data = response.json()
        except ValueError:
            error_data = {}
        error_message = error_data.get("message", f"HTTP {response.status_code}")
        error_code = error_data.get("code")
        _log_message(
            db,
            company,
            status="FAILED",
            error_message=f"[{error_code}] {error_message}" if error_code else error_message,
            **log_fields,
        )
        logger.error(f"❌ Twilio API error [{error_code}]: {error_message}")
        return False, error_message

    except httpx.HTTPError as e:
        logger.error(f"Twilio API error: {str(e)}")
        _log_message(db, company, status="FAILED", error_message=str(e), **log_fields)
        return False, str(e)


async def send_on_my_way_sms(
    db: Session, company: Company, client_phone: str, client_name: str, cleaner_name: str, booking_id: int
):
    """Let the client know their cleaner is heading over"""
    message = (
        f"Hi {client_name}! {cleaner_name} from {company.name} is on the way "
        f"to your home now. See you soon!"
    )
    return await send_sms(
        db=db,
        company=company,
        to_phone=client_phone,
        message_body=message,
        message_type="ON_MY_WAY",
        booking_id=booking_id,
    )

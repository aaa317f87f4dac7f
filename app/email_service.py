"""
Email Service using Resend
Compiles MJML templates and sends with the company's own Resend key or the platform key
"""

import logging
from typing import Optional, Union

import resend
from mjml import mjml_to_html

from .config import EMAIL_FROM_ADDRESS, RESEND_API_KEY
from .email_templates import campaign_email_template, reminder_template
from .models import Company
from .security_utils import decrypt_credential

logger = logging.getLogger(__name__)

# Initialize Resend with the platform key
resend.api_key = RESEND_API_KEY


def compile_mjml_to_html(mjml_content: str) -> str:
    """Compile MJML template to production-ready HTML"""
    try:
        result = mjml_to_html(mjml_content)
        if isinstance(result, dict):
            if result.get("errors"):
                logger.warning(f"MJML compilation warnings: {result['errors']}")
            return result.get("html", "")
        return getattr(result, "html", str(result))
    except Exception as e:
        logger.error(f"MJML compilation error: {e}")
        raise Exception(f"Failed to compile MJML template: {str(e)}") from e


def get_company_resend_key(company: Optional[Company]) -> Optional[str]:
    """Company key first, platform key as fallback"""
    if company and company.resend_api_key:
        try:
            return decrypt_credential(company.resend_api_key)
        except ValueError as e:
            logger.error(f"Failed to decrypt Resend key for company {company.id}: {e}")
            return None
    return RESEND_API_KEY


def is_email_configured(company: Optional[Company]) -> bool:
    return bool(get_company_resend_key(company))


def get_sender_email(company: Optional[Company]) -> str:
    """Verified company domain if it has one, otherwise the platform address"""
    if company and company.email_domain:
        return f"{company.name} <bookings@{company.email_domain}>"
    return EMAIL_FROM_ADDRESS


async def send_email(
    to: Union[str, list[str]],
    subject: str,
    mjml_content: str,
    company: Optional[Company] = None,
    from_address: Optional[str] = None,
) -> dict:
    """
    Send an email through Resend

    Args:
        to: Recipient email(s)
        subject: Email subject line
        mjml_content: MJML template content (will be compiled to HTML)
        company: Sending company; its Resend key and domain are used when configured
        from_address: Optional explicit from address

    Returns:
        Resend response dict
    """
    api_key = get_company_resend_key(company)
    if not api_key:
        logger.error("❌ No email service configured - RESEND_API_KEY missing")
        raise Exception("Email service not configured")

    html_content = compile_mjml_to_html(mjml_content)
    recipients = [to] if isinstance(to, str) else to
    sender = from_address or get_sender_email(company)

    try:
        logger.info(f"📧 Sending email via Resend to: {recipients}")
        resend.api_key = api_key
        response = resend.Emails.send(
            {
                "from": sender,
                "to": recipients,
                "subject": subject,
                "html": html_content,
            }
        )
        logger.info(f"✅ Email sent successfully via Resend: {response}")
        return response
    except Exception as e:
        logger.error(f"❌ Email send error to {recipients}: {e}")
        raise Exception(f"Failed to send email: {str(e)}") from e


async def send_reminder_email(
    company: Company,
    to: str,
    subject: str,
    title: str,
    greeting: str,
    intro: str,
    details: list[tuple[str, Optional[str]]],
    closing: str,
) -> dict:
    mjml_content = reminder_template(title, greeting, intro, details, company.name, closing)
    return await send_email(
        to=to,
        subject=subject,
        mjml_content=mjml_content,
        company=company,
        from_address=f"reminders@{company.email_domain}" if company.email_domain else None,
    )


async def send_campaign_email(company: Company, to: str, subject: str, body: str) -> dict:
    return await send_email(
        to=to,
        subject=subject,
        mjml_content=campaign_email_template(subject, body, company.name),
        company=company,
    )

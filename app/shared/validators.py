"""Shared validation utilities"""

import re
from typing import Optional

SLUG_PATTERN = re.compile(r"^[a-z0-9]+(?:-[a-z0-9]+)*$")
EMAIL_PATTERN = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")


def validate_us_phone(phone: Optional[str]) -> Optional[str]:
    """
    Validate and normalize US phone number to E.164 format.

    Args:
        phone: Phone number string in various formats

    Returns:
        Normalized phone number in E.164 format (+1XXXXXXXXXX)

    Raises:
        ValueError: If phone number is invalid
    """
    if not phone:
        return phone

    # Already international, keep as-is
    if phone.strip().startswith("+") and not phone.strip().startswith("+1"):
        digits = re.sub(r"\D", "", phone)
        if not 8 <= len(digits) <= 15:
            raise ValueError("Invalid international phone number")
        return f"+{digits}"

    digits = re.sub(r"\D", "", phone)

    # Handle +1 prefix
    if digits.startswith("1") and len(digits) == 11:
        digits = digits[1:]

    if len(digits) != 10:
        raise ValueError("Phone number must be 10 digits for US numbers")

    return f"+1{digits}"


def to_e164(phone: Optional[str]) -> Optional[str]:
    """Lenient variant for stored data: None instead of raising"""
    try:
        return validate_us_phone(phone)
    except ValueError:
        return None


def validate_email(email: Optional[str]) -> Optional[str]:
    """
    Validate email format.

    Returns:
        Lowercase email address

    Raises:
        ValueError: If email format is invalid
    """
    if not email:
        return email

    email = email.strip().lower()
    if not EMAIL_PATTERN.match(email):
        raise ValueError("Invalid email format")
    return email


def validate_slug(slug: str) -> str:
    """Company slugs are lowercase words joined by single hyphens"""
    slug = (slug or "").strip()
    if not SLUG_PATTERN.match(slug):
        raise ValueError("Slug must contain only lowercase letters, numbers, and hyphens")
    return slug

"""Shared formatting helpers for message templates"""

import re
from datetime import datetime, timezone
from typing import Any, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

PLACEHOLDER_PATTERN = re.compile(r"\{\{\s*([\w.]+)\s*\}\}")


def fill_template(template: str, variables: dict[str, Any]) -> str:
    """
    Replace {{key}} placeholders. Unknown keys are left untouched.

    Example:
        fill_template("Hi {{clientName}}!", {"clientName": "Ana"}) -> "Hi Ana!"
    """

    def replace(match: re.Match) -> str:
        key = match.group(1)
        if key in variables and variables[key] is not None:
            return str(variables[key])
        return match.group(0)

    return PLACEHOLDER_PATTERN.sub(replace, template)


def get_zone(tz_name: Optional[str]) -> ZoneInfo:
    try:
        return ZoneInfo(tz_name or "UTC")
    except (ZoneInfoNotFoundError, ValueError):
        return ZoneInfo("UTC")


def to_local(value: datetime, tz_name: Optional[str]) -> datetime:
    """Stored datetimes are naive UTC"""
    return value.replace(tzinfo=timezone.utc).astimezone(get_zone(tz_name))


def to_utc_naive(value: datetime) -> datetime:
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def format_date(value: datetime, tz_name: Optional[str] = None) -> str:
    """e.g. Monday, March 9"""
    local = to_local(value, tz_name)
    return f"{local:%A}, {local:%B} {local.day}"


def format_time(value: datetime, tz_name: Optional[str] = None) -> str:
    """e.g. 9:30 AM"""
    local = to_local(value, tz_name)
    hour = local.hour % 12 or 12
    return f"{hour}:{local:%M} {'AM' if local.hour < 12 else 'PM'}"


def format_service_type(service_type: Optional[str]) -> str:
    return {
        "STANDARD": "Standard Cleaning",
        "DEEP": "Deep Cleaning",
        "MOVE_OUT": "Move-Out Cleaning",
    }.get(service_type or "", "Cleaning")


def split_name(full_name: str) -> tuple[str, Optional[str]]:
    """'Mary Ann Smith' -> ('Mary Ann', 'Smith'); single words have no last name"""
    parts = full_name.strip().split()
    if len(parts) <= 1:
        return full_name.strip(), None
    return " ".join(parts[:-1]), parts[-1]


def slugify(value: str) -> str:
    """'Sparkle & Shine LLC' -> 'sparkle-shine-llc'"""
    return re.sub(r"[^a-z0-9]+", "-", (value or "").lower()).strip("-")

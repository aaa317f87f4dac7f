"""
Global search
Fans a case-insensitive contains query out over clients, bookings and team
members of the caller's company and merges the hits into one result shape.
"""

import logging
from typing import Optional

from sqlalchemy import func, or_
from sqlalchemy.orm import Session, joinedload

from ..models import ROLE_ADMIN, ROLE_OWNER, Address, Booking, Client, TeamMember, User

logger = logging.getLogger(__name__)

MIN_QUERY_LENGTH = 2
SEARCH_TYPES = ("clients", "bookings", "team")
LIKE_ESCAPE = "\\"


def empty_results() -> dict:
    return {key: [] for key in SEARCH_TYPES}


def like_pattern(query: str) -> str:
    """Contains-pattern with LIKE wildcards in the user input taken literally"""
    escaped = query.lower().replace(LIKE_ESCAPE, LIKE_ESCAPE * 2)
    escaped = escaped.replace("%", LIKE_ESCAPE + "%").replace("_", LIKE_ESCAPE + "_")
    return f"%{escaped}%"


def _client_name_expr():
    return func.lower(Client.first_name + " " + func.coalesce(Client.last_name, ""))


def search_clients(db: Session, company_id: int, pattern: str, limit: int) -> list[dict]:
    clients = (
        db.query(Client)
        .options(joinedload(Client.addresses))
        .filter(
            Client.company_id == company_id,
            or_(
                _client_name_expr().like(pattern, escape=LIKE_ESCAPE),
                func.lower(Client.email).like(pattern, escape=LIKE_ESCAPE),
                Client.phone.like(pattern, escape=LIKE_ESCAPE),
            ),
        )
        .limit(limit)
        .all()
    )

    results = []
    for client in clients:
        address = client.addresses[0] if client.addresses else None
        results.append(
            {
                "id": client.id,
                "type": "client",
                "title": client.name,
                "subtitle": client.email or client.phone or "",
                "description": f"{address.city}, {address.state}" if address else "",
                "metadata": {"bookingsCount": len(client.bookings)},
                "url": f"/clients/{client.id}",
            }
        )
    return results


def search_bookings(db: Session, company_id: int, pattern: str, limit: int) -> list[dict]:
    bookings = (
        db.query(Booking)
        .join(Client, Booking.client_id == Client.id)
        .join(Address, Booking.address_id == Address.id)
        .options(
            joinedload(Booking.client),
            joinedload(Booking.address),
            joinedload(Booking.assigned_cleaner).joinedload(TeamMember.user),
        )
        .filter(
            Booking.company_id == company_id,
            or_(
                _client_name_expr().like(pattern, escape=LIKE_ESCAPE),
                func.lower(Client.email).like(pattern, escape=LIKE_ESCAPE),
                func.lower(Address.street).like(pattern, escape=LIKE_ESCAPE),
                func.lower(Address.city).like(pattern, escape=LIKE_ESCAPE),
            ),
        )
        .order_by(Booking.scheduled_date.desc())
        .limit(limit)
        .all()
    )

    results = []
    for booking in bookings:
        cleaner = booking.assigned_cleaner
        results.append(
            {
                "id": booking.id,
                "type": "booking",
                "title": f"{booking.service_type} - {booking.client.name}",
                "subtitle": booking.scheduled_date.strftime("%m/%d/%Y"),
                "description": f"{booking.address.street}, {booking.address.city}" if booking.address else "",
                "metadata": {
                    "status": booking.status,
                    "price": booking.price,
                    "assignee": cleaner.user.full_name if cleaner and cleaner.user else None,
                },
                "url": f"/jobs/{booking.id}",
            }
        )
    return results


def search_team(db: Session, company_id: int, pattern: str, limit: int) -> list[dict]:
    user_name = func.lower(func.coalesce(User.first_name, "") + " " + func.coalesce(User.last_name, ""))
    members = (
        db.query(TeamMember)
        .join(User, TeamMember.user_id == User.id)
        .options(joinedload(TeamMember.user))
        .filter(
            TeamMember.company_id == company_id,
            or_(
                user_name.like(pattern, escape=LIKE_ESCAPE),
                func.lower(User.email).like(pattern, escape=LIKE_ESCAPE),
                User.phone.like(pattern, escape=LIKE_ESCAPE),
            ),
        )
        .limit(limit)
        .all()
    )

    return [
        {
            "id": member.id,
            "type": "team",
            "title": member.user.full_name or "Unknown",
            "subtitle": member.user.email or member.user.phone or "",
            "description": ", ".join(member.specialties or []) or member.user.role,
            "metadata": {"role": member.user.role, "isActive": member.is_active},
            "url": f"/team/{member.id}/edit",
        }
        for member in members
    ]


def global_search(
    db: Session, user: User, query: str, entity_type: Optional[str] = None, limit: int = 20
) -> dict:
    """
    Returns:
        dict: {clients, bookings, team}, each a list of
        {id, type, title, subtitle, description, metadata, url}
    """
    query = (query or "").strip()
    results = empty_results()
    if len(query) < MIN_QUERY_LENGTH:
        return results

    pattern = like_pattern(query)
    company_id = user.company_id

    if not entity_type or entity_type == "clients":
        results["clients"] = search_clients(db, company_id, pattern, limit)
    if not entity_type or entity_type == "bookings":
        results["bookings"] = search_bookings(db, company_id, pattern, limit)
    if user.role in (ROLE_OWNER, ROLE_ADMIN) and (not entity_type or entity_type == "team"):
        results["team"] = search_team(db, company_id, pattern, limit)

    logger.debug(f"🔍 Search '{query}' for company {company_id}: {sum(len(v) for v in results.values())} hits")
    return results

"""Booking repository - Database operations for bookings"""

from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session, joinedload

from ...models import Address, Booking, Client, TeamMember


class BookingRepository:
    """Repository for booking database operations"""

    @staticmethod
    def _with_relations(db: Session):
        return db.query(Booking).options(
            joinedload(Booking.client),
            joinedload(Booking.address),
            joinedload(Booking.assigned_cleaner).joinedload(TeamMember.user),
        )

    @staticmethod
    def get_bookings(
        db: Session,
        company_id: int,
        status: Optional[str] = None,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
        client_id: Optional[int] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[Booking]:
        query = BookingRepository._with_relations(db).filter(Booking.company_id == company_id)

        if status:
            query = query.filter(Booking.status == status)
        if date_from:
            query = query.filter(Booking.scheduled_date >= date_from)
        if date_to:
            query = query.filter(Booking.scheduled_date < date_to)
        if client_id:
            query = query.filter(Booking.client_id == client_id)

        return query.order_by(Booking.scheduled_date.asc()).offset(offset).limit(limit).all()

    @staticmethod
    def get_booking_by_id(db: Session, booking_id: int, company_id: int) -> Optional[Booking]:
        return (
            BookingRepository._with_relations(db)
            .filter(Booking.id == booking_id, Booking.company_id == company_id)
            .first()
        )

    @staticmethod
    def get_assigned_booking(db: Session, booking_id: int, team_member: TeamMember) -> Optional[Booking]:
        """A booking only if it is assigned to this cleaner within the cleaner's company"""
        return (
            BookingRepository._with_relations(db)
            .filter(
                Booking.id == booking_id,
                Booking.company_id == team_member.company_id,
                Booking.assigned_cleaner_id == team_member.id,
            )
            .first()
        )

    @staticmethod
    def get_assigned_bookings(
        db: Session,
        team_member: TeamMember,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
    ) -> list[Booking]:
        query = BookingRepository._with_relations(db).filter(
            Booking.company_id == team_member.company_id,
            Booking.assigned_cleaner_id == team_member.id,
        )
        if date_from:
            query = query.filter(Booking.scheduled_date >= date_from)
        if date_to:
            query = query.filter(Booking.scheduled_date < date_to)
        return query.order_by(Booking.scheduled_date.asc()).all()

    @staticmethod
    def get_client(db: Session, client_id: int, company_id: int) -> Optional[Client]:
        return db.query(Client).filter(Client.id == client_id, Client.company_id == company_id).first()

    @staticmethod
    def get_address(db: Session, address_id: int, client_id: int) -> Optional[Address]:
        return db.query(Address).filter(Address.id == address_id, Address.client_id == client_id).first()

    @staticmethod
    def get_active_team_member(db: Session, team_member_id: int, company_id: int) -> Optional[TeamMember]:
        return (
            db.query(TeamMember)
            .filter(
                TeamMember.id == team_member_id,
                TeamMember.company_id == company_id,
                TeamMember.is_active.is_(True),
            )
            .first()
        )

    @staticmethod
    def create_booking(db: Session, **booking_data) -> Booking:
        booking = Booking(**booking_data)
        db.add(booking)
        try:
            db.commit()
        except Exception:
            db.rollback()
            raise
        db.refresh(booking)
        return booking

    @staticmethod
    def delete_booking(db: Session, booking: Booking) -> None:
        db.delete(booking)
        db.commit()

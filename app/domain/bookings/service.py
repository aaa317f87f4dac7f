"""Booking service - Business logic for booking operations"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import HTTPException, Request
from sqlalchemy.orm import Session

from ...models import Booking, User
from ...security_utils import generate_random_code, sanitize_text
from ...services import audit
from ...services.booking_status import apply_manager_status_change
from ...services.referrals import apply_referral_credits
from ...shared.formatting import to_utc_naive
from .repository import BookingRepository
from .schemas import BookingCreate, BookingUpdate

logger = logging.getLogger(__name__)


def generate_booking_number(scheduled: Optional[datetime] = None) -> str:
    """BK-YYYYMMDD-XXXXXX keyed on the scheduled day"""
    day = (scheduled or datetime.utcnow()).strftime("%Y%m%d")
    return f"BK-{day}-{generate_random_code(6)}"


def _naive_utc(value: datetime) -> datetime:
    return to_utc_naive(value) if value.tzinfo else value


class BookingService:
    """Service layer for booking business logic"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = BookingRepository()

    def get_bookings(
        self,
        user: User,
        status: Optional[str] = None,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
        client_id: Optional[int] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[Booking]:
        return self.repo.get_bookings(
            self.db,
            user.company_id,
            status=status,
            date_from=_naive_utc(date_from) if date_from else None,
            date_to=_naive_utc(date_to) if date_to else None,
            client_id=client_id,
            limit=limit,
            offset=offset,
        )

    def get_booking(self, booking_id: int, user: User) -> Booking:
        booking = self.repo.get_booking_by_id(self.db, booking_id, user.company_id)
        if not booking:
            raise HTTPException(status_code=404, detail="Booking not found")
        return booking

    def _resolve_address_id(self, client, address_id: Optional[int]) -> int:
        if address_id:
            address = self.repo.get_address(self.db, address_id, client.id)
            if not address:
                raise HTTPException(status_code=400, detail="Address does not belong to this client")
            return address.id
        if not client.addresses:
            raise HTTPException(status_code=400, detail="Client has no address on file")
        return client.addresses[0].id

    def _check_cleaner(self, team_member_id: int, user: User) -> None:
        if not self.repo.get_active_team_member(self.db, team_member_id, user.company_id):
            raise HTTPException(status_code=400, detail="Team member not found or inactive")

    def create_booking(self, data: BookingCreate, user: User, request: Optional[Request] = None) -> Booking:
        logger.info(f"📥 Creating booking for company_id: {user.company_id}, client: {data.clientId}")

        client = self.repo.get_client(self.db, data.clientId, user.company_id)
        if not client:
            raise HTTPException(status_code=404, detail="Client not found")

        address_id = self._resolve_address_id(client, data.addressId)
        if data.assignedCleanerId:
            self._check_cleaner(data.assignedCleanerId, user)

        scheduled = _naive_utc(data.scheduledDate)
        price = data.price
        if data.applyReferralCredits and price > 0:
            price -= apply_referral_credits(self.db, client.id, price, commit=False)

        booking = self.repo.create_booking(
            self.db,
            company_id=user.company_id,
            client_id=client.id,
            address_id=address_id,
            assigned_cleaner_id=data.assignedCleanerId,
            created_by_id=user.id,
            booking_number=generate_booking_number(scheduled),
            scheduled_date=scheduled,
            duration=data.duration,
            service_type=data.serviceType,
            status=data.status,
            price=price,
            customer_notes=sanitize_text(data.customerNotes),
            internal_notes=sanitize_text(data.internalNotes),
            status_history=[
                {
                    "status": data.status,
                    "timestamp": datetime.utcnow().isoformat(),
                    "userId": user.id,
                    "userName": user.full_name,
                }
            ],
        )

        audit.log_activity(
            self.db,
            user.company_id,
            user.id,
            audit.BOOKING_CREATED,
            f"Created booking {booking.booking_number} for {client.name}",
            entity_type="booking",
            entity_id=booking.id,
            request=request,
        )
        logger.info(f"✅ Booking {booking.booking_number} created")
        return booking

    def update_booking(
        self, booking_id: int, data: BookingUpdate, user: User, request: Optional[Request] = None
    ) -> Booking:
        booking = self.get_booking(booking_id, user)
        previous_status = booking.status

        if data.status:
            try:
                apply_manager_status_change(booking, data.status, user)
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e)) from e

        if data.addressId is not None:
            booking.address_id = self._resolve_address_id(booking.client, data.addressId)
        if data.scheduledDate is not None:
            booking.scheduled_date = _naive_utc(data.scheduledDate)
            # A moved booking is due for fresh reminders
            booking.reminder_sent_at = None
            booking.cleaner_reminder_sent_at = None
        if data.duration is not None:
            booking.duration = data.duration
        if data.serviceType is not None:
            booking.service_type = data.serviceType
        if data.price is not None:
            booking.price = data.price
        if data.isPaid is not None:
            booking.is_paid = data.isPaid
        if data.paymentMethod is not None:
            booking.payment_method = data.paymentMethod
        if data.customerNotes is not None:
            booking.customer_notes = sanitize_text(data.customerNotes)
        if data.internalNotes is not None:
            booking.internal_notes = sanitize_text(data.internalNotes)

        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self.db.refresh(booking)

        action = audit.BOOKING_UPDATED
        if booking.status != previous_status and booking.status == "CANCELLED":
            action = audit.BOOKING_CANCELLED
        elif booking.status != previous_status and booking.status == "COMPLETED":
            action = audit.BOOKING_COMPLETED
        audit.log_activity(
            self.db,
            user.company_id,
            user.id,
            action,
            f"Updated booking {booking.booking_number}",
            entity_type="booking",
            entity_id=booking.id,
            metadata={"previousStatus": previous_status, "status": booking.status},
            request=request,
        )
        return booking

    def assign_cleaner(
        self, booking_id: int, team_member_id: Optional[int], user: User, request: Optional[Request] = None
    ) -> Booking:
        """Assign (or with None, unassign) a cleaner"""
        booking = self.get_booking(booking_id, user)
        if team_member_id is not None:
            self._check_cleaner(team_member_id, user)

        booking.assigned_cleaner_id = team_member_id
        booking.cleaner_reminder_sent_at = None
        self.db.commit()
        self.db.refresh(booking)

        audit.log_activity(
            self.db,
            user.company_id,
            user.id,
            audit.BOOKING_ASSIGNED,
            f"Assigned booking {booking.booking_number}",
            entity_type="booking",
            entity_id=booking.id,
            metadata={"teamMemberId": team_member_id},
            request=request,
        )
        return booking

    def delete_booking(self, booking_id: int, user: User, request: Optional[Request] = None) -> None:
        booking = self.get_booking(booking_id, user)
        number = booking.booking_number
        self.repo.delete_booking(self.db, booking)
        logger.info(f"🗑️ Booking {number} deleted by user {user.id}")

        audit.log_activity(
            self.db,
            user.company_id,
            user.id,
            audit.BOOKING_DELETED,
            f"Deleted booking {number}",
            entity_type="booking",
            entity_id=booking_id,
            request=request,
        )

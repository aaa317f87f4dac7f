from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base

# Roles a login identity can hold inside its company
ROLE_OWNER = "OWNER"
ROLE_ADMIN = "ADMIN"
ROLE_CLEANER = "CLEANER"
ROLE_CLIENT = "CLIENT"
USER_ROLES = (ROLE_OWNER, ROLE_ADMIN, ROLE_CLEANER, ROLE_CLIENT)

BOOKING_STATUSES = (
    "PENDING",
    "CONFIRMED",
    "CLEANER_EN_ROUTE",
    "IN_PROGRESS",
    "CLEANER_COMPLETED",
    "COMPLETED",
    "CANCELLED",
    "NO_SHOW",
    "RESCHEDULED",
)
SERVICE_TYPES = ("STANDARD", "DEEP", "MOVE_OUT")


class Company(Base):
    """A tenant. Every business row is scoped to exactly one company."""

    __tablename__ = "companies"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    slug = Column(String(100), unique=True, index=True, nullable=False)
    email = Column(String(255), nullable=True)
    phone = Column(String(50), nullable=True)
    timezone = Column(String(64), default="America/New_York", nullable=False)
    plan = Column(String(50), default="starter", nullable=False)
    subscription_status = Column(String(50), default="trialing", nullable=False)

    # Messaging providers (secrets are Fernet-encrypted at rest)
    twilio_account_sid = Column(String(255), nullable=True)
    twilio_auth_token = Column(Text, nullable=True)
    twilio_phone_number = Column(String(50), nullable=True)
    resend_api_key = Column(Text, nullable=True)
    email_domain = Column(String(255), nullable=True)
    google_review_url = Column(String(500), nullable=True)

    # Reminder settings
    customer_reminder_enabled = Column(Boolean, default=True, nullable=False)
    customer_reminder_hours = Column(Integer, default=24, nullable=False)
    cleaner_reminder_enabled = Column(Boolean, default=True, nullable=False)
    cleaner_reminder_hours = Column(Integer, default=24, nullable=False)
    morning_reminder_enabled = Column(Boolean, default=False, nullable=False)
    morning_reminder_time = Column(String(5), default="08:00", nullable=False)  # HH:MM

    # Referral program
    referral_enabled = Column(Boolean, default=False, nullable=False)
    referral_referrer_reward = Column(Float, default=25.0, nullable=False)
    referral_referee_reward = Column(Float, default=25.0, nullable=False)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    users = relationship("User", back_populates="company", cascade="all, delete-orphan")
    clients = relationship("Client", back_populates="company", cascade="all, delete-orphan")
    bookings = relationship("Booking", back_populates="company", cascade="all, delete-orphan")
    team_members = relationship(
        "TeamMember", back_populates="company", cascade="all, delete-orphan"
    )


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=True, index=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    password_hash = Column(String(255), nullable=True)
    first_name = Column(String(100), nullable=True)
    last_name = Column(String(100), nullable=True)
    phone = Column(String(50), nullable=True)
    role = Column(String(20), default=ROLE_OWNER, nullable=False)
    is_platform_admin = Column(Boolean, default=False, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    last_login_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    company = relationship("Company", back_populates="users")
    team_member = relationship("TeamMember", back_populates="user", uselist=False)

    @property
    def full_name(self) -> str:
        return " ".join(p for p in (self.first_name, self.last_name) if p).strip() or self.email


class Client(Base):
    __tablename__ = "clients"
    __table_args__ = (UniqueConstraint("company_id", "referral_code", name="uq_client_referral_code"),)

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True)  # Customer portal login
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=True)
    email = Column(String(255), nullable=True, index=True)
    phone = Column(String(50), nullable=True)
    tags = Column(JSON, default=list)
    notes = Column(Text, nullable=True)
    is_vip = Column(Boolean, default=False, nullable=False)
    marketing_opt_out = Column(Boolean, default=False, nullable=False)
    referral_code = Column(String(32), nullable=True)
    referred_by_id = Column(Integer, ForeignKey("clients.id", ondelete="SET NULL"), nullable=True)
    referral_credits_earned = Column(Float, default=0.0, nullable=False)
    referral_credits_balance = Column(Float, default=0.0, nullable=False)
    referral_credits_used = Column(Float, default=0.0, nullable=False)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    company = relationship("Company", back_populates="clients")
    addresses = relationship("Address", back_populates="client", cascade="all, delete-orphan")
    preferences = relationship(
        "ClientPreference", back_populates="client", uselist=False, cascade="all, delete-orphan"
    )
    bookings = relationship("Booking", back_populates="client", cascade="all, delete-orphan")

    @property
    def name(self) -> str:
        return " ".join(p for p in (self.first_name, self.last_name) if p).strip()


class Address(Base):
    __tablename__ = "addresses"

    id = Column(Integer, primary_key=True, index=True)
    client_id = Column(Integer, ForeignKey("clients.id"), nullable=False, index=True)
    street = Column(String(255), nullable=False)
    unit = Column(String(50), nullable=True)
    city = Column(String(100), nullable=False)
    state = Column(String(50), nullable=False)
    zip = Column(String(20), nullable=False)
    parking_info = Column(Text, nullable=True)
    gate_code = Column(String(50), nullable=True)
    pet_details = Column(Text, nullable=True)
    bedrooms = Column(Integer, nullable=True)
    bathrooms = Column(Float, nullable=True)
    square_footage = Column(Integer, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    client = relationship("Client", back_populates="addresses")

    @property
    def one_line(self) -> str:
        street = f"{self.street} {self.unit}" if self.unit else self.street
        return f"{street}, {self.city}, {self.state} {self.zip}"


class ClientPreference(Base):
    """Per-client cleaning instructions shown to cleaners on every job."""

    __tablename__ = "client_preferences"

    id = Column(Integer, primary_key=True, index=True)
    client_id = Column(Integer, ForeignKey("clients.id"), unique=True, nullable=False)
    cleaning_sequence = Column(Text, nullable=True)
    priority_areas = Column(Text, nullable=True)
    areas_to_avoid = Column(Text, nullable=True)
    product_allergies = Column(Text, nullable=True)
    preferred_products = Column(Text, nullable=True)
    customer_provides_products = Column(Boolean, default=False, nullable=False)
    avoid_scents = Column(Boolean, default=False, nullable=False)
    eco_friendly_only = Column(Boolean, default=False, nullable=False)
    pet_handling_instructions = Column(Text, nullable=True)
    plant_watering = Column(Boolean, default=False, nullable=False)
    plant_instructions = Column(Text, nullable=True)
    trash_takeout = Column(Boolean, default=False, nullable=False)
    other_tasks = Column(Text, nullable=True)
    last_visit_notes = Column(Text, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    client = relationship("Client", back_populates="preferences")


class TeamMember(Base):
    """A cleaner's staff profile. The login identity lives on User."""

    __tablename__ = "team_members"

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), unique=True, nullable=False)
    hourly_rate = Column(Float, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    total_jobs_completed = Column(Integer, default=0, nullable=False)
    specialties = Column(JSON, default=list)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    company = relationship("Company", back_populates="team_members")
    user = relationship("User", back_populates="team_member")
    bookings = relationship(
        "Booking", back_populates="assigned_cleaner", foreign_keys="Booking.assigned_cleaner_id"
    )
    time_entries = relationship("TimeEntry", back_populates="team_member")


class Booking(Base):
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False, index=True)
    client_id = Column(Integer, ForeignKey("clients.id"), nullable=False, index=True)
    address_id = Column(Integer, ForeignKey("addresses.id"), nullable=False)
    assigned_cleaner_id = Column(Integer, ForeignKey("team_members.id"), nullable=True, index=True)
    created_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    booking_number = Column(String(40), unique=True, index=True, nullable=False)
    scheduled_date = Column(DateTime, nullable=False, index=True)
    duration = Column(Integer, default=120, nullable=False)  # minutes
    service_type = Column(String(20), default="STANDARD", nullable=False)
    status = Column(String(30), default="PENDING", nullable=False, index=True)
    price = Column(Float, default=0.0, nullable=False)
    is_paid = Column(Boolean, default=False, nullable=False)
    payment_method = Column(String(30), nullable=True)
    customer_notes = Column(Text, nullable=True)
    internal_notes = Column(Text, nullable=True)
    cleaner_notes = Column(Text, nullable=True)

    # Job timeline
    on_my_way_at = Column(DateTime, nullable=True)
    arrived_at = Column(DateTime, nullable=True)
    clocked_in_at = Column(DateTime, nullable=True)
    clocked_out_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    completed_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    actual_duration = Column(Integer, nullable=True)  # minutes
    feedback_token = Column(String(100), unique=True, nullable=True)

    # Customer feedback, submitted once through the public feedback link
    customer_rating = Column(Integer, nullable=True)
    customer_feedback = Column(Text, nullable=True)
    tip_amount = Column(Float, nullable=True)
    feedback_submitted_at = Column(DateTime, nullable=True)

    # Reminder bookkeeping
    reminder_sent_at = Column(DateTime, nullable=True)
    cleaner_reminder_sent_at = Column(DateTime, nullable=True)

    status_history = Column(JSON, default=list)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    company = relationship("Company", back_populates="bookings")
    client = relationship("Client", back_populates="bookings")
    address = relationship("Address")
    assigned_cleaner = relationship(
        "TeamMember", back_populates="bookings", foreign_keys=[assigned_cleaner_id]
    )
    time_entries = relationship("TimeEntry", back_populates="booking", cascade="all, delete-orphan")


class TimeEntry(Base):
    __tablename__ = "time_entries"

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False, index=True)
    team_member_id = Column(Integer, ForeignKey("team_members.id"), nullable=False, index=True)
    booking_id = Column(Integer, ForeignKey("bookings.id"), nullable=True, index=True)
    clock_in = Column(DateTime, nullable=False)
    clock_out = Column(DateTime, nullable=True)
    clock_in_lat = Column(Float, nullable=True)
    clock_in_lng = Column(Float, nullable=True)
    clock_out_lat = Column(Float, nullable=True)
    clock_out_lng = Column(Float, nullable=True)
    total_minutes = Column(Integer, nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, server_default=func.now())

    team_member = relationship("TeamMember", back_populates="time_entries")
    booking = relationship("Booking", back_populates="time_entries")


class Campaign(Base):
    __tablename__ = "campaigns"

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    channel = Column(String(10), default="SMS", nullable=False)  # SMS, EMAIL, BOTH
    subject = Column(String(255), nullable=True)
    body = Column(Text, nullable=False)
    segment_filter = Column(JSON, default=dict)
    status = Column(String(20), default="DRAFT", nullable=False)
    scheduled_for = Column(DateTime, nullable=True)
    recipient_count = Column(Integer, default=0, nullable=False)
    sent_count = Column(Integer, default=0, nullable=False)
    failed_count = Column(Integer, default=0, nullable=False)
    sent_at = Column(DateTime, nullable=True)
    created_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    recipients = relationship(
        "CampaignRecipient", back_populates="campaign", cascade="all, delete-orphan"
    )


class CampaignRecipient(Base):
    __tablename__ = "campaign_recipients"
    __table_args__ = (UniqueConstraint("campaign_id", "client_id", name="uq_campaign_recipient"),)

    id = Column(Integer, primary_key=True, index=True)
    campaign_id = Column(Integer, ForeignKey("campaigns.id"), nullable=False, index=True)
    client_id = Column(Integer, ForeignKey("clients.id", ondelete="CASCADE"), nullable=False)
    channel = Column(String(10), nullable=False)
    status = Column(String(20), default="PENDING", nullable=False)
    error_message = Column(Text, nullable=True)
    sent_at = Column(DateTime, nullable=True)

    campaign = relationship("Campaign", back_populates="recipients")
    client = relationship("Client")


class Message(Base):
    """Outbound SMS/email log."""

    __tablename__ = "messages"

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False, index=True)
    booking_id = Column(Integer, ForeignKey("bookings.id", ondelete="SET NULL"), nullable=True, index=True)
    client_id = Column(Integer, ForeignKey("clients.id", ondelete="SET NULL"), nullable=True)
    channel = Column(String(10), nullable=False)  # SMS, EMAIL
    type = Column(String(30), nullable=False)  # REMINDER, ON_MY_WAY, MARKETING
    to_address = Column(String(255), nullable=False)
    from_address = Column(String(255), nullable=True)
    body = Column(Text, nullable=False)
    status = Column(String(20), nullable=False)  # SENT, FAILED
    provider_id = Column(String(255), nullable=True)
    error_message = Column(Text, nullable=True)
    created_at = Column(DateTime, server_default=func.now())


class Prospect(Base):
    """Sales lead captured from the public marketing site."""

    __tablename__ = "prospects"

    id = Column(Integer, primary_key=True, index=True)
    full_name = Column(String(255), nullable=False)
    business_name = Column(String(255), nullable=False)
    phone = Column(String(50), nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)
    area = Column(String(255), nullable=False)
    website = Column(String(500), nullable=True)
    source = Column(String(50), default="SWITCH_PAGE", nullable=False)
    status = Column(String(20), default="NEW", nullable=False)
    notes = Column(Text, nullable=True)
    last_contacted_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())


class AuditLogEntry(Base):
    __tablename__ = "audit_log"

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    action = Column(String(50), nullable=False, index=True)
    description = Column(Text, nullable=False)
    entity_type = Column(String(50), nullable=True)
    entity_id = Column(Integer, nullable=True)
    details = Column("metadata", JSON, nullable=True)
    ip_address = Column(String(64), nullable=True)
    user_agent = Column(String(500), nullable=True)
    created_at = Column(DateTime, server_default=func.now(), index=True)

    user = relationship("User")

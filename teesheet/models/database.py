"""
SQLAlchemy database models for persistent storage.

This module defines the relational schema behind the scheduling core: bookings,
waitlist entries, rate configs with their audit trail, and the operating calendar.
These models mirror the Pydantic schemas but are designed for database persistence.
"""

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    Enum,
    Index,
    Integer,
    String,
    Text,
    Time,
    text,
)
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import DeclarativeBase, sessionmaker

from teesheet.config import settings
from teesheet.models.schemas import (
    BookingStatus,
    DateStatus,
    RateConfigStatus,
    WaitlistStatus,
    utcnow,
)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


class BookingRecord(Base):
    """
    Database model for tee time bookings.

    Columns:
        id: Auto-incrementing primary key.
        booking_id: Application-level unique identifier (8-char UUID prefix).
        phone_number: Contact number of the booking party.
        play_date: The date of play.
        start_time: Tee-off time on the slot grid.
        duration_class: 9 or 18 holes. 18-hole rounds also occupy their turn instant.
        player_count: Number of players in the group (1-4).
        status: confirmed, checked_in or cancelled.
        created_at: When this record was created.
        updated_at: When this record was last modified.

    The partial unique index allows one non-cancelled booking per (date, start) and
    is the store-level backstop for concurrent inserts.
    """

    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    booking_id = Column(String(50), unique=True, nullable=False, index=True)
    phone_number = Column(String(20), nullable=False, index=True)
    play_date = Column(Date, nullable=False, index=True)
    start_time = Column(Time, nullable=False)
    duration_class = Column(Integer, nullable=False, default=18)
    player_count = Column(Integer, default=4)
    status = Column(Enum(BookingStatus), default=BookingStatus.CONFIRMED, nullable=False)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index(
            "uq_bookings_active_tee_time",
            "play_date",
            "start_time",
            unique=True,
            sqlite_where=text("status != 'CANCELLED'"),
            postgresql_where=text("status != 'CANCELLED'"),
        ),
    )


class WaitlistRecord(Base):
    """
    Database model for waitlist entries.

    Columns:
        entry_id: Application-level unique identifier.
        desired_start / desired_end: Inclusive range of acceptable tee times.
        peak_window_id: The peak window the requester queued for.
        status: queued, notified, confirmed, expired or cancelled.
        lock_expiry: End of the hold once the entry is notified.
        offered_start / offered_duration_class: The held slot.
        freed_booking_id: The cancelled booking that freed the held slot.
        confirmed_booking_id: The booking created when the holder confirmed.
        notification_sent / needs_follow_up / notification_error / message_sid:
            Delivery bookkeeping for the promotion offer. Never affects status.
    """

    __tablename__ = "waitlist"

    id = Column(Integer, primary_key=True, autoincrement=True)
    entry_id = Column(String(50), unique=True, nullable=False, index=True)
    phone_number = Column(String(20), nullable=False, index=True)
    play_date = Column(Date, nullable=False)
    peak_window_id = Column(String(50), nullable=True)
    desired_start = Column(Time, nullable=False)
    desired_end = Column(Time, nullable=False)
    player_count = Column(Integer, default=4)
    status = Column(Enum(WaitlistStatus), default=WaitlistStatus.QUEUED, nullable=False)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
    lock_expiry = Column(DateTime, nullable=True)
    offered_start = Column(Time, nullable=True)
    offered_duration_class = Column(Integer, nullable=True)
    freed_booking_id = Column(String(50), nullable=True)
    confirmed_booking_id = Column(String(50), nullable=True)
    notification_sent = Column(Boolean, default=False, nullable=False)
    needs_follow_up = Column(Boolean, default=False, nullable=False)
    notification_error = Column(Text, nullable=True)
    message_sid = Column(String(64), nullable=True, index=True)

    __table_args__ = (Index("ix_waitlist_date_status", "play_date", "status"),)


class TeeSheetRevisionRecord(Base):
    """
    Database model for the per-date tee sheet revision.

    Every write that takes a tee time or a peak group on a date advances the
    revision in the same transaction, guarded by the revision the writer read before
    its availability check. Two workers that checked the same snapshot cannot both
    commit, so check-plus-insert is atomic across processes.
    """

    __tablename__ = "tee_sheet_revisions"

    play_date = Column(Date, primary_key=True)
    revision = Column(Integer, nullable=False, default=0)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)


class RateConfigRecord(Base):
    """
    Database model for versioned rate configs.

    Fee tables are stored as JSON in the same shape as the RateSchedule schema.
    The partial unique index on status keeps at most one ACTIVE row.
    """

    __tablename__ = "rate_configs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    version_number = Column(Integer, unique=True, nullable=False)
    status = Column(Enum(RateConfigStatus), default=RateConfigStatus.DRAFT, nullable=False)
    green_fees = Column(JSON, nullable=False)
    caddy_fees = Column(JSON, nullable=False)
    base_fees = Column(JSON, nullable=False)
    tax_config = Column(JSON, nullable=False)
    notes = Column(Text, default="")
    created_by = Column(String(100), nullable=True)
    submitted_by = Column(String(100), nullable=True)
    approved_by = Column(String(100), nullable=True)
    rejection_reason = Column(Text, nullable=True)
    effective_date = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index(
            "uq_rate_configs_single_active",
            "status",
            unique=True,
            sqlite_where=text("status = 'ACTIVE'"),
            postgresql_where=text("status = 'ACTIVE'"),
        ),
    )


class RateAuditRecord(Base):
    """Audit trail of rate config lifecycle actions."""

    __tablename__ = "rate_audit_log"

    id = Column(Integer, primary_key=True, autoincrement=True)
    config_id = Column(Integer, nullable=False, index=True)
    action = Column(String(30), nullable=False)
    performed_by = Column(String(100), nullable=True)
    notes = Column(Text, default="")
    performed_at = Column(DateTime, default=utcnow)


class CalendarOverrideRecord(Base):
    """
    Per-date override of the global operating template.

    NULL custom_* columns fall back to the global template field.
    """

    __tablename__ = "operational_calendar"

    id = Column(Integer, primary_key=True, autoincrement=True)
    override_date = Column(Date, unique=True, nullable=False, index=True)
    status = Column(Enum(DateStatus), default=DateStatus.NORMAL, nullable=False)
    custom_start_time = Column(Time, nullable=True)
    custom_end_time = Column(Time, nullable=True)
    custom_interval_minutes = Column(Integer, nullable=True)
    custom_turn_duration_minutes = Column(Integer, nullable=True)
    custom_peak_windows = Column(JSON, nullable=True)
    closure_reason = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)


class SettingRecord(Base):
    """Key/value store for course-wide settings such as the global operating template."""

    __tablename__ = "system_settings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    key = Column(String(100), unique=True, nullable=False)
    value = Column(JSON, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)


engine = create_async_engine(
    settings.database_url.replace("sqlite://", "sqlite+aiosqlite://")
    if settings.database_url.startswith("sqlite://")
    else settings.database_url,
    echo=False,
)

AsyncSessionLocal = sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def init_db() -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

from datetime import UTC, date, datetime, time
from enum import Enum

from pydantic import BaseModel, Field, model_validator


def utcnow() -> datetime:
    """Current time as naive UTC, the form every stored timestamp uses."""
    return datetime.now(UTC).replace(tzinfo=None)


class HoleCount(int, Enum):
    NINE = 9
    EIGHTEEN = 18


class BookingStatus(str, Enum):
    CONFIRMED = "confirmed"
    CHECKED_IN = "checked_in"
    CANCELLED = "cancelled"


class WaitlistStatus(str, Enum):
    QUEUED = "queued"
    NOTIFIED = "notified"
    CONFIRMED = "confirmed"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


class DateStatus(str, Enum):
    NORMAL = "normal"
    CLOSED = "closed"
    EMERGENCY_CLOSED = "emergency_closed"


class RateConfigStatus(str, Enum):
    DRAFT = "draft"
    PENDING_APPROVAL = "pending_approval"
    APPROVED = "approved"
    ACTIVE = "active"
    ARCHIVED = "archived"


class PeakWindow(BaseModel):
    id: str = Field(..., description="Window name, e.g. peak_a")
    start: time
    end: time
    max_groups: int = Field(..., ge=0, description="Groups bookable on the public path")
    reserved: int = Field(default=0, ge=0, description="Groups held back for privileged bookings")

    @model_validator(mode="after")
    def check_bounds(self) -> "PeakWindow":
        if self.end <= self.start:
            raise ValueError(f"Peak window {self.id} must end after it starts")
        return self


class OverflowWindow(BaseModel):
    id: str
    after_window_id: str = Field(..., description="Peak window that must be full to unlock")
    start: time
    end: time
    weekdays_only: bool = True


class OperatingTemplate(BaseModel):
    start_time: time
    end_time: time
    interval_minutes: int
    turn_duration_minutes: int = 150
    peak_windows: list[PeakWindow] = Field(default_factory=list)
    overflow_windows: list[OverflowWindow] = Field(default_factory=list)
    status: DateStatus = DateStatus.NORMAL
    closure_reason: str | None = None

    @property
    def is_closed(self) -> bool:
        return self.status != DateStatus.NORMAL


class DateOverride(BaseModel):
    """Per-date changes to the global operating template. Unset fields fall back to global."""

    override_date: date
    status: DateStatus = DateStatus.NORMAL
    custom_start_time: time | None = None
    custom_end_time: time | None = None
    custom_interval_minutes: int | None = None
    custom_turn_duration_minutes: int | None = None
    custom_peak_windows: list[PeakWindow] | None = None
    closure_reason: str | None = None
    notes: str | None = None

    @model_validator(mode="after")
    def closure_needs_reason(self) -> "DateOverride":
        if self.status != DateStatus.NORMAL and not self.closure_reason:
            raise ValueError("A closure_reason is required when closing a date")
        return self


class Slot(BaseModel):
    play_date: date
    start_time: time
    peak_window_id: str | None = None
    overflow_window_id: str | None = None
    available_9: bool = True
    available_18: bool = True


class Booking(BaseModel):
    id: str | None = None
    phone_number: str
    play_date: date
    start_time: time
    duration_class: HoleCount = HoleCount.EIGHTEEN
    player_count: int = Field(default=4, ge=1, le=4, description="Number of players (1-4)")
    status: BookingStatus = BookingStatus.CONFIRMED
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class WaitlistEntry(BaseModel):
    id: str | None = None
    phone_number: str
    play_date: date
    peak_window_id: str | None = None
    desired_start: time
    desired_end: time
    player_count: int = Field(default=4, ge=1, le=4)
    status: WaitlistStatus = WaitlistStatus.QUEUED
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    lock_expiry: datetime | None = None
    offered_start: time | None = None
    offered_duration_class: HoleCount | None = None
    freed_booking_id: str | None = None
    confirmed_booking_id: str | None = None
    notification_sent: bool = False
    needs_follow_up: bool = False
    notification_error: str | None = None
    message_sid: str | None = None


class DayRates(BaseModel):
    weekday: int = Field(..., ge=0)
    holiday: int = Field(..., ge=0)


class BaseFees(BaseModel):
    cleaning: dict[int, int] = Field(..., description="Per-player cleaning fee by holes")
    cart_per_person: dict[int, int] = Field(..., description="Per-player cart fee by holes")


class TaxConfig(BaseModel):
    entertainment_tax: float = Field(default=0.05, ge=0, lt=1)


class RateSchedule(BaseModel):
    """
    The pricing tables of a rate config.

    Keys mirror the stored JSON: green_fees[tier][holes] -> DayRates,
    caddy_fees[ratio][holes] -> fee per group.
    """

    green_fees: dict[str, dict[int, DayRates]]
    caddy_fees: dict[str, dict[int, int]]
    base_fees: BaseFees
    tax_config: TaxConfig = Field(default_factory=TaxConfig)
    notes: str = ""

    @model_validator(mode="after")
    def platinum_has_flat_pricing(self) -> "RateSchedule":
        # Platinum members pay the same green fee on weekdays and holidays.
        for holes, rates in self.green_fees.get("platinum", {}).items():
            if rates.weekday != rates.holiday:
                raise ValueError(
                    f"Platinum {holes}-hole weekday fee ({rates.weekday}) must equal "
                    f"holiday fee ({rates.holiday})"
                )
        return self


class RateConfig(RateSchedule):
    id: int | None = None
    version_number: int
    status: RateConfigStatus = RateConfigStatus.DRAFT
    created_by: str | None = None
    submitted_by: str | None = None
    approved_by: str | None = None
    rejection_reason: str | None = None
    effective_date: datetime | None = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class RateAuditEntry(BaseModel):
    config_id: int
    action: str
    performed_by: str | None = None
    notes: str = ""
    performed_at: datetime = Field(default_factory=utcnow)


class PlayerFee(BaseModel):
    index: int
    tier: str
    green_fee: int
    cleaning_fee: int
    cart_fee: int


class FeeBreakdown(BaseModel):
    green_fee: int
    cleaning_fee: int
    cart_fee: int
    caddy_fee: int
    subtotal: int
    entertainment_tax: int
    total: int
    tax_rate: float
    per_player: list[PlayerFee] = Field(default_factory=list)

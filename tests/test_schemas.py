"""
Tests for Pydantic schemas in teesheet/models/schemas.py.

These tests verify that the data models accept valid data and enforce
their field constraints.
"""

from datetime import UTC, date, datetime, time, timedelta

import pytest
from pydantic import ValidationError

from teesheet.models.schemas import (
    BaseFees,
    Booking,
    BookingStatus,
    DateOverride,
    DateStatus,
    DayRates,
    HoleCount,
    OperatingTemplate,
    PeakWindow,
    RateConfigStatus,
    RateSchedule,
    WaitlistEntry,
    WaitlistStatus,
    utcnow,
)


class TestEnums:
    def test_booking_status_values(self) -> None:
        assert [s.value for s in BookingStatus] == ["confirmed", "checked_in", "cancelled"]

    def test_waitlist_status_values(self) -> None:
        assert WaitlistStatus.QUEUED == "queued"
        assert WaitlistStatus.NOTIFIED == "notified"
        assert WaitlistStatus.EXPIRED == "expired"

    def test_rate_config_status_values(self) -> None:
        assert RateConfigStatus.PENDING_APPROVAL == "pending_approval"
        assert len(RateConfigStatus) == 5

    def test_hole_count_is_int(self) -> None:
        assert HoleCount(18) is HoleCount.EIGHTEEN
        assert int(HoleCount.NINE) == 9
        with pytest.raises(ValueError):
            HoleCount(12)


class TestPeakWindow:
    def test_valid_window(self) -> None:
        window = PeakWindow(id="peak_a", start=time(5, 30), end=time(7, 30), max_groups=20)

        assert window.reserved == 0

    def test_end_must_follow_start(self) -> None:
        with pytest.raises(ValidationError, match="must end after it starts"):
            PeakWindow(id="peak_a", start=time(7, 30), end=time(7, 30), max_groups=20)

    def test_negative_limits_rejected(self) -> None:
        with pytest.raises(ValidationError):
            PeakWindow(id="peak_a", start=time(5, 30), end=time(7, 30), max_groups=-1)


class TestOperatingTemplate:
    def test_defaults(self) -> None:
        template = OperatingTemplate(
            start_time=time(5, 30), end_time=time(17, 0), interval_minutes=10
        )

        assert template.turn_duration_minutes == 150
        assert template.peak_windows == []
        assert not template.is_closed

    def test_closed_status(self) -> None:
        template = OperatingTemplate(
            start_time=time(5, 30),
            end_time=time(17, 0),
            interval_minutes=10,
            status=DateStatus.EMERGENCY_CLOSED,
        )

        assert template.is_closed


class TestDateOverride:
    def test_normal_override_needs_no_reason(self) -> None:
        override = DateOverride(override_date=date(2026, 3, 2), custom_interval_minutes=15)

        assert override.status == DateStatus.NORMAL

    @pytest.mark.parametrize("status", [DateStatus.CLOSED, DateStatus.EMERGENCY_CLOSED])
    def test_closure_requires_reason(self, status: DateStatus) -> None:
        with pytest.raises(ValidationError, match="closure_reason"):
            DateOverride(override_date=date(2026, 3, 2), status=status)


class TestBooking:
    def test_defaults(self) -> None:
        booking = Booking(
            phone_number="+886912345678", play_date=date(2026, 3, 2), start_time=time(6, 0)
        )

        assert booking.duration_class == HoleCount.EIGHTEEN
        assert booking.player_count == 4
        assert booking.status == BookingStatus.CONFIRMED

    @pytest.mark.parametrize("player_count", [0, 5])
    def test_player_count_bounds(self, player_count: int) -> None:
        with pytest.raises(ValidationError):
            Booking(
                phone_number="+886912345678",
                play_date=date(2026, 3, 2),
                start_time=time(6, 0),
                player_count=player_count,
            )


class TestWaitlistEntry:
    def test_new_entry_has_no_hold(self) -> None:
        entry = WaitlistEntry(
            phone_number="+886912345678",
            play_date=date(2026, 3, 2),
            desired_start=time(5, 30),
            desired_end=time(7, 30),
        )

        assert entry.status == WaitlistStatus.QUEUED
        assert entry.lock_expiry is None
        assert entry.offered_start is None
        assert entry.needs_follow_up is False


class TestRateSchedule:
    def _schedule(self, platinum_holiday: int) -> RateSchedule:
        return RateSchedule(
            green_fees={"platinum": {18: DayRates(weekday=1000, holiday=platinum_holiday)}},
            caddy_fees={"1:4": {18: 1600}},
            base_fees=BaseFees(cleaning={18: 200}, cart_per_person={18: 500}),
        )

    def test_platinum_flat_pricing(self) -> None:
        schedule = self._schedule(1000)

        assert schedule.tax_config.entertainment_tax == 0.05

    def test_platinum_weekday_must_equal_holiday(self) -> None:
        with pytest.raises(ValidationError, match="Platinum 18-hole"):
            self._schedule(1200)

    def test_negative_fee_rejected(self) -> None:
        with pytest.raises(ValidationError):
            DayRates(weekday=-1, holiday=0)


class TestUtcnow:
    def test_naive_utc(self) -> None:
        now = utcnow()

        assert now.tzinfo is None
        assert abs(now - datetime.now(UTC).replace(tzinfo=None)) < timedelta(seconds=5)

    def test_default_timestamps_use_it(self) -> None:
        before = utcnow()
        booking = Booking(
            phone_number="+886912345678", play_date=date(2026, 3, 2), start_time=time(6, 0)
        )

        assert booking.created_at.tzinfo is None
        assert booking.created_at >= before

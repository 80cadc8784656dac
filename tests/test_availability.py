"""
Tests for the single-tee availability rules in teesheet/services/availability.py.
"""

from datetime import date, datetime, time

import pytest

from teesheet.exceptions import SlotTaken, TooLateForDuration
from teesheet.models.schemas import (
    Booking,
    BookingStatus,
    HoleCount,
    OperatingTemplate,
    WaitlistEntry,
    WaitlistStatus,
)
from teesheet.services.availability import (
    Occupancy,
    check_availability,
    is_available,
    is_too_late,
    occupancies_from,
)

PLAY_DATE = date(2026, 3, 2)
CREATED = datetime(2026, 3, 1, 9, 0)


@pytest.fixture
def template() -> OperatingTemplate:
    return OperatingTemplate(start_time=time(5, 30), end_time=time(17, 0), interval_minutes=10)


def make_booking(
    start: time,
    duration: HoleCount = HoleCount.EIGHTEEN,
    status: BookingStatus = BookingStatus.CONFIRMED,
    booking_id: str = "bk000001",
) -> Booking:
    return Booking(
        id=booking_id,
        phone_number="+886912345678",
        play_date=PLAY_DATE,
        start_time=start,
        duration_class=duration,
        status=status,
        created_at=CREATED,
        updated_at=CREATED,
    )


class TestCheckAvailability:
    """Tests for direct, turn and incoming-turn conflicts."""

    def test_empty_tee_is_available(self, template: OperatingTemplate) -> None:
        check_availability(time(6, 0), HoleCount.EIGHTEEN, [], template)

    def test_direct_conflict(self, template: OperatingTemplate) -> None:
        occupied = [Occupancy(time(6, 0), HoleCount.NINE)]

        with pytest.raises(SlotTaken, match="already booked"):
            check_availability(time(6, 0), HoleCount.NINE, occupied, template)

    def test_eighteen_conflicts_with_booking_at_turn(self, template: OperatingTemplate) -> None:
        """An 18-hole round at T cannot turn onto a booking at T + 150."""
        occupied = [Occupancy(time(8, 30), HoleCount.NINE)]

        with pytest.raises(SlotTaken, match="turn onto"):
            check_availability(time(6, 0), HoleCount.EIGHTEEN, occupied, template)

    def test_nine_ignores_its_own_turn_instant(self, template: OperatingTemplate) -> None:
        occupied = [Occupancy(time(8, 30), HoleCount.NINE)]

        check_availability(time(6, 0), HoleCount.NINE, occupied, template)

    @pytest.mark.parametrize("duration", [HoleCount.NINE, HoleCount.EIGHTEEN])
    def test_incoming_turn_blocks_start(
        self, template: OperatingTemplate, duration: HoleCount
    ) -> None:
        """T + 150 is reserved once an 18-hole round starts at T."""
        occupied = [Occupancy(time(6, 0), HoleCount.EIGHTEEN)]

        with pytest.raises(SlotTaken, match="reserved for the turn"):
            check_availability(time(8, 30), duration, occupied, template)

    def test_nine_hole_booking_has_no_turn(self, template: OperatingTemplate) -> None:
        occupied = [Occupancy(time(6, 0), HoleCount.NINE)]

        check_availability(time(8, 30), HoleCount.EIGHTEEN, occupied, template)

    def test_custom_turn_duration(self, template: OperatingTemplate) -> None:
        short_turn = template.model_copy(update={"turn_duration_minutes": 120})
        occupied = [Occupancy(time(6, 0), HoleCount.EIGHTEEN)]

        assert not is_available(time(8, 0), HoleCount.NINE, occupied, short_turn)
        assert is_available(time(8, 30), HoleCount.NINE, occupied, short_turn)


class TestLateness:
    def test_last_eighteen_start(self, template: OperatingTemplate) -> None:
        assert not is_too_late(time(14, 30), HoleCount.EIGHTEEN, template)
        assert is_too_late(time(14, 40), HoleCount.EIGHTEEN, template)

    def test_too_late_raises(self, template: OperatingTemplate) -> None:
        with pytest.raises(TooLateForDuration, match="after 14:30"):
            check_availability(time(14, 40), HoleCount.EIGHTEEN, [], template)

    def test_nine_holes_can_start_late(self, template: OperatingTemplate) -> None:
        assert is_available(time(16, 50), HoleCount.NINE, [], template)

    def test_conflict_reported_before_lateness(self, template: OperatingTemplate) -> None:
        occupied = [Occupancy(time(15, 0), HoleCount.NINE)]

        with pytest.raises(SlotTaken):
            check_availability(time(15, 0), HoleCount.EIGHTEEN, occupied, template)


class TestOccupanciesFrom:
    def test_cancelled_bookings_are_ignored(self, template: OperatingTemplate) -> None:
        bookings = [make_booking(time(6, 0), status=BookingStatus.CANCELLED)]

        assert occupancies_from(bookings) == []
        assert is_available(time(6, 0), HoleCount.EIGHTEEN, occupancies_from(bookings), template)

    def test_checked_in_bookings_occupy(self) -> None:
        bookings = [make_booking(time(6, 0), status=BookingStatus.CHECKED_IN)]

        assert occupancies_from(bookings) == [
            Occupancy(time(6, 0), HoleCount.EIGHTEEN, "bk000001")
        ]

    def test_hold_occupies_offered_slot(self, template: OperatingTemplate) -> None:
        hold = WaitlistEntry(
            id="wl000001",
            phone_number="+886900000001",
            play_date=PLAY_DATE,
            desired_start=time(5, 30),
            desired_end=time(7, 30),
            status=WaitlistStatus.NOTIFIED,
            lock_expiry=datetime(2026, 3, 1, 11, 0),
            offered_start=time(6, 0),
            offered_duration_class=HoleCount.EIGHTEEN,
            created_at=CREATED,
            updated_at=CREATED,
        )
        occupied = occupancies_from([], [hold])

        assert not is_available(time(6, 0), HoleCount.NINE, occupied, template)
        assert not is_available(time(8, 30), HoleCount.NINE, occupied, template)

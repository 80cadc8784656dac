"""
Availability checks for a single tee.

A 9-hole booking occupies one instant on the grid (its start). An 18-hole booking
occupies two: its start and its turn, start + turn_duration_minutes, when the group
comes back through the first tee. Conflicts are exact-instant matches on the grid.
"""

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import time

from teesheet.exceptions import SlotTaken, TooLateForDuration
from teesheet.models.schemas import (
    Booking,
    BookingStatus,
    HoleCount,
    OperatingTemplate,
    WaitlistEntry,
)
from teesheet.services.slot_calendar import from_minutes, to_minutes


@dataclass(frozen=True)
class Occupancy:
    start_time: time
    duration_class: HoleCount
    source_id: str | None = None


def occupancies_from(
    bookings: Iterable[Booking], holds: Iterable[WaitlistEntry] = ()
) -> list[Occupancy]:
    """
    Build the occupied start instants for a date.

    Cancelled bookings are skipped. Holds must already be filtered to live offers;
    each one occupies its offered slot like a booking of the offered duration.
    """
    occupied = [
        Occupancy(b.start_time, b.duration_class, b.id)
        for b in bookings
        if b.status != BookingStatus.CANCELLED
    ]
    for entry in holds:
        if entry.offered_start is None:
            continue
        occupied.append(
            Occupancy(
                entry.offered_start,
                entry.offered_duration_class or HoleCount.EIGHTEEN,
                entry.id,
            )
        )
    return occupied


def is_too_late(start_time: time, duration_class: HoleCount, template: OperatingTemplate) -> bool:
    if duration_class != HoleCount.EIGHTEEN:
        return False
    cutoff = to_minutes(template.end_time) - template.turn_duration_minutes
    return to_minutes(start_time) > cutoff


def check_availability(
    start_time: time,
    duration_class: HoleCount,
    occupied: Iterable[Occupancy],
    template: OperatingTemplate,
) -> None:
    """
    Raise if (start_time, duration_class) cannot be booked.

    Raises:
        SlotTaken: The start, the round's turn, or an incoming turn is already claimed.
        TooLateForDuration: An 18-hole round would start after closing - turn duration.
    """
    turn = template.turn_duration_minutes
    start = to_minutes(start_time)
    occupied = list(occupied)
    starts = {to_minutes(o.start_time) for o in occupied}

    if start in starts:
        raise SlotTaken(f"Tee time {start_time:%H:%M} is already booked")

    if duration_class == HoleCount.EIGHTEEN and start + turn in starts:
        raise SlotTaken(
            f"An 18-hole round at {start_time:%H:%M} would turn onto a booked tee time"
        )

    for o in occupied:
        if o.duration_class == HoleCount.EIGHTEEN and to_minutes(o.start_time) + turn == start:
            raise SlotTaken(
                f"Tee time {start_time:%H:%M} is reserved for the turn of the "
                f"{o.start_time:%H:%M} round"
            )

    if is_too_late(start_time, duration_class, template):
        raise TooLateForDuration(
            f"18-hole rounds cannot start after "
            f"{from_minutes(to_minutes(template.end_time) - turn):%H:%M} "
            f"({start_time:%H:%M} requested)"
        )


def is_available(
    start_time: time,
    duration_class: HoleCount,
    occupied: Iterable[Occupancy],
    template: OperatingTemplate,
) -> bool:
    try:
        check_availability(start_time, duration_class, occupied, template)
    except (SlotTaken, TooLateForDuration):
        return False
    return True

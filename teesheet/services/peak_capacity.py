"""
Peak window capacity.

Counts are always recomputed from the live bookings and holds passed in. There is
no cached "peak is full" flag, so a cancellation reopens capacity on the next read.
"""

from collections.abc import Iterable
from datetime import date, time

from teesheet.models.schemas import (
    Booking,
    BookingStatus,
    OperatingTemplate,
    OverflowWindow,
    PeakWindow,
    WaitlistEntry,
)


class PeakCapacityTracker:
    """
    Tracks how many groups are booked inside each peak window of a date.

    The public booking path is limited to max_groups. The privileged path may also
    consume the window's reserved groups.

    Attributes:
        play_date: The date being tracked.
        template: The resolved operating template for the date.
        counts: Non-cancelled bookings plus live holds per peak window id. A live hold
            takes a group just as the booking it may become.
    """

    def __init__(
        self,
        play_date: date,
        template: OperatingTemplate,
        bookings: Iterable[Booking],
        holds: Iterable[WaitlistEntry] = (),
    ) -> None:
        self.play_date = play_date
        self.template = template
        self.counts: dict[str, int] = {w.id: 0 for w in template.peak_windows}
        for booking in bookings:
            if booking.status == BookingStatus.CANCELLED:
                continue
            window = self.window_for(booking.start_time)
            if window is not None:
                self.counts[window.id] += 1
        for entry in holds:
            if entry.offered_start is None:
                continue
            window = self.window_for(entry.offered_start)
            if window is not None:
                self.counts[window.id] += 1

    def window_for(self, start_time: time) -> PeakWindow | None:
        for window in self.template.peak_windows:
            if window.start <= start_time <= window.end:
                return window
        return None

    def overflow_for(self, start_time: time) -> OverflowWindow | None:
        # Peak windows take precedence where the two share a boundary instant.
        if self.window_for(start_time) is not None:
            return None
        for overflow in self.template.overflow_windows:
            if overflow.start <= start_time <= overflow.end:
                return overflow
        return None

    def limit(self, window: PeakWindow, privileged: bool = False) -> int:
        return window.max_groups + (window.reserved if privileged else 0)

    def is_full(self, window: PeakWindow, privileged: bool = False) -> bool:
        return self.counts.get(window.id, 0) >= self.limit(window, privileged)

    def remaining(self, window: PeakWindow, privileged: bool = False) -> int:
        return max(self.limit(window, privileged) - self.counts.get(window.id, 0), 0)

    def is_overflow_unlocked(self, overflow: OverflowWindow) -> bool:
        if overflow.weekdays_only and self.play_date.weekday() >= 5:
            return False
        preceding = next(
            (w for w in self.template.peak_windows if w.id == overflow.after_window_id), None
        )
        if preceding is None:
            return False
        return self.is_full(preceding)

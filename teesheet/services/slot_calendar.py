"""
Slot calendar: the bookable tee-time grid for a date.

Slots are never stored. They are regenerated from the operating template on every
query, so the grid always reflects the current template and any per-date override.
"""

from collections.abc import Iterator
from datetime import date, time

from teesheet.exceptions import InvalidTemplate
from teesheet.models.schemas import DateOverride, OperatingTemplate

ALLOWED_INTERVALS = frozenset({3, 5, 6, 10, 15})


def to_minutes(value: time) -> int:
    return value.hour * 60 + value.minute


def from_minutes(minutes: int) -> time:
    return time(minutes // 60, minutes % 60)


def _pick(custom, fallback):
    return custom if custom is not None else fallback


def resolve_template(
    global_template: OperatingTemplate, override: DateOverride | None
) -> OperatingTemplate:
    """
    Merge a per-date override onto the global template.

    Each override field wins when it is set; otherwise the global value is used.
    Overflow windows are only configured globally.
    """
    if override is None:
        return global_template.model_copy(deep=True)

    return OperatingTemplate(
        start_time=_pick(override.custom_start_time, global_template.start_time),
        end_time=_pick(override.custom_end_time, global_template.end_time),
        interval_minutes=_pick(override.custom_interval_minutes, global_template.interval_minutes),
        turn_duration_minutes=_pick(
            override.custom_turn_duration_minutes, global_template.turn_duration_minutes
        ),
        peak_windows=_pick(override.custom_peak_windows, global_template.peak_windows),
        overflow_windows=global_template.overflow_windows,
        status=override.status,
        closure_reason=override.closure_reason,
    )


def validate_template(template: OperatingTemplate) -> None:
    if template.interval_minutes not in ALLOWED_INTERVALS:
        allowed = ", ".join(str(i) for i in sorted(ALLOWED_INTERVALS))
        raise InvalidTemplate(
            f"Invalid interval {template.interval_minutes}. Allowed: {allowed}"
        )
    if template.end_time <= template.start_time:
        raise InvalidTemplate(
            f"End time {template.end_time:%H:%M} must be after start time "
            f"{template.start_time:%H:%M}"
        )


class SlotCalendar:
    """
    Ordered, finite, restartable sequence of start times for one date.

    Iterating twice yields the same times. Closed dates produce no slots.

    Usage:
        calendar = SlotCalendar(date(2026, 3, 2), template)
        for start in calendar:
            ...
    """

    def __init__(self, play_date: date, template: OperatingTemplate) -> None:
        validate_template(template)
        self.play_date = play_date
        self.template = template

    @property
    def _start(self) -> int:
        return to_minutes(self.template.start_time)

    @property
    def _end(self) -> int:
        return to_minutes(self.template.end_time)

    def __iter__(self) -> Iterator[time]:
        if self.template.is_closed:
            return
        for minutes in range(self._start, self._end + 1, self.template.interval_minutes):
            yield from_minutes(minutes)

    def __len__(self) -> int:
        if self.template.is_closed:
            return 0
        return (self._end - self._start) // self.template.interval_minutes + 1

    def __contains__(self, value: object) -> bool:
        if not isinstance(value, time) or self.template.is_closed:
            return False
        if value.second or value.microsecond:
            return False
        minutes = to_minutes(value)
        if minutes < self._start or minutes > self._end:
            return False
        return (minutes - self._start) % self.template.interval_minutes == 0


def generate_slots(play_date: date, template: OperatingTemplate) -> SlotCalendar:
    """Start times for a date under an already resolved template."""
    return SlotCalendar(play_date, template)

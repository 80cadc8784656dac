"""
Waitlist engine implementing Hold-Offer-Process (HOP).

Entry lifecycle: queued -> notified -> confirmed | expired | cancelled.

When a tee time is freed, the oldest queued entry whose desired range covers the
freed start is offered a hold on it until lock_expiry. lock_expiry is the single
source of truth for whether a hold is still live: a notified entry whose lock_expiry
has passed is treated as expired whether or not a sweep has persisted that yet.

These functions are pure. Persistence and the atomic claim live in DatabaseService.
"""

import uuid
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta

from teesheet.exceptions import InvalidRange, OfferExpired
from teesheet.models.schemas import HoleCount, WaitlistEntry, WaitlistStatus

DEFAULT_HOLD_MINUTES = 120

ACTIVE_STATUSES = frozenset({WaitlistStatus.QUEUED, WaitlistStatus.NOTIFIED})


@dataclass(frozen=True)
class FreedSlot:
    """A tee time released by a cancellation or a lapsed hold."""

    play_date: date
    start_time: time
    duration_class: HoleCount
    booking_id: str | None = None


def validate_range(desired_start: time, desired_end: time) -> None:
    if desired_start >= desired_end:
        raise InvalidRange(
            f"Desired start {desired_start:%H:%M} must be before end {desired_end:%H:%M}"
        )


def enqueue(
    phone_number: str,
    play_date: date,
    desired_start: time,
    desired_end: time,
    player_count: int,
    peak_window_id: str | None,
    now: datetime,
) -> WaitlistEntry:
    """Create a new queued entry. Duplicate detection is the caller's job."""
    validate_range(desired_start, desired_end)
    return WaitlistEntry(
        id=str(uuid.uuid4())[:8],
        phone_number=phone_number,
        play_date=play_date,
        peak_window_id=peak_window_id,
        desired_start=desired_start,
        desired_end=desired_end,
        player_count=player_count,
        status=WaitlistStatus.QUEUED,
        created_at=now,
        updated_at=now,
    )


def is_hold_live(entry: WaitlistEntry, now: datetime) -> bool:
    return (
        entry.status == WaitlistStatus.NOTIFIED
        and entry.lock_expiry is not None
        and entry.lock_expiry > now
    )


def is_hold_lapsed(entry: WaitlistEntry, now: datetime) -> bool:
    return entry.status == WaitlistStatus.NOTIFIED and not is_hold_live(entry, now)


def effective_status(entry: WaitlistEntry, now: datetime) -> WaitlistStatus:
    if is_hold_lapsed(entry, now):
        return WaitlistStatus.EXPIRED
    return entry.status


def expire_lapsed(entries: Iterable[WaitlistEntry], now: datetime) -> list[WaitlistEntry]:
    """
    Move every lapsed hold to expired.

    Idempotent: running it again with the same clock changes nothing.

    Returns:
        The entries that transitioned on this call.
    """
    expired = []
    for entry in entries:
        if is_hold_lapsed(entry, now):
            entry.status = WaitlistStatus.EXPIRED
            entry.updated_at = now
            expired.append(entry)
    return expired


def eligible_candidates(
    entries: Iterable[WaitlistEntry], freed_start: time
) -> list[WaitlistEntry]:
    """Queued entries covering freed_start, oldest first (ties broken by id)."""
    candidates = [
        e
        for e in entries
        if e.status == WaitlistStatus.QUEUED and e.desired_start <= freed_start <= e.desired_end
    ]
    candidates.sort(key=lambda e: (e.created_at, e.id or ""))
    return candidates


def select_candidate(entries: Iterable[WaitlistEntry], freed_start: time) -> WaitlistEntry | None:
    candidates = eligible_candidates(entries, freed_start)
    return candidates[0] if candidates else None


def hold_expiry(now: datetime, hold_minutes: int = DEFAULT_HOLD_MINUTES) -> datetime:
    return now + timedelta(minutes=hold_minutes)


def place_hold(
    entry: WaitlistEntry,
    freed: FreedSlot,
    now: datetime,
    hold_minutes: int = DEFAULT_HOLD_MINUTES,
) -> WaitlistEntry:
    if entry.status != WaitlistStatus.QUEUED:
        raise OfferExpired(f"Waitlist entry {entry.id} is {entry.status.value}, not queued")
    entry.status = WaitlistStatus.NOTIFIED
    entry.lock_expiry = hold_expiry(now, hold_minutes)
    entry.offered_start = freed.start_time
    entry.offered_duration_class = freed.duration_class
    entry.freed_booking_id = freed.booking_id
    entry.updated_at = now
    return entry


def ensure_confirmable(entry: WaitlistEntry, now: datetime) -> None:
    if not is_hold_live(entry, now):
        status = effective_status(entry, now)
        raise OfferExpired(f"Offer for waitlist entry {entry.id} is no longer valid ({status.value})")


def mark_confirmed(entry: WaitlistEntry, booking_id: str | None, now: datetime) -> WaitlistEntry:
    ensure_confirmable(entry, now)
    entry.status = WaitlistStatus.CONFIRMED
    entry.confirmed_booking_id = booking_id
    entry.updated_at = now
    return entry


def freed_slot_of(entry: WaitlistEntry) -> FreedSlot | None:
    """The slot an entry was holding, if it was ever offered one."""
    if entry.offered_start is None:
        return None
    return FreedSlot(
        play_date=entry.play_date,
        start_time=entry.offered_start,
        duration_class=entry.offered_duration_class or HoleCount.EIGHTEEN,
        booking_id=entry.freed_booking_id,
    )

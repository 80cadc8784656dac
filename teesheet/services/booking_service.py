"""
Booking service for the tee sheet.

This module provides the core business logic tying the scheduling engines to the
store: listing slots, booking and cancelling tee times, and running the waitlist
Hold-Offer-Process when capacity frees up.
"""

import asyncio
import logging
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import date, datetime, time

import pytz

from teesheet.config import settings
from teesheet.exceptions import (
    AlreadyQueued,
    CourseClosed,
    InvalidTransition,
    NotFound,
    OfferExpired,
    OverflowLocked,
    PeakWindowFull,
    SlotNotOnGrid,
    StaleTeeSheet,
)
from teesheet.models.schemas import (
    Booking,
    BookingStatus,
    HoleCount,
    OperatingTemplate,
    Slot,
    WaitlistEntry,
    WaitlistStatus,
    utcnow,
)
from teesheet.services import waitlist_engine
from teesheet.services.availability import check_availability, is_available, occupancies_from
from teesheet.services.database_service import database_service
from teesheet.services.notification_service import notification_service
from teesheet.services.peak_capacity import PeakCapacityTracker
from teesheet.services.slot_calendar import generate_slots
from teesheet.services.waitlist_engine import FreedSlot

logger = logging.getLogger(__name__)

# Attempts at a check-plus-write before a concurrent writer's StaleTeeSheet propagates
STALE_RETRIES = 3


def course_today(now: datetime) -> date:
    """The calendar date at the course for a naive UTC instant."""
    tz = pytz.timezone(settings.timezone)
    return pytz.utc.localize(now).astimezone(tz).date()


@dataclass
class SweepResult:
    expired: int = 0
    offers: list[WaitlistEntry] = field(default_factory=list)


class BookingService:
    """
    Manages tee time bookings and the waitlist.

    This service handles the full lifecycle of a tee time:
    1. Generating the slot grid for a date from the resolved operating template
    2. Booking a slot after availability and peak capacity checks
    3. Cancelling a booking and offering the freed slot to the waitlist
    4. Confirming or expiring waitlist holds

    Within a process each date has its own asyncio lock around the availability
    check and the write. Across processes the write carries the tee sheet revision
    read before the check; a StaleTeeSheet from the store means another worker wrote
    first, and the check is re-run on fresh data.

    Attributes:
        _date_locks: Locks for dates with a holder or waiter. A lock is dropped once
            its last user leaves.
        _lock_users: Holders plus waiters per date.
    """

    def __init__(self) -> None:
        """Initialize the booking service."""
        self._date_locks: dict[date, asyncio.Lock] = {}
        self._lock_users: dict[date, int] = {}

    @asynccontextmanager
    async def _date_lock(self, play_date: date) -> AsyncIterator[None]:
        lock = self._date_locks.setdefault(play_date, asyncio.Lock())
        self._lock_users[play_date] = self._lock_users.get(play_date, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[play_date] -= 1
            if not self._lock_users[play_date]:
                del self._lock_users[play_date]
                del self._date_locks[play_date]

    async def get_template(self, play_date: date) -> OperatingTemplate:
        return await database_service.get_operating_template(play_date)

    async def list_waitlist(
        self,
        play_date: date | None = None,
        status: WaitlistStatus | None = None,
        phone_number: str | None = None,
        now: datetime | None = None,
    ) -> list[WaitlistEntry]:
        """
        Get waitlist entries in FIFO order with lapsed holds already expired.

        Every read runs the expiry check against lock_expiry and persists any
        transitions before filtering by status.
        """
        now = now or utcnow()
        entries = await database_service.list_waitlist(
            play_date=play_date, phone_number=phone_number
        )
        lapsed = waitlist_engine.expire_lapsed(entries, now)
        if lapsed:
            await database_service.expire_holds(now, entry_ids=[e.id for e in lapsed])
            logger.info(f"Expired {len(lapsed)} lapsed waitlist hold(s) on read")
        if status:
            entries = [e for e in entries if e.status == status]
        return entries

    async def _live_holds(self, play_date: date, now: datetime) -> list[WaitlistEntry]:
        entries = await self.list_waitlist(play_date=play_date, now=now)
        return [e for e in entries if waitlist_engine.is_hold_live(e, now)]

    async def list_slots(self, play_date: date, now: datetime | None = None) -> list[Slot]:
        """
        List the slots offered for a date.

        Overflow slots are only included while their overflow window is unlocked.
        A slot in a full peak window is listed but unavailable.
        """
        now = now or utcnow()
        template = await self.get_template(play_date)
        calendar = generate_slots(play_date, template)
        bookings = await database_service.list_bookings(play_date=play_date)
        holds = await self._live_holds(play_date, now)
        occupied = occupancies_from(bookings, holds)
        tracker = PeakCapacityTracker(play_date, template, bookings, holds)

        slots = []
        for start in calendar:
            window = tracker.window_for(start)
            overflow = tracker.overflow_for(start)
            if overflow is not None and not tracker.is_overflow_unlocked(overflow):
                continue
            has_capacity = window is None or not tracker.is_full(window)
            slots.append(
                Slot(
                    play_date=play_date,
                    start_time=start,
                    peak_window_id=window.id if window else None,
                    overflow_window_id=overflow.id if overflow else None,
                    available_9=has_capacity
                    and is_available(start, HoleCount.NINE, occupied, template),
                    available_18=has_capacity
                    and is_available(start, HoleCount.EIGHTEEN, occupied, template),
                )
            )
        return slots

    async def book(
        self,
        phone_number: str,
        play_date: date,
        start_time: time,
        duration_class: HoleCount = HoleCount.EIGHTEEN,
        player_count: int = 4,
        privileged: bool = False,
        now: datetime | None = None,
    ) -> Booking:
        """
        Book a tee time.

        Args:
            phone_number: Contact number of the booking party.
            play_date: The date of play.
            start_time: A start time on the date's slot grid.
            duration_class: 9 or 18 holes.
            player_count: Number of players (1-4).
            privileged: Allow the booking to use the peak window's reserved groups.
            now: Clock override, naive UTC.

        Returns:
            The created Booking.

        Raises:
            CourseClosed, SlotNotOnGrid, TooLateForDuration, InvalidTemplate: on
                invalid requests.
            SlotTaken, PeakWindowFull, OverflowLocked: when the slot cannot be had;
                the caller should offer the waitlist.
            StaleTeeSheet: if other workers kept writing to the date on every attempt.
        """
        now = now or utcnow()
        booking = Booking(
            id=str(uuid.uuid4())[:8],
            phone_number=phone_number,
            play_date=play_date,
            start_time=start_time,
            duration_class=duration_class,
            player_count=player_count,
            status=BookingStatus.CONFIRMED,
            created_at=now,
            updated_at=now,
        )
        async with self._date_lock(play_date):
            for attempt in range(1, STALE_RETRIES + 1):
                try:
                    created = await self._insert_checked(booking, privileged, now)
                    break
                except StaleTeeSheet:
                    if attempt == STALE_RETRIES:
                        raise
                    logger.warning(
                        f"Tee sheet for {play_date} changed during booking; "
                        f"re-checking (attempt {attempt + 1})"
                    )

        logger.info(
            f"Booked {created.id}: {play_date} {start_time:%H:%M} "
            f"{int(duration_class)} holes for {player_count}"
        )
        return created

    async def _insert_checked(self, booking: Booking, privileged: bool, now: datetime) -> Booking:
        # The revision is read before anything it guards.
        play_date, start_time = booking.play_date, booking.start_time
        revision = await database_service.get_sheet_revision(play_date)
        template = await self.get_template(play_date)
        if template.is_closed:
            raise CourseClosed(
                f"The course is closed on {play_date}: {template.closure_reason or 'closed'}"
            )
        calendar = generate_slots(play_date, template)
        if start_time not in calendar:
            raise SlotNotOnGrid(f"{start_time:%H:%M} is not a tee time on {play_date}")

        bookings = await database_service.list_bookings(play_date=play_date)
        holds = await self._live_holds(play_date, now)
        check_availability(
            start_time, booking.duration_class, occupancies_from(bookings, holds), template
        )

        tracker = PeakCapacityTracker(play_date, template, bookings, holds)
        window = tracker.window_for(start_time)
        if window is not None and tracker.is_full(window, privileged=privileged):
            raise PeakWindowFull(window.id)
        overflow = tracker.overflow_for(start_time)
        if overflow is not None and not tracker.is_overflow_unlocked(overflow):
            raise OverflowLocked(
                f"Overflow window {overflow.id} opens only once "
                f"{overflow.after_window_id} is full"
            )

        return await database_service.insert_booking(booking, revision=revision)

    async def get_booking(self, booking_id: str) -> Booking | None:
        return await database_service.get_booking(booking_id)

    async def get_bookings(
        self,
        play_date: date | None = None,
        phone_number: str | None = None,
        status: BookingStatus | None = None,
    ) -> list[Booking]:
        return await database_service.list_bookings(
            play_date=play_date, phone_number=phone_number, status=status
        )

    async def cancel_booking(self, booking_id: str, now: datetime | None = None) -> Booking:
        """
        Cancel a confirmed booking and offer its slot to the waitlist.

        Cancelling an already-cancelled booking returns it unchanged and does not
        run another release pass. The status change is a compare-and-swap from
        confirmed, so only one of a racing cancellation and check-in applies.
        """
        now = now or utcnow()
        booking = await database_service.get_booking(booking_id)
        if not booking:
            raise NotFound(f"Booking {booking_id} not found")
        if booking.status == BookingStatus.CANCELLED:
            return booking
        if booking.status != BookingStatus.CONFIRMED:
            raise InvalidTransition(
                f"Booking {booking_id} is {booking.status.value} and cannot be cancelled"
            )

        async with self._date_lock(booking.play_date):
            try:
                cancelled = await database_service.update_booking_status(
                    booking_id, BookingStatus.CANCELLED, expected=BookingStatus.CONFIRMED
                )
            except InvalidTransition:
                current = await database_service.get_booking(booking_id)
                # Another cancellation won; it runs the release pass.
                if current is not None and current.status == BookingStatus.CANCELLED:
                    return current
                raise
        logger.info(f"Cancelled booking {booking_id} ({booking.play_date} {booking.start_time:%H:%M})")

        await self.process_release(
            FreedSlot(
                play_date=booking.play_date,
                start_time=booking.start_time,
                duration_class=booking.duration_class,
                booking_id=booking.id,
            ),
            now=now,
        )
        return cancelled

    async def check_in(self, booking_id: str) -> Booking:
        booking = await database_service.get_booking(booking_id)
        if not booking:
            raise NotFound(f"Booking {booking_id} not found")
        if booking.status != BookingStatus.CONFIRMED:
            raise InvalidTransition(
                f"Booking {booking_id} is {booking.status.value} and cannot be checked in"
            )
        return await database_service.update_booking_status(
            booking_id, BookingStatus.CHECKED_IN, expected=BookingStatus.CONFIRMED
        )

    async def process_release(
        self, freed: FreedSlot, now: datetime | None = None
    ) -> WaitlistEntry | None:
        """
        Offer a freed tee time to the next eligible waitlist entry.

        The oldest queued entry for the date whose desired range covers the freed
        start is claimed with a compare-and-swap. If another release pass claimed it
        first, the next candidate is tried. Nothing is offered when no entry is
        eligible. The same goes for a slot taken again in the meantime or one whose
        peak window has no public capacity left.

        A hold takes a tee time, so the claim carries the tee sheet revision like a
        booking insert does. If other workers keep writing to the date, the pass is
        abandoned after STALE_RETRIES attempts; the cancellation that freed the slot
        has already committed.

        Returns:
            The notified entry, or None.
        """
        now = now or utcnow()
        promoted = None
        async with self._date_lock(freed.play_date):
            for attempt in range(1, STALE_RETRIES + 1):
                try:
                    promoted = await self._claim_next(freed, now)
                    break
                except StaleTeeSheet:
                    logger.warning(
                        f"[HOP] Tee sheet for {freed.play_date} changed during release "
                        f"(attempt {attempt} of {STALE_RETRIES})"
                    )

        if promoted is None:
            return None

        logger.info(
            f"[HOP] Holding {freed.play_date} {freed.start_time:%H:%M} for entry {promoted.id} "
            f"until {promoted.lock_expiry}"
        )
        await notification_service.emit_promotion_offer(promoted, freed)
        return await database_service.get_waitlist_entry(promoted.id) or promoted  # type: ignore[arg-type]

    async def _claim_next(self, freed: FreedSlot, now: datetime) -> WaitlistEntry | None:
        slot = f"{freed.play_date} {freed.start_time:%H:%M}"
        revision = await database_service.get_sheet_revision(freed.play_date)
        template = await self.get_template(freed.play_date)
        bookings = await database_service.list_bookings(play_date=freed.play_date)
        entries = await self.list_waitlist(play_date=freed.play_date, now=now)
        holds = [e for e in entries if waitlist_engine.is_hold_live(e, now)]
        if not is_available(
            freed.start_time,
            freed.duration_class,
            occupancies_from(bookings, holds),
            template,
        ):
            logger.info(f"[HOP] {slot} is no longer free; nothing to offer")
            return None

        tracker = PeakCapacityTracker(freed.play_date, template, bookings, holds)
        window = tracker.window_for(freed.start_time)
        overflow = tracker.overflow_for(freed.start_time)
        if (window is not None and tracker.is_full(window)) or (
            overflow is not None and not tracker.is_overflow_unlocked(overflow)
        ):
            logger.info(f"[HOP] {slot} has no peak capacity left; nothing to offer")
            return None

        lock_expiry = waitlist_engine.hold_expiry(now, settings.hold_duration_minutes)
        for candidate in waitlist_engine.eligible_candidates(entries, freed.start_time):
            if await database_service.claim_waitlist_entry(
                candidate.id, freed, lock_expiry, now, revision=revision  # type: ignore[arg-type]
            ):
                return waitlist_engine.place_hold(
                    candidate, freed, now, settings.hold_duration_minutes
                )
            logger.info(f"[HOP] Entry {candidate.id} was claimed elsewhere; trying next")

        logger.info(f"[HOP] No eligible waitlist entry for {slot}")
        return None

    async def join_waitlist(
        self,
        phone_number: str,
        play_date: date,
        desired_start: time,
        desired_end: time,
        player_count: int = 4,
        peak_window_id: str | None = None,
        now: datetime | None = None,
    ) -> WaitlistEntry:
        """
        Queue a request for a tee time within [desired_start, desired_end].

        When peak_window_id is omitted it is taken from the peak window containing
        desired_start, if any.

        Raises:
            InvalidRange: If desired_start >= desired_end.
            AlreadyQueued: If the requester already has an active entry for the
                same date and window.
        """
        now = now or utcnow()
        waitlist_engine.validate_range(desired_start, desired_end)
        if peak_window_id is None:
            template = await self.get_template(play_date)
            tracker = PeakCapacityTracker(play_date, template, [])
            window = tracker.window_for(desired_start)
            peak_window_id = window.id if window else None

        existing = await self.list_waitlist(
            play_date=play_date, phone_number=phone_number, now=now
        )
        for entry in existing:
            if (
                entry.status in waitlist_engine.ACTIVE_STATUSES
                and entry.peak_window_id == peak_window_id
            ):
                raise AlreadyQueued(
                    f"{phone_number} is already on the waitlist for {play_date} "
                    f"({peak_window_id or 'no peak window'})"
                )

        entry = waitlist_engine.enqueue(
            phone_number=phone_number,
            play_date=play_date,
            desired_start=desired_start,
            desired_end=desired_end,
            player_count=player_count,
            peak_window_id=peak_window_id,
            now=now,
        )
        saved = await database_service.upsert_waitlist_entry(entry)
        logger.info(
            f"Queued waitlist entry {saved.id} for {play_date} "
            f"{desired_start:%H:%M}-{desired_end:%H:%M}"
        )
        return saved

    async def confirm_offer(self, entry_id: str, now: datetime | None = None) -> Booking:
        """
        Turn a live hold into a booking.

        Raises:
            NotFound: If the entry does not exist.
            OfferExpired: If the entry is not notified or its hold has lapsed. The
                held slot is released to the next eligible entry before raising.
        """
        now = now or utcnow()
        entry = await database_service.get_waitlist_entry(entry_id)
        if not entry:
            raise NotFound(f"Waitlist entry {entry_id} not found")

        try:
            async with self._date_lock(entry.play_date):
                waitlist_engine.ensure_confirmable(entry, now)
                booking = Booking(
                    id=str(uuid.uuid4())[:8],
                    phone_number=entry.phone_number,
                    play_date=entry.play_date,
                    start_time=entry.offered_start,  # type: ignore[arg-type]
                    duration_class=entry.offered_duration_class or HoleCount.EIGHTEEN,
                    player_count=entry.player_count,
                    status=BookingStatus.CONFIRMED,
                    created_at=now,
                    updated_at=now,
                )
                created = await database_service.confirm_offer(booking, entry_id, now)
        except OfferExpired:
            logger.warning(f"Offer for waitlist entry {entry_id} expired before confirmation")
            freed = waitlist_engine.freed_slot_of(entry)
            released = (WaitlistStatus.NOTIFIED, WaitlistStatus.EXPIRED)
            if freed is not None and entry.status in released:
                await self.process_release(freed, now=now)
            raise

        logger.info(f"Waitlist entry {entry_id} confirmed as booking {created.id}")
        await notification_service.send_booking_confirmation(created)
        return created

    async def cancel_waitlist_entry(
        self, entry_id: str, now: datetime | None = None
    ) -> WaitlistEntry:
        """Cancel an active entry. A cancelled live hold releases its slot."""
        now = now or utcnow()
        entry = await database_service.get_waitlist_entry(entry_id)
        if not entry:
            raise NotFound(f"Waitlist entry {entry_id} not found")

        was_holding = waitlist_engine.is_hold_live(entry, now)
        status = waitlist_engine.effective_status(entry, now)
        if status not in waitlist_engine.ACTIVE_STATUSES or not (
            await database_service.cancel_waitlist_entry(entry_id, now)
        ):
            raise InvalidTransition(
                f"Waitlist entry {entry_id} is {status.value} and cannot be cancelled"
            )
        logger.info(f"Cancelled waitlist entry {entry_id}")

        freed = waitlist_engine.freed_slot_of(entry)
        if was_holding and freed is not None:
            await self.process_release(freed, now=now)
        return await database_service.get_waitlist_entry(entry_id) or entry

    async def sweep_waitlist(self, now: datetime | None = None) -> SweepResult:
        """
        Eagerly expire lapsed holds and re-offer their slots.

        Expiry here applies exactly the same lock_expiry rule as the lazy check on
        read. Only expired entries for dates from today (course time) onward are
        read back, so past dates are never rescanned.
        """
        now = now or utcnow()
        result = SweepResult(expired=await database_service.expire_holds(now))

        seen: set[tuple[date, time]] = set()
        expired = await database_service.list_waitlist(
            status=WaitlistStatus.EXPIRED, from_date=course_today(now)
        )
        for entry in expired:
            freed = waitlist_engine.freed_slot_of(entry)
            if freed is None:
                continue
            key = (freed.play_date, freed.start_time)
            if key in seen:
                continue
            seen.add(key)
            promoted = await self.process_release(freed, now=now)
            if promoted is not None:
                result.offers.append(promoted)

        if result.expired or result.offers:
            logger.info(
                f"Waitlist sweep expired {result.expired} hold(s), made {len(result.offers)} offer(s)"
            )
        return result


booking_service = BookingService()

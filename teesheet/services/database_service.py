"""
Database service for persistent storage of the tee sheet.

This module provides async operations for bookings, waitlist entries, rate configs
and the operating calendar, handling conversion between Pydantic schemas and
SQLAlchemy models. Operations that must be atomic under concurrent requests
(booking insert, waitlist claim, offer confirmation, status changes, rate activation)
are expressed as a single transaction or a conditional UPDATE whose row count decides
the winner. Writes that take a tee time also advance the date's tee sheet revision,
guarded by the revision the caller read before its availability check.
"""

from datetime import date, datetime

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from teesheet.config import settings
from teesheet.exceptions import (
    InvalidTransition,
    NoActiveRateConfig,
    NotFound,
    OfferExpired,
    SlotTaken,
    StaleTeeSheet,
)
from teesheet.models.database import (
    AsyncSessionLocal,
    BookingRecord,
    CalendarOverrideRecord,
    RateAuditRecord,
    RateConfigRecord,
    SettingRecord,
    TeeSheetRevisionRecord,
    WaitlistRecord,
)
from teesheet.models.schemas import (
    Booking,
    BookingStatus,
    DateOverride,
    HoleCount,
    OperatingTemplate,
    PeakWindow,
    RateAuditEntry,
    RateConfig,
    RateConfigStatus,
    RateSchedule,
    WaitlistEntry,
    WaitlistStatus,
    utcnow,
)
from teesheet.services.slot_calendar import resolve_template
from teesheet.services.waitlist_engine import FreedSlot


OPERATING_TEMPLATE_KEY = "operating_template"


def default_operating_template() -> OperatingTemplate:
    return OperatingTemplate(
        start_time=settings.course_start_time,
        end_time=settings.course_end_time,
        interval_minutes=settings.slot_interval_minutes,
        turn_duration_minutes=settings.turn_duration_minutes,
        peak_windows=settings.peak_windows,
        overflow_windows=settings.overflow_windows,
    )


class DatabaseService:
    """
    Provides database operations for the tee sheet.

    This service handles the conversion between Pydantic models used in the
    application layer and SQLAlchemy models used for persistence.
    """

    # Tee sheet revisions

    async def get_sheet_revision(self, play_date: date) -> int:
        """Get the revision of a date's tee sheet. A date never written to is at 0."""
        async with AsyncSessionLocal() as db:
            record = await db.get(TeeSheetRevisionRecord, play_date)
            return record.revision if record else 0  # type: ignore[return-value]

    async def _advance_revision(
        self, db: AsyncSession, play_date: date, expected: int | None
    ) -> None:
        """
        Advance the date's revision inside the caller's transaction.

        With expected set the advance only applies while the stored revision still
        equals it. The caller's transaction is rolled back on a mismatch.

        Raises:
            StaleTeeSheet: If another writer advanced the revision first.
        """
        stmt = update(TeeSheetRevisionRecord).where(
            TeeSheetRevisionRecord.play_date == play_date
        )
        if expected is not None:
            stmt = stmt.where(TeeSheetRevisionRecord.revision == expected)
        result = await db.execute(
            stmt.values(revision=TeeSheetRevisionRecord.revision + 1, updated_at=utcnow())
        )
        if result.rowcount == 1:
            return
        if expected:
            await db.rollback()
            raise StaleTeeSheet(f"Tee sheet for {play_date} changed since revision {expected}")

        # First write on this date
        db.add(TeeSheetRevisionRecord(play_date=play_date, revision=1, updated_at=utcnow()))
        try:
            await db.flush()
        except IntegrityError:
            await db.rollback()
            raise StaleTeeSheet(f"Tee sheet for {play_date} changed since it was read") from None

    # Bookings

    def _booking_to_record(self, booking: Booking) -> BookingRecord:
        """Convert a Booking Pydantic model to a BookingRecord SQLAlchemy model."""
        return BookingRecord(
            booking_id=booking.id,
            phone_number=booking.phone_number,
            play_date=booking.play_date,
            start_time=booking.start_time,
            duration_class=int(booking.duration_class),
            player_count=booking.player_count,
            status=booking.status,
            created_at=booking.created_at,
            updated_at=booking.updated_at,
        )

    def _record_to_booking(self, record: BookingRecord) -> Booking:
        """Convert a BookingRecord SQLAlchemy model to a Booking Pydantic model."""
        return Booking(
            id=record.booking_id,  # type: ignore[arg-type]
            phone_number=record.phone_number,  # type: ignore[arg-type]
            play_date=record.play_date,  # type: ignore[arg-type]
            start_time=record.start_time,  # type: ignore[arg-type]
            duration_class=HoleCount(record.duration_class),
            player_count=record.player_count,  # type: ignore[arg-type]
            status=record.status,  # type: ignore[arg-type]
            created_at=record.created_at,  # type: ignore[arg-type]
            updated_at=record.updated_at,  # type: ignore[arg-type]
        )

    async def insert_booking(self, booking: Booking, revision: int | None = None) -> Booking:
        """
        Insert a booking and advance the date's tee sheet revision.

        Args:
            booking: The booking to store.
            revision: The revision read before the availability check. When given,
                the insert only commits if no other write landed on the date since.

        Raises:
            SlotTaken: If another non-cancelled booking already holds (date, start_time).
            StaleTeeSheet: If the tee sheet moved past revision.
        """
        async with AsyncSessionLocal() as db:
            await self._advance_revision(db, booking.play_date, revision)
            record = self._booking_to_record(booking)
            db.add(record)
            try:
                await db.commit()
            except IntegrityError:
                await db.rollback()
                raise SlotTaken(
                    f"Tee time {booking.play_date} {booking.start_time:%H:%M} is already booked"
                ) from None
            await db.refresh(record)
            return self._record_to_booking(record)

    async def get_booking(self, booking_id: str) -> Booking | None:
        """Get a booking by its ID."""
        async with AsyncSessionLocal() as db:
            result = await db.execute(
                select(BookingRecord).where(BookingRecord.booking_id == booking_id)
            )
            record = result.scalar_one_or_none()
            if record:
                return self._record_to_booking(record)
            return None

    async def list_bookings(
        self,
        play_date: date | None = None,
        phone_number: str | None = None,
        status: BookingStatus | None = None,
    ) -> list[Booking]:
        """Get bookings ordered by date and start time, optionally filtered."""
        async with AsyncSessionLocal() as db:
            query = select(BookingRecord)
            if play_date:
                query = query.where(BookingRecord.play_date == play_date)
            if phone_number:
                query = query.where(BookingRecord.phone_number == phone_number)
            if status:
                query = query.where(BookingRecord.status == status)
            query = query.order_by(BookingRecord.play_date, BookingRecord.start_time)
            result = await db.execute(query)
            records = result.scalars().all()
            return [self._record_to_booking(r) for r in records]

    async def update_booking_status(
        self,
        booking_id: str,
        status: BookingStatus,
        expected: BookingStatus | None = None,
    ) -> Booking:
        """
        Update the status of an existing booking.

        With expected set this is a compare-and-swap: the row only changes while it
        is still in the expected status, so a racing check-in and cancellation cannot
        both apply.

        Raises:
            NotFound: If the booking does not exist.
            InvalidTransition: If the booking was no longer in the expected status.
        """
        async with AsyncSessionLocal() as db:
            stmt = update(BookingRecord).where(BookingRecord.booking_id == booking_id)
            if expected is not None:
                stmt = stmt.where(BookingRecord.status == expected)
            result = await db.execute(stmt.values(status=status, updated_at=utcnow()))
            await db.commit()

            found = await db.execute(
                select(BookingRecord).where(BookingRecord.booking_id == booking_id)
            )
            record = found.scalar_one_or_none()
            if not record:
                raise NotFound(f"Booking {booking_id} not found")
            if result.rowcount != 1:
                raise InvalidTransition(
                    f"Booking {booking_id} is {record.status.value}, "
                    f"not {expected.value if expected else status.value}"
                )
            return self._record_to_booking(record)

    # Waitlist

    def _entry_to_record(self, entry: WaitlistEntry) -> WaitlistRecord:
        """Convert a WaitlistEntry Pydantic model to a WaitlistRecord SQLAlchemy model."""
        record = WaitlistRecord(entry_id=entry.id)
        self._apply_entry(record, entry)
        return record

    def _apply_entry(self, record: WaitlistRecord, entry: WaitlistEntry) -> None:
        record.phone_number = entry.phone_number  # type: ignore[assignment]
        record.play_date = entry.play_date  # type: ignore[assignment]
        record.peak_window_id = entry.peak_window_id  # type: ignore[assignment]
        record.desired_start = entry.desired_start  # type: ignore[assignment]
        record.desired_end = entry.desired_end  # type: ignore[assignment]
        record.player_count = entry.player_count  # type: ignore[assignment]
        record.status = entry.status  # type: ignore[assignment]
        record.created_at = entry.created_at  # type: ignore[assignment]
        record.updated_at = entry.updated_at  # type: ignore[assignment]
        record.lock_expiry = entry.lock_expiry  # type: ignore[assignment]
        record.offered_start = entry.offered_start  # type: ignore[assignment]
        record.offered_duration_class = (  # type: ignore[assignment]
            int(entry.offered_duration_class) if entry.offered_duration_class else None
        )
        record.freed_booking_id = entry.freed_booking_id  # type: ignore[assignment]
        record.confirmed_booking_id = entry.confirmed_booking_id  # type: ignore[assignment]
        record.notification_sent = entry.notification_sent  # type: ignore[assignment]
        record.needs_follow_up = entry.needs_follow_up  # type: ignore[assignment]
        record.notification_error = entry.notification_error  # type: ignore[assignment]
        record.message_sid = entry.message_sid  # type: ignore[assignment]

    def _record_to_entry(self, record: WaitlistRecord) -> WaitlistEntry:
        """Convert a WaitlistRecord SQLAlchemy model to a WaitlistEntry Pydantic model."""
        return WaitlistEntry(
            id=record.entry_id,  # type: ignore[arg-type]
            phone_number=record.phone_number,  # type: ignore[arg-type]
            play_date=record.play_date,  # type: ignore[arg-type]
            peak_window_id=record.peak_window_id,  # type: ignore[arg-type]
            desired_start=record.desired_start,  # type: ignore[arg-type]
            desired_end=record.desired_end,  # type: ignore[arg-type]
            player_count=record.player_count,  # type: ignore[arg-type]
            status=record.status,  # type: ignore[arg-type]
            created_at=record.created_at,  # type: ignore[arg-type]
            updated_at=record.updated_at,  # type: ignore[arg-type]
            lock_expiry=record.lock_expiry,  # type: ignore[arg-type]
            offered_start=record.offered_start,  # type: ignore[arg-type]
            offered_duration_class=(
                HoleCount(record.offered_duration_class)
                if record.offered_duration_class
                else None
            ),
            freed_booking_id=record.freed_booking_id,  # type: ignore[arg-type]
            confirmed_booking_id=record.confirmed_booking_id,  # type: ignore[arg-type]
            notification_sent=record.notification_sent,  # type: ignore[arg-type]
            needs_follow_up=record.needs_follow_up,  # type: ignore[arg-type]
            notification_error=record.notification_error,  # type: ignore[arg-type]
            message_sid=record.message_sid,  # type: ignore[arg-type]
        )

    async def get_waitlist_entry(self, entry_id: str) -> WaitlistEntry | None:
        async with AsyncSessionLocal() as db:
            result = await db.execute(
                select(WaitlistRecord).where(WaitlistRecord.entry_id == entry_id)
            )
            record = result.scalar_one_or_none()
            if record:
                return self._record_to_entry(record)
            return None

    async def list_waitlist(
        self,
        play_date: date | None = None,
        status: WaitlistStatus | None = None,
        phone_number: str | None = None,
        from_date: date | None = None,
    ) -> list[WaitlistEntry]:
        """Get waitlist entries in FIFO order (created_at, then entry id).

        from_date limits the result to entries for that date or later.
        """
        async with AsyncSessionLocal() as db:
            query = select(WaitlistRecord)
            if play_date:
                query = query.where(WaitlistRecord.play_date == play_date)
            if from_date:
                query = query.where(WaitlistRecord.play_date >= from_date)
            if status:
                query = query.where(WaitlistRecord.status == status)
            if phone_number:
                query = query.where(WaitlistRecord.phone_number == phone_number)
            query = query.order_by(WaitlistRecord.created_at, WaitlistRecord.entry_id)
            result = await db.execute(query)
            records = result.scalars().all()
            return [self._record_to_entry(r) for r in records]

    async def upsert_waitlist_entry(self, entry: WaitlistEntry) -> WaitlistEntry:
        """Insert a new waitlist entry or overwrite an existing one with the same ID."""
        async with AsyncSessionLocal() as db:
            result = await db.execute(
                select(WaitlistRecord).where(WaitlistRecord.entry_id == entry.id)
            )
            record = result.scalar_one_or_none()
            if record is None:
                record = self._entry_to_record(entry)
                db.add(record)
            else:
                self._apply_entry(record, entry)
            await db.commit()
            await db.refresh(record)
            return self._record_to_entry(record)

    async def claim_waitlist_entry(
        self,
        entry_id: str,
        freed: FreedSlot,
        lock_expiry: datetime,
        now: datetime,
        revision: int | None = None,
    ) -> bool:
        """
        Atomically move a queued entry to notified and attach the held slot.

        The hold takes the slot, so the date's tee sheet revision advances with it.

        Returns:
            True if this call won the claim, False if the entry was no longer queued.

        Raises:
            StaleTeeSheet: If the tee sheet moved past revision.
        """
        async with AsyncSessionLocal() as db:
            result = await db.execute(
                update(WaitlistRecord)
                .where(
                    WaitlistRecord.entry_id == entry_id,
                    WaitlistRecord.status == WaitlistStatus.QUEUED,
                )
                .values(
                    status=WaitlistStatus.NOTIFIED,
                    lock_expiry=lock_expiry,
                    offered_start=freed.start_time,
                    offered_duration_class=int(freed.duration_class),
                    freed_booking_id=freed.booking_id,
                    updated_at=now,
                )
            )
            if result.rowcount != 1:
                await db.rollback()
                return False
            await self._advance_revision(db, freed.play_date, revision)
            await db.commit()
            return True

    async def cancel_waitlist_entry(self, entry_id: str, now: datetime) -> bool:
        """Cancel a queued or notified entry. Returns False if it was no longer active."""
        async with AsyncSessionLocal() as db:
            result = await db.execute(
                update(WaitlistRecord)
                .where(
                    WaitlistRecord.entry_id == entry_id,
                    WaitlistRecord.status.in_([WaitlistStatus.QUEUED, WaitlistStatus.NOTIFIED]),
                )
                .values(status=WaitlistStatus.CANCELLED, updated_at=now)
            )
            await db.commit()
            return result.rowcount == 1

    async def expire_holds(
        self, now: datetime, entry_ids: list[str] | None = None, play_date: date | None = None
    ) -> int:
        """
        Mark notified entries whose lock_expiry has passed as expired.

        The predicate is re-checked in the UPDATE, so concurrent sweeps never expire
        a hold that is still live.

        Returns:
            The number of entries that transitioned.
        """
        async with AsyncSessionLocal() as db:
            stmt = update(WaitlistRecord).where(
                WaitlistRecord.status == WaitlistStatus.NOTIFIED,
                (WaitlistRecord.lock_expiry.is_(None)) | (WaitlistRecord.lock_expiry <= now),
            )
            if entry_ids is not None:
                stmt = stmt.where(WaitlistRecord.entry_id.in_(entry_ids))
            if play_date is not None:
                stmt = stmt.where(WaitlistRecord.play_date == play_date)
            result = await db.execute(
                stmt.values(status=WaitlistStatus.EXPIRED, updated_at=now)
            )
            await db.commit()
            return result.rowcount

    async def confirm_offer(self, booking: Booking, entry_id: str, now: datetime) -> Booking:
        """
        Insert the holder's booking and mark the entry confirmed in one transaction.

        Raises:
            OfferExpired: If the entry is no longer a live hold at commit time.
            SlotTaken: If the held slot was taken despite the hold.
        """
        async with AsyncSessionLocal() as db:
            result = await db.execute(
                update(WaitlistRecord)
                .where(
                    WaitlistRecord.entry_id == entry_id,
                    WaitlistRecord.status == WaitlistStatus.NOTIFIED,
                    WaitlistRecord.lock_expiry > now,
                )
                .values(
                    status=WaitlistStatus.CONFIRMED,
                    confirmed_booking_id=booking.id,
                    updated_at=now,
                )
            )
            if result.rowcount != 1:
                await db.rollback()
                raise OfferExpired(f"Offer for waitlist entry {entry_id} is no longer valid")

            record = self._booking_to_record(booking)
            db.add(record)
            try:
                await db.commit()
            except IntegrityError:
                await db.rollback()
                raise SlotTaken(
                    f"Tee time {booking.play_date} {booking.start_time:%H:%M} is already booked"
                ) from None
            await db.refresh(record)
            return self._record_to_booking(record)

    async def record_notification_result(
        self,
        entry_id: str,
        sent: bool,
        message_sid: str | None = None,
        error: str | None = None,
    ) -> None:
        """Record promotion offer delivery. Never touches the entry status."""
        async with AsyncSessionLocal() as db:
            await db.execute(
                update(WaitlistRecord)
                .where(WaitlistRecord.entry_id == entry_id)
                .values(
                    notification_sent=sent,
                    needs_follow_up=not sent,
                    message_sid=message_sid,
                    notification_error=error,
                )
            )
            await db.commit()

    async def record_delivery_status(
        self, message_sid: str, delivered: bool, error: str | None = None
    ) -> bool:
        """
        Apply an asynchronous delivery report from the messaging gateway.

        Returns:
            True if a waitlist entry with this message SID exists.
        """
        async with AsyncSessionLocal() as db:
            values: dict = {"notification_sent": delivered, "needs_follow_up": not delivered}
            if error is not None:
                values["notification_error"] = error
            result = await db.execute(
                update(WaitlistRecord)
                .where(WaitlistRecord.message_sid == message_sid)
                .values(**values)
            )
            await db.commit()
            return result.rowcount > 0

    # Rate configs

    def _record_to_rate(self, record: RateConfigRecord) -> RateConfig:
        """Convert a RateConfigRecord SQLAlchemy model to a RateConfig Pydantic model."""
        return RateConfig.model_validate(
            {
                "id": record.id,
                "version_number": record.version_number,
                "status": record.status,
                "green_fees": record.green_fees,
                "caddy_fees": record.caddy_fees,
                "base_fees": record.base_fees,
                "tax_config": record.tax_config,
                "notes": record.notes or "",
                "created_by": record.created_by,
                "submitted_by": record.submitted_by,
                "approved_by": record.approved_by,
                "rejection_reason": record.rejection_reason,
                "effective_date": record.effective_date,
                "created_at": record.created_at,
                "updated_at": record.updated_at,
            }
        )

    def _apply_schedule(self, record: RateConfigRecord, schedule: RateSchedule) -> None:
        data = schedule.model_dump(mode="json")
        record.green_fees = data["green_fees"]  # type: ignore[assignment]
        record.caddy_fees = data["caddy_fees"]  # type: ignore[assignment]
        record.base_fees = data["base_fees"]  # type: ignore[assignment]
        record.tax_config = data["tax_config"]  # type: ignore[assignment]
        record.notes = schedule.notes  # type: ignore[assignment]

    async def create_rate_config(
        self, schedule: RateSchedule, created_by: str | None = None
    ) -> RateConfig:
        """Create a draft rate config with the next version number."""
        async with AsyncSessionLocal() as db:
            result = await db.execute(select(func.max(RateConfigRecord.version_number)))
            latest = result.scalar()
            record = RateConfigRecord(
                version_number=(latest or 0) + 1,
                status=RateConfigStatus.DRAFT,
                created_by=created_by,
            )
            self._apply_schedule(record, schedule)
            db.add(record)
            await db.commit()
            await db.refresh(record)
            return self._record_to_rate(record)

    async def get_rate_config(self, config_id: int) -> RateConfig | None:
        async with AsyncSessionLocal() as db:
            record = await db.get(RateConfigRecord, config_id)
            if record:
                return self._record_to_rate(record)
            return None

    async def list_rate_configs(self, status: RateConfigStatus | None = None) -> list[RateConfig]:
        async with AsyncSessionLocal() as db:
            query = select(RateConfigRecord).order_by(RateConfigRecord.version_number.desc())
            if status:
                query = query.where(RateConfigRecord.status == status)
            result = await db.execute(query)
            return [self._record_to_rate(r) for r in result.scalars().all()]

    async def get_active_rate_config(self) -> RateConfig:
        """
        Get the currently active rate config.

        Raises:
            NoActiveRateConfig: If no config is active.
        """
        async with AsyncSessionLocal() as db:
            result = await db.execute(
                select(RateConfigRecord)
                .where(RateConfigRecord.status == RateConfigStatus.ACTIVE)
                .order_by(RateConfigRecord.version_number.desc())
                .limit(1)
            )
            record = result.scalar_one_or_none()
            if record is None:
                raise NoActiveRateConfig("No active rate config")
            return self._record_to_rate(record)

    async def update_draft_rate_config(self, config_id: int, schedule: RateSchedule) -> bool:
        """Replace the fee tables of a draft. Returns False if the config is not a draft."""
        async with AsyncSessionLocal() as db:
            record = await db.get(RateConfigRecord, config_id)
            if record is None or record.status != RateConfigStatus.DRAFT:
                return False
            self._apply_schedule(record, schedule)
            record.updated_at = utcnow()  # type: ignore[assignment]
            await db.commit()
            return True

    async def transition_rate_config(
        self,
        config_id: int,
        from_status: RateConfigStatus,
        to_status: RateConfigStatus,
        **fields,
    ) -> bool:
        """
        Move a config between lifecycle states if it is still in from_status.

        Returns:
            True if the transition happened.
        """
        async with AsyncSessionLocal() as db:
            result = await db.execute(
                update(RateConfigRecord)
                .where(
                    RateConfigRecord.id == config_id,
                    RateConfigRecord.status == from_status,
                )
                .values(status=to_status, updated_at=utcnow(), **fields)
            )
            await db.commit()
            return result.rowcount == 1

    async def activate_rate_config(self, config_id: int, now: datetime) -> list[int] | None:
        """
        Archive the current active config and activate an approved one atomically.

        Returns:
            IDs of configs that were archived, or None if config_id was not approved.
        """
        async with AsyncSessionLocal() as db:
            result = await db.execute(
                select(RateConfigRecord.id).where(
                    RateConfigRecord.status == RateConfigStatus.ACTIVE
                )
            )
            archived = [row[0] for row in result.all()]
            await db.execute(
                update(RateConfigRecord)
                .where(RateConfigRecord.status == RateConfigStatus.ACTIVE)
                .values(status=RateConfigStatus.ARCHIVED, updated_at=now)
            )
            result = await db.execute(
                update(RateConfigRecord)
                .where(
                    RateConfigRecord.id == config_id,
                    RateConfigRecord.status == RateConfigStatus.APPROVED,
                )
                .values(status=RateConfigStatus.ACTIVE, effective_date=now, updated_at=now)
            )
            if result.rowcount != 1:
                await db.rollback()
                return None
            await db.commit()
            return archived

    async def add_audit_entry(self, entry: RateAuditEntry) -> None:
        async with AsyncSessionLocal() as db:
            db.add(
                RateAuditRecord(
                    config_id=entry.config_id,
                    action=entry.action,
                    performed_by=entry.performed_by,
                    notes=entry.notes,
                    performed_at=entry.performed_at,
                )
            )
            await db.commit()

    async def get_audit_log(self, config_id: int) -> list[RateAuditEntry]:
        async with AsyncSessionLocal() as db:
            result = await db.execute(
                select(RateAuditRecord)
                .where(RateAuditRecord.config_id == config_id)
                .order_by(RateAuditRecord.performed_at.desc(), RateAuditRecord.id.desc())
            )
            return [
                RateAuditEntry(
                    config_id=r.config_id,  # type: ignore[arg-type]
                    action=r.action,  # type: ignore[arg-type]
                    performed_by=r.performed_by,  # type: ignore[arg-type]
                    notes=r.notes or "",
                    performed_at=r.performed_at,  # type: ignore[arg-type]
                )
                for r in result.scalars().all()
            ]

    # Operating calendar

    async def get_global_template(self) -> OperatingTemplate:
        """Get the stored global template, falling back to configured defaults."""
        async with AsyncSessionLocal() as db:
            result = await db.execute(
                select(SettingRecord).where(SettingRecord.key == OPERATING_TEMPLATE_KEY)
            )
            record = result.scalar_one_or_none()
            if record is None:
                return default_operating_template()
            return OperatingTemplate.model_validate(record.value)

    async def save_global_template(self, template: OperatingTemplate) -> OperatingTemplate:
        async with AsyncSessionLocal() as db:
            result = await db.execute(
                select(SettingRecord).where(SettingRecord.key == OPERATING_TEMPLATE_KEY)
            )
            record = result.scalar_one_or_none()
            value = template.model_dump(mode="json")
            if record is None:
                db.add(SettingRecord(key=OPERATING_TEMPLATE_KEY, value=value))
            else:
                record.value = value  # type: ignore[assignment]
            await db.commit()
            return template

    def _record_to_override(self, record: CalendarOverrideRecord) -> DateOverride:
        peak_windows = None
        if record.custom_peak_windows is not None:
            peak_windows = [PeakWindow.model_validate(w) for w in record.custom_peak_windows]
        return DateOverride(
            override_date=record.override_date,  # type: ignore[arg-type]
            status=record.status,  # type: ignore[arg-type]
            custom_start_time=record.custom_start_time,  # type: ignore[arg-type]
            custom_end_time=record.custom_end_time,  # type: ignore[arg-type]
            custom_interval_minutes=record.custom_interval_minutes,  # type: ignore[arg-type]
            custom_turn_duration_minutes=record.custom_turn_duration_minutes,  # type: ignore[arg-type]
            custom_peak_windows=peak_windows,
            closure_reason=record.closure_reason,  # type: ignore[arg-type]
            notes=record.notes,  # type: ignore[arg-type]
        )

    async def get_date_override(self, override_date: date) -> DateOverride | None:
        async with AsyncSessionLocal() as db:
            result = await db.execute(
                select(CalendarOverrideRecord).where(
                    CalendarOverrideRecord.override_date == override_date
                )
            )
            record = result.scalar_one_or_none()
            if record:
                return self._record_to_override(record)
            return None

    async def upsert_date_override(self, override: DateOverride) -> DateOverride:
        async with AsyncSessionLocal() as db:
            result = await db.execute(
                select(CalendarOverrideRecord).where(
                    CalendarOverrideRecord.override_date == override.override_date
                )
            )
            record = result.scalar_one_or_none()
            if record is None:
                record = CalendarOverrideRecord(override_date=override.override_date)
                db.add(record)
            record.status = override.status  # type: ignore[assignment]
            record.custom_start_time = override.custom_start_time  # type: ignore[assignment]
            record.custom_end_time = override.custom_end_time  # type: ignore[assignment]
            record.custom_interval_minutes = override.custom_interval_minutes  # type: ignore[assignment]
            record.custom_turn_duration_minutes = override.custom_turn_duration_minutes  # type: ignore[assignment]
            record.custom_peak_windows = (  # type: ignore[assignment]
                [w.model_dump(mode="json") for w in override.custom_peak_windows]
                if override.custom_peak_windows is not None
                else None
            )
            record.closure_reason = override.closure_reason  # type: ignore[assignment]
            record.notes = override.notes  # type: ignore[assignment]
            await db.commit()
            await db.refresh(record)
            return self._record_to_override(record)

    async def delete_date_override(self, override_date: date) -> bool:
        async with AsyncSessionLocal() as db:
            result = await db.execute(
                select(CalendarOverrideRecord).where(
                    CalendarOverrideRecord.override_date == override_date
                )
            )
            record = result.scalar_one_or_none()
            if record is None:
                return False
            await db.delete(record)
            await db.commit()
            return True

    async def get_operating_template(self, play_date: date) -> OperatingTemplate:
        """Get the global template merged with any override for play_date."""
        global_template = await self.get_global_template()
        override = await self.get_date_override(play_date)
        return resolve_template(global_template, override)


database_service = DatabaseService()

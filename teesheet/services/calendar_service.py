"""
Operating calendar management.

Holds the global operating template and per-date overrides. Every change is validated
against the merged template before it is stored, so a bad override never reaches slot
generation.
"""

import logging
from dataclasses import dataclass, field
from datetime import date

from teesheet.exceptions import NotFound
from teesheet.models.schemas import Booking, BookingStatus, DateOverride, OperatingTemplate
from teesheet.services.database_service import database_service
from teesheet.services.slot_calendar import generate_slots, resolve_template, validate_template

logger = logging.getLogger(__name__)


@dataclass
class OverrideResult:
    override: DateOverride
    conflicting_bookings: list[Booking] = field(default_factory=list)


class CalendarService:
    async def get_override(self, override_date: date) -> DateOverride:
        override = await database_service.get_date_override(override_date)
        if override is None:
            raise NotFound(f"No calendar override for {override_date}")
        return override

    async def get_template(self, play_date: date) -> OperatingTemplate:
        return await database_service.get_operating_template(play_date)

    async def set_global_template(self, template: OperatingTemplate) -> OperatingTemplate:
        validate_template(template)
        saved = await database_service.save_global_template(template)
        logger.info(
            f"Global template set: {template.start_time:%H:%M}-{template.end_time:%H:%M} "
            f"every {template.interval_minutes} min"
        )
        return saved

    async def set_override(self, override: DateOverride) -> OverrideResult:
        """
        Store an override for one date.

        Existing bookings are never moved or cancelled. Bookings that no longer fit
        (the date is closed, or their start is off the new grid) are returned so an
        operator can contact the players.

        Raises:
            InvalidTemplate: If the merged template is invalid.
        """
        merged = resolve_template(await database_service.get_global_template(), override)
        validate_template(merged)
        saved = await database_service.upsert_date_override(override)

        bookings = await database_service.list_bookings(
            play_date=override.override_date, status=BookingStatus.CONFIRMED
        )
        calendar = generate_slots(override.override_date, merged)
        conflicts = [b for b in bookings if b.start_time not in calendar]
        if conflicts:
            logger.warning(
                f"Override for {override.override_date} conflicts with "
                f"{len(conflicts)} confirmed booking(s)"
            )
        logger.info(f"Calendar override saved for {override.override_date} ({override.status.value})")
        return OverrideResult(override=saved, conflicting_bookings=conflicts)

    async def clear_override(self, override_date: date) -> None:
        if not await database_service.delete_date_override(override_date):
            raise NotFound(f"No calendar override for {override_date}")
        logger.info(f"Calendar override cleared for {override_date}")


calendar_service = CalendarService()

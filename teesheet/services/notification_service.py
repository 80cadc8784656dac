"""
Outbound notifications for the tee sheet.

Promotion offers are emitted after a waitlist claim has already been committed.
Delivery failures are recorded on the entry (needs_follow_up) for an operator to
chase, and never undo the hold.
"""

import logging
from datetime import datetime

import pytz

from teesheet.config import settings
from teesheet.models.schemas import Booking, WaitlistEntry
from teesheet.providers.sms_base import SMSProvider, SMSResult
from teesheet.providers.twilio_provider import TwilioSMSProvider
from teesheet.services.database_service import database_service
from teesheet.services.waitlist_engine import FreedSlot

logger = logging.getLogger(__name__)


def _local_display(moment: datetime) -> str:
    """Format a naive UTC timestamp in the course timezone."""
    tz = pytz.timezone(settings.timezone)
    return pytz.utc.localize(moment).astimezone(tz).strftime("%A %I:%M %p")


class NotificationService:
    def __init__(self) -> None:
        self._provider: SMSProvider | None = None

    @property
    def provider(self) -> SMSProvider:
        if self._provider is None:
            self._provider = TwilioSMSProvider()
        return self._provider

    def set_provider(self, provider: SMSProvider) -> None:
        self._provider = provider

    def validate_request(self, url: str, params: dict[str, str], signature: str | None) -> bool:
        return self.provider.validate_request(url, params, signature)

    async def emit_promotion_offer(self, entry: WaitlistEntry, freed: FreedSlot) -> SMSResult:
        """
        Send the promotion offer for a claimed hold and record the delivery outcome.

        Args:
            entry: The waitlist entry, already transitioned to notified.
            freed: The slot being held for the entry.

        Returns:
            The provider's SMSResult. Failures are returned, not raised.
        """
        slot_details = (
            f"{freed.play_date.strftime('%A, %B %d')} at {freed.start_time.strftime('%I:%M %p')} "
            f"({int(freed.duration_class)} holes, {entry.player_count} players)"
        )
        hold_until = _local_display(entry.lock_expiry) if entry.lock_expiry else "soon"

        try:
            result = await self.provider.send_promotion_offer(
                entry.phone_number, slot_details, hold_until
            )
        except Exception as e:
            logger.exception(f"Promotion offer for waitlist entry {entry.id} raised: {e}")
            result = SMSResult(success=False, error_message=str(e))

        if not result.success:
            logger.warning(
                f"Promotion offer for waitlist entry {entry.id} was not delivered "
                f"({result.error_message}); flagged for follow-up"
            )

        await database_service.record_notification_result(
            entry.id,  # type: ignore[arg-type]
            sent=result.success,
            message_sid=result.message_sid,
            error=result.error_message,
        )
        return result

    async def send_booking_confirmation(self, booking: Booking) -> SMSResult:
        details = (
            f"{booking.play_date.strftime('%A, %B %d')} at "
            f"{booking.start_time.strftime('%I:%M %p')} for {booking.player_count} players "
            f"({int(booking.duration_class)} holes)"
        )
        result = await self.provider.send_booking_confirmation(booking.phone_number, details)
        if not result.success:
            logger.warning(f"Confirmation for booking {booking.id} was not delivered")
        return result


notification_service = NotificationService()

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass
class SMSResult:
    success: bool
    message_sid: str | None = None
    error_message: str | None = None


class SMSProvider(ABC):
    """Outbound messaging used for waitlist offers and booking confirmations."""

    @abstractmethod
    def validate_request(self, url: str, params: dict[str, str], signature: str | None) -> bool:
        """
        Check the signature on an inbound delivery report.

        Args:
            url: Full URL the report was posted to.
            params: Form fields of the report.
            signature: Signature header, or None when absent.

        Returns:
            True if the report may be trusted.
        """
        pass

    @abstractmethod
    async def send_sms(self, to_number: str, message: str) -> SMSResult:
        """
        Deliver one message.

        Implementations report failures in the returned SMSResult instead of raising.
        """
        pass

    async def send_promotion_offer(
        self, to_number: str, slot_details: str, hold_until: str
    ) -> SMSResult:
        """Tell a waitlisted golfer that a tee time is being held for them.

        Args:
            to_number: The recipient's phone number.
            slot_details: Human-readable held slot (e.g. "Monday, March 02 at 06:10 AM").
            hold_until: When the hold lapses, already formatted for display.
        """
        message = (
            f"Good news! A tee time opened up from the waitlist: {slot_details}. "
            f"It is held for you until {hold_until}. Confirm before then to keep it."
        )
        return await self.send_sms(to_number, message)

    async def send_booking_confirmation(self, to_number: str, booking_details: str) -> SMSResult:
        return await self.send_sms(to_number, f"Tee time booking confirmed! {booking_details}")

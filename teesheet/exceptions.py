"""
Error taxonomy for the tee sheet engine.

Validation and configuration errors (InvalidTemplate, InvalidRange, the rate lookup
errors) are programming or setup mistakes and are surfaced immediately. SlotTaken,
PeakWindowFull and OfferExpired are expected outcomes that callers handle as part of
the normal booking flow.
"""


class TeeSheetError(Exception):
    """Base exception for all tee sheet errors."""

    pass


class NotFound(TeeSheetError):
    """Raised when a booking, waitlist entry or rate config does not exist."""

    pass


class InvalidTemplate(TeeSheetError):
    """Raised when an operating template has end <= start or an unsupported interval."""

    pass


class InvalidRange(TeeSheetError):
    """Raised when a waitlist desired range has start >= end."""

    pass


class SlotNotOnGrid(TeeSheetError):
    """Raised when a requested start time is not one of the date's generated slots."""

    pass


class CourseClosed(TeeSheetError):
    """Raised when booking on a date marked closed or emergency_closed."""

    pass


class BookingUnavailable(TeeSheetError):
    """
    Base for expected booking losses.

    These are not faults: the caller is offered the waitlist path instead.
    """

    suggest_waitlist = True


class SlotTaken(BookingUnavailable):
    """Raised when the slot, its turn instant, or an incoming turn is already occupied."""

    pass


class PeakWindowFull(BookingUnavailable):
    """Raised when the peak window containing the slot has reached its group limit."""

    def __init__(self, window_id: str, message: str | None = None) -> None:
        self.window_id = window_id
        super().__init__(message or f"Peak window {window_id} is full")


class OverflowLocked(BookingUnavailable):
    """Raised when booking inside an overflow window whose preceding peak is not full."""

    pass


class TooLateForDuration(TeeSheetError):
    """Raised when an 18-hole round would start too late to finish before closing."""

    pass


class AlreadyQueued(TeeSheetError):
    """Raised when the requester already has an active entry for the date and window."""

    pass


class OfferExpired(TeeSheetError):
    """Raised when confirming an entry that is not notified or whose hold has lapsed."""

    pass


class StaleTeeSheet(TeeSheetError):
    """Raised when another writer changed the date's tee sheet after it was read."""

    pass


class RateLookupError(TeeSheetError):
    """Base for rate config lookups that hit a missing key."""

    pass


class UnknownTier(RateLookupError):
    pass


class UnknownRatio(RateLookupError):
    pass


class MissingHoleBucket(RateLookupError):
    pass


class NoActiveRateConfig(TeeSheetError):
    """Raised when no rate config is currently active."""

    pass


class InvalidRateConfig(TeeSheetError):
    """Raised on an illegal rate config lifecycle transition or edit."""

    pass


class InvalidTransition(TeeSheetError):
    """Raised when a booking or waitlist entry cannot move to the requested status."""

    pass

from datetime import date, time

from fastapi import APIRouter
from pydantic import BaseModel, Field

from teesheet.api.bookings import BookingResponse
from teesheet.models.schemas import WaitlistEntry, WaitlistStatus
from teesheet.services.booking_service import booking_service

router = APIRouter(prefix="/waitlist", tags=["waitlist"])


class JoinWaitlistRequest(BaseModel):
    phone_number: str
    play_date: date
    desired_start: time
    desired_end: time
    player_count: int = Field(default=4, ge=1, le=4)
    peak_window_id: str | None = None


@router.post("/", response_model=WaitlistEntry, status_code=201)
async def join_waitlist(request: JoinWaitlistRequest) -> WaitlistEntry:
    return await booking_service.join_waitlist(
        phone_number=request.phone_number,
        play_date=request.play_date,
        desired_start=request.desired_start,
        desired_end=request.desired_end,
        player_count=request.player_count,
        peak_window_id=request.peak_window_id,
    )


@router.get("/", response_model=list[WaitlistEntry])
async def list_waitlist(
    play_date: date | None = None,
    status: WaitlistStatus | None = None,
    phone_number: str | None = None,
) -> list[WaitlistEntry]:
    return await booking_service.list_waitlist(
        play_date=play_date, status=status, phone_number=phone_number
    )


@router.post("/{entry_id}/confirm", response_model=BookingResponse, status_code=201)
async def confirm_offer(entry_id: str) -> BookingResponse:
    """Accept a promotion offer. Returns 410 if the hold has already lapsed."""
    booking = await booking_service.confirm_offer(entry_id)
    return BookingResponse.from_booking(booking)


@router.post("/{entry_id}/cancel", response_model=WaitlistEntry)
async def cancel_entry(entry_id: str) -> WaitlistEntry:
    return await booking_service.cancel_waitlist_entry(entry_id)

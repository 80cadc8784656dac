"""
Booking endpoints.

The privileged flag lets a booking use a peak window's reserved groups. This router
does not authenticate callers: it only accepts privileged=true together with an
X-Staff-API-Key header matching STAFF_API_KEY, and rejects it outright when no key is
configured. Deployments that expose the router publicly are expected to put staff
authentication in front of it and keep the key out of customer-facing clients.
"""

import logging
from datetime import date, datetime, time

from fastapi import APIRouter, Header, HTTPException
from pydantic import BaseModel, Field

from teesheet.config import settings
from teesheet.models.schemas import Booking, BookingStatus, HoleCount
from teesheet.services.booking_service import booking_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/bookings", tags=["bookings"])


class CreateBookingRequest(BaseModel):
    phone_number: str
    play_date: date
    start_time: time
    duration_class: HoleCount = HoleCount.EIGHTEEN
    player_count: int = Field(default=4, ge=1, le=4)
    privileged: bool = Field(
        default=False, description="Use reserved peak groups. Requires X-Staff-API-Key."
    )


class BookingResponse(BaseModel):
    id: str | None
    phone_number: str
    play_date: date
    start_time: time
    duration_class: HoleCount
    player_count: int
    status: BookingStatus
    created_at: datetime

    @classmethod
    def from_booking(cls, booking: Booking) -> "BookingResponse":
        return cls(
            id=booking.id,
            phone_number=booking.phone_number,
            play_date=booking.play_date,
            start_time=booking.start_time,
            duration_class=booking.duration_class,
            player_count=booking.player_count,
            status=booking.status,
            created_at=booking.created_at,
        )


@router.post("/", response_model=BookingResponse, status_code=201)
async def create_booking(
    request: CreateBookingRequest,
    x_staff_api_key: str | None = Header(
        None, description="Staff API key, required for privileged bookings"
    ),
) -> BookingResponse:
    if request.privileged and not (
        settings.staff_api_key and x_staff_api_key == settings.staff_api_key
    ):
        logger.warning(f"Rejected privileged booking request for {request.phone_number}")
        raise HTTPException(status_code=403, detail="Privileged bookings require staff access")
    booking = await booking_service.book(
        phone_number=request.phone_number,
        play_date=request.play_date,
        start_time=request.start_time,
        duration_class=request.duration_class,
        player_count=request.player_count,
        privileged=request.privileged,
    )
    return BookingResponse.from_booking(booking)


@router.get("/", response_model=list[BookingResponse])
async def list_bookings(
    play_date: date | None = None,
    phone_number: str | None = None,
    status: BookingStatus | None = None,
) -> list[BookingResponse]:
    bookings = await booking_service.get_bookings(
        play_date=play_date, phone_number=phone_number, status=status
    )
    return [BookingResponse.from_booking(b) for b in bookings]


@router.get("/{booking_id}", response_model=BookingResponse)
async def get_booking(booking_id: str) -> BookingResponse:
    booking = await booking_service.get_booking(booking_id)
    if not booking:
        raise HTTPException(status_code=404, detail="Booking not found")
    return BookingResponse.from_booking(booking)


@router.post("/{booking_id}/cancel", response_model=BookingResponse)
async def cancel_booking(booking_id: str, phone_number: str) -> BookingResponse:
    """
    Cancel a booking by its ID and offer the freed slot to the waitlist.

    Requires the phone_number associated with the booking for authorization.

    Raises:
        HTTPException 403: If phone_number doesn't match the booking's phone number.
        HTTPException 404: If the booking is not found.
    """
    booking = await booking_service.get_booking(booking_id)
    if not booking:
        raise HTTPException(status_code=404, detail="Booking not found")

    if booking.phone_number != phone_number:
        raise HTTPException(
            status_code=403,
            detail="Unauthorized: phone number does not match booking owner",
        )

    cancelled = await booking_service.cancel_booking(booking_id)
    return BookingResponse.from_booking(cancelled)


@router.post("/{booking_id}/check-in", response_model=BookingResponse)
async def check_in(booking_id: str) -> BookingResponse:
    booking = await booking_service.check_in(booking_id)
    return BookingResponse.from_booking(booking)

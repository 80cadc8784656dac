from datetime import date

from fastapi import APIRouter, Query

from teesheet.models.schemas import Slot
from teesheet.services.booking_service import booking_service

router = APIRouter(prefix="/slots", tags=["slots"])


@router.get("", response_model=list[Slot])
async def list_slots(play_date: date = Query(..., alias="date")) -> list[Slot]:
    """Slots for a date, with per-duration availability and peak window membership."""
    return await booking_service.list_slots(play_date)

from datetime import date, time

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, ValidationError

from teesheet.api.bookings import BookingResponse
from teesheet.models.schemas import DateOverride, DateStatus, OperatingTemplate, PeakWindow
from teesheet.services.calendar_service import calendar_service

router = APIRouter(prefix="/calendar", tags=["calendar"])


class OverrideRequest(BaseModel):
    status: DateStatus = DateStatus.NORMAL
    custom_start_time: time | None = None
    custom_end_time: time | None = None
    custom_interval_minutes: int | None = None
    custom_turn_duration_minutes: int | None = None
    custom_peak_windows: list[PeakWindow] | None = None
    closure_reason: str | None = None
    notes: str | None = None


class OverrideResponse(BaseModel):
    override: DateOverride
    template: OperatingTemplate
    conflicting_bookings: list[BookingResponse] = []


@router.get("/overrides/{override_date}", response_model=DateOverride)
async def get_override(override_date: date) -> DateOverride:
    return await calendar_service.get_override(override_date)


@router.put("/overrides/{override_date}", response_model=OverrideResponse)
async def set_override(override_date: date, request: OverrideRequest) -> OverrideResponse:
    """
    Close a date or change its hours, interval or peak windows.

    Confirmed bookings that no longer fit the date are listed in the response; they
    are not cancelled.
    """
    try:
        override = DateOverride(override_date=override_date, **request.model_dump())
    except ValidationError as e:
        errors = e.errors(include_url=False, include_context=False)
        raise HTTPException(status_code=422, detail=errors) from None
    result = await calendar_service.set_override(override)
    return OverrideResponse(
        override=result.override,
        template=await calendar_service.get_template(override_date),
        conflicting_bookings=[
            BookingResponse.from_booking(b) for b in result.conflicting_bookings
        ],
    )


@router.delete("/overrides/{override_date}")
async def clear_override(override_date: date) -> dict[str, str]:
    await calendar_service.clear_override(override_date)
    return {"status": "cleared", "date": override_date.isoformat()}


@router.put("/template", response_model=OperatingTemplate)
async def set_global_template(template: OperatingTemplate) -> OperatingTemplate:
    return await calendar_service.set_global_template(template)

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from teesheet.api import bookings, calendar, health, jobs, rates, slots, waitlist, webhooks
from teesheet.config import settings
from teesheet.exceptions import (
    AlreadyQueued,
    BookingUnavailable,
    CourseClosed,
    InvalidRange,
    InvalidRateConfig,
    InvalidTemplate,
    InvalidTransition,
    NoActiveRateConfig,
    NotFound,
    OfferExpired,
    PeakWindowFull,
    RateLookupError,
    SlotNotOnGrid,
    StaleTeeSheet,
    TeeSheetError,
    TooLateForDuration,
)
from teesheet.models.database import init_db
from teesheet.providers.twilio_provider import MockSMSProvider, TwilioSMSProvider
from teesheet.services.notification_service import notification_service

logger = logging.getLogger(__name__)

STATUS_BY_ERROR: dict[type[TeeSheetError], int] = {
    NotFound: 404,
    NoActiveRateConfig: 404,
    BookingUnavailable: 409,
    AlreadyQueued: 409,
    CourseClosed: 409,
    InvalidTransition: 409,
    StaleTeeSheet: 409,
    OfferExpired: 410,
    InvalidTemplate: 422,
    InvalidRange: 422,
    SlotNotOnGrid: 422,
    TooLateForDuration: 422,
    RateLookupError: 422,
    InvalidRateConfig: 422,
}


def status_for(error: TeeSheetError) -> int:
    for cls in type(error).__mro__:
        if cls in STATUS_BY_ERROR:
            return STATUS_BY_ERROR[cls]
    return 400


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    await init_db()

    if not settings.scheduler_api_key:
        logger.warning(
            "SCHEDULER_API_KEY is not configured. "
            "The /jobs/sweep-waitlist endpoint will only accept OIDC tokens. "
            "Set SCHEDULER_API_KEY environment variable for production use."
        )

    if settings.twilio_account_sid and settings.twilio_auth_token:
        logger.info("Twilio credentials configured - using TwilioSMSProvider")
        notification_service.set_provider(TwilioSMSProvider())
    else:
        logger.warning(
            "Twilio credentials not configured - using MockSMSProvider. "
            "Set TWILIO_ACCOUNT_SID and TWILIO_AUTH_TOKEN to deliver waitlist offers."
        )
        notification_service.set_provider(MockSMSProvider())

    yield


app = FastAPI(
    title="TeeSheet",
    description="Golf course tee sheet with peak capacity, waitlist holds and rate configs",
    version="0.1.0",
    lifespan=lifespan,
)


@app.exception_handler(TeeSheetError)
async def tee_sheet_error_handler(request: Request, exc: TeeSheetError) -> JSONResponse:
    status_code = status_for(exc)
    content: dict[str, object] = {"detail": str(exc), "error": type(exc).__name__}
    if isinstance(exc, BookingUnavailable):
        content["suggest_waitlist"] = True
        if isinstance(exc, PeakWindowFull):
            content["peak_window_id"] = exc.window_id
        logger.warning(f"{request.method} {request.url.path}: {type(exc).__name__}: {exc}")
    return JSONResponse(status_code=status_code, content=content)


app.include_router(health.router)
app.include_router(webhooks.router)
app.include_router(slots.router)
app.include_router(bookings.router)
app.include_router(waitlist.router)
app.include_router(rates.router)
app.include_router(calendar.router)
app.include_router(jobs.router)

from fastapi import APIRouter

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check() -> dict[str, str]:
    return {"status": "healthy", "service": "teesheet"}


@router.get("/")
async def root() -> dict[str, str | dict[str, str]]:
    return {
        "service": "TeeSheet - Golf Course Tee Sheet Engine",
        "version": "0.1.0",
        "endpoints": {
            "health": "/health",
            "slots": "/slots?date=YYYY-MM-DD",
            "bookings": "/bookings",
            "waitlist": "/waitlist",
            "rates": "/rates",
            "calendar": "/calendar",
            "jobs": "/jobs/sweep-waitlist",
            "webhooks": "/webhooks/twilio/status",
        },
    }

"""
Scheduled job endpoints for Cloud Scheduler integration.

The waitlist sweep eagerly expires lapsed holds and re-offers their slots. Reads
already expire holds lazily, so the sweep only has to run often enough that freed
slots are re-offered promptly. Endpoints are secured with OIDC token authentication
(preferred) or a legacy API key.
"""

import logging
from datetime import datetime

from fastapi import APIRouter, Depends, Header, HTTPException
from google.auth import exceptions as google_auth_exceptions
from google.auth.transport import requests as google_requests
from google.oauth2 import id_token
from pydantic import BaseModel

from teesheet.config import settings
from teesheet.models.schemas import WaitlistEntry, utcnow
from teesheet.services.booking_service import booking_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/jobs", tags=["jobs"])


class SweepResponse(BaseModel):
    executed_at: datetime
    expired: int
    offers_made: int
    offers: list[WaitlistEntry]


def verify_oidc_token(authorization: str) -> bool:
    """
    Verify OIDC token from Cloud Scheduler.

    Returns True if the token is valid and from the expected service account.
    """
    if not authorization.startswith("Bearer "):
        return False

    token = authorization[7:]

    try:
        claims = id_token.verify_oauth2_token(  # type: ignore[no-untyped-call]
            token, google_requests.Request()
        )

        email = claims.get("email", "")
        if settings.scheduler_service_account and email != settings.scheduler_service_account:
            logger.warning(
                f"OIDC token email mismatch: expected {settings.scheduler_service_account}, "
                f"got {email}"
            )
            return False

        logger.info(f"OIDC token verified for service account: {email}")
        return True
    except google_auth_exceptions.GoogleAuthError as e:
        logger.warning(f"OIDC token verification failed: {e}")
        return False
    except ValueError as e:
        logger.warning(f"OIDC token validation error: {e}")
        return False


def verify_scheduler_auth(
    authorization: str | None = Header(None, description="Bearer token for OIDC authentication"),
    x_scheduler_api_key: str | None = Header(
        None, description="Legacy API key for scheduler authentication"
    ),
) -> None:
    """Accept an OIDC token (preferred) or the X-Scheduler-API-Key header."""
    if authorization:
        if verify_oidc_token(authorization):
            return

    if x_scheduler_api_key:
        if settings.scheduler_api_key and x_scheduler_api_key == settings.scheduler_api_key:
            return
        raise HTTPException(
            status_code=401,
            detail="Invalid scheduler API key",
        )

    raise HTTPException(
        status_code=401,
        detail="Authentication required. Provide OIDC token or X-Scheduler-API-Key header.",
    )


@router.post("/sweep-waitlist", response_model=SweepResponse)
async def sweep_waitlist(
    _: None = Depends(verify_scheduler_auth),
) -> SweepResponse:
    """
    Expire lapsed waitlist holds and offer their slots to the next entries.

    Idempotent: expiry is decided by lock_expiry alone, and a slot that has already
    been re-offered is occupied by the new hold, so repeated calls make no new offers.
    """
    now = utcnow()
    try:
        result = await booking_service.sweep_waitlist(now)
    except Exception as e:
        logger.exception(f"Waitlist sweep failed: {e}")
        raise HTTPException(status_code=500, detail="Waitlist sweep failed") from e

    return SweepResponse(
        executed_at=now,
        expired=result.expired,
        offers_made=len(result.offers),
        offers=result.offers,
    )

import logging

from fastapi import APIRouter, Form, Header, HTTPException, Request

from teesheet.services.database_service import database_service
from teesheet.services.notification_service import notification_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])

DELIVERED_STATUSES = {"sent", "delivered", "read"}
FAILED_STATUSES = {"failed", "undelivered"}


@router.post("/twilio/status")
async def handle_sms_status(
    request: Request,
    message_sid: str = Form(..., alias="MessageSid"),
    message_status: str = Form(..., alias="MessageStatus"),
    error_code: str = Form(None, alias="ErrorCode"),
    x_twilio_signature: str = Header(None, alias="X-Twilio-Signature"),
) -> dict[str, str]:
    """
    Record a delivery report for a promotion offer.

    Security: When Twilio credentials are configured (twilio_auth_token is set),
    the X-Twilio-Signature header is required and validated. In dev mode (no
    credentials), validation is skipped to allow local testing.

    Only notification bookkeeping changes; the waitlist entry's status and hold are
    never touched by a delivery report.
    """
    url = str(request.url)
    form_data = await request.form()
    params = {key: str(value) for key, value in form_data.items()}

    if not notification_service.validate_request(url, params, x_twilio_signature):
        raise HTTPException(status_code=403, detail="Invalid or missing Twilio signature")

    status = message_status.lower()
    logger.info(f"SMS status update - SID: {message_sid}, Status: {status}")
    if status in FAILED_STATUSES:
        error = f"{status} (error code {error_code})" if error_code else status
        await database_service.record_delivery_status(message_sid, delivered=False, error=error)
    elif status in DELIVERED_STATUSES:
        await database_service.record_delivery_status(message_sid, delivered=True)

    return {"status": "received"}

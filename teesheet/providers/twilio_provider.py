import logging
from typing import Any

from twilio.request_validator import RequestValidator
from twilio.rest import Client

from teesheet.config import settings
from teesheet.providers.sms_base import SMSProvider, SMSResult

logger = logging.getLogger(__name__)

WHATSAPP_PREFIX = "whatsapp:"


class TwilioSMSProvider(SMSProvider):
    """Delivers waitlist offers and confirmations through the Twilio Messages API.

    The same API serves SMS and WhatsApp; for WhatsApp both numbers carry the
    'whatsapp:' prefix. When twilio_status_callback_url is set, Twilio posts delivery
    reports there (see /webhooks/twilio/status).
    """

    def __init__(self) -> None:
        self._client: Client | None = None
        self._validator: RequestValidator | None = None

    @property
    def client(self) -> Client:
        if self._client is None:
            self._client = Client(settings.twilio_account_sid, settings.twilio_auth_token)
        return self._client

    @property
    def validator(self) -> RequestValidator:
        if self._validator is None:
            self._validator = RequestValidator(settings.twilio_auth_token)
        return self._validator

    @property
    def channel(self) -> str:
        return "WhatsApp" if settings.twilio_channel.lower() == "whatsapp" else "SMS"

    @property
    def configured(self) -> bool:
        return bool(settings.twilio_account_sid and settings.twilio_auth_token)

    @staticmethod
    def normalize_phone_number(phone_number: str) -> str:
        """Strip the 'whatsapp:' channel prefix so numbers match stored records."""
        if phone_number.startswith(WHATSAPP_PREFIX):
            return phone_number[len(WHATSAPP_PREFIX) :]
        return phone_number

    def _address(self, phone_number: str) -> str:
        number = self.normalize_phone_number(phone_number)
        return f"{WHATSAPP_PREFIX}{number}" if self.channel == "WhatsApp" else number

    def _message_params(self, to_number: str, message: str) -> dict[str, Any]:
        params: dict[str, Any] = {
            "body": message,
            "from_": self._address(settings.twilio_phone_number),
            "to": self._address(to_number),
        }
        if settings.twilio_status_callback_url:
            params["status_callback"] = settings.twilio_status_callback_url
        return params

    def validate_request(self, url: str, params: dict[str, str], signature: str | None) -> bool:
        """
        Check the X-Twilio-Signature of a delivery report.

        Without an auth token (local development) every request is accepted. With
        one, a missing or mismatched signature is rejected.
        """
        if not settings.twilio_auth_token:
            return True
        if not signature:
            return False
        return self.validator.validate(url, params, signature)

    async def send_sms(self, to_number: str, message: str) -> SMSResult:
        """
        Send a message on the configured channel.

        Delivery errors are returned in the result rather than raised, so a failed
        send never interrupts the caller's state transition.
        """
        if not self.configured:
            logger.info(f"[{self.channel} Mock] To: {to_number}, Message: {message}")
            return SMSResult(success=True, message_sid="mock_sid")

        try:
            sent = self.client.messages.create(**self._message_params(to_number, message))
        except Exception as e:
            logger.warning(f"Error sending {self.channel} to {to_number}: {e}")
            return SMSResult(success=False, error_message=str(e))
        logger.info(f"{self.channel} {sent.sid} queued for {to_number}")
        return SMSResult(success=True, message_sid=sent.sid)


class MockSMSProvider(SMSProvider):
    """In-memory provider for tests and local runs without Twilio credentials.

    With fail=True every send reports a delivery failure, which exercises the
    needs_follow_up path.
    """

    def __init__(self, fail: bool = False) -> None:
        self.sent_messages: list[dict] = []
        self.fail = fail

    def validate_request(self, url: str, params: dict[str, str], signature: str | None) -> bool:
        return True

    async def send_sms(self, to_number: str, message: str) -> SMSResult:
        if self.fail:
            return SMSResult(success=False, error_message="Mock delivery failure")
        self.sent_messages.append({"to": to_number, "message": message})
        logger.info(f"[SMS Mock] To: {to_number}, Message: {message}")
        return SMSResult(success=True, message_sid=f"mock_sid_{len(self.sent_messages)}")

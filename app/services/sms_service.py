import logging

from twilio.base.exceptions import TwilioException
from twilio.rest import Client

from app.core.config import settings

logger = logging.getLogger(__name__)


def to_international(phone: str) -> str:
    """05XXXXXXXX -> +9725XXXXXXXX"""
    return f"{settings.twilio_country_prefix}{phone[1:]}" if phone.startswith("0") else phone


def _client() -> Client:
    return Client(settings.twilio_account_sid, settings.twilio_auth_token)


def send_otp(phone: str, code: str, method: str = "sms") -> None:
    """Deliver a verification code by SMS or voice call (blocking; run as a background task).

    Without Twilio credentials the code is only logged, which is what local
    development relies on.
    """
    if not settings.sms_enabled:
        logger.info("SMS disabled (Twilio not configured). Code for %s: %s", phone, code)
        return
    text = f"Your {settings.site_name} verification code is: {code}"
    try:
        client = _client()
        if method == "call":
            spoken = ", ".join(code)
            twiml = (
                f'<Response><Say language="{settings.twilio_voice_language}">'
                f"{text}. {spoken}. {spoken}</Say></Response>"
            )
            call = client.calls.create(twiml=twiml, from_=settings.twilio_phone_number, to=to_international(phone))
            logger.info("OTP call placed to %s: %s", phone, call.sid)
        else:
            message = client.messages.create(body=text, from_=settings.twilio_phone_number, to=to_international(phone))
            logger.info("OTP SMS sent to %s: %s", phone, message.sid)
    except TwilioException as e:
        logger.error("Twilio error sending OTP to %s: %s", phone, e)

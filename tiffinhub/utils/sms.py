import logging

from flask import current_app

from .whatsapp import normalise_phone, post_twilio_message, twilio_credentials

logger = logging.getLogger(__name__)


def send_sms(phone: str, message: str) -> dict:
    from_number = current_app.config.get("TWILIO_SMS_FROM")
    if not twilio_credentials() or not from_number:
        logger.info("Twilio SMS not configured; skipping message to %s", phone)
        return {"success": False, "reason": "Twilio not configured"}
    payload = {"From": from_number, "To": normalise_phone(phone), "Body": message}
    return post_twilio_message(payload, "SMS")

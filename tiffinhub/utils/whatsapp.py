from __future__ import annotations

import json
import logging
from typing import Dict, Optional

import requests
from flask import current_app

from ..errors import MessagingError
from ..extensions import db

logger = logging.getLogger(__name__)

WHATSAPP_PREFIX = "whatsapp:"


def twilio_credentials() -> Optional[tuple]:
    cfg = current_app.config
    sid = cfg.get("TWILIO_ACCOUNT_SID")
    token = cfg.get("TWILIO_AUTH_TOKEN")
    if not (sid and token):
        return None
    return sid, token


def normalise_phone(raw: str) -> str:
    phone = (raw or "").strip()
    if phone.startswith(WHATSAPP_PREFIX):
        phone = phone[len(WHATSAPP_PREFIX):]
    if phone and not phone.startswith("+"):
        phone = f"+{phone}"
    return phone


def post_twilio_message(payload: Dict[str, str], channel: str) -> dict:
    sid, token = twilio_credentials()
    api_url = current_app.config.get("TWILIO_API_URL", "https://api.twilio.com/2010-04-01")
    url = f"{api_url.rstrip('/')}/Accounts/{sid}/Messages.json"
    try:
        resp = requests.post(url, data=payload, auth=(sid, token), timeout=10)
    except requests.RequestException as exc:
        logger.exception("%s send to %s failed", channel, payload.get("To"))
        raise MessagingError(f"{channel} send failed: {exc}") from exc
    if resp.status_code >= 400:
        logger.warning("%s API error %s: %s", channel, resp.status_code, resp.text)
        raise MessagingError(f"{channel} API error {resp.status_code}")
    body = resp.json()
    logger.info("%s message sent to %s (sid=%s, status=%s)",
                channel, payload.get("To"), body.get("sid"), body.get("status"))
    return {"success": True, "messageSid": body.get("sid"), "status": body.get("status")}


def send_whatsapp_message(
    phone: str,
    message: str,
    template: Optional[str] = None,
    variables: Optional[Dict[str, str]] = None,
) -> dict:
    """Send a WhatsApp message through Twilio.

    When ``template`` names a configured content template its SID is used
    instead of the free-form body. Returns a result dict; provider failures
    raise ``MessagingError``.
    """

    from_number = current_app.config.get("TWILIO_WHATSAPP_FROM")
    if not twilio_credentials() or not from_number:
        logger.info("Twilio WhatsApp not configured; skipping message to %s", phone)
        return {"success": False, "reason": "Twilio not configured"}
    if not phone:
        return {"success": False, "reason": "Missing phone number"}

    sender = from_number if from_number.startswith(WHATSAPP_PREFIX) else f"{WHATSAPP_PREFIX}{from_number}"
    payload = {"From": sender, "To": f"{WHATSAPP_PREFIX}{normalise_phone(phone)}"}

    template_sid = current_app.config.get("WHATSAPP_TEMPLATES", {}).get(template or "")
    if template_sid:
        payload["ContentSid"] = template_sid
        if variables:
            payload["ContentVariables"] = json.dumps(variables)
    else:
        payload["Body"] = message

    return post_twilio_message(payload, "WhatsApp")


def merchant_limit(merchant) -> int:
    floor = current_app.config.get("WHATSAPP_MERCHANT_MIN_LIMIT", 400)
    return max(merchant.whatsapp_limit or floor, floor)


def send_merchant_whatsapp(merchant, phone: str, message: str, **kwargs) -> dict:
    """Send on behalf of a merchant, respecting and counting their quota."""
    if merchant is None:
        return {"success": False, "reason": "Merchant not found"}

    sent = merchant.whatsapp_sent_count or 0
    limit = merchant_limit(merchant)
    if sent >= limit:
        logger.info("Merchant %s hit WhatsApp limit (%s/%s)", merchant.id, sent, limit)
        return {"success": False, "reason": "Message limit reached"}

    result = send_whatsapp_message(phone, message, **kwargs)
    if result.get("success"):
        merchant.whatsapp_sent_count = sent + 1
        db.session.commit()
    return result

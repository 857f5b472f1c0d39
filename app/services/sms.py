# app/services/sms.py
import logging
import os
import re
import uuid
from dataclasses import dataclass

import requests
from twilio.base.exceptions import TwilioException
from twilio.rest import Client

from app import config
from app.errors import SmsSendError
from app.logging_config import mask_phone

logger = logging.getLogger(__name__)

# Twilio accepts up to 1600 characters per message body
MAX_BODY_CHARS = 1600

_SCRIPT_RE = re.compile(r"<script[^>]*>.*?</script>", re.IGNORECASE | re.DOTALL)
_IFRAME_RE = re.compile(r"<iframe[^>]*>.*?</iframe>", re.IGNORECASE | re.DOTALL)
_JS_PROTO_RE = re.compile(r"javascript:", re.IGNORECASE)
_EVENT_ATTR_RE = re.compile(r"on\w+\s*=", re.IGNORECASE)


@dataclass
class SmsResult:
    sid: str
    status: str


def _truthy(val) -> bool:
    return str(val).strip().lower() in ("1", "true", "yes", "y", "on")


def is_dry_run() -> bool:
    # Prefer live env each call; fall back to config attr; default false
    env_val = os.getenv("SMS_DRY_RUN", None)
    if env_val is not None:
        return _truthy(env_val)
    return bool(getattr(config.settings, "SMS_DRY_RUN", False))


def _client() -> Client:
    account = config.settings.TWILIO_ACCOUNT_SID
    token = config.settings.TWILIO_AUTH_TOKEN
    if not (account and token):
        raise SmsSendError("Missing TWILIO_ACCOUNT_SID / TWILIO_AUTH_TOKEN")
    return Client(account, token)


def sanitize_input(text: str | None) -> str:
    """
    Strip markup that could end up rendered in the dashboard and cap
    the length to what a single SMS body can carry.
    """
    if not text:
        return ""
    cleaned = _SCRIPT_RE.sub("", text)
    cleaned = _IFRAME_RE.sub("", cleaned)
    cleaned = _JS_PROTO_RE.sub("", cleaned)
    cleaned = _EVENT_ATTR_RE.sub("", cleaned)
    return cleaned[:MAX_BODY_CHARS].strip()


def send_sms(to: str, from_: str, body: str) -> SmsResult:
    """
    Send one SMS from a business number.
    Honors is_dry_run() at call time.
    Raises SmsSendError on any provider / configuration failure.
    """
    if not to or not from_:
        raise SmsSendError(f"missing to/from (to={to!r} from={from_!r})")

    body = (body or "")[:MAX_BODY_CHARS]

    if is_dry_run():
        sid = f"DRYRUN{uuid.uuid4().hex[:26]}"
        logger.info("[SMS DRY-RUN] to=%s from=%s body=%r", mask_phone(to), from_, body[:80])
        return SmsResult(sid=sid, status="dry-run")

    try:
        msg = _client().messages.create(to=to, from_=from_, body=body)
    except (TwilioException, requests.RequestException) as e:
        logger.error("[SMS ERROR] to=%s err=%s", mask_phone(to), e)
        raise SmsSendError(str(e)) from e

    logger.info("[SMS SENT] sid=%s to=%s status=%s", msg.sid, mask_phone(to), msg.status)
    return SmsResult(sid=msg.sid, status=str(msg.status or "queued"))

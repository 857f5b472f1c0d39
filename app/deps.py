# app/deps.py
import logging
from typing import Optional

from fastapi import Header, HTTPException, Request, status
from twilio.request_validator import RequestValidator

from app import config

logger = logging.getLogger(__name__)


def _external_url_for_signature(request: Request) -> str:
    hdr = request.headers
    proto = (hdr.get("x-forwarded-proto") or request.url.scheme or "https").split(",")[0].strip()
    host = (hdr.get("x-forwarded-host") or hdr.get("host") or request.url.netloc).split(",")[0].strip()
    url = f"{proto}://{host}{request.url.path}"
    if request.url.query:
        url += f"?{request.url.query}"
    return url


async def verify_twilio_signature(request: Request) -> None:
    """Reject webhook calls not signed with our Twilio auth token (when enabled)."""
    if not config.settings.TWILIO_VALIDATE_SIGNATURES:
        return
    signature = request.headers.get("X-Twilio-Signature", "")
    if not signature:
        logger.warning("[TWILIO] unsigned webhook call to %s rejected", request.url.path)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid Twilio signature")

    params = {}
    ct = (request.headers.get("content-type") or "").lower()
    if ct.startswith("application/x-www-form-urlencoded") or ct.startswith("multipart/form-data"):
        form = await request.form()
        params = dict(form)

    validator = RequestValidator(config.settings.TWILIO_AUTH_TOKEN)
    if not validator.validate(_external_url_for_signature(request), params, signature):
        logger.warning("[TWILIO] signature validation failed path=%s", request.url.path)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid Twilio signature")


async def require_api_key(
    x_api_key: Optional[str] = Header(None, alias="X-API-Key"),
    authorization: Optional[str] = Header(None),
) -> str:
    auth = (authorization or "").strip()
    bearer = auth[7:].strip() if auth.lower().startswith("bearer ") else ""
    key = (x_api_key or "").strip() or bearer

    if not key or key not in config.settings.API_KEYS:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing or unknown API key")
    return key

# app/utils/phone.py
from typing import Optional

import phonenumbers
from fastapi import HTTPException


def to_e164(raw: Optional[str], region: str = "US") -> Optional[str]:
    """
    Best-effort E.164 normalisation. Returns None when the number
    can't be parsed or isn't valid.
    """
    if not raw or not raw.strip():
        return None
    try:
        pn = phonenumbers.parse(raw.strip(), region)
    except phonenumbers.NumberParseException:
        return None
    if not phonenumbers.is_possible_number(pn) or not phonenumbers.is_valid_number(pn):
        return None
    return phonenumbers.format_number(pn, phonenumbers.PhoneNumberFormat.E164)


def webhook_phone(raw: Optional[str]) -> str:
    """Phones from Twilio webhooks: normalise when possible, else keep as sent."""
    raw = (raw or "").strip()
    return to_e164(raw) or raw


def normalize_us_phone(raw: str) -> str:
    """
    Normalize US/CA numbers to E.164 (+1XXXXXXXXXX).
    Raise 422 if invalid so the API returns a clean error.
    """
    e164 = to_e164(raw, "US")
    if not e164:
        raise HTTPException(status_code=422, detail="Invalid phone number. Use format like +18145551234.")
    return e164

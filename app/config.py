# app/config.py
import os
from pathlib import Path

from dotenv import load_dotenv

# load .env into process env vars
ROOT = Path(__file__).resolve().parents[1]
load_dotenv(ROOT / ".env")


def _as_bool(name: str, default: bool = False) -> bool:
    val = os.getenv(name)
    if val is None:
        return default
    return str(val).strip().lower() in ("1", "true", "yes", "y", "on")


def _as_int(name: str, default: int) -> int:
    try:
        return int(str(os.getenv(name, default)).strip())
    except Exception:
        return default


def _as_float(name: str, default: float) -> float:
    try:
        return float(str(os.getenv(name, default)).strip())
    except Exception:
        return default


def _parse_api_keys(raw: str) -> set:
    """
    Accepts:  'key-one,key-two'
    Returns:  {'key-one', 'key-two'}
    """
    return {part.strip() for part in (raw or "").split(",") if part.strip()}


class Settings:
    # App
    ENV: str = os.getenv("ENV", "dev")
    PORT: int = _as_int("PORT", 8000)
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///data/app.db")

    # API auth for the admin / ai endpoints (webhooks use Twilio signatures)
    API_KEYS: set = _parse_api_keys(os.getenv("API_KEYS", ""))

    # Twilio
    TWILIO_ACCOUNT_SID: str = os.getenv("TWILIO_ACCOUNT_SID", "").strip()
    TWILIO_AUTH_TOKEN: str = os.getenv("TWILIO_AUTH_TOKEN", "").strip()
    TWILIO_VALIDATE_SIGNATURES: bool = _as_bool("TWILIO_VALIDATE_SIGNATURES", False)
    SMS_DRY_RUN: bool = _as_bool("SMS_DRY_RUN", False)

    # Gemini
    GEMINI_API_KEY: str = os.getenv("GEMINI_API_KEY", "").strip()
    GEMINI_MODEL: str = os.getenv("GEMINI_MODEL", "gemini-1.5-flash")
    GEMINI_API_BASE: str = os.getenv(
        "GEMINI_API_BASE", "https://generativelanguage.googleapis.com/v1beta"
    ).rstrip("/")
    GEMINI_TIMEOUT_SECONDS: float = _as_float("GEMINI_TIMEOUT_SECONDS", 15.0)

    # Assistant behaviour
    DEFAULT_ASSISTANT_NAME: str = os.getenv("DEFAULT_ASSISTANT_NAME", "BookFox")
    # Missed-call greeting waits min(response_delay_seconds, this cap)
    GREETING_DELAY_CAP_SECONDS: int = _as_int("GREETING_DELAY_CAP_SECONDS", 5)

    # Rate limiting (in-process, resets on restart)
    RATE_LIMIT_ENABLED: bool = _as_bool("RATE_LIMIT_ENABLED", True)
    RATE_LIMIT_PER_MINUTE: int = _as_int("RATE_LIMIT_PER_MINUTE", 60)

    # Logging
    LOG_DIR: str = os.getenv("LOG_DIR", str(ROOT / "logs"))
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()


# instantiate settings FIRST
settings = Settings()

# expose selected fields as module-level aliases (for older imports)
ENV = settings.ENV
DATABASE_URL = settings.DATABASE_URL
TWILIO_AUTH_TOKEN = settings.TWILIO_AUTH_TOKEN
TWILIO_VALIDATE_SIGNATURES = settings.TWILIO_VALIDATE_SIGNATURES

# app/services/missed_call.py
import logging
import time

from app import config
from app.db import session_scope
from app.logging_config import mask_phone
from app.models import Business
from app.schemas import Direction, LeadSource, SenderType
from app.services import conversations as convos
from app.services.ai import generate_greeting
from app.services.sms import send_sms

logger = logging.getLogger(__name__)


def greeting_delay_seconds(configured: int | None) -> int:
    """Configured delay, capped so the send stays inside the request worker's budget."""
    delay = configured if configured is not None else 30
    return max(0, min(int(delay), int(config.settings.GREETING_DELAY_CAP_SECONDS)))


def handle_missed_call(business_id: int, customer_phone: str, call_sid: str) -> bool:
    """
    Greet a caller we could not answer. Runs after the voice response has
    been returned, so every failure is logged and swallowed.
    Returns True when a greeting was sent.
    """
    try:
        return _handle_missed_call(business_id, customer_phone, call_sid)
    except Exception:
        logger.exception("[VOICE] missed-call follow-up failed business=%s from=%s", business_id, mask_phone(customer_phone))
        return False


def _handle_missed_call(business_id: int, customer_phone: str, call_sid: str) -> bool:
    with session_scope() as session:
        business = session.get(Business, business_id)
        if business is None:
            logger.warning("[VOICE] business %s vanished before follow-up", business_id)
            return False

        logger.info("[VOICE] handling missed call for %s from %s", business.name, mask_phone(customer_phone))

        ai_settings = convos.get_ai_settings(session, business.id)
        if not ai_settings or not ai_settings.auto_respond:
            logger.info("[VOICE] auto-respond disabled for business=%s", business.id)
            return False

        if convos.find_active_conversation(session, business.id, customer_phone):
            logger.info("[VOICE] active conversation exists for %s; skipping greeting", mask_phone(customer_phone))
            return False

        lead = convos.find_or_create_lead(session, business.id, customer_phone, LeadSource.MISSED_CALL.value)
        conversation, created = convos.create_conversation(session, business, lead, customer_phone)
        if not created:
            return False

        greeting = generate_greeting(
            assistant_name=convos.assistant_name_for(ai_settings),
            business_name=business.name,
            template=ai_settings.greeting_template,
        )

        time.sleep(greeting_delay_seconds(ai_settings.response_delay_seconds))

        result = send_sms(customer_phone, business.twilio_phone, greeting)

        convos.add_message(
            session,
            conversation,
            Direction.OUTBOUND,
            greeting,
            SenderType.AI,
            twilio_sid=result.sid,
            twilio_status=result.status,
        )
        convos.mark_call_processed(session, call_sid, lead.id)

        logger.info("[VOICE] greeting sent to %s conversation=%s", mask_phone(customer_phone), conversation.id)
        return True

# app/services/inbound_sms.py
"""
One customer SMS turn: store it, then either stay quiet (human mode),
hand off to a person, or reply with the assistant's answer.
"""
import logging
from dataclasses import dataclass

from sqlmodel import Session

from app.errors import AIProviderError, SmsSendError
from app.logging_config import mask_phone
from app.schemas import ConversationMode, Direction, Intent, LeadSource, SenderType
from app.services import conversations as convos
from app.services.ai import generate_response
from app.services.escalation import should_escalate
from app.services.sms import sanitize_input, send_sms

logger = logging.getLogger(__name__)

ESCALATION_MESSAGE = (
    "Thanks for chatting! I'm going to connect you with a team member who can "
    "better help. They'll reach out shortly!"
)

DEFAULT_MAX_MESSAGES = 10


@dataclass
class TurnOutcome:
    action: str  # ignored | duplicate | human_mode | escalated | replied | ai_error | send_error
    reason: str = ""
    conversation_id: int | None = None


def process_inbound_sms(
    session: Session,
    to_phone: str,
    from_phone: str,
    body: str,
    message_sid: str = "",
) -> TurnOutcome:
    business = convos.find_business_by_phone(session, to_phone)
    if business is None:
        logger.warning("[SMS] business not found for phone=%s", to_phone)
        return TurnOutcome(action="ignored", reason="business_not_found")

    if message_sid and not convos.dedupe_insert(session, source=f"twilio_sms:{business.id}", event_id=message_sid):
        logger.info("[SMS] duplicate delivery sid=%s; skipping", message_sid)
        return TurnOutcome(action="duplicate")

    ai_settings = convos.get_ai_settings(session, business.id)
    conversation, _created = convos.find_or_create_conversation(session, business, from_phone, LeadSource.SMS.value)

    # count before this message is stored
    count_so_far = conversation.message_count or 0
    text = sanitize_input(body)
    inbound = convos.add_message(
        session,
        conversation,
        Direction.INBOUND,
        text,
        SenderType.CUSTOMER,
        twilio_sid=message_sid or None,
    )

    if conversation.mode == ConversationMode.HUMAN.value:
        logger.info("[SMS] conversation=%s in human mode; no auto-reply", conversation.id)
        return TurnOutcome(action="human_mode", conversation_id=conversation.id)

    context = convos.build_context(session, business, ai_settings, conversation, exclude_message_id=inbound.id)

    try:
        ai_result = generate_response(text, context)
    except AIProviderError as e:
        logger.error("[SMS] AI call failed conversation=%s err=%s", conversation.id, e)
        return TurnOutcome(action="ai_error", reason=str(e), conversation_id=conversation.id)

    max_messages = (ai_settings.max_messages_before_human if ai_settings else None) or DEFAULT_MAX_MESSAGES
    decision = should_escalate(count_so_far, max_messages, ai_result.intent, ai_result.confidence)

    if decision.escalate:
        logger.info("[SMS] escalating conversation=%s reason=%s", conversation.id, decision.reason)
        convos.escalate_to_human(session, conversation)
        try:
            sent = send_sms(from_phone, to_phone, ESCALATION_MESSAGE)
        except SmsSendError as e:
            logger.error("[SMS] escalation notice failed to=%s err=%s", mask_phone(from_phone), e)
            return TurnOutcome(action="send_error", reason=decision.reason, conversation_id=conversation.id)
        convos.add_message(
            session,
            conversation,
            Direction.OUTBOUND,
            ESCALATION_MESSAGE,
            SenderType.AI,
            twilio_sid=sent.sid,
            twilio_status=sent.status,
            ai_intent=Intent.ESCALATION.value,
        )
        return TurnOutcome(action="escalated", reason=decision.reason, conversation_id=conversation.id)

    try:
        sent = send_sms(from_phone, to_phone, ai_result.response)
    except SmsSendError as e:
        logger.error("[SMS] reply failed to=%s err=%s", mask_phone(from_phone), e)
        return TurnOutcome(action="send_error", conversation_id=conversation.id)

    convos.add_message(
        session,
        conversation,
        Direction.OUTBOUND,
        ai_result.response,
        SenderType.AI,
        twilio_sid=sent.sid,
        twilio_status=sent.status,
        ai_intent=ai_result.intent,
        ai_confidence=ai_result.confidence,
        commit=False,
    )
    convos.apply_ai_turn(session, conversation, ai_result.collected_info, ai_result.intent)
    session.commit()

    logger.info("[SMS] AI response sent to %s: %r", mask_phone(from_phone), ai_result.response[:50])
    return TurnOutcome(action="replied", reason=ai_result.intent, conversation_id=conversation.id)

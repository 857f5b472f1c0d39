# app/services/conversations.py
"""
Persistence helpers shared by the voice and SMS webhook handlers.
"""
import logging
from typing import List, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from app import config
from app.models import (
    AISettings,
    Business,
    CallLog,
    Conversation,
    Lead,
    Message,
    WebhookDedup,
    utcnow,
)
from app.schemas import (
    ConversationContext,
    ConversationMode,
    ConversationStatus,
    Direction,
    HistoryTurn,
    LeadStatus,
    QualificationQuestion,
    SenderType,
)

logger = logging.getLogger(__name__)

HISTORY_LIMIT = 20

# collected_info field -> Lead column
LEAD_FIELD_MAP = {
    "service": "service_needed",
    "urgency": "urgency",
    "property": "property_type",
    "name": "name",
}


# ----------------------- lookups -----------------------

def find_business_by_phone(session: Session, twilio_phone: str) -> Optional[Business]:
    if not twilio_phone:
        return None
    return session.exec(select(Business).where(Business.twilio_phone == twilio_phone)).first()


def get_ai_settings(session: Session, business_id: int) -> Optional[AISettings]:
    return session.exec(select(AISettings).where(AISettings.business_id == business_id)).first()


def assistant_name_for(settings_row: Optional[AISettings]) -> str:
    name = (settings_row.assistant_name if settings_row else "") or ""
    return name.strip() or config.settings.DEFAULT_ASSISTANT_NAME


def find_active_conversation(session: Session, business_id: int, customer_phone: str) -> Optional[Conversation]:
    return session.exec(
        select(Conversation).where(
            Conversation.business_id == business_id,
            Conversation.customer_phone == customer_phone,
            Conversation.status == ConversationStatus.ACTIVE.value,
        )
    ).first()


# ----------------------- writes -----------------------

def record_call(
    session: Session,
    business_id: Optional[int],
    from_phone: str,
    to_phone: str,
    call_status: str,
    call_sid: str,
) -> CallLog:
    row = CallLog(
        business_id=business_id,
        from_phone=from_phone,
        to_phone=to_phone,
        call_status=call_status,
        twilio_sid=call_sid,
    )
    session.add(row)
    session.commit()
    session.refresh(row)
    return row


def mark_call_processed(session: Session, call_sid: str, lead_id: int) -> None:
    if not call_sid:
        return
    rows = session.exec(select(CallLog).where(CallLog.twilio_sid == call_sid)).all()
    for row in rows:
        row.processed = True
        row.lead_id = lead_id
        session.add(row)
    session.commit()


def dedupe_insert(session: Session, source: str, event_id: str) -> bool:
    """True the first time (source, event_id) is seen."""
    try:
        session.add(WebhookDedup(source=source, event_id=event_id))
        session.commit()
        return True
    except IntegrityError:
        session.rollback()
        return False


def find_or_create_lead(session: Session, business_id: int, phone: str, source: str) -> Lead:
    lead = session.exec(select(Lead).where(Lead.business_id == business_id, Lead.phone == phone)).first()
    if lead:
        return lead
    lead = Lead(business_id=business_id, phone=phone, source=source, status=LeadStatus.NEW.value)
    try:
        session.add(lead)
        session.commit()
    except IntegrityError:
        # created by a concurrent request
        session.rollback()
        lead = session.exec(select(Lead).where(Lead.business_id == business_id, Lead.phone == phone)).one()
        return lead
    session.refresh(lead)
    return lead


def create_conversation(session: Session, business: Business, lead: Lead, customer_phone: str) -> Tuple[Conversation, bool]:
    """
    Insert a new active conversation. Returns (conversation, created).
    If the active-conversation index rejects the insert, the existing
    active conversation is returned with created=False.
    """
    convo = Conversation(
        business_id=business.id,
        lead_id=lead.id,
        business_phone=business.twilio_phone,
        customer_phone=customer_phone,
        status=ConversationStatus.ACTIVE.value,
        mode=ConversationMode.AI.value,
        ai_context={"collected_info": {}},
    )
    try:
        session.add(convo)
        session.commit()
    except IntegrityError:
        session.rollback()
        existing = find_active_conversation(session, business.id, customer_phone)
        if existing is None:
            raise
        logger.info("[CONVO] active conversation already exists id=%s; reusing", existing.id)
        return existing, False
    session.refresh(convo)
    return convo, True


def find_or_create_conversation(
    session: Session,
    business: Business,
    customer_phone: str,
    source: str,
) -> Tuple[Conversation, bool]:
    convo = find_active_conversation(session, business.id, customer_phone)
    if convo:
        return convo, False
    lead = find_or_create_lead(session, business.id, customer_phone, source)
    return create_conversation(session, business, lead, customer_phone)


def add_message(
    session: Session,
    conversation: Conversation,
    direction: Direction,
    content: str,
    sender_type: SenderType,
    twilio_sid: Optional[str] = None,
    twilio_status: Optional[str] = None,
    ai_intent: Optional[str] = None,
    ai_confidence: Optional[float] = None,
    commit: bool = True,
) -> Message:
    msg = Message(
        conversation_id=conversation.id,
        direction=direction.value,
        content=content,
        sender_type=sender_type.value,
        twilio_sid=twilio_sid,
        twilio_status=twilio_status,
        ai_intent=ai_intent,
        ai_confidence=ai_confidence,
    )
    session.add(msg)
    conversation.message_count = (conversation.message_count or 0) + 1
    conversation.updated_at = utcnow()
    session.add(conversation)
    if commit:
        session.commit()
        session.refresh(msg)
    return msg


def escalate_to_human(session: Session, conversation: Conversation) -> None:
    """One-way: nothing in the automation sets mode back to ai."""
    conversation.mode = ConversationMode.HUMAN.value
    conversation.updated_at = utcnow()
    session.add(conversation)
    session.commit()


def apply_ai_turn(session: Session, conversation: Conversation, collected_info: dict, intent: str) -> None:
    """Store merged qualification fields and copy the lead-relevant ones onto the Lead."""
    context = dict(conversation.ai_context or {})
    context["collected_info"] = dict(collected_info)
    context["last_intent"] = intent
    # reassign so the JSON column is flagged dirty
    conversation.ai_context = context
    conversation.updated_at = utcnow()
    session.add(conversation)

    lead = session.get(Lead, conversation.lead_id)
    if lead:
        changed = False
        for info_key, lead_attr in LEAD_FIELD_MAP.items():
            value = collected_info.get(info_key)
            if value and getattr(lead, lead_attr) != value:
                setattr(lead, lead_attr, value)
                changed = True
        if changed:
            lead.updated_at = utcnow()
            session.add(lead)


# ----------------------- AI context -----------------------

def message_history(session: Session, conversation_id: int, exclude_id: Optional[int] = None) -> List[HistoryTurn]:
    """Most recent HISTORY_LIMIT turns, oldest first."""
    stmt = select(Message).where(Message.conversation_id == conversation_id)
    if exclude_id is not None:
        stmt = stmt.where(Message.id != exclude_id)
    rows = session.exec(stmt.order_by(Message.created_at.desc(), Message.id.desc()).limit(HISTORY_LIMIT)).all()
    return [
        HistoryTurn(
            role="customer" if m.sender_type == SenderType.CUSTOMER.value else "ai",
            content=m.content,
        )
        for m in reversed(rows)
    ]


def build_context(
    session: Session,
    business: Business,
    ai_settings: Optional[AISettings],
    conversation: Conversation,
    exclude_message_id: Optional[int] = None,
) -> ConversationContext:
    questions = ai_settings.qualification_questions if ai_settings else []
    return ConversationContext(
        business_name=business.name,
        assistant_name=assistant_name_for(ai_settings),
        services_offered=list((ai_settings.services_offered if ai_settings else None) or []),
        pricing_notes=(ai_settings.pricing_notes if ai_settings else None) or None,
        qualification_questions=[QualificationQuestion.from_raw(q) for q in (questions or []) if isinstance(q, dict)],
        business_hours=dict(business.business_hours or {}),
        collected_info=dict((conversation.ai_context or {}).get("collected_info") or {}),
        message_history=message_history(session, conversation.id, exclude_id=exclude_message_id),
    )

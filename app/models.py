# app/models.py
from datetime import datetime, timezone
from typing import Optional, List, Dict, Any

from sqlalchemy import Column, Index, JSON, UniqueConstraint, text
from sqlmodel import SQLModel, Field

from app.schemas import (
    ConversationMode,
    ConversationStatus,
    LeadSource,
    LeadStatus,
)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


DEFAULT_QUALIFICATION_QUESTIONS = [
    {"id": "service", "question": "What service do you need help with?", "required": True},
    {"id": "urgency", "question": "How soon do you need this done?", "required": True},
    {"id": "property", "question": "Is this for a home or a business?", "required": False},
    {"id": "name", "question": "What's your name?", "required": True},
    {"id": "address", "question": "What's the service address?", "required": False},
    {"id": "preferred_time", "question": "When works best for a visit?", "required": False},
]

# ---------- Core tables ----------


class Business(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    created_at: datetime = Field(default_factory=utcnow, index=True)
    name: str
    # Twilio number customers call / text; resolves the business on webhooks
    twilio_phone: str = Field(index=True, unique=True, max_length=20)
    timezone: str = Field(default="America/New_York", max_length=64)
    trade_type: Optional[str] = Field(default=None, max_length=64)
    business_hours: Dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON))


class AISettings(SQLModel, table=True):
    __tablename__ = "ai_settings"

    id: Optional[int] = Field(default=None, primary_key=True)
    business_id: int = Field(foreign_key="business.id", index=True, unique=True)
    assistant_name: str = Field(default="BookFox", max_length=64)
    greeting_template: Optional[str] = None
    auto_respond: bool = True
    response_delay_seconds: int = 30
    max_messages_before_human: int = 10
    qualification_questions: List[Dict[str, Any]] = Field(
        default_factory=lambda: [dict(q) for q in DEFAULT_QUALIFICATION_QUESTIONS],
        sa_column=Column(JSON),
    )
    services_offered: List[str] = Field(default_factory=list, sa_column=Column(JSON))
    pricing_notes: Optional[str] = None


class Lead(SQLModel, table=True):
    __table_args__ = (UniqueConstraint("business_id", "phone", name="uq_lead_business_phone"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    created_at: datetime = Field(default_factory=utcnow, index=True)
    updated_at: datetime = Field(default_factory=utcnow)
    business_id: int = Field(foreign_key="business.id", index=True)
    phone: str = Field(max_length=20)
    name: Optional[str] = None
    status: str = Field(default=LeadStatus.NEW.value, max_length=20)
    service_needed: Optional[str] = None
    urgency: Optional[str] = None
    property_type: Optional[str] = None
    source: str = Field(default=LeadSource.SMS.value, max_length=20)


class Conversation(SQLModel, table=True):
    # at most one active conversation per (business, customer)
    __table_args__ = (
        Index(
            "uq_conversation_active_customer",
            "business_id",
            "customer_phone",
            unique=True,
            sqlite_where=text("status = 'active'"),
            postgresql_where=text("status = 'active'"),
        ),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    created_at: datetime = Field(default_factory=utcnow, index=True)
    updated_at: datetime = Field(default_factory=utcnow)
    business_id: int = Field(foreign_key="business.id", index=True)
    lead_id: int = Field(foreign_key="lead.id", index=True)
    business_phone: str = Field(max_length=20)
    customer_phone: str = Field(max_length=20, index=True)
    status: str = Field(default=ConversationStatus.ACTIVE.value, max_length=20)
    mode: str = Field(default=ConversationMode.AI.value, max_length=10)
    # {"collected_info": {...}, "last_intent": "..."}
    ai_context: Dict[str, Any] = Field(
        default_factory=lambda: {"collected_info": {}},
        sa_column=Column(JSON),
    )
    message_count: int = 0


class Message(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    created_at: datetime = Field(default_factory=utcnow, index=True)
    conversation_id: int = Field(foreign_key="conversation.id", index=True)
    direction: str = Field(max_length=10)
    content: str
    sender_type: str = Field(max_length=10)
    twilio_sid: Optional[str] = Field(default=None, max_length=64)
    twilio_status: Optional[str] = Field(default=None, max_length=32)
    ai_intent: Optional[str] = Field(default=None, max_length=32)
    ai_confidence: Optional[float] = None


class CallLog(SQLModel, table=True):
    __tablename__ = "call_log"

    id: Optional[int] = Field(default=None, primary_key=True)
    created_at: datetime = Field(default_factory=utcnow, index=True)
    # None when the dialed number does not belong to any business
    business_id: Optional[int] = Field(default=None, foreign_key="business.id", index=True)
    from_phone: str = Field(default="", max_length=20)
    to_phone: str = Field(default="", max_length=20)
    call_status: str = Field(default="", max_length=32)
    twilio_sid: str = Field(default="", max_length=64, index=True)
    processed: bool = False
    lead_id: Optional[int] = Field(default=None, foreign_key="lead.id")


# ---------- Idempotency helper ----------


class WebhookDedup(SQLModel, table=True):
    __tablename__ = "webhook_dedup"
    __table_args__ = (UniqueConstraint("source", "event_id", name="uq_webhook_source_event"),)

    id: int | None = Field(default=None, primary_key=True)
    created_at: datetime = Field(default_factory=utcnow)
    source: str = Field(index=True)
    event_id: str = Field(index=True)

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


# ---------- domain enums ----------

class QualificationField(str, Enum):
    SERVICE = "service"
    URGENCY = "urgency"
    PROPERTY = "property"
    NAME = "name"
    ADDRESS = "address"
    PREFERRED_TIME = "preferred_time"


QUALIFICATION_FIELD_IDS = tuple(f.value for f in QualificationField)


class Intent(str, Enum):
    GREETING = "greeting"
    INQUIRY = "inquiry"
    SCHEDULING = "scheduling"
    OBJECTION = "objection"
    INFORMATION = "information"
    OFFTOPIC = "offtopic"
    GOODBYE = "goodbye"
    # only used to tag the hand-off message, never produced by the model
    ESCALATION = "escalation"


MODEL_INTENTS = tuple(i.value for i in Intent if i is not Intent.ESCALATION)


class ConversationMode(str, Enum):
    AI = "ai"
    HUMAN = "human"


class ConversationStatus(str, Enum):
    ACTIVE = "active"
    CLOSED = "closed"


class Direction(str, Enum):
    INBOUND = "inbound"
    OUTBOUND = "outbound"


class SenderType(str, Enum):
    CUSTOMER = "customer"
    AI = "ai"
    HUMAN = "human"


class LeadSource(str, Enum):
    MISSED_CALL = "missed_call"
    SMS = "sms"
    MANUAL = "manual"
    WEBSITE = "website"
    REFERRAL = "referral"


class LeadStatus(str, Enum):
    NEW = "new"
    CONTACTED = "contacted"
    QUALIFIED = "qualified"
    APPOINTMENT_SET = "appointment_set"
    CONVERTED = "converted"
    LOST = "lost"


# ---------- AI context / result ----------

@dataclass
class QualificationQuestion:
    id: str
    question: str
    required: bool = False

    @classmethod
    def from_raw(cls, raw: Dict[str, Any]) -> "QualificationQuestion":
        return cls(
            id=str(raw.get("id") or "").strip(),
            question=str(raw.get("question") or "").strip(),
            required=bool(raw.get("required", False)),
        )


@dataclass
class HistoryTurn:
    role: str  # "customer" | "ai"
    content: str


@dataclass
class ConversationContext:
    business_name: str
    assistant_name: str
    services_offered: List[str] = field(default_factory=list)
    pricing_notes: Optional[str] = None
    qualification_questions: List[QualificationQuestion] = field(default_factory=list)
    business_hours: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    collected_info: Dict[str, str] = field(default_factory=dict)
    message_history: List[HistoryTurn] = field(default_factory=list)


@dataclass
class AIResult:
    response: str
    intent: str
    confidence: float
    collected_info: Dict[str, str]


# ---------- API bodies ----------

class AIRespondIn(BaseModel):
    action: str
    business_id: Optional[int] = None
    conversation_id: Optional[int] = None
    message: Optional[str] = None


class BusinessIn(BaseModel):
    name: str
    twilio_phone: str
    trade_type: Optional[str] = None
    timezone: str = "America/New_York"
    business_hours: Optional[Dict[str, Dict[str, Any]]] = None


class AISettingsUpdate(BaseModel):
    assistant_name: Optional[str] = None
    greeting_template: Optional[str] = None
    auto_respond: Optional[bool] = None
    response_delay_seconds: Optional[int] = Field(default=None, ge=0)
    max_messages_before_human: Optional[int] = Field(default=None, ge=1)
    qualification_questions: Optional[List[Dict[str, Any]]] = None
    services_offered: Optional[List[str]] = None
    pricing_notes: Optional[str] = None

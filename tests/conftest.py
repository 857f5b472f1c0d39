import os
from dataclasses import dataclass, field
from typing import Any, List

# keep the module-level engine off disk; each test swaps in its own
os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from fastapi.testclient import TestClient
from sqlmodel import SQLModel, Session

from app import config, db
from app.models import AISettings, Business
from app.schemas import AIResult
from app.services.rate_limit import limiter
from app.services.sms import SmsResult

BUSINESS_PHONE = "+16502530000"
CUSTOMER_PHONE = "+14155552671"


@dataclass
class SentSms:
    to: str
    from_: str
    body: str


@dataclass
class FakeSmsSender:
    sent: List[SentSms] = field(default_factory=list)
    error: Exception | None = None

    def __call__(self, to: str, from_: str, body: str) -> SmsResult:
        if self.error is not None:
            raise self.error
        self.sent.append(SentSms(to=to, from_=from_, body=body))
        return SmsResult(sid=f"SM{len(self.sent):032d}", status="queued")


@dataclass
class FakeAI:
    """Scripted stand-in for generate_response; records what it was asked."""

    results: List[Any] = field(default_factory=list)
    calls: List[tuple] = field(default_factory=list)

    def queue(self, response="Sure, happy to help!", intent="inquiry", confidence=0.9, extracted=None):
        self.results.append(("ok", response, intent, confidence, extracted or {}))

    def fail(self, exc: Exception):
        self.results.append(("error", exc))

    def __call__(self, message, context) -> AIResult:
        self.calls.append((message, context))
        entry = self.results.pop(0) if self.results else ("ok", "Sure, happy to help!", "inquiry", 0.9, {})
        if entry[0] == "error":
            raise entry[1]
        _, response, intent, confidence, extracted = entry
        merged = dict(context.collected_info)
        merged.update(extracted)
        return AIResult(response=response, intent=intent, confidence=confidence, collected_info=merged)


@pytest.fixture
def engine(monkeypatch):
    eng = db.build_engine("sqlite://")
    SQLModel.metadata.create_all(eng)
    monkeypatch.setattr(db, "engine", eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session(engine):
    with Session(engine) as s:
        yield s


@pytest.fixture(autouse=True)
def test_settings(monkeypatch):
    monkeypatch.setattr(config.settings, "API_KEYS", {"test-key"})
    monkeypatch.setattr(config.settings, "TWILIO_VALIDATE_SIGNATURES", False)
    monkeypatch.setattr(config.settings, "RATE_LIMIT_ENABLED", False)
    monkeypatch.setattr(config.settings, "GREETING_DELAY_CAP_SECONDS", 0)
    monkeypatch.setattr(config.settings, "GEMINI_API_KEY", "")
    monkeypatch.delenv("SMS_DRY_RUN", raising=False)
    limiter.reset()
    yield config.settings
    limiter.reset()


@pytest.fixture
def business(session) -> Business:
    b = Business(
        name="Acme Plumbing",
        twilio_phone=BUSINESS_PHONE,
        business_hours={"monday": {"start": "08:00", "end": "17:00", "enabled": True}},
    )
    session.add(b)
    session.flush()
    session.add(AISettings(
        business_id=b.id,
        assistant_name="Foxy",
        auto_respond=True,
        response_delay_seconds=30,
        max_messages_before_human=10,
        services_offered=["leak repair", "drain cleaning"],
        pricing_notes=None,
    ))
    session.commit()
    session.refresh(b)
    return b


@pytest.fixture
def sms_sender(monkeypatch) -> FakeSmsSender:
    sender = FakeSmsSender()
    monkeypatch.setattr("app.services.inbound_sms.send_sms", sender)
    monkeypatch.setattr("app.services.missed_call.send_sms", sender)
    return sender


@pytest.fixture
def fake_ai(monkeypatch) -> FakeAI:
    ai = FakeAI()
    monkeypatch.setattr("app.services.inbound_sms.generate_response", ai)
    monkeypatch.setattr("app.routers.ai.generate_response", ai)
    return ai


@pytest.fixture
def client(engine):
    from app.main import app

    return TestClient(app)

from sqlmodel import select

from app import config
from app.errors import SmsSendError
from app.models import AISettings, CallLog, Conversation, Lead, Message
from app.services import conversations as convos
from app.services.missed_call import greeting_delay_seconds, handle_missed_call

from conftest import BUSINESS_PHONE, CUSTOMER_PHONE


def _log_call(session, business, sid="CA1", status="no-answer"):
    return convos.record_call(session, business.id, CUSTOMER_PHONE, BUSINESS_PHONE, status, sid)


def test_missed_call_greets_and_links_call(session, business, sms_sender):
    _log_call(session, business)

    assert handle_missed_call(business.id, CUSTOMER_PHONE, "CA1") is True

    session.expire_all()
    lead = session.exec(select(Lead)).one()
    assert lead.source == "missed_call"
    assert lead.status == "new"

    convo = session.exec(select(Conversation)).one()
    assert (convo.status, convo.mode) == ("active", "ai")
    assert convo.ai_context == {"collected_info": {}}
    assert convo.business_phone == BUSINESS_PHONE

    assert len(sms_sender.sent) == 1
    sent = sms_sender.sent[0]
    assert (sent.to, sent.from_) == (CUSTOMER_PHONE, BUSINESS_PHONE)
    assert sent.body.startswith("Hi! This is Foxy from Acme Plumbing.")

    msg = session.exec(select(Message)).one()
    assert (msg.direction, msg.sender_type, msg.content) == ("outbound", "ai", sent.body)
    assert msg.twilio_sid.startswith("SM")

    call = session.exec(select(CallLog)).one()
    assert call.processed is True
    assert call.lead_id == lead.id


def test_repeat_call_does_not_regreet(session, business, sms_sender):
    _log_call(session, business, sid="CA1")
    _log_call(session, business, sid="CA2")

    assert handle_missed_call(business.id, CUSTOMER_PHONE, "CA1") is True
    assert handle_missed_call(business.id, CUSTOMER_PHONE, "CA2") is False

    session.expire_all()
    assert len(session.exec(select(Conversation)).all()) == 1
    assert len(sms_sender.sent) == 1
    assert session.exec(select(CallLog).where(CallLog.twilio_sid == "CA2")).one().processed is False


def test_auto_respond_disabled(session, business, sms_sender):
    row = session.exec(select(AISettings)).one()
    row.auto_respond = False
    session.add(row)
    session.commit()

    assert handle_missed_call(business.id, CUSTOMER_PHONE, "CA1") is False

    assert session.exec(select(Lead)).all() == []
    assert sms_sender.sent == []


def test_missing_ai_settings_counts_as_disabled(session, business, sms_sender):
    session.delete(session.exec(select(AISettings)).one())
    session.commit()

    assert handle_missed_call(business.id, CUSTOMER_PHONE, "CA1") is False
    assert sms_sender.sent == []


def test_custom_greeting_template(session, business, sms_sender):
    row = session.exec(select(AISettings)).one()
    row.greeting_template = "{business_name}: sorry we missed you! - {assistant_name}"
    session.add(row)
    session.commit()

    handle_missed_call(business.id, CUSTOMER_PHONE, "CA1")

    assert sms_sender.sent[0].body == "Acme Plumbing: sorry we missed you! - Foxy"


def test_send_failure_is_swallowed(session, business, sms_sender):
    sms_sender.error = SmsSendError("Twilio down")

    assert handle_missed_call(business.id, CUSTOMER_PHONE, "CA1") is False

    session.expire_all()
    convo = session.exec(select(Conversation)).one()
    assert session.exec(select(Message).where(Message.conversation_id == convo.id)).all() == []


def test_unknown_business_id(session, sms_sender):
    assert handle_missed_call(999, CUSTOMER_PHONE, "CA1") is False
    assert sms_sender.sent == []


def test_greeting_delay_is_capped(monkeypatch):
    monkeypatch.setattr(config.settings, "GREETING_DELAY_CAP_SECONDS", 5)
    assert greeting_delay_seconds(30) == 5
    assert greeting_delay_seconds(2) == 2
    assert greeting_delay_seconds(None) == 5
    assert greeting_delay_seconds(-3) == 0

    monkeypatch.setattr(config.settings, "GREETING_DELAY_CAP_SECONDS", 60)
    assert greeting_delay_seconds(30) == 30


def test_create_conversation_reuses_active_one_on_conflict(session, business):
    lead = convos.find_or_create_lead(session, business.id, CUSTOMER_PHONE, "missed_call")

    first, created = convos.create_conversation(session, business, lead, CUSTOMER_PHONE)
    assert created is True

    # a second insert for the same active (business, customer) trips the unique index
    second, created = convos.create_conversation(session, business, lead, CUSTOMER_PHONE)

    assert created is False
    assert second.id == first.id
    assert len(session.exec(select(Conversation)).all()) == 1


def test_closed_conversation_does_not_block_a_new_one(session, business):
    lead = convos.find_or_create_lead(session, business.id, CUSTOMER_PHONE, "missed_call")
    first, _ = convos.create_conversation(session, business, lead, CUSTOMER_PHONE)
    first.status = "closed"
    session.add(first)
    session.commit()

    second, created = convos.create_conversation(session, business, lead, CUSTOMER_PHONE)

    assert created is True
    assert second.id != first.id


def test_racing_call_that_misses_the_lookup_sends_no_second_greeting(session, business, sms_sender, monkeypatch):
    assert handle_missed_call(business.id, CUSTOMER_PHONE, "CA1") is True

    # the second call's lookup runs before the first conversation is visible
    real_find = convos.find_active_conversation
    missed = []

    def miss_once(*args, **kwargs):
        if not missed:
            missed.append(True)
            return None
        return real_find(*args, **kwargs)

    monkeypatch.setattr(convos, "find_active_conversation", miss_once)

    assert handle_missed_call(business.id, CUSTOMER_PHONE, "CA2") is False

    assert missed == [True]
    assert len(sms_sender.sent) == 1
    session.expire_all()
    assert len(session.exec(select(Conversation)).all()) == 1
    assert len(session.exec(select(Message)).all()) == 1

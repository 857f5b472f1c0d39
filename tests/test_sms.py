import pytest
from twilio.base.exceptions import TwilioRestException

from app import config
from app.errors import SmsSendError
from app.services import sms

from conftest import BUSINESS_PHONE, CUSTOMER_PHONE


class _FakeMessages:
    def __init__(self, error=None):
        self.error = error
        self.created = []

    def create(self, to, from_, body):
        if self.error:
            raise self.error
        self.created.append({"to": to, "from_": from_, "body": body})
        return type("Msg", (), {"sid": "SM123", "status": "queued"})()


class _FakeClient:
    def __init__(self, error=None):
        self.messages = _FakeMessages(error)


def test_sanitize_strips_markup():
    text = 'Hi<script>steal()</script> <iframe src="x"></iframe><a href="javascript:go()" onclick="x()">link</a>'
    cleaned = sms.sanitize_input(text)
    assert "<script" not in cleaned
    assert "<iframe" not in cleaned
    assert "javascript:" not in cleaned
    assert "onclick" not in cleaned
    assert cleaned.startswith("Hi")


def test_sanitize_caps_length_and_handles_empty():
    assert len(sms.sanitize_input("a" * 5000)) == sms.MAX_BODY_CHARS
    assert sms.sanitize_input(None) == ""
    assert sms.sanitize_input("  hello  ") == "hello"


def test_send_uses_twilio_client(monkeypatch):
    client = _FakeClient()
    monkeypatch.setattr(sms, "_client", lambda: client)

    result = sms.send_sms(CUSTOMER_PHONE, BUSINESS_PHONE, "Hi there")

    assert result == sms.SmsResult(sid="SM123", status="queued")
    assert client.messages.created == [{"to": CUSTOMER_PHONE, "from_": BUSINESS_PHONE, "body": "Hi there"}]


def test_send_truncates_long_body(monkeypatch):
    client = _FakeClient()
    monkeypatch.setattr(sms, "_client", lambda: client)
    sms.send_sms(CUSTOMER_PHONE, BUSINESS_PHONE, "x" * 2000)
    assert len(client.messages.created[0]["body"]) == sms.MAX_BODY_CHARS


def test_dry_run_skips_provider(monkeypatch):
    monkeypatch.setenv("SMS_DRY_RUN", "true")

    def no_client():
        raise AssertionError("Twilio client must not be built in dry-run")

    monkeypatch.setattr(sms, "_client", no_client)

    result = sms.send_sms(CUSTOMER_PHONE, BUSINESS_PHONE, "Hi")
    assert result.sid.startswith("DRYRUN")
    assert result.status == "dry-run"


def test_dry_run_env_overrides_config(monkeypatch):
    monkeypatch.setattr(config.settings, "SMS_DRY_RUN", True)
    assert sms.is_dry_run() is True
    monkeypatch.setenv("SMS_DRY_RUN", "0")
    assert sms.is_dry_run() is False


def test_provider_error_becomes_send_error(monkeypatch):
    error = TwilioRestException(status=400, uri="/Messages", msg="Attempt to send to unsubscribed recipient", code=21610)
    monkeypatch.setattr(sms, "_client", lambda: _FakeClient(error))

    with pytest.raises(SmsSendError, match="unsubscribed"):
        sms.send_sms(CUSTOMER_PHONE, BUSINESS_PHONE, "Hi")


def test_missing_numbers_or_credentials(monkeypatch):
    with pytest.raises(SmsSendError):
        sms.send_sms(CUSTOMER_PHONE, "", "Hi")

    monkeypatch.setattr(config.settings, "TWILIO_ACCOUNT_SID", "")
    monkeypatch.setattr(config.settings, "TWILIO_AUTH_TOKEN", "")
    with pytest.raises(SmsSendError, match="TWILIO_ACCOUNT_SID"):
        sms.send_sms(CUSTOMER_PHONE, BUSINESS_PHONE, "Hi")

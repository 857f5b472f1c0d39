import pytest
from fastapi import HTTPException

from app.logging_config import build_logging_config, mask_phone
from app.utils.phone import normalize_us_phone, to_e164, webhook_phone


@pytest.mark.parametrize("raw", ["+16502530000", "(650) 253-0000", "650.253.0000", "1 650 253 0000"])
def test_to_e164_accepts_common_us_formats(raw):
    assert to_e164(raw) == "+16502530000"


@pytest.mark.parametrize("raw", [None, "", "   ", "12", "not a phone"])
def test_to_e164_rejects_garbage(raw):
    assert to_e164(raw) is None


def test_webhook_phone_keeps_unparseable_values():
    assert webhook_phone(" (650) 253-0000 ") == "+16502530000"
    assert webhook_phone("client:alice") == "client:alice"
    assert webhook_phone(None) == ""


def test_normalize_us_phone_raises_422():
    with pytest.raises(HTTPException) as exc:
        normalize_us_phone("555")
    assert exc.value.status_code == 422


def test_mask_phone():
    assert mask_phone("+14155552671") == "********2671"
    assert mask_phone("1234") == "1234"
    assert mask_phone(None) == ""


def test_logging_config_writes_under_log_dir(tmp_path):
    cfg = build_logging_config(str(tmp_path / "logs"), "debug")

    assert (tmp_path / "logs").is_dir()
    assert cfg["handlers"]["file"]["filename"] == str(tmp_path / "logs" / "app.log")
    assert cfg["loggers"]["app"]["level"] == "DEBUG"

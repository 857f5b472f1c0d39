# app/routers/sms.py
import logging

from fastapi import APIRouter, Depends, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import PlainTextResponse
from sqlmodel import Session
from twilio.twiml.messaging_response import MessagingResponse

from app.db import get_session
from app.deps import verify_twilio_signature
from app.logging_config import mask_phone
from app.services.inbound_sms import process_inbound_sms
from app.utils.phone import webhook_phone

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/twilio", tags=["sms"])


def _empty_twiml() -> PlainTextResponse:
    # replies go out through the REST API, never inline
    return PlainTextResponse(str(MessagingResponse()), media_type="application/xml")


@router.post("/sms", dependencies=[Depends(verify_twilio_signature)])
async def twilio_sms(request: Request, session: Session = Depends(get_session)):
    try:
        form = await request.form()
        to_phone = webhook_phone(form.get("To"))
        from_phone = webhook_phone(form.get("From"))
        body = form.get("Body") or ""
        message_sid = (form.get("MessageSid") or "").strip()

        logger.info("[SMS] inbound sid=%s to=%s from=%s", message_sid or "n/a", to_phone, mask_phone(from_phone))

        # AI and Twilio calls block; keep them off the event loop
        outcome = await run_in_threadpool(process_inbound_sms, session, to_phone, from_phone, body, message_sid)
        logger.info("[SMS] sid=%s outcome=%s reason=%s", message_sid or "n/a", outcome.action, outcome.reason)
    except Exception:
        # Twilio only needs an acknowledgment; a 5xx would just trigger retries
        logger.exception("[SMS] webhook error")
        session.rollback()
    return _empty_twiml()

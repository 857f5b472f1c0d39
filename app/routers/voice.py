# app/routers/voice.py
import logging

from fastapi import APIRouter, BackgroundTasks, Depends, Request
from fastapi.responses import PlainTextResponse
from sqlmodel import Session
from twilio.twiml.voice_response import VoiceResponse

from app.db import get_session
from app.deps import verify_twilio_signature
from app.logging_config import mask_phone
from app.services import conversations as convos
from app.services.missed_call import handle_missed_call
from app.utils.phone import webhook_phone

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/twilio", tags=["voice"])

# Twilio CallStatus values
LIVE_CALL_STATUSES = {"ringing", "in-progress"}
MISSED_CALL_STATUSES = {"no-answer", "busy", "canceled", "completed"}

VOICE = "Polly.Joanna"


def _twiml(vr: VoiceResponse) -> PlainTextResponse:
    return PlainTextResponse(str(vr), media_type="application/xml")


@router.post("/voice", dependencies=[Depends(verify_twilio_signature)])
async def twilio_voice(
    request: Request,
    background_tasks: BackgroundTasks,
    session: Session = Depends(get_session),
):
    vr = VoiceResponse()
    try:
        form = await request.form()

        to_phone = webhook_phone(form.get("To"))
        from_phone = webhook_phone(form.get("From"))
        call_status = (form.get("CallStatus") or "").strip().lower()
        call_sid = (form.get("CallSid") or "").strip()

        business = convos.find_business_by_phone(session, to_phone)
        convos.record_call(
            session,
            business_id=business.id if business else None,
            from_phone=from_phone,
            to_phone=to_phone,
            call_status=call_status,
            call_sid=call_sid,
        )
        logger.info(
            "[VOICE] call_sid=%s to=%s from=%s status=%s business=%s",
            call_sid or "n/a", to_phone, mask_phone(from_phone), call_status, business.id if business else None,
        )

        if business is None:
            vr.say("Sorry, this number is not currently active.", voice=VOICE)
            vr.hangup()
            return _twiml(vr)

        if call_status in LIVE_CALL_STATUSES:
            # greeting goes out after this response; it must not delay or fail the call
            background_tasks.add_task(handle_missed_call, business.id, from_phone, call_sid)
            vr.say(
                f"Thanks for calling {business.name}. We're currently unavailable. "
                "We'll text you right away to help!",
                voice=VOICE,
            )
            vr.hangup()
            return _twiml(vr)

        if call_status in MISSED_CALL_STATUSES:
            background_tasks.add_task(handle_missed_call, business.id, from_phone, call_sid)

        vr.hangup()
        return _twiml(vr)

    except Exception:
        logger.exception("[VOICE] webhook error")
        session.rollback()
        vr = VoiceResponse()
        vr.say("An error occurred. Please try again later.", voice=VOICE)
        vr.hangup()
        return _twiml(vr)

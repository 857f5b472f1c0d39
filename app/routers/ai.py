# app/routers/ai.py
"""
Manual / testing access to the assistant: preview a greeting or a reply
without sending anything or touching the conversation.
"""
import logging
from dataclasses import asdict

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlmodel import Session

from app.db import get_session
from app.deps import require_api_key
from app.errors import AIProviderError
from app.models import Business, Conversation
from app.schemas import AIRespondIn
from app.services import conversations as convos
from app.services.ai import generate_greeting, generate_response

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/ai", tags=["ai"], dependencies=[Depends(require_api_key)])


def _error(message: str) -> JSONResponse:
    return JSONResponse({"error": message}, status_code=400)


@router.post("/respond")
def ai_respond(payload: AIRespondIn, session: Session = Depends(get_session)):
    action = (payload.action or "").strip().lower()

    if action == "greeting":
        business = session.get(Business, payload.business_id) if payload.business_id else None
        ai_settings = convos.get_ai_settings(session, business.id) if business else None
        greeting = generate_greeting(
            assistant_name=convos.assistant_name_for(ai_settings),
            business_name=business.name if business else "our company",
            template=ai_settings.greeting_template if ai_settings else None,
        )
        return {"greeting": greeting}

    if action == "respond":
        if not payload.conversation_id or not (payload.message or "").strip():
            return _error("conversation_id and message are required")

        conversation = session.get(Conversation, payload.conversation_id)
        if conversation is None:
            return _error("Conversation not found")
        business = session.get(Business, conversation.business_id)
        ai_settings = convos.get_ai_settings(session, conversation.business_id)
        context = convos.build_context(session, business, ai_settings, conversation)

        try:
            result = generate_response(payload.message.strip(), context)
        except AIProviderError as e:
            logger.error("[AI] respond preview failed conversation=%s err=%s", conversation.id, e)
            return _error(str(e))
        return asdict(result)

    return _error('Invalid action. Use "greeting" or "respond"')

# app/routers/businesses.py
import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session

from app import config
from app.db import get_session
from app.deps import require_api_key
from app.models import AISettings, Business
from app.schemas import AISettingsUpdate, BusinessIn
from app.services import conversations as convos
from app.utils.phone import normalize_us_phone

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/businesses", tags=["businesses"], dependencies=[Depends(require_api_key)])


def _business_out(b: Business) -> dict:
    return {
        "id": b.id,
        "name": b.name,
        "twilio_phone": b.twilio_phone,
        "timezone": b.timezone,
        "trade_type": b.trade_type,
        "business_hours": b.business_hours or {},
        "created_at": b.created_at.isoformat() if b.created_at else None,
    }


def _settings_out(s: AISettings) -> dict:
    return s.model_dump(exclude={"id"})


@router.post("")
def create_business(payload: BusinessIn, session: Session = Depends(get_session)):
    name = (payload.name or "").strip()
    if len(name) < 2:
        raise HTTPException(status_code=400, detail="Business name is required (min 2 characters)")
    twilio_phone = normalize_us_phone(payload.twilio_phone)

    existing = convos.find_business_by_phone(session, twilio_phone)
    if existing:
        logger.info("[BUSINESS] %s already registered to business=%s", twilio_phone, existing.id)
        return {"business": _business_out(existing), "existing": True}

    business = Business(
        name=name,
        twilio_phone=twilio_phone,
        trade_type=(payload.trade_type or "").strip() or None,
        timezone=payload.timezone,
        business_hours=payload.business_hours or {},
    )
    try:
        session.add(business)
        session.flush()
        session.add(AISettings(business_id=business.id, assistant_name=config.settings.DEFAULT_ASSISTANT_NAME))
        session.commit()
    except IntegrityError:
        session.rollback()
        raise HTTPException(status_code=409, detail="Business phone already registered")
    session.refresh(business)

    logger.info("[BUSINESS] created business=%s phone=%s", business.id, twilio_phone)
    return {"business": _business_out(business), "existing": False}


@router.put("/{business_id}/ai-settings")
def update_ai_settings(business_id: int, payload: AISettingsUpdate, session: Session = Depends(get_session)):
    business = session.get(Business, business_id)
    if not business:
        raise HTTPException(status_code=404, detail="Not found")

    row = convos.get_ai_settings(session, business_id) or AISettings(business_id=business_id)
    for key, value in payload.model_dump(exclude_unset=True).items():
        setattr(row, key, value)
    session.add(row)
    session.commit()
    session.refresh(row)
    return {"ok": True, "ai_settings": _settings_out(row)}

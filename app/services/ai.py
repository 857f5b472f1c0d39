# app/services/ai.py
import json
import logging
import string
from typing import Any, Dict, List, Optional

import requests

from app import config
from app.errors import AIProviderError
from app.schemas import (
    AIResult,
    ConversationContext,
    HistoryTurn,
    Intent,
    MODEL_INTENTS,
    QUALIFICATION_FIELD_IDS,
)

logger = logging.getLogger(__name__)

# SMS length limit used when the model's raw text is sent as-is
SMS_SAFE_CHARS = 320

DEFAULT_INTENT = Intent.INQUIRY.value
DEFAULT_CONFIDENCE = 0.8
FALLBACK_CONFIDENCE = 0.5

# short, natural SMS replies; not tuned for creativity
GENERATION_CONFIG = {
    "temperature": 0.7,
    "maxOutputTokens": 200,
    "topP": 0.9,
}

DEFAULT_GREETING_TEMPLATE = (
    "Hi! This is {assistant_name} from {business_name}. "
    "I noticed we missed your call - how can I help you today?"
)

_DAY_ORDER = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")


# ----------------------- collected info -----------------------

def merge_collected_info(existing: Optional[Dict[str, Any]], extracted: Optional[Dict[str, Any]]) -> Dict[str, str]:
    """
    Per-field last-write-wins merge. Keys not present in `extracted` are kept;
    unknown field ids and empty values are ignored. Returns a new dict.
    """
    merged: Dict[str, str] = {str(k): str(v) for k, v in (existing or {}).items() if v not in (None, "")}
    if not isinstance(extracted, dict):
        return merged
    for key, value in extracted.items():
        if key not in QUALIFICATION_FIELD_IDS:
            continue
        if value is None or isinstance(value, (dict, list)):
            continue
        text = str(value).strip()
        if text:
            merged[key] = text
    return merged


# ----------------------- prompt -----------------------

def _format_hours(hours: Dict[str, Dict[str, Any]]) -> str:
    if not hours:
        return ""
    lines = []
    ordered = sorted(hours.items(), key=lambda kv: _DAY_ORDER.index(kv[0].lower()) if kv[0].lower() in _DAY_ORDER else 99)
    for day, window in ordered:
        window = window or {}
        if window.get("enabled", True) and window.get("start") and window.get("end"):
            lines.append(f"- {day.capitalize()}: {window['start']}-{window['end']}")
        else:
            lines.append(f"- {day.capitalize()}: closed")
    return "\n".join(lines)


def build_system_prompt(context: ConversationContext) -> str:
    services = ", ".join(context.services_offered) if context.services_offered else "general trade services"

    if context.pricing_notes:
        pricing = f"Pricing info: {context.pricing_notes}"
    else:
        pricing = (
            "Do not discuss specific pricing - say the team will provide a quote "
            "and offer to have someone call them back."
        )

    unanswered = "\n".join(
        f'- {q.id}: "{q.question}"'
        for q in context.qualification_questions
        if q.id and not context.collected_info.get(q.id)
    )
    collected = "\n".join(f"- {k}: {v}" for k, v in context.collected_info.items())
    hours = _format_hours(context.business_hours)
    hours_block = f"\nBUSINESS HOURS:\n{hours}\n" if hours else ""

    return f"""You are {context.assistant_name}, a friendly AI assistant for {context.business_name}, a {services} company.

Your job is to help potential customers via SMS:
1. Be warm, friendly, and professional (but not robotic)
2. Qualify leads by naturally gathering information
3. Offer to schedule appointments when appropriate
4. Keep responses SHORT - this is SMS, aim for 1-3 sentences max

INFORMATION TO GATHER (ask naturally, not all at once):
{unanswered or '(All required info collected!)'}

ALREADY COLLECTED:
{collected or '(Nothing yet)'}
{hours_block}
{pricing}

RESPONSE FORMAT:
Always respond with valid JSON in this format:
{{
  "response": "Your SMS response text here",
  "intent": "{'|'.join(MODEL_INTENTS)}",
  "confidence": 0.95,
  "extracted": {{"field_id": "value"}}
}}

The "extracted" object should contain only new information learned from the customer's message. Use the field IDs: {', '.join(QUALIFICATION_FIELD_IDS)}.

If the customer seems ready to book, ask for their preferred day/time.
If they ask about pricing, follow the pricing rule above.
If they go off-topic, gently redirect to how you can help with their service needs.
If they say goodbye or decline service, thank them warmly and let them know you're here if they change their mind."""


def build_conversation_history(history: List[HistoryTurn]) -> List[Dict[str, Any]]:
    contents = []
    for turn in history:
        if turn.role == "customer":
            contents.append({"role": "user", "parts": [{"text": turn.content}]})
        else:
            # the model answered in JSON; show it its own format back
            contents.append({"role": "model", "parts": [{"text": json.dumps({"response": turn.content})}]})
    return contents


# ----------------------- parsing -----------------------

def _first_json_object(text: str) -> Optional[Dict[str, Any]]:
    decoder = json.JSONDecoder()
    idx = text.find("{")
    while idx != -1:
        try:
            obj, _ = decoder.raw_decode(text, idx)
        except ValueError:
            obj = None
        if isinstance(obj, dict):
            return obj
        idx = text.find("{", idx + 1)
    return None


def _coerce_confidence(value: Any) -> float:
    if value is None or isinstance(value, bool):
        return DEFAULT_CONFIDENCE
    try:
        conf = float(value)
    except (TypeError, ValueError):
        return DEFAULT_CONFIDENCE
    if conf != conf:  # NaN
        return DEFAULT_CONFIDENCE
    return min(1.0, max(0.0, conf))


def parse_ai_response(ai_text: str, existing_info: Optional[Dict[str, Any]]) -> AIResult:
    """
    Never raises: malformed model output degrades to a plain-text reply.
    """
    ai_text = ai_text or ""
    existing = dict(existing_info or {})

    parsed = _first_json_object(ai_text)
    if parsed is not None:
        response = parsed.get("response")
        if not isinstance(response, str) or not response.strip():
            response = ai_text[:SMS_SAFE_CHARS]
        intent = parsed.get("intent")
        if intent not in MODEL_INTENTS:
            intent = DEFAULT_INTENT
        return AIResult(
            response=response.strip(),
            intent=intent,
            confidence=_coerce_confidence(parsed.get("confidence")),
            collected_info=merge_collected_info(existing, parsed.get("extracted")),
        )

    logger.warning("[AI] no JSON object in model output; using raw text")
    return AIResult(
        response=ai_text[:SMS_SAFE_CHARS].strip(),
        intent=DEFAULT_INTENT,
        confidence=FALLBACK_CONFIDENCE,
        collected_info=existing,
    )


# ----------------------- model call -----------------------

def _endpoint() -> str:
    s = config.settings
    return f"{s.GEMINI_API_BASE}/models/{s.GEMINI_MODEL}:generateContent"


def _extract_text(data: Dict[str, Any]) -> str:
    try:
        return data["candidates"][0]["content"]["parts"][0].get("text", "") or ""
    except (KeyError, IndexError, TypeError, AttributeError) as e:
        raise AIProviderError(f"unexpected Gemini payload: {str(data)[:200]}") from e


def generate_response(customer_message: str, context: ConversationContext) -> AIResult:
    """
    One model call for one customer turn. Provider problems raise
    AIProviderError; output problems are absorbed by parse_ai_response.
    """
    api_key = config.settings.GEMINI_API_KEY
    if not api_key:
        raise AIProviderError("GEMINI_API_KEY is not configured")

    contents = build_conversation_history(context.message_history)
    contents.append({"role": "user", "parts": [{"text": customer_message}]})

    payload = {
        "systemInstruction": {"parts": [{"text": build_system_prompt(context)}]},
        "contents": contents,
        "generationConfig": dict(GENERATION_CONFIG),
    }

    try:
        r = requests.post(
            _endpoint(),
            params={"key": api_key},
            json=payload,
            timeout=config.settings.GEMINI_TIMEOUT_SECONDS,
        )
    except requests.RequestException as e:
        raise AIProviderError(f"Gemini request failed: {e}") from e

    if r.status_code >= 300:
        logger.error("[AI] Gemini API error status=%s body=%s", r.status_code, r.text[:300])
        raise AIProviderError(f"Gemini API error: {r.status_code}")

    try:
        data = r.json()
    except ValueError as e:
        raise AIProviderError("Gemini returned a non-JSON body") from e

    return parse_ai_response(_extract_text(data), context.collected_info)


# ----------------------- greeting -----------------------

def _render_template(template: str, values: Dict[str, str]) -> str:
    """str.format limited to bare names from values; no attribute or index lookups."""
    _check_fields(template, values)
    return template.format_map(values)


def _check_fields(template: str, values: Dict[str, str]) -> None:
    for _literal, field_name, spec, _conv in string.Formatter().parse(template):
        if field_name is not None and field_name not in values:
            raise KeyError(field_name)
        if spec:
            # nested fields inside a format spec are looked up too
            _check_fields(spec, values)


def generate_greeting(assistant_name: str, business_name: str, template: Optional[str] = None) -> str:
    """
    Missed-call greeting. Template substitution only, no model call, so
    it is fast and deterministic.
    """
    values = {"assistant_name": assistant_name, "business_name": business_name}
    if template and template.strip():
        try:
            return _render_template(template.strip(), values)
        except (KeyError, IndexError, ValueError):
            logger.warning("[AI] bad greeting template %r; using default", template[:80])
    return DEFAULT_GREETING_TEMPLATE.format(**values)

# app/services/escalation.py
"""
When to stop auto-replying and hand a conversation to a person.

Rules are evaluated in order and the first match wins. A conversation
only ever moves ai -> human here; going back to ai is a manual action.
"""
from dataclasses import dataclass
from typing import Callable, Tuple

from app.schemas import Intent

LOW_CONFIDENCE_THRESHOLD = 0.4
OBJECTION_CONFIDENCE_THRESHOLD = 0.6


@dataclass(frozen=True)
class EscalationDecision:
    escalate: bool
    reason: str = ""


@dataclass(frozen=True)
class TurnSignals:
    message_count: int
    max_messages: int
    intent: str
    confidence: float


Rule = Tuple[Callable[[TurnSignals], bool], str]

ESCALATION_RULES: Tuple[Rule, ...] = (
    (lambda s: s.message_count + 1 >= s.max_messages, "max_messages_reached"),
    (lambda s: s.confidence < LOW_CONFIDENCE_THRESHOLD, "low_confidence"),
    (
        lambda s: s.intent == Intent.OBJECTION.value and s.confidence < OBJECTION_CONFIDENCE_THRESHOLD,
        "objection_handling",
    ),
)

NO_ESCALATION = EscalationDecision(escalate=False, reason="")


def should_escalate(
    message_count: int,
    max_messages: int,
    intent: str,
    confidence: float,
    rules: Tuple[Rule, ...] = ESCALATION_RULES,
) -> EscalationDecision:
    signals = TurnSignals(
        message_count=message_count,
        max_messages=max_messages,
        intent=intent,
        confidence=confidence,
    )
    for predicate, reason in rules:
        if predicate(signals):
            return EscalationDecision(escalate=True, reason=reason)
    return NO_ESCALATION

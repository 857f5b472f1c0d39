import pytest

from app.services.escalation import EscalationDecision, should_escalate


def test_max_messages_fires_before_confidence_rules():
    decision = should_escalate(message_count=9, max_messages=10, intent="inquiry", confidence=0.9)
    assert decision == EscalationDecision(escalate=True, reason="max_messages_reached")

    # even when the later rules would also match
    decision = should_escalate(message_count=9, max_messages=10, intent="objection", confidence=0.1)
    assert decision.reason == "max_messages_reached"


def test_low_confidence_escalates_with_headroom():
    decision = should_escalate(message_count=0, max_messages=10, intent="greeting", confidence=0.3)
    assert decision.escalate
    assert decision.reason == "low_confidence"


@pytest.mark.parametrize(
    "confidence,expected",
    [(0.5, EscalationDecision(True, "objection_handling")), (0.7, EscalationDecision(False, ""))],
)
def test_objection_threshold(confidence, expected):
    assert should_escalate(2, 10, "objection", confidence) == expected


def test_thresholds_are_strict():
    assert not should_escalate(0, 10, "inquiry", 0.4).escalate
    assert not should_escalate(0, 10, "objection", 0.6).escalate
    assert not should_escalate(7, 10, "inquiry", 0.95).escalate


def test_custom_rule_list_is_evaluated_in_order():
    rules = (
        (lambda s: s.intent == "goodbye", "customer_left"),
        (lambda s: True, "catch_all"),
    )
    assert should_escalate(0, 10, "goodbye", 0.99, rules=rules).reason == "customer_left"
    assert should_escalate(0, 10, "inquiry", 0.99, rules=rules).reason == "catch_all"

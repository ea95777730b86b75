from conftest import make_config
from marketbot.escalation import EscalationDetector, estimate_resolution_minutes
from marketbot.models import (
    ConversationContext,
    ConversationMessage,
    EscalationPriority,
    IntentClassification,
    MessageSender,
    TriggerType,
)


CONFIDENT = IntentClassification(intent="general", confidence=0.9)


def test_explicit_human_request(config):
    result = EscalationDetector(config).detect("quiero hablar con un humano", CONFIDENT)
    assert [t.type for t in result.triggers] == [TriggerType.MANUAL_REQUEST]
    assert result.should_escalate
    assert result.priority == EscalationPriority.HIGH
    assert "humano" in result.reason


def test_priority_is_highest_rank_not_count(config):
    low = IntentClassification(intent="general", confidence=0.2)
    result = EscalationDetector(config).detect("es urgente, quiero hablar con una persona", low)
    types = [t.type for t in result.triggers]
    assert TriggerType.LOW_CONFIDENCE in types
    assert result.priority == EscalationPriority.URGENT
    assert result.suggested_agent == "senior_agent"
    assert result.reason.count("; ") == len(result.triggers) - 1


def test_keywords_match_whole_words_only(config):
    result = EscalationDetector(config).detect("quiero una botella para la playa", CONFIDENT)
    assert result.triggers == []
    assert not result.should_escalate
    assert result.priority == EscalationPriority.LOW


def test_negative_sentiment_counts_as_complaint(config):
    result = EscalationDetector(config).detect("no me gusta este servicio", CONFIDENT)
    assert len(result.triggers) == 1
    trigger = result.triggers[0]
    assert trigger.type == TriggerType.COMPLAINT
    assert trigger.confidence == 0.7
    assert result.suggested_agent == "customer_service_supervisor"


def test_low_confidence_threshold(config):
    detector = EscalationDetector(config)
    low = detector.detect("ok", IntentClassification(intent="general", confidence=0.2))
    assert low.triggers[0].type == TriggerType.LOW_CONFIDENCE
    assert low.triggers[0].confidence == 0.2
    assert low.triggers[0].reason == "Baja confianza en la respuesta del bot: 20.0%"

    at_threshold = detector.detect("ok", IntentClassification(intent="general", confidence=0.3))
    assert at_threshold.triggers == []


def test_disabled_auto_escalation_still_reports_triggers():
    detector = EscalationDetector(make_config(AUTO_ESCALATION_ENABLED=False))
    result = detector.detect("quiero hablar con un humano", CONFIDENT)
    assert result.triggers
    assert not result.should_escalate


def test_history_analysis():
    context = ConversationContext(messages=[
        ConversationMessage(sender=MessageSender.CUSTOMER, content="no entiendo"),
        ConversationMessage(sender=MessageSender.BOT, content="...", metadata={"confidence": 0.3}),
        ConversationMessage(sender=MessageSender.CUSTOMER, content="tengo un problema"),
        ConversationMessage(sender=MessageSender.BOT, content="...", metadata={"confidence": 0.4}),
    ])
    result = EscalationDetector(make_config()).detect("ok", CONFIDENT, context)
    categories = [t.metadata.get("category") for t in result.triggers]
    assert categories == ["repeated_failures", "customer_frustration"]


def test_negotiation_routes_to_sales(config):
    result = EscalationDetector(config).detect("¿me haces descuento?", CONFIDENT)
    assert [t.type for t in result.triggers] == [TriggerType.PRICE_NEGOTIATION]
    assert result.suggested_agent == "sales_agent"
    assert result.estimated_resolution_minutes == 25


def test_complaint_outranks_technical_routing(config):
    result = EscalationDetector(config).detect("la garantía no funciona", CONFIDENT)
    types = [t.type for t in result.triggers]
    assert types == [TriggerType.COMPLAINT, TriggerType.COMPLEX_QUERY]
    assert result.suggested_agent == "customer_service_supervisor"
    assert result.estimated_resolution_minutes == 20


def test_resolution_estimate_is_capped():
    detector = EscalationDetector(make_config())
    triggers = detector.detect("la garantía no funciona, quiero descuento", CONFIDENT).triggers * 20
    assert estimate_resolution_minutes(triggers, EscalationPriority.LOW) == 120

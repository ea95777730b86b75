import asyncio

import pytest

from conftest import FirstChoiceSelector, RecordingPublisher, ScriptedCompletionClient, make_config
from marketbot.classifier import IntentClassifier
from marketbot.escalation import EscalationDetector
from marketbot.llm import LLMError, ReplyGenerator
from marketbot.models import (
    BotResponse,
    ContextUpdate,
    ConversationStatus,
    EscalationPriority,
    EscalationTrigger,
    IntentClassification,
    TriggerType,
)
from marketbot.notifications import NotificationDispatcher
from marketbot.orchestrator import (
    FALLBACK_RESPONSE_TEXT,
    AssistantOrchestrator,
    build_orchestrator,
    generate_recommended_actions,
)
from marketbot.responses import ResponseSynthesizer


class BrokenClassifier:
    async def classify(self, utterance, context=None, profile=None):
        raise RuntimeError("boom")


def build(config, client=None, classifier=None):
    publisher = RecordingPublisher()
    dispatcher = NotificationDispatcher(publisher)
    orchestrator = AssistantOrchestrator(
        classifier=classifier or IntentClassifier(llm_client=client, config=config),
        detector=EscalationDetector(config),
        synthesizer=ResponseSynthesizer(selector=FirstChoiceSelector(), config=config),
        reply_generator=ReplyGenerator(client) if client else None,
        dispatcher=dispatcher,
        config=config,
    )
    return orchestrator, dispatcher, publisher


def run_turn(orchestrator, dispatcher, utterance, *args):
    async def scenario():
        result = await orchestrator.process_message(utterance, *args)
        await dispatcher.drain()
        return result

    return asyncio.run(scenario())


@pytest.mark.parametrize("utterance", [None, "", "   ", 12345, "?!#"])
def test_pipeline_never_throws(config, utterance):
    orchestrator, dispatcher, _ = build(config)
    result = run_turn(orchestrator, dispatcher, utterance, None, None, None, None)
    assert isinstance(result.response, BotResponse)
    assert result.response.response
    assert 0.0 <= result.response.confidence <= 1.0


def test_partial_business_config_is_accepted(config):
    orchestrator, dispatcher, _ = build(config)
    result = run_turn(orchestrator, dispatcher, "hola", None, None, [], {"business_name": "Mi Tienda"})
    assert result.intent.intent == "greeting"
    assert result.processing_metadata.error is None


def test_internal_failure_returns_fixed_fallback(config):
    orchestrator, dispatcher, _ = build(config, classifier=BrokenClassifier())
    result = run_turn(orchestrator, dispatcher, "hola")

    assert result.response.response == FALLBACK_RESPONSE_TEXT
    assert result.response.confidence == 0.1
    assert result.response.should_escalate
    assert result.intent.intent == "error"
    assert result.escalation_triggers[0].type == TriggerType.ERROR
    assert result.escalation_triggers[0].metadata["error"] == "boom"
    assert result.processing_metadata.recommended_actions == ["escalate_to_human", "log_error"]


def test_escalation_notifies_in_background(config, business):
    orchestrator, dispatcher, publisher = build(config)
    result = run_turn(orchestrator, dispatcher, "quiero hablar con un humano", None, None, [], business)

    assert result.response.intent == "escalation"
    assert result.response.updated_context_fields.status == ConversationStatus.ESCALATED
    assert result.processing_metadata.escalation_priority == EscalationPriority.HIGH
    assert "notify_human_agent" in result.processing_metadata.recommended_actions
    assert len(publisher.published) == 1
    assert publisher.published[0][0] == "🚨 Escalación HIGH - Tienda Test"


def test_disabled_auto_escalation_skips_notification(business):
    config = make_config(AUTO_ESCALATION_ENABLED=False)
    orchestrator, dispatcher, publisher = build(config)
    result = run_turn(orchestrator, dispatcher, "quiero hablar con un humano", None, None, [], business)

    assert result.escalation_triggers
    assert result.response.intent == "human_handoff"
    assert publisher.published == []


def test_low_confidence_reply_is_enriched(config, business):
    client = ScriptedCompletionClient([
        '{"intent": "greeting", "confidence": 0.6}',
        '{"message": "¡Hola! ¿Buscas algo en especial?", "confidence": 0.8}',
    ])
    orchestrator, dispatcher, _ = build(config, client=client)
    result = run_turn(orchestrator, dispatcher, "qué onda", None, None, [], business)

    assert result.intent.intent == "greeting"
    assert result.response.response == "¡Hola! ¿Buscas algo en especial?"
    assert result.response.confidence == pytest.approx(0.9)
    assert result.response.metadata["enriched"] is True
    assert result.response.updated_context_fields.last_response == result.response.response
    assert "llm_enrichment" in result.processing_metadata.services_used


def test_enrichment_failure_keeps_template(config, business):
    client = ScriptedCompletionClient([
        '{"intent": "greeting", "confidence": 0.6}',
        LLMError("timeout"),
    ])
    orchestrator, dispatcher, _ = build(config, client=client)
    result = run_turn(orchestrator, dispatcher, "qué onda", None, None, [], business)

    assert result.response.response == "¡Hola! ¿En qué te puedo ayudar hoy?"
    assert "enriched" not in result.response.metadata


def test_dict_inputs_are_coerced(config):
    orchestrator, dispatcher, _ = build(config)
    context = {"customer_id": "573001", "last_intent": "price"}
    catalog = [{"product_id": "p1", "name": "iPhone 13", "price": 1000}, {"name": "sin precio"}]
    result = run_turn(orchestrator, dispatcher, "¿cuánto cuesta el iphone 13?", context, None, catalog, None)

    assert result.response.response == "iPhone 13 tiene un precio de $1.000. ¿Te interesa?"
    assert result.processing_metadata.confidence_score == pytest.approx(0.95)
    assert "show_payment_options" in result.processing_metadata.recommended_actions


def test_recommended_actions_are_deduplicated():
    response = BotResponse(
        response="...",
        intent="purchase",
        confidence=0.4,
        should_escalate=True,
        updated_context_fields=ContextUpdate(last_intent="purchase"),
        suggested_actions=["escalate_for_purchase", "collect_contact_info"],
    )
    trigger = EscalationTrigger(type=TriggerType.COMPLAINT, confidence=0.8, reason="queja")
    actions = generate_recommended_actions(
        response, IntentClassification(intent="purchase", confidence=0.7), [trigger]
    )
    assert actions == [
        "escalate_for_purchase",
        "collect_contact_info",
        "prepare_purchase_flow",
        "prepare_handoff_context",
        "notify_human_agent",
        "escalate_to_supervisor",
        "log_complaint",
        "request_clarification",
        "offer_human_assistance",
    ]


def test_build_orchestrator_without_api_key(config):
    orchestrator = build_orchestrator(config, selector=FirstChoiceSelector())
    assert orchestrator.reply_generator is None
    assert orchestrator.classifier.llm_client is None
    assert orchestrator.estimate_typing_indicator("hola")["duration_ms"] == 1500


def test_enriched_reply_keeps_merchant_persona(config, business):
    styled = business.model_copy(update={
        "communication_style": business.communication_style.model_copy(update={"use_emojis": True})
    })
    client = ScriptedCompletionClient([
        '{"intent": "greeting", "confidence": 0.6}',
        '{"message": "¡Hola! ¿Buscas algo en especial?", "confidence": 0.8}',
    ])
    orchestrator, dispatcher, _ = build(config, client=client)
    result = run_turn(orchestrator, dispatcher, "qué onda", None, None, [], styled)

    assert result.response.response == "¡Hola! ¿Buscas algo en especial? 😊"
    assert result.response.updated_context_fields.last_response == result.response.response
    assert 1.0 <= result.response.metadata["typing_delay_seconds"] <= 8.0

import asyncio

import pytest

from conftest import ScriptedCompletionClient
from marketbot.llm import (
    LLMError,
    ReplyGenerator,
    build_classification_prompt,
    fallback_reply,
    normalize_intent_name,
    parse_generated_reply,
    parse_json_reply,
    scan_for_intent,
)
from marketbot.models import ConversationContext, CustomerProfile


def test_parse_json_reply_variants():
    assert parse_json_reply('{"intent": "price"}') == {"intent": "price"}
    assert parse_json_reply('```json\n{"intent": "price"}\n```') == {"intent": "price"}
    assert parse_json_reply('Claro: {"intent": "price", "confidence": 0.8} listo') == {
        "intent": "price", "confidence": 0.8
    }
    assert parse_json_reply("sin json") is None
    assert parse_json_reply("[1, 2]") is None


def test_intent_names():
    assert normalize_intent_name("disponibilidad") == "availability"
    assert normalize_intent_name(" Price ") == "price"
    assert normalize_intent_name("desconocido") is None
    assert normalize_intent_name(None) is None
    assert scan_for_intent("creo que es una consulta de precio") == "price"
    assert scan_for_intent("nada reconocible") is None


def test_free_text_reply_becomes_message():
    reply = parse_generated_reply("¡Hola! Con gusto te ayudo.")
    assert reply.message == "¡Hola! Con gusto te ayudo."
    assert reply.confidence == 0.5
    assert not reply.should_escalate


def test_json_reply_fields():
    reply = parse_generated_reply(
        '{"message": "Te paso con un asesor", "intent": "compra", "confidence": 1.4, '
        '"shouldEscalate": true, "suggestedActions": ["escalate_to_human"]}'
    )
    assert reply.intent == "purchase"
    assert reply.confidence == 1.0
    assert reply.should_escalate
    assert reply.suggested_actions == ["escalate_to_human"]


@pytest.mark.parametrize("utterance, intent", [
    ("¿está disponible?", "availability"),
    ("¿cuánto cuesta?", "price"),
    ("¿hacen envío?", "shipping"),
    ("otra cosa", "general"),
])
def test_canned_replies_always_escalate(utterance, intent):
    reply = fallback_reply(utterance)
    assert reply.intent == intent
    assert reply.should_escalate


def test_classification_prompt_mentions_history():
    prompt = build_classification_prompt(
        "hola",
        ConversationContext(last_intent="price"),
        CustomerProfile(inquiry_history=["price", "shipping"]),
    )
    assert 'MENSAJE: "hola"' in prompt
    assert "CONTEXTO PREVIO: price" in prompt
    assert "price, shipping" in prompt


def test_reply_generator_propagates_client_errors(catalog, business):
    generator = ReplyGenerator(ScriptedCompletionClient([LLMError("timeout")]))
    with pytest.raises(LLMError):
        asyncio.run(generator.generate("hola", ConversationContext(), CustomerProfile(), catalog, business))


def test_reply_prompt_lists_catalog(catalog, business):
    client = ScriptedCompletionClient(['{"message": "ok"}'])
    generator = ReplyGenerator(client, model="test-model")
    reply = asyncio.run(generator.generate("hola", ConversationContext(), CustomerProfile(), catalog, business))
    assert reply.message == "ok"
    assert client.models == ["test-model"]
    assert "iPhone 13: $1,000 (available)" in client.prompts[0]
    assert "Tienda Test" in client.prompts[0]

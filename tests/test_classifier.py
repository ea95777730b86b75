import asyncio

import pytest

from conftest import ScriptedCompletionClient
from marketbot.classifier import IntentClassifier, extract_entities, parse_amount
from marketbot.llm import LLMError


def test_no_matching_phrase_is_general_with_fixed_confidence(config):
    result = IntentClassifier(config=config).classify_with_rules("qwerty zzz")
    assert result.intent == "general"
    assert result.confidence == 0.3


@pytest.mark.parametrize("utterance, matches", [
    ("hola", 1),
    ("hola, buenos días", 2),
    ("hola buenas tardes saludos", 3),
])
def test_rule_confidence_grows_with_matches(config, utterance, matches):
    result = IntentClassifier(config=config).classify_with_rules(utterance)
    assert result.intent == "greeting"
    assert result.confidence == pytest.approx(min(0.9, 0.5 + 0.2 * matches))


def test_equal_counts_use_precedence_order(config):
    result = IntentClassifier(config=config).classify_with_rules("precio del envío")
    assert result.intent == "price"
    assert result.confidence == pytest.approx(0.7)


def test_none_and_non_text_utterances(config):
    classifier = IntentClassifier(config=config)
    assert classifier.classify_with_rules(None).intent == "general"
    assert classifier.classify_with_rules(12345).intent == "general"


def test_product_name_extracted():
    entities = extract_entities("¿cuánto cuesta el iphone 13?")
    assert entities["productName"] == "iphone 13"


def test_offer_amounts():
    assert extract_entities("te doy 950 por el iphone 13")["amount"] == 950
    assert extract_entities("te ofrezco 1.200.000")["amount"] == 1200000
    assert extract_entities("te doy 900 mil")["amount"] == 900000


def test_price_range_and_location():
    assert extract_entities("algo entre 100 y 500")["priceRange"] == {"min": 100, "max": 500}
    assert extract_entities("¿hacen envíos a medellín?")["location"] == "medellín"


def test_compared_products():
    assert extract_entities("iphone 13 vs samsung galaxy")["products"] == ["iphone 13", "samsung galaxy"]
    assert extract_entities("entre el iphone 13 y el samsung")["products"] == ["iphone 13", "samsung"]


@pytest.mark.parametrize("raw, multiplier, expected", [
    ("1.200.000", None, 1200000),
    ("1,200,000", None, 1200000),
    ("950,5", None, 950.5),
    ("900", "mil", 900000),
    ("", None, None),
])
def test_parse_amount(raw, multiplier, expected):
    assert parse_amount(raw, multiplier) == expected


def test_confident_rule_result_skips_model(config):
    client = ScriptedCompletionClient()
    result = asyncio.run(IntentClassifier(llm_client=client, config=config).classify("hola buenos días"))
    assert result.intent == "greeting"
    assert client.prompts == []


def test_model_classifies_low_confidence_utterance(config):
    client = ScriptedCompletionClient([
        '{"intent": "disponibilidad", "confidence": 0.85, "entities": {"productName": "iphone", "location": "marte"}}'
    ])
    result = asyncio.run(IntentClassifier(llm_client=client, config=config).classify("necesito un iphone"))
    assert result.intent == "availability"
    assert result.confidence == pytest.approx(0.85)
    assert result.entities["productName"] == "iphone"
    # Not mentioned by the customer
    assert "location" not in result.entities
    assert "necesito un iphone" in client.prompts[0]


def test_non_json_model_reply_is_scanned(config):
    client = ScriptedCompletionClient(["La intención es shipping_status"])
    result = asyncio.run(IntentClassifier(llm_client=client, config=config).classify("necesito un iphone"))
    assert result.intent == "shipping_status"
    assert result.confidence == pytest.approx(0.6)


@pytest.mark.parametrize("reply", [LLMError("timeout"), "no sé"])
def test_model_failure_degrades_to_rules(config, reply):
    client = ScriptedCompletionClient([reply])
    result = asyncio.run(IntentClassifier(llm_client=client, config=config).classify("necesito un iphone"))
    assert result.intent == "general"
    assert result.confidence == 0.3


def test_typing_indicator(config):
    classifier = IntentClassifier(config=config)
    assert classifier.estimate_typing_indicator("hola")["duration_ms"] == 1500
    complex_query = classifier.estimate_typing_indicator("quiero comprar")
    assert complex_query["duration_ms"] == 3000
    assert complex_query["message"] == "Consultando información..."

"""
Intent classification for customer utterances.

This module provides:
- Rule pass over the Spanish phrase tables with match-count confidence
- Language-model fallback for low-confidence utterances
- Heuristic entity extraction (product, price range, location, offer, products)
- Typing-indicator estimate built on the rule pass

Usage:
    classifier = IntentClassifier(llm_client=OpenRouterClient(config), config=config)
    classification = await classifier.classify("¿cuánto cuesta el iphone 13?")
"""

import re
from typing import Any, Dict, List, Optional, Tuple

from loguru import logger

from marketbot.llm import (
    build_classification_prompt,
    normalize_intent_name,
    parse_json_reply,
    scan_for_intent,
)
from marketbot.models import ConversationContext, CustomerProfile, Intent, IntentClassification
from marketbot.patterns import INTENT_PHRASES, INTENT_PRECEDENCE
from marketbot.utils import Timer, get_config, sanitize_for_logging


DEFAULT_CLASSIFICATION = IntentClassification(intent=Intent.GENERAL.value, confidence=0.3)
SCANNED_INTENT_CONFIDENCE = 0.6
COMPLEX_INTENTS = {Intent.PRODUCT_INFO.value, Intent.DISCOUNT.value, Intent.PURCHASE.value}

_WORD = r"[a-z0-9áéíóúñü\-]+"
_NUMBER = r"\d[\d.,]*"
_NAME = rf"{_WORD}(?:\s+{_WORD})*"

_PRODUCT_PATTERNS = [
    re.compile(rf"\b(?:el|la|los|las|un|una)\s+((?:{_WORD}\s+)*?{_WORD})\s+(?:está|esta|es|vale|cuesta|tiene|sigue|queda)\b"),
    re.compile(rf"\b(?:producto|artículo|articulo|item|modelo)\s+({_NAME})"),
    re.compile(rf"\b(?:disponible|disponibles|precio|cuesta|vale|info|información|informacion|detalles|tienes|tienen|hay|comprar|quiero)\s+(?:de\s+|del\s+)?(?:el\s+|la\s+|los\s+|las\s+|un\s+|una\s+)?({_NAME})"),
]
_PRICE_RANGE_PATTERN = re.compile(
    rf"\bentre\s+\$?({_NUMBER})\s+y\s+\$?({_NUMBER})|\$?({_NUMBER})\s*(?:\ba\b|\bhasta\b|-)\s*\$?({_NUMBER})"
)
_LOCATION_PATTERN = re.compile(r"\b(?:a|en|para|hasta|hacia)\s+(?:el\s+|la\s+|los\s+|las\s+)?([a-záéíóúñü]+(?:\s+[a-záéíóúñü]+)?)")
_AMOUNT_PATTERN = re.compile(
    rf"\b(?:te doy|te ofrezco|mi oferta es|te pago|lo dejo en|cerramos en|ofrezco|doy|pago|aceptas)\s+(?:en\s+)?\$?\s*({_NUMBER})(\s*(?:mil|k)\b)?"
)
_COMPARISON_PATTERNS = [
    re.compile(rf"\bentre\s+(?:el\s+|la\s+)?((?:{_WORD}\s+)*?{_WORD})\s+y\s+(?:el\s+|la\s+)?({_NAME})"),
    re.compile(rf"((?:{_WORD}\s+)*?{_WORD})\s+(?:vs\.?|versus)\s+(?:el\s+|la\s+)?({_NAME})"),
]

_LEADING_NOISE = {
    "el", "la", "los", "las", "un", "una", "de", "del", "que", "qué", "cual", "cuál",
    "es", "mejor", "comparar", "diferencia", "quiero", "me", "recomiendas", "stock",
}
_TRAILING_NOISE = {
    "disponible", "disponibles", "todavía", "todavia", "aún", "aun", "por", "favor",
    "hoy", "en", "stock", "ahora", "porfa", "y", "o", "de", "para", "que", "qué",
}
_LOCATION_STOPWORDS = {
    "stock", "cuánto", "cuanto", "qué", "que", "mi", "tu", "su", "venta", "efectivo",
    "tarjeta", "persona", "línea", "linea", "casa", "tienda", "oferta", "promoción",
    "promocion", "descuento", "negociar", "comprar", "ver", "hablar", "alguien",
}


def parse_amount(raw: str, multiplier: Optional[str] = None) -> Optional[float]:
    """
    Parse a money figure written with Spanish or English separators.

    "1.200.000" and "1,200,000" are thousands-separated; "950,5" uses a
    decimal comma. A trailing "mil" or "k" multiplies by one thousand.
    """
    text = raw.strip().rstrip(".,")
    if not text:
        return None
    if re.fullmatch(r"\d{1,3}(?:\.\d{3})+", text):
        text = text.replace(".", "")
    elif re.fullmatch(r"\d{1,3}(?:,\d{3})+", text):
        text = text.replace(",", "")
    else:
        text = text.replace(",", ".")
    try:
        value = float(text)
    except ValueError:
        return None
    if multiplier and multiplier.strip() in ("mil", "k"):
        value *= 1000
    return value


def _clean_name(raw: str) -> Optional[str]:
    words = raw.split()
    while words and words[0] in _LEADING_NOISE:
        words.pop(0)
    while words and words[-1] in _TRAILING_NOISE:
        words.pop()
    name = " ".join(words).strip(" -")
    return name or None


def extract_entities(normalized: str) -> Dict[str, Any]:
    """
    Extract best-effort entities from a lowercased utterance.

    Args:
        normalized: Lowercased, trimmed utterance

    Returns:
        Dict[str, Any]: Any of productName, priceRange, location, amount, products
    """
    entities: Dict[str, Any] = {}

    for pattern in _PRODUCT_PATTERNS:
        match = pattern.search(normalized)
        if match:
            name = _clean_name(match.group(1))
            if name:
                entities["productName"] = name
                break

    range_match = _PRICE_RANGE_PATTERN.search(normalized)
    if range_match:
        low_raw = range_match.group(1) or range_match.group(3)
        high_raw = range_match.group(2) or range_match.group(4)
        low, high = parse_amount(low_raw), parse_amount(high_raw)
        if low is not None and high is not None:
            entities["priceRange"] = {"min": min(low, high), "max": max(low, high)}

    for match in _LOCATION_PATTERN.finditer(normalized):
        words = [w for w in match.group(1).split() if w not in _LOCATION_STOPWORDS]
        if words and match.group(1).split()[0] not in _LOCATION_STOPWORDS:
            entities["location"] = " ".join(words)
            break

    amount_match = _AMOUNT_PATTERN.search(normalized)
    if amount_match:
        amount = parse_amount(amount_match.group(1), amount_match.group(2))
        if amount is not None:
            entities["amount"] = amount

    for pattern in _COMPARISON_PATTERNS:
        match = pattern.search(normalized)
        if match:
            names = [_clean_name(match.group(1)), _clean_name(match.group(2))]
            names = [n for n in names if n]
            if len(names) == 2:
                entities["products"] = names
                break

    return entities


class IntentClassifier:
    """Rule-first intent classifier with a language-model fallback."""

    def __init__(self, llm_client=None, config: Optional[Dict[str, Any]] = None):
        """
        Args:
            llm_client: Object with an async ``complete(prompt, ...)`` method, or None
            config: Configuration dict (defaults to process configuration)
        """
        self.config = config or get_config()
        self.llm_client = llm_client
        self.threshold = self.config["INTENT_CONFIDENCE_THRESHOLD"]
        self.model = self.config.get("CLASSIFICATION_MODEL")

    def match_counts(self, normalized: str) -> List[Tuple[Intent, int]]:
        """Count matching phrases per intent, in precedence order."""
        counts = []
        for intent in INTENT_PRECEDENCE:
            matches = sum(1 for phrase in INTENT_PHRASES[intent] if phrase in normalized)
            if matches:
                counts.append((intent, matches))
        return counts

    def classify_with_rules(self, utterance: Any) -> IntentClassification:
        """
        Classify an utterance with the phrase tables only.

        Confidence is ``min(0.9, 0.5 + 0.2 * m)`` for ``m`` matching phrases.
        The intent with the most matches wins; equal counts keep the intent
        listed first in ``INTENT_PRECEDENCE``.
        """
        normalized = str(utterance or "").lower().strip()
        entities = extract_entities(normalized)

        best_intent, best_count = None, 0
        for intent, count in self.match_counts(normalized):
            if count > best_count:
                best_intent, best_count = intent, count

        if best_intent is None:
            return IntentClassification(
                intent=DEFAULT_CLASSIFICATION.intent,
                confidence=DEFAULT_CLASSIFICATION.confidence,
                entities=entities
            )

        return IntentClassification(
            intent=best_intent.value,
            confidence=min(0.9, 0.5 + 0.2 * best_count),
            entities=entities
        )

    async def classify(
        self,
        utterance: Any,
        context: Optional[ConversationContext] = None,
        profile: Optional[CustomerProfile] = None
    ) -> IntentClassification:
        """
        Classify one customer utterance.

        Never raises: language-model failures degrade to the rule result.

        Args:
            utterance: Customer text for this turn
            context: Current conversation context, if any
            profile: Customer profile, if any

        Returns:
            IntentClassification: Intent, confidence and entities
        """
        with Timer("intent_classification"):
            rule_result = self.classify_with_rules(utterance)

            if rule_result.confidence >= self.threshold or self.llm_client is None:
                logger.info("Intent classified by rules",
                           intent=rule_result.intent,
                           confidence=rule_result.confidence,
                           entities=list(rule_result.entities))
                return rule_result

            text = str(utterance or "")
            try:
                prompt = build_classification_prompt(text, context, profile)
                reply = await self.llm_client.complete(prompt, model=self.model, temperature=0.1, max_tokens=200)
            except Exception as e:
                logger.warning("Classifier model call failed, using rule result",
                              error=str(e),
                              message=sanitize_for_logging(text, 100))
                return rule_result

            result = self._parse_model_classification(reply, rule_result, text)
            logger.info("Intent classified by model",
                       intent=result.intent,
                       confidence=result.confidence,
                       rule_intent=rule_result.intent)
            return result

    def _parse_model_classification(
        self,
        reply: str,
        rule_result: IntentClassification,
        utterance: str
    ) -> IntentClassification:
        data = parse_json_reply(reply)

        if data is None:
            scanned = scan_for_intent(reply)
            if scanned is None:
                logger.debug("Model reply named no known intent", reply=sanitize_for_logging(reply, 100))
                return rule_result
            return IntentClassification(
                intent=scanned,
                confidence=SCANNED_INTENT_CONFIDENCE,
                entities=rule_result.entities
            )

        intent = normalize_intent_name(data.get("intent"))
        if intent is None:
            return rule_result

        try:
            confidence = max(0.0, min(1.0, float(data.get("confidence", SCANNED_INTENT_CONFIDENCE))))
        except (TypeError, ValueError):
            confidence = SCANNED_INTENT_CONFIDENCE

        entities = dict(rule_result.entities)
        model_entities = data.get("entities")
        if isinstance(model_entities, dict):
            entities.update(self._grounded_entities(model_entities, utterance, entities))

        return IntentClassification(intent=intent, confidence=confidence, entities=entities)

    @staticmethod
    def _grounded_entities(
        model_entities: Dict[str, Any],
        utterance: str,
        existing: Dict[str, Any]
    ) -> Dict[str, Any]:
        """Keep model entities that fill gaps and actually appear in the utterance."""
        lowered = utterance.lower()
        grounded: Dict[str, Any] = {}

        for key in ("productName", "location"):
            value = model_entities.get(key)
            if key not in existing and isinstance(value, str) and value.strip() and value.strip().lower() in lowered:
                grounded[key] = value.strip().lower()

        price_range = model_entities.get("priceRange")
        if "priceRange" not in existing and isinstance(price_range, dict):
            try:
                low, high = float(price_range.get("min", 0)), float(price_range.get("max", 0))
            except (TypeError, ValueError):
                low, high = 0.0, 0.0
            if high > 0 and low <= high:
                grounded["priceRange"] = {"min": low, "max": high}

        return grounded

    def estimate_typing_indicator(self, utterance: Any) -> Dict[str, Any]:
        """
        Estimate how long a typing indicator should show for this utterance.

        Returns:
            Dict[str, Any]: ``show_typing``, ``duration_ms`` and an optional ``message``
        """
        result = self.classify_with_rules(utterance)
        complex_query = result.confidence < 0.7 or result.intent in COMPLEX_INTENTS

        if complex_query:
            return {"show_typing": True, "duration_ms": 3000, "message": "Consultando información..."}
        return {"show_typing": True, "duration_ms": 1500, "message": None}

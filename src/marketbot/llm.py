"""
Language-model client and reply handling.

This module provides:
- OpenRouter completion client with a bounded timeout
- Prompt construction for intent classification and reply generation
- Tolerant parsing of model replies (JSON, fenced JSON, free text)
- Keyword-based canned replies used when the model is unreachable
"""

import json
import re
from typing import Any, Dict, List, Optional

from loguru import logger
from openai import AsyncOpenAI
from pydantic import BaseModel, Field

from marketbot.models import (
    BusinessConfig,
    ConversationContext,
    CustomerProfile,
    Intent,
    Product,
)
from marketbot.patterns import INTENT_ALIASES
from marketbot.utils import Timer, get_config


class LLMError(Exception):
    """Raised when a language-model call fails or returns nothing usable."""
    pass


class GeneratedReply(BaseModel):
    """Reply proposed by the language model for one turn."""
    message: str
    intent: str = Intent.GENERAL.value
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    should_escalate: bool = False
    suggested_actions: List[str] = Field(default_factory=list)


class OpenRouterClient:
    """OpenRouter chat-completions client exposing a single ``complete`` call."""

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        self.config = config or get_config()
        self.client = AsyncOpenAI(
            base_url=self.config["LLM_BASE_URL"],
            api_key=self.config["OPENROUTER_API_KEY"],
            timeout=self.config["REQUEST_TIMEOUT_SECONDS"],
            max_retries=0,
            default_headers={
                "X-Title": "Marketplace Assistant"
            }
        )
        self.generation_model = self.config["GENERATION_MODEL"]
        self.classification_model = self.config["CLASSIFICATION_MODEL"]

        logger.info("OpenRouter client initialized",
                   generation_model=self.generation_model,
                   classification_model=self.classification_model)

    async def complete(
        self,
        prompt: str,
        model: Optional[str] = None,
        temperature: float = 0.3,
        max_tokens: int = 600
    ) -> str:
        """
        Send one prompt and return the model's text.

        Args:
            prompt: Full prompt text
            model: Model to use (defaults to generation model)
            temperature: Sampling temperature
            max_tokens: Maximum tokens in response

        Returns:
            str: Generated text, stripped

        Raises:
            LLMError: On timeout, transport failure or an empty reply
        """
        model = model or self.generation_model
        try:
            with Timer("llm_completion"):
                response = await self.client.chat.completions.create(
                    model=model,
                    messages=[{"role": "user", "content": prompt}],
                    temperature=temperature,
                    max_tokens=max_tokens
                )
        except Exception as e:
            logger.error("LLM completion failed", error=str(e), model=model)
            raise LLMError(f"LLM completion failed: {str(e)}") from e

        if not response.choices:
            raise LLMError("No response choices returned from LLM")

        text = response.choices[0].message.content
        if not text or not text.strip():
            raise LLMError("Empty response from LLM")

        logger.info("LLM completion received",
                   model=model,
                   response_length=len(text),
                   tokens_used=getattr(response.usage, 'total_tokens', None))
        return text.strip()


def build_classification_prompt(
    utterance: str,
    context: Optional[ConversationContext] = None,
    profile: Optional[CustomerProfile] = None
) -> str:
    """Build the constrained-JSON intent classification prompt."""
    last_intent = context.last_intent if context else "ninguno"
    history = ", ".join(profile.inquiry_history[-5:]) if profile and profile.inquiry_history else "nuevo cliente"
    intents = ", ".join(intent.value for intent in Intent if intent is not Intent.ERROR)

    return f"""Clasifica la intención del siguiente mensaje de un cliente en español.

MENSAJE: "{utterance}"

CONTEXTO PREVIO: {last_intent}
HISTORIAL DEL CLIENTE: {history}

INTENCIONES POSIBLES: {intents}

Responde solo con JSON:
{{
  "intent": "nombre_de_la_intencion",
  "confidence": 0.0,
  "entities": {{
    "productName": "nombre si se menciona",
    "priceRange": {{"min": 0, "max": 0}},
    "location": "ubicación si se menciona"
  }}
}}"""


def build_reply_prompt(
    utterance: str,
    context: ConversationContext,
    profile: CustomerProfile,
    catalog: List[Product],
    business: BusinessConfig
) -> str:
    """Build the free-form sales reply prompt."""
    products = "\n".join(
        f"- {p.name}: ${p.price:,.0f} ({p.status.value})" for p in catalog[:20]
    ) or "No hay productos cargados"
    tone = business.communication_style.tone.value if business.communication_style else "friendly"

    return f"""Eres un asistente de ventas de {business.business_name}. Respondes en español natural, con tono {tone}.

CLIENTE: {profile.name or 'Cliente'} (consultas previas: {', '.join(profile.inquiry_history[-5:]) or 'ninguna'})
ÚLTIMA INTENCIÓN: {context.last_intent}
PRODUCTOS CONSULTADOS: {', '.join(context.product_inquiries[-5:]) or 'ninguno'}

PRODUCTOS DISPONIBLES:
{products}

INSTRUCCIONES:
1. Responde siempre en español, de forma breve y completa
2. Usa solo precios y productos de la lista
3. Si no puedes responder con confianza, sugiere hablar con un asesor

Responde solo con JSON:
{{
  "message": "tu respuesta",
  "intent": "nombre_de_la_intencion",
  "confidence": 0.0,
  "shouldEscalate": false,
  "suggestedActions": []
}}

MENSAJE DEL CLIENTE: {utterance}"""


_FENCE_PATTERN = re.compile(r'^```(?:json)?\s*|\s*```$', re.IGNORECASE)


def parse_json_reply(text: str) -> Optional[Dict[str, Any]]:
    """
    Parse a model reply as a JSON object.

    Markdown code fences are stripped, and the first ``{...}`` block is tried
    when the reply wraps JSON in prose.

    Returns:
        Optional[Dict[str, Any]]: Parsed object, or None when no object parses
    """
    if not text:
        return None

    candidates = [_FENCE_PATTERN.sub('', text.strip())]
    start, end = text.find('{'), text.rfind('}')
    if 0 <= start < end:
        candidates.append(text[start:end + 1])

    for candidate in candidates:
        try:
            parsed = json.loads(candidate)
        except ValueError:
            continue
        if isinstance(parsed, dict):
            return parsed
    return None


def normalize_intent_name(name: Any) -> Optional[str]:
    """Map a model-supplied intent name (English or Spanish) to an intent value."""
    if not isinstance(name, str):
        return None
    key = name.strip().lower()
    if key in INTENT_ALIASES:
        return INTENT_ALIASES[key].value
    try:
        return Intent(key).value
    except ValueError:
        return None


def scan_for_intent(text: str) -> Optional[str]:
    """Find the first known intent name mentioned in free text."""
    lowered = (text or "").lower()
    names = [intent.value for intent in Intent] + list(INTENT_ALIASES)
    # Longest names first so "shipping_status" wins over "shipping"
    for name in sorted(names, key=len, reverse=True):
        if re.search(rf'\b{re.escape(name)}\b', lowered):
            return normalize_intent_name(name)
    return None


def _as_confidence(value: Any, default: float) -> float:
    try:
        return max(0.0, min(1.0, float(value)))
    except (TypeError, ValueError):
        return default


def parse_generated_reply(text: str) -> GeneratedReply:
    """Interpret a reply-generation answer; non-JSON text becomes the message."""
    data = parse_json_reply(text)
    if data is None or not str(data.get("message", "")).strip():
        return GeneratedReply(message=text.strip(), confidence=0.5)

    actions = data.get("suggestedActions") or []
    return GeneratedReply(
        message=str(data["message"]).strip(),
        intent=normalize_intent_name(data.get("intent")) or Intent.GENERAL.value,
        confidence=_as_confidence(data.get("confidence"), 0.5),
        should_escalate=bool(data.get("shouldEscalate", False)),
        suggested_actions=[str(a) for a in actions] if isinstance(actions, list) else []
    )


def fallback_reply(utterance: str) -> GeneratedReply:
    """Canned reply used when the model cannot be reached; always escalates."""
    lowered = (utterance or "").lower()

    if "disponible" in lowered or "stock" in lowered:
        return GeneratedReply(
            message="¡Hola! Para consultar disponibilidad específica, necesito conectarte con un asesor. ¿Te parece bien?",
            intent=Intent.AVAILABILITY.value,
            confidence=0.7,
            should_escalate=True,
            suggested_actions=["escalate_to_human"]
        )

    if any(word in lowered for word in ("precio", "cuesta", "vale")):
        return GeneratedReply(
            message="¡Hola! Para información de precios actualizada, te conectaré con un asesor que te puede ayudar mejor. Un momento por favor.",
            intent=Intent.PRICE.value,
            confidence=0.7,
            should_escalate=True,
            suggested_actions=["escalate_to_human"]
        )

    if any(word in lowered for word in ("envío", "envio", "delivery")):
        return GeneratedReply(
            message="¡Hola! Para coordinar el envío, te voy a conectar con un asesor que te dará todos los detalles.",
            intent=Intent.SHIPPING.value,
            confidence=0.7,
            should_escalate=True,
            suggested_actions=["escalate_to_human"]
        )

    return GeneratedReply(
        message="¡Hola! Gracias por escribirnos. Un asesor te atenderá en breve para ayudarte con tu consulta.",
        intent=Intent.GENERAL.value,
        confidence=0.5,
        should_escalate=True,
        suggested_actions=["escalate_to_human"]
    )


class ReplyGenerator:
    """Generates free-form replies through a completion client."""

    def __init__(self, client, model: Optional[str] = None):
        self.client = client
        self.model = model

    async def generate(
        self,
        utterance: str,
        context: ConversationContext,
        profile: CustomerProfile,
        catalog: List[Product],
        business: BusinessConfig
    ) -> GeneratedReply:
        """
        Ask the model for a reply to the customer.

        Raises:
            LLMError: If the completion call fails
        """
        prompt = build_reply_prompt(utterance, context, profile, catalog, business)
        text = await self.client.complete(prompt, model=self.model, temperature=0.7)
        reply = parse_generated_reply(text)
        logger.info("Generated reply parsed",
                   intent=reply.intent,
                   confidence=reply.confidence,
                   should_escalate=reply.should_escalate)
        return reply

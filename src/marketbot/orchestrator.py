"""
Per-turn orchestration of the decision pipeline.

This module provides the single entry point ``process_message``:

    utterance -> IntentClassifier -> EscalationDetector -> confidence score
              -> ResponseSynthesizer -> optional model enrichment
              -> escalation notification (detached)

Components are injected through the constructor; ``build_orchestrator``
wires the production set from configuration. ``process_message`` never
raises: any unexpected failure yields a fixed fallback result that hands the
conversation to a human.

Usage:
    orchestrator = build_orchestrator(get_config())
    result = await orchestrator.process_message(
        "¿tienes el iphone 13 disponible?",
        context=context,
        profile=profile,
        catalog=products,
        business=business_config,
    )
"""

import time
from typing import Any, Dict, List, Optional

from loguru import logger
from pydantic import ValidationError

from marketbot import scoring
from marketbot.classifier import IntentClassifier
from marketbot.escalation import EscalationDetector
from marketbot.llm import OpenRouterClient, ReplyGenerator
from marketbot.models import (
    BotResponse,
    BusinessConfig,
    ContextUpdate,
    ConversationContext,
    ConversationStatus,
    CustomerProfile,
    EscalationPriority,
    EscalationTrigger,
    Intent,
    IntentClassification,
    ProcessingMetadata,
    ProcessingResult,
    Product,
    TriggerType,
)
from marketbot.notifications import NotificationDispatcher, build_body, build_publisher, build_subject
from marketbot.persona import ChoiceSelector
from marketbot.responses import ResponseSynthesizer
from marketbot.utils import get_config, sanitize_for_logging


FALLBACK_RESPONSE_TEXT = "Disculpa, tuve un problema técnico. Te conectaré con un asesor para ayudarte mejor."
FALLBACK_CONFIDENCE = 0.1


class AssistantOrchestrator:
    """Sequences classification, escalation, scoring and synthesis for one turn."""

    def __init__(
        self,
        classifier: IntentClassifier,
        detector: EscalationDetector,
        synthesizer: ResponseSynthesizer,
        reply_generator: Optional[ReplyGenerator] = None,
        dispatcher: Optional[NotificationDispatcher] = None,
        config: Optional[Dict[str, Any]] = None
    ):
        self.config = config or get_config()
        self.classifier = classifier
        self.detector = detector
        self.synthesizer = synthesizer
        self.reply_generator = reply_generator
        self.dispatcher = dispatcher
        self.enrichment_threshold = self.config["ENRICHMENT_CONFIDENCE_THRESHOLD"]

    async def process_message(
        self,
        utterance: Any,
        context: Any = None,
        profile: Any = None,
        catalog: Any = None,
        business: Any = None
    ) -> ProcessingResult:
        """
        Process one inbound customer message.

        Args:
            utterance: Customer text; None or non-text input is tolerated
            context: ConversationContext (or dict); None starts a new conversation
            profile: CustomerProfile (or dict); None uses an anonymous profile
            catalog: Products (models or dicts) visible to this turn; None means empty
            business: BusinessConfig (or dict); None uses defaults

        Returns:
            ProcessingResult: Response, classification, triggers and diagnostics
        """
        started = time.perf_counter()
        services_used: List[str] = []

        try:
            text = "" if utterance is None else str(utterance)
            context = self._coerce_context(context)
            profile = self._coerce_profile(profile, context)
            products = self._coerce_catalog(catalog)
            business = self._coerce_business(business)

            logger.info("Processing message",
                       tenant_id=context.tenant_id,
                       customer_id=context.customer_id,
                       message=sanitize_for_logging(text, 100),
                       catalog_size=len(products))

            services_used.append("intent_classifier")
            intent = await self.classifier.classify(text, context, profile)

            services_used.append("escalation_detector")
            escalation = self.detector.detect(text, intent, context, profile)

            confidence_score = scoring.score(intent, escalation.triggers, context)

            # Triggers reach the synthesizer only when auto-escalation is on
            active_triggers = escalation.triggers if escalation.should_escalate else []

            services_used.append("response_synthesizer")
            response = await self.synthesizer.generate(
                intent, active_triggers, context, profile, products, business, utterance=text
            )

            if self._needs_enrichment(intent, response):
                services_used.append("llm_enrichment")
                response = await self._enrich(response, text, context, profile, products, business)

            if active_triggers and self.dispatcher is not None:
                services_used.append("notification")
                self.dispatcher.notify(
                    build_subject(escalation, business),
                    build_body(escalation, business, context, intent, text)
                )

            metadata = ProcessingMetadata(
                processing_time_ms=(time.perf_counter() - started) * 1000,
                services_used=services_used,
                confidence_score=confidence_score,
                recommended_actions=generate_recommended_actions(response, intent, escalation.triggers),
                escalation_priority=escalation.priority,
                suggested_agent=escalation.suggested_agent if escalation.triggers else None,
                estimated_resolution_minutes=escalation.estimated_resolution_minutes if escalation.triggers else None,
            )

            logger.info("Message processed",
                       intent=intent.intent,
                       branch=response.intent,
                       should_escalate=response.should_escalate,
                       confidence_score=round(confidence_score, 3),
                       processing_time_ms=round(metadata.processing_time_ms, 2))

            return ProcessingResult(
                response=response,
                intent=intent,
                escalation_triggers=escalation.triggers,
                processing_metadata=metadata,
            )

        except Exception as e:
            logger.exception("Message processing failed, returning fallback response", error=str(e))
            return self._fallback_result(e, started)

    def estimate_typing_indicator(self, utterance: Any) -> Dict[str, Any]:
        """Typing-indicator hint computed from the rule pass only."""
        return self.classifier.estimate_typing_indicator(utterance)

    def _needs_enrichment(self, intent: IntentClassification, response: BotResponse) -> bool:
        return (
            self.reply_generator is not None
            and intent.confidence < self.enrichment_threshold
            and not response.should_escalate
            and response.metadata.get("source") != "llm"
        )

    async def _enrich(
        self,
        response: BotResponse,
        text: str,
        context: ConversationContext,
        profile: CustomerProfile,
        products: List[Product],
        business: BusinessConfig
    ) -> BotResponse:
        """Replace the template text with the model's, restyled; keep the higher confidence."""
        try:
            reply = await self.reply_generator.generate(text, context, profile, products, business)
        except Exception as e:
            logger.warning("Enrichment failed, keeping template reply", error=str(e))
            return response

        enriched = self.synthesizer.restyle(response, reply.message, business)
        metadata = dict(enriched.metadata)
        metadata["enriched"] = True
        return enriched.model_copy(update={
            "confidence": max(response.confidence, reply.confidence),
            "metadata": metadata,
        })

    @staticmethod
    def _coerce_context(context: Any) -> ConversationContext:
        if isinstance(context, ConversationContext):
            return context
        if isinstance(context, dict):
            return ConversationContext.model_validate(context)
        return ConversationContext()

    @staticmethod
    def _coerce_profile(profile: Any, context: ConversationContext) -> CustomerProfile:
        if isinstance(profile, CustomerProfile):
            return profile
        if isinstance(profile, dict):
            return CustomerProfile.model_validate(profile)
        return CustomerProfile(phone_number=context.customer_id)

    @staticmethod
    def _coerce_catalog(catalog: Any) -> List[Product]:
        products: List[Product] = []
        for item in catalog or []:
            if isinstance(item, Product):
                products.append(item)
                continue
            try:
                products.append(Product.model_validate(item))
            except ValidationError as e:
                logger.warning("Skipping invalid catalog item", error=str(e))
        return products

    @staticmethod
    def _coerce_business(business: Any) -> BusinessConfig:
        if isinstance(business, BusinessConfig):
            return business
        if isinstance(business, dict):
            return BusinessConfig.model_validate(business)
        return BusinessConfig()

    @staticmethod
    def _fallback_result(error: Exception, started: float) -> ProcessingResult:
        trigger = EscalationTrigger(
            type=TriggerType.ERROR,
            confidence=1.0,
            reason="Error interno del asistente",
            priority=EscalationPriority.HIGH,
            metadata={"error": str(error), "error_type": type(error).__name__},
        )
        response = BotResponse(
            response=FALLBACK_RESPONSE_TEXT,
            intent=Intent.ERROR.value,
            confidence=FALLBACK_CONFIDENCE,
            should_escalate=True,
            updated_context_fields=ContextUpdate(
                last_intent=Intent.ERROR.value,
                status=ConversationStatus.ESCALATED,
                escalation_reason=trigger.reason,
                last_response=FALLBACK_RESPONSE_TEXT,
            ),
            suggested_actions=["escalate_to_human"],
        )
        return ProcessingResult(
            response=response,
            intent=IntentClassification(intent=Intent.ERROR.value, confidence=FALLBACK_CONFIDENCE),
            escalation_triggers=[trigger],
            processing_metadata=ProcessingMetadata(
                processing_time_ms=(time.perf_counter() - started) * 1000,
                services_used=["error_handler"],
                confidence_score=FALLBACK_CONFIDENCE,
                recommended_actions=["escalate_to_human", "log_error"],
                escalation_priority=EscalationPriority.HIGH,
                error=str(error),
            ),
        )


def generate_recommended_actions(
    response: BotResponse,
    intent: IntentClassification,
    triggers: List[EscalationTrigger]
) -> List[str]:
    """Follow-up actions for the operator console, de-duplicated in order."""
    actions = list(response.suggested_actions)

    if intent.intent == Intent.PURCHASE.value:
        actions += ["collect_contact_info", "prepare_purchase_flow"]
    elif intent.intent == Intent.PRICE.value and intent.confidence > 0.8:
        actions.append("show_payment_options")
    elif intent.intent == Intent.AVAILABILITY.value:
        actions.append("update_inventory_check")

    if triggers:
        actions += ["prepare_handoff_context", "notify_human_agent"]
        if any(t.type == TriggerType.COMPLAINT for t in triggers):
            actions += ["escalate_to_supervisor", "log_complaint"]

    if response.confidence < 0.5:
        actions += ["request_clarification", "offer_human_assistance"]

    return list(dict.fromkeys(actions))


def build_orchestrator(
    config: Optional[Dict[str, Any]] = None,
    selector: Optional[ChoiceSelector] = None
) -> AssistantOrchestrator:
    """
    Wire the production components from configuration.

    The language model is enabled only when OPENROUTER_API_KEY is set.
    """
    config = config or get_config()

    llm_client = OpenRouterClient(config) if config["OPENROUTER_API_KEY"] else None
    reply_generator = ReplyGenerator(llm_client, model=config["GENERATION_MODEL"]) if llm_client else None

    orchestrator = AssistantOrchestrator(
        classifier=IntentClassifier(llm_client=llm_client, config=config),
        detector=EscalationDetector(config=config),
        synthesizer=ResponseSynthesizer(reply_generator=reply_generator, selector=selector, config=config),
        reply_generator=reply_generator,
        dispatcher=NotificationDispatcher(build_publisher(config)),
        config=config,
    )
    logger.info("Assistant orchestrator built", llm_enabled=llm_client is not None)
    return orchestrator
